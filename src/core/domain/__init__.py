"""Domain models and value types.

Why:
- Plain, strict data structures (Pydantic v2) live here.
- The domain knows nothing about HTTP, sockets or the CLI: only provisioning concepts.
"""
