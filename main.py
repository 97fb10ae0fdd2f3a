"""Run devlink from a checkout without installing it.

Usage:
- `python main.py link --ssid home-wifi --wifi-password secret`

The packages live under `src/`, so this script puts that directory on the
import path before handing over to the typer app.
"""

from __future__ import annotations

import sys
from pathlib import Path

_SRC = Path(__file__).resolve().parent / "src"


def main() -> None:
    if str(_SRC) not in sys.path:
        sys.path.insert(0, str(_SRC))

    # Windows consoles default to cp1252; rich output needs utf-8.
    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding="utf-8")
        sys.stderr.reconfigure(encoding="utf-8")

    from cli.main import run  # noqa: PLC0415

    run()


if __name__ == "__main__":
    main()
