from adapters.broadcast.udp import UdpBroadcaster, encode_json_frames

__all__ = [
    "UdpBroadcaster",
    "encode_json_frames",
]
