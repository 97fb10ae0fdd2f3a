"""Local broadcaster over UDP.

The broadcaster binds one datagram socket with SO_BROADCAST and re-sends the
encoded frames in a background task until stopped. Frame encoding is
pluggable: vendor schemes supply their own `FrameEncoder`; `encode_json_frames`
is the generic one shipped here.
"""

from __future__ import annotations

import asyncio
import json
import logging
import socket

from core.domain.models import BroadcastConfig
from core.interfaces.broadcaster import FrameEncoder

logger = logging.getLogger(__name__)


def encode_json_frames(config: BroadcastConfig) -> list[bytes]:
    """One JSON datagram carrying the WiFi credentials and the pairing code."""

    payload = {
        "ssid": config.ssid,
        "password": config.wifi_password,
        "token": f"{config.region.value}{config.token}{config.secret}",
    }
    return [json.dumps(payload, separators=(",", ":")).encode("utf-8")]


class UdpBroadcaster:
    def __init__(
        self,
        *,
        encoder: FrameEncoder = encode_json_frames,
        address: str = "255.255.255.255",
        port: int = 30011,
        interval_seconds: float = 0.05,
        bind_host: str = "",
    ) -> None:
        self._encoder = encoder
        self._target = (address, port)
        self._interval = interval_seconds
        self._bind_host = bind_host
        self._socket: socket.socket | None = None
        self._task: asyncio.Task[None] | None = None
        self.frames_sent = 0

    @property
    def transmitting(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, config: BroadcastConfig) -> None:
        if self._task is not None:
            raise RuntimeError("broadcast already running")
        frames = self._encoder(config)
        if not frames:
            raise ValueError("frame encoder produced no frames")

        if self._socket is None:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
                sock.setblocking(False)
                sock.bind((self._bind_host, 0))
            except OSError:
                sock.close()
                raise
            self._socket = sock

        self.frames_sent = 0
        self._task = asyncio.create_task(self._transmit(self._socket, frames), name="devlink-broadcast")
        logger.debug("Broadcasting %d frame(s) to %s:%d", len(frames), *self._target)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise

    def release(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        sock, self._socket = self._socket, None
        if sock is not None:
            sock.close()

    async def _transmit(self, sock: socket.socket, frames: list[bytes]) -> None:
        loop = asyncio.get_running_loop()
        failing = False
        while True:
            for frame in frames:
                try:
                    await loop.sock_sendto(sock, frame, self._target)
                except OSError as exc:
                    # Warn once per run of failures; repeats go to DEBUG.
                    logger.log(logging.DEBUG if failing else logging.WARNING, "Broadcast send failed: %s", exc)
                    failing = True
                else:
                    if failing:
                        logger.info("Broadcast sends recovered")
                    failing = False
                    self.frames_sent += 1
            await asyncio.sleep(self._interval)
