"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol


class Transport(Protocol):
    def send(self, data: bytes) -> None:
        """Transmit ``data`` as one logical transfer."""

    def receive(self, max_len: int, timeout_s: float) -> bytes:
        """Return one complete logical transfer of at most ``max_len`` bytes.

        Raises ``TransportTimeoutError`` when nothing arrives in time and
        ``TransportIOError`` when the transfer fails.
        """
