"""Half-duplex packet link over a transport."""

from __future__ import annotations

import logging
import threading
import time

from qcedl.core.errors import (
    SessionCancelledError,
    SessionTimeoutError,
    TransportError,
    TransportFailureError,
    TransportTimeoutError,
)
from qcedl.core.model import Settings
from qcedl.core.packets import ExecuteDataResponse, Packet, decode, encode
from qcedl.transports.base import Transport

LOGGER = logging.getLogger(__name__)


class PacketLink:
    """Sends one packet, then receives one reply, converting transport failures.

    Cancellation and the overall session deadline are checked before every
    transfer, never in the middle of one.
    """

    def __init__(
        self,
        transport: Transport,
        settings: Settings,
        *,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.transport = transport
        self.settings = settings
        self._cancel_event = cancel_event
        self._deadline = (
            time.monotonic() + settings.session_timeout_s
            if settings.session_timeout_s is not None
            else None
        )

    def _checkpoint(self, step: str) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise SessionCancelledError(f"Session cancelled before {step}")
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise SessionTimeoutError(f"Session deadline exceeded before {step}")

    def _timeout_for(self, timeout_s: float) -> float:
        if self._deadline is None:
            return timeout_s
        return max(0.0, min(timeout_s, self._deadline - time.monotonic()))

    def send(self, packet: Packet, *, step: str) -> None:
        self._checkpoint(step)
        data = encode(packet)
        LOGGER.debug("-> %s %s", type(packet).__name__, data.hex(" "))
        try:
            self.transport.send(data)
        except TransportTimeoutError as exc:
            raise SessionTimeoutError(f"Timed out sending {type(packet).__name__} during {step}") from exc
        except TransportError as exc:
            raise TransportFailureError(f"Transport failed during {step}: {exc}") from exc

    def receive_bytes(self, *, step: str, timeout_s: float, max_len: int | None = None) -> bytes:
        self._checkpoint(step)
        limit = max_len if max_len is not None else self.settings.transfer_size
        try:
            data = self.transport.receive(limit, self._timeout_for(timeout_s))
        except TransportTimeoutError as exc:
            raise SessionTimeoutError(f"No response from device during {step}") from exc
        except TransportError as exc:
            raise TransportFailureError(f"Transport failed during {step}: {exc}") from exc
        data = bytes(data)
        LOGGER.debug("<- %s", data.hex(" "))
        return data

    def receive(self, *, step: str, timeout_s: float | None = None) -> Packet:
        data = self.receive_bytes(
            step=step,
            timeout_s=self.settings.response_timeout_s if timeout_s is None else timeout_s,
        )
        packet = decode(data)
        LOGGER.debug("<- %s", packet)
        return packet

    def receive_payload(self, expected_length: int, *, step: str) -> ExecuteDataResponse:
        data = self.receive_bytes(
            step=step,
            timeout_s=self.settings.response_timeout_s,
            max_len=max(expected_length, self.settings.transfer_size),
        )
        return ExecuteDataResponse(payload=data)
