from __future__ import annotations

from collections import deque

import pytest

from qcedl.core.errors import TransportTimeoutError
from qcedl.core.packets import (
    CommandReady,
    EndOfImageTransfer,
    ExecuteDataRequest,
    ExecuteRequest,
    ExecuteResponse,
    Hello,
    HelloResponse,
    Reset,
    ResetResponse,
    Status,
    decode,
    encode,
)

HWID_PAYLOAD = bytes.fromhex("00000000e1107f00")
SERIAL_PAYLOAD = bytes.fromhex("1be29e78")


class SimulatedDevice:
    """Device side of a Sahara command-mode session."""

    def __init__(
        self,
        *,
        version: int = 2,
        compatible: int = 1,
        max_length: int = 0x400,
        attributes: dict[int, bytes] | None = None,
        data_overrides: dict[int, bytes] | None = None,
        mode_reply: object | None = None,
        silent: bool = False,
    ) -> None:
        self.attributes = attributes if attributes is not None else {0x01: SERIAL_PAYLOAD, 0x02: HWID_PAYLOAD}
        self.data_overrides = data_overrides or {}
        self.mode_reply = mode_reply if mode_reply is not None else CommandReady()
        self.sent: list[bytes] = []
        self.receive_calls: list[tuple[int, float]] = []
        self.outbox: deque[bytes] = deque()
        self.opened = False
        self.closed = False
        if not silent:
            self.outbox.append(
                encode(Hello(version=version, compatible=compatible, max_length=max_length, mode=0))
            )

    @property
    def sent_packets(self) -> list[object]:
        return [decode(data) for data in self.sent]

    def __enter__(self) -> SimulatedDevice:
        self.opened = True
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.closed = True

    def send(self, data: bytes) -> None:
        self.sent.append(bytes(data))
        packet = decode(data)
        if isinstance(packet, HelloResponse):
            self.outbox.append(encode(self.mode_reply))
        elif isinstance(packet, ExecuteRequest):
            payload = self.attributes.get(packet.client_command)
            if payload is None:
                self.outbox.append(encode(EndOfImageTransfer(image=0, status=Status.EXEC_COMMAND_UNSUPPORTED)))
            else:
                self.outbox.append(encode(ExecuteResponse(client_command=packet.client_command, data_length=len(payload))))
        elif isinstance(packet, ExecuteDataRequest):
            code = packet.client_command
            self.outbox.append(self.data_overrides.get(code, self.attributes[code]))
        elif isinstance(packet, Reset):
            self.outbox.append(encode(ResetResponse()))

    def receive(self, max_len: int, timeout_s: float) -> bytes:
        self.receive_calls.append((max_len, timeout_s))
        if not self.outbox:
            raise TransportTimeoutError("simulated device is silent")
        return self.outbox.popleft()[:max_len]


class ScriptedTransport:
    """Replays fixed device transfers in order, recording what the host sends."""

    def __init__(self, replies: list[bytes]) -> None:
        self.replies = deque(replies)
        self.sent: list[bytes] = []

    def send(self, data: bytes) -> None:
        self.sent.append(bytes(data))

    def receive(self, max_len: int, timeout_s: float) -> bytes:
        if not self.replies:
            raise TransportTimeoutError("script exhausted")
        return self.replies.popleft()


@pytest.fixture
def make_device():
    return SimulatedDevice


@pytest.fixture
def make_scripted():
    return ScriptedTransport
