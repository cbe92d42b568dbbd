"""Sahara handshake state machine.

The device speaks first: it sends ``Hello`` as soon as the host opens the
bulk endpoints. The host answers with ``HelloResponse`` requesting command
mode and waits for ``CommandReady``.
"""

from __future__ import annotations

import logging
from enum import Enum

from qcedl.core.errors import (
    ProtocolViolationError,
    SessionError,
    UnexpectedCommandError,
    UnsupportedModeError,
    VersionMismatchError,
)
from qcedl.core.link import PacketLink
from qcedl.core.model import HelloInfo
from qcedl.core.packets import (
    CommandReady,
    EndOfImageTransfer,
    Hello,
    HelloResponse,
    MemoryDebug,
    Mode,
    Packet,
    ReadData,
    ReadData64,
    status_name,
)

LOGGER = logging.getLogger(__name__)


class HandshakeState(Enum):
    AWAITING_HELLO = "awaiting-hello"
    NEGOTIATING_MODE = "negotiating-mode"
    READY = "ready"
    FAILED = "failed"


class Handshake:
    def __init__(self, link: PacketLink) -> None:
        self.link = link
        self.state = HandshakeState.AWAITING_HELLO
        self.failure: SessionError | None = None
        self._hello: HelloInfo | None = None

    @property
    def hello(self) -> HelloInfo:
        if self.state is not HandshakeState.READY or self._hello is None:
            raise RuntimeError(f"Handshake is not ready (state={self.state.value})")
        return self._hello

    def run(self) -> HelloInfo:
        """Drive the handshake to READY, or raise the failure that ended it."""
        if self.state is not HandshakeState.AWAITING_HELLO:
            raise RuntimeError(f"Handshake already ran (state={self.state.value})")
        try:
            self._await_hello()
            self._negotiate_mode()
        except SessionError as exc:
            self.fail(exc)
            raise
        LOGGER.info(
            "Sahara v%d session ready (compatible v%d, max packet %d bytes)",
            self._hello.version,
            self._hello.compatible,
            self._hello.max_length,
        )
        return self._hello

    def observe(self, packet: Packet, *, step: str) -> None:
        """Reject packets that may not appear once the session is READY."""
        if self.state is HandshakeState.READY and isinstance(packet, Hello):
            exc = ProtocolViolationError(
                "Device restarted the handshake in command mode",
                step=step,
                actual="Hello",
            )
            self.fail(exc)
            raise exc

    def receive(self, *, step: str) -> Packet:
        """Receive one reply in command mode, failing the session on any error."""
        try:
            packet = self.link.receive(step=step)
            self.observe(packet, step=step)
        except SessionError as exc:
            if self.state is not HandshakeState.FAILED:
                self.fail(exc)
            raise
        return packet

    def fail(self, exc: SessionError) -> None:
        self.state = HandshakeState.FAILED
        self.failure = exc
        LOGGER.debug("Handshake failed: %s", exc)

    def _await_hello(self) -> None:
        settings = self.link.settings
        packet = self.link.receive(step="hello", timeout_s=settings.hello_timeout_s)
        if not isinstance(packet, Hello):
            raise UnexpectedCommandError(
                "Device did not open with Hello",
                step="hello",
                expected="Hello",
                actual=type(packet).__name__,
            )

        LOGGER.debug(
            "Device hello: version=%d compatible=%d max_length=%d mode=%d",
            packet.version,
            packet.compatible,
            packet.max_length,
            packet.mode,
        )
        if packet.version < settings.host_min_version or packet.compatible > settings.host_version:
            raise VersionMismatchError(
                packet.version,
                packet.compatible,
                settings.host_version,
                settings.host_min_version,
            )

        self._hello = HelloInfo(
            version=packet.version,
            compatible=packet.compatible,
            max_length=packet.max_length,
            mode=packet.mode,
        )
        self.link.send(
            HelloResponse(
                version=settings.host_version,
                compatible=settings.host_min_version,
                status=0,
                mode=Mode.COMMAND,
            ),
            step="hello-response",
        )
        self.state = HandshakeState.NEGOTIATING_MODE

    def _negotiate_mode(self) -> None:
        packet = self.link.receive(step="mode-negotiation")
        if isinstance(packet, CommandReady):
            self.state = HandshakeState.READY
            return
        if isinstance(packet, (ReadData, ReadData64)):
            raise UnsupportedModeError(
                f"Device requested image {packet.image} instead of entering command mode"
            )
        if isinstance(packet, MemoryDebug):
            raise UnsupportedModeError("Device entered memory debug mode instead of command mode")
        if isinstance(packet, EndOfImageTransfer):
            raise UnsupportedModeError(
                f"Device refused command mode (status {status_name(packet.status)})",
                status=packet.status,
            )
        raise UnexpectedCommandError(
            "Unexpected reply to mode selection",
            step="mode-negotiation",
            expected="CommandReady",
            actual=type(packet).__name__,
        )
