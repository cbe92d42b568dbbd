"""Attribute queries over an established command-mode session."""

from __future__ import annotations

import logging
import struct

from qcedl.core.command_table import CommandTable
from qcedl.core.errors import ProtocolViolationError, UnexpectedCommandError, UnsupportedAttributeError
from qcedl.core.handshake import Handshake, HandshakeState
from qcedl.core.link import PacketLink
from qcedl.core.model import (
    AttributeKind,
    AttributeRequest,
    AttributeResponse,
    AttributeValue,
    CommandEntry,
    PayloadFormat,
)
from qcedl.core.packets import (
    EndOfImageTransfer,
    ExecuteDataRequest,
    ExecuteRequest,
    ExecuteResponse,
    Status,
    status_name,
)

LOGGER = logging.getLogger(__name__)


class AttributeQueryEngine:
    def __init__(self, link: PacketLink, handshake: Handshake, table: CommandTable) -> None:
        self.link = link
        self.handshake = handshake
        self.table = table

    def query(self, kind: AttributeKind) -> AttributeValue:
        """Read one attribute from the device.

        Raises:
            UnsupportedAttributeError: the device or its protocol version does
                not implement ``kind``; the session stays usable.
            SessionError: the session can no longer be trusted.
        """
        if self.handshake.state is not HandshakeState.READY:
            raise RuntimeError(f"Cannot query attributes in state {self.handshake.state.value}")

        entry = self.table.entry(kind)
        version = self.handshake.hello.version
        if version < entry.min_version:
            raise UnsupportedAttributeError(
                kind.value,
                f"{kind.value} needs Sahara v{entry.min_version}, device speaks v{version}",
            )

        response = self.fetch(AttributeRequest(kind=kind, code=entry.code))
        value = interpret(entry, response.payload)
        LOGGER.info("Read %s (%d bytes)", kind.value, len(response.payload))
        return value

    def fetch(self, request: AttributeRequest) -> AttributeResponse:
        """Run the execute / execute-data exchange and return the raw payload."""
        step = f"execute {request.kind.value}"
        self.link.send(ExecuteRequest(client_command=request.code), step=step)
        packet = self.handshake.receive(step=step)

        if isinstance(packet, EndOfImageTransfer) and packet.status == Status.SUCCESS:
            raise UnexpectedCommandError(
                "Device ended the transfer without an error status",
                step=step,
                expected="ExecuteResponse",
                actual=f"EndOfImageTransfer ({status_name(packet.status)})",
            )
        if isinstance(packet, EndOfImageTransfer):
            raise UnsupportedAttributeError(
                request.kind.value,
                f"Device rejected {request.kind.value} (status {status_name(packet.status)})",
                status=packet.status,
            )
        if not isinstance(packet, ExecuteResponse):
            raise UnexpectedCommandError(
                "Unexpected reply to execute request",
                step=step,
                expected="ExecuteResponse",
                actual=type(packet).__name__,
            )
        if packet.client_command != request.code:
            raise ProtocolViolationError(
                "Execute response names a different command",
                step=step,
                expected=f"0x{request.code:02x}",
                actual=f"0x{packet.client_command:02x}",
            )
        if packet.data_length == 0:
            raise UnsupportedAttributeError(
                request.kind.value,
                f"Device reports no data for {request.kind.value}",
            )

        step = f"execute-data {request.kind.value}"
        self.link.send(ExecuteDataRequest(client_command=request.code), step=step)
        data = self.link.receive_payload(packet.data_length, step=step)
        if len(data.payload) != packet.data_length:
            raise ProtocolViolationError(
                "Execute data length differs from the declared length",
                step=step,
                expected=f"{packet.data_length} bytes",
                actual=f"{len(data.payload)} bytes",
            )
        return AttributeResponse(request=request, declared_length=packet.data_length, payload=data.payload)


def interpret(entry: CommandEntry, payload: bytes) -> AttributeValue:
    if entry.format is PayloadFormat.BYTES:
        return bytes(payload)

    if entry.format is PayloadFormat.U32_LIST:
        if len(payload) % 4:
            raise ProtocolViolationError(
                f"{entry.kind.value} payload is not a list of 32-bit words",
                step=f"interpret {entry.kind.value}",
                actual=f"{len(payload)} bytes",
            )
        return tuple(word for (word,) in struct.iter_unpack("<I", payload))

    width = entry.width or len(payload)
    if len(payload) < width:
        raise ProtocolViolationError(
            f"{entry.kind.value} payload too short",
            step=f"interpret {entry.kind.value}",
            expected=f">= {width} bytes",
            actual=f"{len(payload)} bytes",
        )
    return int.from_bytes(payload[:width], "little")
