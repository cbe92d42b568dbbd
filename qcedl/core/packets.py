"""Sahara packet codec.

Every packet starts with an 8-byte little-endian header::

    +------------+--------------+---------------------------+
    | command id | total length | command-specific body ... |
    | u32        | u32          | fixed size per command    |
    +------------+--------------+---------------------------+

The total length covers the header. Bodies are sequences of little-endian
32-bit (or 64-bit for ``ReadData64``) unsigned words.

The payload returned after an ``ExecuteDataRequest`` is not framed; it is
modelled as :class:`ExecuteDataResponse` and never passes through
:func:`decode`.
"""

from __future__ import annotations

import struct
from dataclasses import astuple, dataclass
from enum import IntEnum
from typing import ClassVar, Union

from qcedl.core.errors import (
    LengthMismatchError,
    MalformedBodyError,
    TruncatedPacketError,
    UnknownCommandError,
)

HEADER = struct.Struct("<II")
HEADER_SIZE = HEADER.size
HOST_RESERVED = (1, 2, 3, 4, 5, 6)


class Command(IntEnum):
    HELLO = 0x01
    HELLO_RESPONSE = 0x02
    READ_DATA = 0x03
    END_OF_IMAGE_TRANSFER = 0x04
    DONE = 0x05
    DONE_RESPONSE = 0x06
    RESET = 0x07
    RESET_RESPONSE = 0x08
    MEMORY_DEBUG = 0x09
    COMMAND_READY = 0x0B
    SWITCH_MODE = 0x0C
    EXECUTE_REQUEST = 0x0D
    EXECUTE_RESPONSE = 0x0E
    EXECUTE_DATA_REQUEST = 0x0F
    READ_DATA_64 = 0x12


class Mode(IntEnum):
    IMAGE_TX_PENDING = 0x0
    IMAGE_TX_COMPLETE = 0x1
    MEMORY_DEBUG = 0x2
    COMMAND = 0x3


class Status(IntEnum):
    SUCCESS = 0x00
    INVALID_COMMAND = 0x01
    PROTOCOL_MISMATCH = 0x02
    INVALID_TARGET_PROTOCOL = 0x03
    INVALID_HOST_PROTOCOL = 0x04
    INVALID_PACKET_SIZE = 0x05
    UNEXPECTED_IMAGE_ID = 0x06
    INVALID_HEADER_SIZE = 0x07
    INVALID_DATA_SIZE = 0x08
    INVALID_IMAGE_TYPE = 0x09
    INVALID_TX_LENGTH = 0x0A
    INVALID_RX_LENGTH = 0x0B
    GENERAL_TX_RX_ERROR = 0x0C
    READ_DATA_ERROR = 0x0D
    INVALID_HOST_MODE = 0x18
    INVALID_MODE_SWITCH = 0x1C
    EXEC_COMMAND_FAILURE = 0x1D
    EXEC_COMMAND_INVALID_PARAM = 0x1E
    EXEC_COMMAND_UNSUPPORTED = 0x1F
    EXEC_DATA_INVALID_CLIENT_COMMAND = 0x20


def status_name(code: int) -> str:
    try:
        return Status(code).name
    except ValueError:
        return f"0x{code:02x}"


@dataclass(frozen=True)
class _Packet:
    command: ClassVar[Command]
    body: ClassVar[struct.Struct] = struct.Struct("<")

    def _words(self) -> tuple[int, ...]:
        return astuple(self)

    @classmethod
    def _from_words(cls, words: tuple[int, ...]) -> _Packet:
        return cls(*words)

    @classmethod
    def wire_length(cls) -> int:
        return HEADER_SIZE + cls.body.size


@dataclass(frozen=True)
class Hello(_Packet):
    """Device-initiated greeting announcing protocol version and mode."""

    command: ClassVar[Command] = Command.HELLO
    body: ClassVar[struct.Struct] = struct.Struct("<10I")

    version: int
    compatible: int
    max_length: int
    mode: int
    reserved: tuple[int, ...] = (0, 0, 0, 0, 0, 0)

    def _words(self) -> tuple[int, ...]:
        return (self.version, self.compatible, self.max_length, self.mode, *self.reserved)

    @classmethod
    def _from_words(cls, words: tuple[int, ...]) -> _Packet:
        return cls(*words[:4], reserved=tuple(words[4:]))


@dataclass(frozen=True)
class HelloResponse(_Packet):
    command: ClassVar[Command] = Command.HELLO_RESPONSE
    body: ClassVar[struct.Struct] = struct.Struct("<10I")

    version: int
    compatible: int
    status: int
    mode: int
    reserved: tuple[int, ...] = HOST_RESERVED

    def _words(self) -> tuple[int, ...]:
        return (self.version, self.compatible, self.status, self.mode, *self.reserved)

    @classmethod
    def _from_words(cls, words: tuple[int, ...]) -> _Packet:
        return cls(*words[:4], reserved=tuple(words[4:]))


@dataclass(frozen=True)
class ReadData(_Packet):
    """Image-transfer request; only sent by devices not in command mode."""

    command: ClassVar[Command] = Command.READ_DATA
    body: ClassVar[struct.Struct] = struct.Struct("<3I")

    image: int
    offset: int
    length: int


@dataclass(frozen=True)
class ReadData64(_Packet):
    command: ClassVar[Command] = Command.READ_DATA_64
    body: ClassVar[struct.Struct] = struct.Struct("<3Q")

    image: int
    offset: int
    length: int


@dataclass(frozen=True)
class EndOfImageTransfer(_Packet):
    """Status report; a non-zero status is how the device signals an error."""

    command: ClassVar[Command] = Command.END_OF_IMAGE_TRANSFER
    body: ClassVar[struct.Struct] = struct.Struct("<2I")

    image: int
    status: int


@dataclass(frozen=True)
class Done(_Packet):
    command: ClassVar[Command] = Command.DONE


@dataclass(frozen=True)
class DoneResponse(_Packet):
    command: ClassVar[Command] = Command.DONE_RESPONSE
    body: ClassVar[struct.Struct] = struct.Struct("<I")

    status: int


@dataclass(frozen=True)
class Reset(_Packet):
    command: ClassVar[Command] = Command.RESET


@dataclass(frozen=True)
class ResetResponse(_Packet):
    command: ClassVar[Command] = Command.RESET_RESPONSE


@dataclass(frozen=True)
class MemoryDebug(_Packet):
    command: ClassVar[Command] = Command.MEMORY_DEBUG
    body: ClassVar[struct.Struct] = struct.Struct("<2I")

    table_address: int
    table_length: int


@dataclass(frozen=True)
class CommandReady(_Packet):
    command: ClassVar[Command] = Command.COMMAND_READY


@dataclass(frozen=True)
class SwitchMode(_Packet):
    command: ClassVar[Command] = Command.SWITCH_MODE
    body: ClassVar[struct.Struct] = struct.Struct("<I")

    mode: int


@dataclass(frozen=True)
class ExecuteRequest(_Packet):
    command: ClassVar[Command] = Command.EXECUTE_REQUEST
    body: ClassVar[struct.Struct] = struct.Struct("<I")

    client_command: int


@dataclass(frozen=True)
class ExecuteResponse(_Packet):
    command: ClassVar[Command] = Command.EXECUTE_RESPONSE
    body: ClassVar[struct.Struct] = struct.Struct("<2I")

    client_command: int
    data_length: int


@dataclass(frozen=True)
class ExecuteDataRequest(_Packet):
    command: ClassVar[Command] = Command.EXECUTE_DATA_REQUEST
    body: ClassVar[struct.Struct] = struct.Struct("<I")

    client_command: int


@dataclass(frozen=True)
class ExecuteDataResponse:
    """Raw attribute payload, sent by the device without a packet header."""

    payload: bytes


Packet = Union[
    Hello,
    HelloResponse,
    ReadData,
    ReadData64,
    EndOfImageTransfer,
    Done,
    DoneResponse,
    Reset,
    ResetResponse,
    MemoryDebug,
    CommandReady,
    SwitchMode,
    ExecuteRequest,
    ExecuteResponse,
    ExecuteDataRequest,
]

PACKET_TYPES: dict[int, type[_Packet]] = {
    cls.command.value: cls
    for cls in (
        Hello,
        HelloResponse,
        ReadData,
        ReadData64,
        EndOfImageTransfer,
        Done,
        DoneResponse,
        Reset,
        ResetResponse,
        MemoryDebug,
        CommandReady,
        SwitchMode,
        ExecuteRequest,
        ExecuteResponse,
        ExecuteDataRequest,
    )
}


def encode(packet: Packet | ExecuteDataResponse) -> bytes:
    """Serialize a packet to its wire representation."""
    if isinstance(packet, ExecuteDataResponse):
        return bytes(packet.payload)
    try:
        body = packet.body.pack(*packet._words())
    except struct.error as exc:
        raise ValueError(f"Cannot encode {type(packet).__name__}: {exc}") from exc
    return HEADER.pack(packet.command.value, HEADER_SIZE + len(body)) + body


def decode(data: bytes) -> Packet:
    """Parse one complete framed packet.

    Raises:
        TruncatedPacketError: fewer than 8 bytes.
        LengthMismatchError: declared total length differs from ``len(data)``.
        UnknownCommandError: unrecognized command id.
        MalformedBodyError: body does not fit the command's layout.
    """
    if len(data) < HEADER_SIZE:
        raise TruncatedPacketError(
            "Packet shorter than header",
            step="decode",
            expected=f">= {HEADER_SIZE} bytes",
            actual=f"{len(data)} bytes",
        )

    command_id, total_length = HEADER.unpack_from(data)
    if total_length != len(data):
        raise LengthMismatchError(
            "Declared packet length does not match received bytes",
            step="decode",
            expected=f"{total_length} bytes",
            actual=f"{len(data)} bytes",
        )

    packet_cls = PACKET_TYPES.get(command_id)
    if packet_cls is None:
        raise UnknownCommandError(
            "Unrecognized command id",
            step="decode",
            actual=f"0x{command_id:02x}",
        )

    body = bytes(data[HEADER_SIZE:])
    if len(body) != packet_cls.body.size:
        raise MalformedBodyError(
            f"{packet_cls.__name__} body has the wrong size",
            step="decode",
            expected=f"{packet_cls.body.size} bytes",
            actual=f"{len(body)} bytes",
        )

    return packet_cls._from_words(packet_cls.body.unpack(body))  # type: ignore[return-value]
