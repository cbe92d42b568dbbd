"""Core data models used across the protocol engine, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class AttributeKind(str, Enum):
    SERIAL_NUMBER = "serial-number"
    HARDWARE_ID = "hardware-id"
    OEM_PK_HASH = "oem-pk-hash"
    SBL_VERSION = "sbl-version"
    COMMAND_ID_LIST = "command-id-list"


class PayloadFormat(str, Enum):
    UINT = "uint"
    BYTES = "bytes"
    U32_LIST = "u32-list"


@dataclass(frozen=True)
class Settings:
    host_version: int = 2
    host_min_version: int = 1
    hello_timeout_s: float = 5.0
    response_timeout_s: float = 5.0
    session_timeout_s: float | None = None
    transfer_size: int = 4096
    reset_on_exit: bool = False


@dataclass(frozen=True)
class HelloInfo:
    version: int
    compatible: int
    max_length: int
    mode: int


@dataclass(frozen=True)
class CommandEntry:
    kind: AttributeKind
    code: int
    format: PayloadFormat
    width: int | None = None
    min_version: int = 1
    description: str = ""


@dataclass(frozen=True)
class AttributeRequest:
    kind: AttributeKind
    code: int


@dataclass(frozen=True)
class AttributeResponse:
    request: AttributeRequest
    declared_length: int
    payload: bytes


@dataclass(frozen=True)
class Unsupported:
    """Marker for an attribute the device declined to report."""

    reason: str
    status: int | None = None

    def __str__(self) -> str:
        return "unsupported"


AttributeValue = Union[int, bytes, tuple[int, ...]]


@dataclass(frozen=True)
class HardwareId:
    """Field view over the 64-bit hardware id word."""

    value: int

    @property
    def msm_id(self) -> int:
        return (self.value >> 32) & 0xFFFFFFFF

    @property
    def oem_id(self) -> int:
        return (self.value >> 16) & 0xFFFF

    @property
    def model_id(self) -> int:
        return self.value & 0xFFFF


@dataclass(frozen=True)
class SessionResult:
    hello: HelloInfo
    attributes: dict[AttributeKind, AttributeValue | Unsupported] = field(default_factory=dict)

    def value(self, kind: AttributeKind) -> AttributeValue | Unsupported | None:
        return self.attributes.get(kind)

    def is_supported(self, kind: AttributeKind) -> bool:
        return kind in self.attributes and not isinstance(self.attributes[kind], Unsupported)

    @property
    def hardware_id(self) -> HardwareId | None:
        value = self.attributes.get(AttributeKind.HARDWARE_ID)
        return HardwareId(value) if isinstance(value, int) else None

    @property
    def serial_number(self) -> int | None:
        value = self.attributes.get(AttributeKind.SERIAL_NUMBER)
        return value if isinstance(value, int) else None
