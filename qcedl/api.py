"""Stable public API for building tooling on top of qcedl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from pathlib import Path

from qcedl.core.command_table import CommandTable
from qcedl.core.errors import (
    CommandTableLoadError,
    CommandTableValidationError,
    DecodeError,
    LengthMismatchError,
    MalformedBodyError,
    ProtocolViolationError,
    QcedlError,
    SessionCancelledError,
    SessionError,
    SessionTimeoutError,
    TransportConnectError,
    TransportError,
    TransportFailureError,
    TransportIOError,
    TransportTimeoutError,
    TruncatedPacketError,
    UnexpectedCommandError,
    UnknownCommandError,
    UnsupportedAttributeError,
    UnsupportedModeError,
    VersionMismatchError,
)
from qcedl.core.model import (
    AttributeKind,
    CommandEntry,
    HardwareId,
    HelloInfo,
    SessionResult,
    Settings,
    Unsupported,
)
from qcedl.core.service import ConnectedTransport, EdlService
from qcedl.core.session import DEFAULT_ATTRIBUTES, SessionController, run_session
from qcedl.transports.base import Transport
from qcedl.transports.usb import USBTransport

__all__ = [
    "QcedlError",
    "CommandTableLoadError",
    "CommandTableValidationError",
    "TransportError",
    "TransportConnectError",
    "TransportIOError",
    "TransportTimeoutError",
    "SessionError",
    "SessionTimeoutError",
    "SessionCancelledError",
    "TransportFailureError",
    "VersionMismatchError",
    "UnsupportedModeError",
    "ProtocolViolationError",
    "UnexpectedCommandError",
    "DecodeError",
    "TruncatedPacketError",
    "LengthMismatchError",
    "UnknownCommandError",
    "MalformedBodyError",
    "UnsupportedAttributeError",
    "AttributeKind",
    "CommandEntry",
    "CommandTable",
    "HardwareId",
    "HelloInfo",
    "SessionResult",
    "Settings",
    "Unsupported",
    "SessionController",
    "Transport",
    "USBTransport",
    "run_session",
    "Client",
]


class Client:
    """Public client for reading device identity over Sahara.

    A `Client` wraps command table loading, opening the EDL transport, and
    running one session per call. Each call is an independent session; nothing
    is cached between calls.
    """

    def __init__(
        self,
        *,
        transport_factory: Callable[[], ConnectedTransport] | None = None,
        table_path: Path | None = None,
    ) -> None:
        self._service = EdlService(transport_factory=transport_factory, table_path=table_path)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def command_table(self) -> CommandTable:
        return self._service.table

    def list_commands(self) -> list[CommandEntry]:
        return self._service.list_commands()

    def read_info(
        self,
        attributes: Iterable[AttributeKind] = DEFAULT_ATTRIBUTES,
        *,
        settings: Settings | None = None,
        cancel_event: threading.Event | None = None,
    ) -> SessionResult:
        return self._service.read_info(attributes, settings=settings, cancel_event=cancel_event)
