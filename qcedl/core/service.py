"""Service layer used by the CLI and the public API."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Protocol

from qcedl.core.command_table import load_command_table
from qcedl.core.model import AttributeKind, CommandEntry, SessionResult, Settings
from qcedl.core.session import DEFAULT_ATTRIBUTES, run_session
from qcedl.transports.base import Transport
from qcedl.transports.usb import USBTransport


class ConnectedTransport(Transport, Protocol):
    def __enter__(self) -> Transport: ...

    def __exit__(self, *exc_info: object) -> None: ...


class EdlService:
    def __init__(
        self,
        *,
        transport_factory: Callable[[], ConnectedTransport] | None = None,
        table_path: Path | None = None,
    ) -> None:
        loaded = load_command_table(table_path)
        self.table = loaded.table
        self.load_warnings = loaded.warnings
        self.transport_factory = transport_factory or USBTransport

    def list_commands(self) -> list[CommandEntry]:
        return sorted(self.table.entries.values(), key=lambda e: e.code)

    def read_info(
        self,
        attributes: Iterable[AttributeKind] = DEFAULT_ATTRIBUTES,
        *,
        settings: Settings | None = None,
        cancel_event: threading.Event | None = None,
    ) -> SessionResult:
        """Open the device, run one session, and always release the device."""
        with self.transport_factory() as transport:
            return run_session(
                transport,
                attributes,
                settings=settings,
                table=self.table,
                cancel_event=cancel_event,
            )
