"""One complete device interaction: handshake, attribute queries, optional reset."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from qcedl.core.command_table import CommandTable, load_packaged_table
from qcedl.core.errors import SessionError, UnexpectedCommandError, UnsupportedAttributeError
from qcedl.core.handshake import Handshake, HandshakeState
from qcedl.core.link import PacketLink
from qcedl.core.model import AttributeKind, AttributeValue, SessionResult, Settings, Unsupported
from qcedl.core.packets import Reset, ResetResponse
from qcedl.core.query import AttributeQueryEngine
from qcedl.transports.base import Transport

LOGGER = logging.getLogger(__name__)

DEFAULT_ATTRIBUTES = (AttributeKind.HARDWARE_ID, AttributeKind.SERIAL_NUMBER)


class SessionController:
    """Runs a single Sahara session against one connected device.

    The controller never retries. A failed handshake or a broken exchange
    leaves the device in an unknown protocol position; recovering requires
    re-opening the physical connection, which only the caller can do.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        settings: Settings | None = None,
        table: CommandTable | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.table = table or load_packaged_table()
        self.link = PacketLink(transport, self.settings, cancel_event=cancel_event)
        self.handshake = Handshake(self.link)
        self.queries = AttributeQueryEngine(self.link, self.handshake, self.table)

    def run(self, requested: Iterable[AttributeKind] = DEFAULT_ATTRIBUTES) -> SessionResult:
        kinds = _ordered_unique(requested)
        hello = self.handshake.run()

        attributes: dict[AttributeKind, AttributeValue | Unsupported] = {}
        try:
            for kind in kinds:
                try:
                    attributes[kind] = self.queries.query(kind)
                except UnsupportedAttributeError as exc:
                    LOGGER.info("%s unsupported: %s", kind.value, exc)
                    attributes[kind] = Unsupported(reason=str(exc), status=exc.status)

            if self.settings.reset_on_exit:
                self.reset()
        except SessionError as exc:
            if self.handshake.state is not HandshakeState.FAILED:
                self.handshake.fail(exc)
            raise

        return SessionResult(hello=hello, attributes=attributes)

    def reset(self) -> None:
        """Ask the device to end the session and restart."""
        self.link.send(Reset(), step="reset")
        packet = self.handshake.receive(step="reset")
        if not isinstance(packet, ResetResponse):
            raise UnexpectedCommandError(
                "Unexpected reply to reset",
                step="reset",
                expected="ResetResponse",
                actual=type(packet).__name__,
            )
        LOGGER.info("Device acknowledged reset")


def run_session(
    transport: Transport,
    requested: Iterable[AttributeKind] = DEFAULT_ATTRIBUTES,
    *,
    settings: Settings | None = None,
    table: CommandTable | None = None,
    cancel_event: threading.Event | None = None,
) -> SessionResult:
    controller = SessionController(
        transport,
        settings=settings,
        table=table,
        cancel_event=cancel_event,
    )
    return controller.run(requested)


def _ordered_unique(kinds: Iterable[AttributeKind]) -> tuple[AttributeKind, ...]:
    seen: dict[AttributeKind, None] = {}
    for kind in kinds:
        seen.setdefault(AttributeKind(kind), None)
    return tuple(seen)
