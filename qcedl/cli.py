"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from qcedl.core.errors import (
    CommandTableLoadError,
    CommandTableValidationError,
    ProtocolViolationError,
    QcedlError,
    SessionCancelledError,
    SessionTimeoutError,
    TransportError,
    TransportFailureError,
    UnsupportedModeError,
    VersionMismatchError,
)
from qcedl.core.model import AttributeKind, HardwareId, SessionResult, Settings, Unsupported
from qcedl.core.service import EdlService
from qcedl.core.session import DEFAULT_ATTRIBUTES

app = typer.Typer(help="Read device identity from Qualcomm SoCs in EDL mode over Sahara")

EXIT_CONFIG = 1
EXIT_UNREACHABLE = 2
EXIT_REFUSED = 3
EXIT_GARBAGE = 4

_LABELS = {
    AttributeKind.HARDWARE_ID: "Hardware ID",
    AttributeKind.SERIAL_NUMBER: "Serial number",
    AttributeKind.OEM_PK_HASH: "OEM PK hash",
    AttributeKind.SBL_VERSION: "SBL version",
    AttributeKind.COMMAND_ID_LIST: "Command IDs",
}


def _build_service(commands: Path | None) -> EdlService:
    service = EdlService(table_path=commands)
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _exit_code(exc: QcedlError) -> int:
    if isinstance(exc, (SessionTimeoutError, SessionCancelledError, TransportFailureError, TransportError)):
        return EXIT_UNREACHABLE
    if isinstance(exc, (VersionMismatchError, UnsupportedModeError)):
        return EXIT_REFUSED
    if isinstance(exc, ProtocolViolationError):
        return EXIT_GARBAGE
    return EXIT_CONFIG


def _hint(exc: QcedlError) -> str | None:
    code = _exit_code(exc)
    if code == EXIT_UNREACHABLE:
        return "Reconnect the device in EDL mode and retry."
    if code == EXIT_GARBAGE:
        return "The device sent malformed data; check the cable and USB driver."
    return None


def _format_value(kind: AttributeKind, value: object) -> str:
    if isinstance(value, Unsupported):
        return "unsupported"
    if kind is AttributeKind.HARDWARE_ID and isinstance(value, int):
        hwid = HardwareId(value)
        return f"{hwid.msm_id:08x} (OEM {hwid.oem_id:04x}, model {hwid.model_id:04x})"
    if kind is AttributeKind.SERIAL_NUMBER and isinstance(value, int):
        return f"{value:08x}"
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, tuple):
        return ", ".join(f"0x{code:02x}" for code in value)
    if isinstance(value, int):
        return f"0x{value:x}"
    return str(value)


def _print_result(result: SessionResult) -> None:
    typer.echo(f"Sahara version: {result.hello.version} (compatible {result.hello.compatible})")
    for kind, value in result.attributes.items():
        typer.echo(f"{_LABELS[kind]}: {_format_value(kind, value)}")


@app.command("info")
def info(
    attribute: list[AttributeKind] | None = typer.Option(
        None,
        "--attribute",
        "-a",
        help="Attribute to read; repeat for several (default: hardware-id and serial-number)",
    ),
    timeout: float = typer.Option(5.0, "--timeout", help="Per-response timeout in seconds"),
    session_timeout: float | None = typer.Option(None, "--session-timeout", help="Overall session deadline in seconds"),
    reset: bool = typer.Option(False, "--reset", help="Reset the device after reading"),
    commands: Path | None = typer.Option(None, "--commands", help="Command table YAML overriding the defaults"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log packet traffic"),
) -> None:
    """Run one Sahara session and print the device attributes."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    settings = Settings(
        hello_timeout_s=timeout,
        response_timeout_s=timeout,
        session_timeout_s=session_timeout,
        reset_on_exit=reset,
    )
    try:
        service = _build_service(commands)
        result = service.read_info(attribute or DEFAULT_ATTRIBUTES, settings=settings)
    except QcedlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        hint = _hint(exc)
        if hint:
            typer.echo(hint, err=True)
        raise typer.Exit(code=_exit_code(exc)) from None
    _print_result(result)


@app.command("attributes")
def attributes(
    commands: Path | None = typer.Option(None, "--commands", help="Command table YAML overriding the defaults"),
) -> None:
    """List the attributes and execute command codes of the active command table."""
    try:
        service = _build_service(commands)
    except (CommandTableLoadError, CommandTableValidationError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_CONFIG) from None

    typer.echo(f"{service.table.id}: {service.table.name}")
    for entry in service.list_commands():
        detail = entry.format.value if entry.width is None else f"{entry.format.value}{entry.width * 8}"
        line = f"  0x{entry.code:02x} {entry.kind.value} [{detail}]"
        if entry.min_version > 1:
            line += f" (Sahara v{entry.min_version}+)"
        if entry.description:
            line += f" - {entry.description}"
        typer.echo(line)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
