"""Domain-specific errors for qcedl."""

from __future__ import annotations


class QcedlError(Exception):
    """Base error for qcedl."""


class CommandTableValidationError(QcedlError):
    """Raised when a command table does not conform to schema or semantics."""


class CommandTableLoadError(QcedlError):
    """Raised when reading a command table source fails."""


class TransportError(QcedlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when the EDL device cannot be found or claimed."""


class TransportIOError(TransportError):
    """Raised when a bulk transfer fails."""


class TransportTimeoutError(TransportError):
    """Raised when a bulk receive times out."""


class SessionError(QcedlError):
    """Base error for failures that end a Sahara session."""


class SessionTimeoutError(SessionError):
    """The device did not answer within the allowed time."""


class SessionCancelledError(SessionError):
    """The caller cancelled the session between two exchanges."""


class TransportFailureError(SessionError):
    """The transport reported an I/O failure mid-session."""


class VersionMismatchError(SessionError):
    def __init__(self, device_version: int, device_compatible: int, host_version: int, host_min_version: int) -> None:
        self.device_version = device_version
        self.device_compatible = device_compatible
        self.host_version = host_version
        self.host_min_version = host_min_version
        super().__init__(
            f"Device speaks Sahara v{device_version} (compatible down to v{device_compatible}), "
            f"host supports v{host_min_version}..v{host_version}"
        )


class UnsupportedModeError(SessionError):
    """The device will not enter command mode."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class ProtocolViolationError(SessionError):
    """The device behaved outside the negotiated contract."""

    def __init__(self, message: str, *, step: str | None = None, expected: object = None, actual: object = None) -> None:
        self.step = step
        self.expected = expected
        self.actual = actual
        details = []
        if step:
            details.append(f"step={step}")
        if expected is not None:
            details.append(f"expected={expected}")
        if actual is not None:
            details.append(f"actual={actual}")
        super().__init__(f"{message} ({', '.join(details)})" if details else message)


class UnexpectedCommandError(ProtocolViolationError):
    """A well-formed packet arrived at a point where it is not allowed."""


class DecodeError(ProtocolViolationError):
    """The byte stream does not match the expected packet structure."""


class TruncatedPacketError(DecodeError):
    """Fewer bytes than a packet header were supplied."""


class LengthMismatchError(DecodeError):
    """The declared packet length differs from the bytes supplied."""


class UnknownCommandError(DecodeError):
    """The command id is not a recognized Sahara command."""


class MalformedBodyError(DecodeError):
    """The packet body does not fit the command's layout."""


class UnsupportedAttributeError(QcedlError):
    """The device does not implement the requested attribute.

    Not a session error: sibling queries may still succeed.
    """

    def __init__(self, attribute: str, message: str, *, status: int | None = None) -> None:
        self.attribute = attribute
        self.status = status
        super().__init__(message)
