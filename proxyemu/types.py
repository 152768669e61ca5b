"""Enumerations, status codes and host errors shared by the emulator."""

from __future__ import annotations

from enum import IntEnum


class Action(IntEnum):
    """What a plugin asks the host to do after a lifecycle callback."""

    CONTINUE = 0
    PAUSE = 1

    # Header processing phase.
    HEADER_CONTINUE = 0
    HEADER_STOP_ITERATION = 1
    HEADER_CONTINUE_AND_END_STREAM = 2
    HEADER_STOP_ALL_ITERATION_AND_BUFFER = 3
    HEADER_STOP_ALL_ITERATION_AND_WATERMARK = 4

    # Body processing phase.
    DATA_CONTINUE = 0
    DATA_STOP_ITERATION_AND_BUFFER = 1
    DATA_STOP_ITERATION_AND_WATERMARK = 2
    DATA_STOP_ITERATION_NO_BUFFER = 3


class PeerType(IntEnum):
    """The kind of peer on one side of a connection."""

    UNKNOWN = 0
    LOCAL = 1
    REMOTE = 2


class Status(IntEnum):
    """Result codes of host calls."""

    OK = 0
    NOT_FOUND = 1
    BAD_ARGUMENT = 2
    EMPTY = 7
    CAS_MISMATCH = 8
    INTERNAL_FAILURE = 10
    UNIMPLEMENTED = 12


class LogLevel(IntEnum):
    """Severity of a log message sent to the host."""

    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4
    CRITICAL = 5

    def __str__(self) -> str:
        return self.name.lower()


class MetricType(IntEnum):
    """Kinds of metrics the host keeps."""

    COUNTER = 0
    GAUGE = 1
    HISTOGRAM = 2

    def __str__(self) -> str:
        return self.name.lower()


class BufferType(IntEnum):
    """Buffers a plugin can read from or write to."""

    HTTP_REQUEST_BODY = 0
    HTTP_RESPONSE_BODY = 1
    DOWNSTREAM_DATA = 2
    UPSTREAM_DATA = 3
    HTTP_CALL_RESPONSE_BODY = 4
    GRPC_RECEIVE_BUFFER = 5
    VM_CONFIGURATION = 6
    PLUGIN_CONFIGURATION = 7
    CALL_DATA = 8


class MapType(IntEnum):
    """Header and trailer maps a plugin can access."""

    HTTP_REQUEST_HEADERS = 0
    HTTP_REQUEST_TRAILERS = 1
    HTTP_RESPONSE_HEADERS = 2
    HTTP_RESPONSE_TRAILERS = 3
    GRPC_RECEIVE_INITIAL_METADATA = 4
    GRPC_RECEIVE_TRAILING_METADATA = 5
    HTTP_CALL_RESPONSE_HEADERS = 6
    HTTP_CALL_RESPONSE_TRAILERS = 7


class StreamType(IntEnum):
    """Directions of a stream that can be resumed or closed."""

    REQUEST = 0
    RESPONSE = 1
    DOWNSTREAM = 2
    UPSTREAM = 3


class HostStatusError(Exception):
    """Raised when a host call reports a status other than OK."""

    status: Status | None = None
    default_message = "error status returned by host"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message if message is not None else self.default_message)


class NotFoundError(HostStatusError):
    """The requested item does not exist in the host."""

    status = Status.NOT_FOUND
    default_message = "error status returned by host: not found"


class BadArgumentError(HostStatusError):
    """The arguments of a host call are invalid."""

    status = Status.BAD_ARGUMENT
    default_message = "error status returned by host: bad argument"


class EmptyError(HostStatusError):
    """The queue being read from is empty."""

    status = Status.EMPTY
    default_message = "error status returned by host: empty"


class CasMismatchError(HostStatusError):
    """The compare-and-swap value does not match the current one."""

    status = Status.CAS_MISMATCH
    default_message = "error status returned by host: cas mismatch"


class InternalFailureError(HostStatusError):
    """The host failed internally."""

    status = Status.INTERNAL_FAILURE
    default_message = "error status returned by host: internal failure"


class UnimplementedError(HostStatusError):
    """The host does not implement the call."""

    status = Status.UNIMPLEMENTED
    default_message = "error status returned by host: unimplemented"


_ERRORS: dict[Status, type[HostStatusError]] = {
    cls.status: cls
    for cls in (
        NotFoundError,
        BadArgumentError,
        EmptyError,
        CasMismatchError,
        InternalFailureError,
        UnimplementedError,
    )
}


def status_to_error(status: int) -> HostStatusError | None:
    """Return the error for a host status, or None when it is OK."""
    try:
        known = Status(status)
    except ValueError:
        return HostStatusError(f"unknown status code: {int(status)}")
    if known is Status.OK:
        return None
    return _ERRORS[known]()