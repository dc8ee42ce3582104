"""
Error taxonomy shared by the resolver, dispatcher and bulk pipeline.

Lookup failures are classified by the resolver, delivery failures by the
dispatcher. Callers above them only add context, they never re-classify.
"""

from enum import Enum


class DispatchErrorKind(str, Enum):
    CONNECTION_FAULT = "connection_fault"
    NOT_FOUND = "not_found"
    AMBIGUOUS_LOOKUP_UNAVAILABLE = "ambiguous_lookup_unavailable"
    UNREACHABLE = "unreachable"
    RATE_LIMITED = "rate_limited"
    INVALID_TARGET = "invalid_target"
    TRANSPORT_ERROR = "transport_error"


class DispatchError(Exception):
    """A classified failure of a single send."""

    def __init__(self, kind: DispatchErrorKind, detail: str):
        super().__init__(detail)
        self.kind = kind
        self.detail = detail

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value!r}, {self.detail!r})"


class ConnectionFault(DispatchError):
    """The transport never became ready, or it faulted."""

    def __init__(self, detail: str):
        super().__init__(DispatchErrorKind.CONNECTION_FAULT, detail)


class ParseErrorKind(str, Enum):
    MISSING_COLUMN = "missing_column"
    EMPTY_SOURCE = "empty_source"
    NO_RECIPIENTS = "no_recipients"
    UNREADABLE = "unreadable"


class ParseError(Exception):
    """Tabular input that does not satisfy the recipient column contract."""

    def __init__(self, kind: ParseErrorKind, detail: str):
        super().__init__(detail)
        self.kind = kind
        self.detail = detail


class UnsupportedFileType(ValueError):
    pass
