"""
Shared Contract Types

Error, Result, Timestamp and SourceId: the vocabulary every layer uses to
report outcomes. Pure data with no I/O.

RULES:
======
- Frozen dataclasses only; "changing" a value means building a new one
- A problem is an Error value handed back to the caller, not an exception
- Exceptions are raised only when a contract type is constructed wrongly
"""

from __future__ import annotations
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Optional, Tuple


Context = Tuple[Tuple[str, str], ...]


# =============================================================================
# ERROR STATES
# =============================================================================

class ErrorCode(Enum):
    """Every problem the pipeline can report. There is no catch-all code."""
    # Classification
    MALFORMED_RECORD_FIELD = auto()
    MISSING_CORRELATION_ID = auto()

    # Aggregation / reconstruction
    ORPHAN_FRAGMENT_CONTENT = auto()
    INCOMPLETE_ARTIFACT = auto()
    FRAGMENT_OUT_OF_RANGE = auto()
    NO_CONTENT = auto()

    # Emission
    SINK_WRITE_FAILURE = auto()

    # Sources
    SOURCE_UNAVAILABLE = auto()


class Severity(Enum):
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"  # the whole stream is lost


_SEVERITY_BY_CODE = {
    ErrorCode.MALFORMED_RECORD_FIELD: Severity.WARNING,
    ErrorCode.MISSING_CORRELATION_ID: Severity.WARNING,
    ErrorCode.ORPHAN_FRAGMENT_CONTENT: Severity.WARNING,
    ErrorCode.INCOMPLETE_ARTIFACT: Severity.WARNING,
    ErrorCode.FRAGMENT_OUT_OF_RANGE: Severity.WARNING,
    ErrorCode.NO_CONTENT: Severity.WARNING,
    ErrorCode.SINK_WRITE_FAILURE: Severity.ERROR,
    ErrorCode.SOURCE_UNAVAILABLE: Severity.FATAL,
}


@dataclass(frozen=True)
class Error:
    """
    One reported problem.

    `correlation_id` names the script block the problem belongs to, when
    there is one. `context` holds extra key/value facts (field position,
    line number, identifier) as strings.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    correlation_id: Optional[str] = None
    context: Context = field(default_factory=tuple)

    @property
    def severity(self) -> Severity:
        return _SEVERITY_BY_CODE[self.code]

    @staticmethod
    def create(
        code: ErrorCode,
        message: str,
        correlation_id: Optional[str] = None,
        context: Context = ()
    ) -> Error:
        return Error(code, message, datetime.now(timezone.utc), correlation_id, tuple(context))

    def with_context(self, key: str, value: str) -> Error:
        return Error(
            self.code, self.message, self.timestamp, self.correlation_id,
            self.context + ((key, value),)
        )


@dataclass(frozen=True)
class Result:
    """Outcome of a fallible call: a value, or an Error. Never both."""
    value: Optional[object] = None
    error: Optional[Error] = None

    @staticmethod
    def success(value: object) -> Result:
        return Result(value=value)

    @staticmethod
    def failure(error: Error) -> Result:
        return Result(error=error)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return not self.is_success


# =============================================================================
# TIME AND IDENTITY
# =============================================================================

_FRACTION = re.compile(r'\.(\d+)(?=[+-]\d\d:?\d\d$|$)')


def _as_utc(value: datetime) -> datetime:
    # Naive values are taken to be UTC already
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Timestamp:
    """A point in time, always held in UTC."""
    value: datetime

    def __post_init__(self):
        object.__setattr__(self, 'value', _as_utc(self.value))

    @staticmethod
    def now() -> Timestamp:
        return Timestamp(datetime.now(timezone.utc))

    @staticmethod
    def from_iso(iso_string: str) -> Timestamp:
        """
        Parse ISO-8601, accepting a trailing 'Z'. Raises ValueError.

        Fractional seconds of any length are cut or padded to microseconds,
        so Windows' 7-digit SystemTime values parse on every Python version.
        """
        text = iso_string.strip()
        if text.endswith(('Z', 'z')):
            text = text[:-1] + '+00:00'
        text = _FRACTION.sub(lambda m: '.' + m.group(1)[:6].ljust(6, '0'), text, count=1)
        return Timestamp(datetime.fromisoformat(text))

    def to_iso(self) -> str:
        text = self.value.isoformat()
        return text[:-6] + 'Z' if text.endswith('+00:00') else text


@dataclass(frozen=True)
class SourceId:
    """Names one input stream, e.g. a file path, and what kind it is."""
    value: str
    source_type: str

    def __post_init__(self):
        for name in ('value', 'source_type'):
            attr = getattr(self, name)
            if not isinstance(attr, str) or not attr:
                raise ValueError(f"SourceId.{name} must be a non-empty string")
