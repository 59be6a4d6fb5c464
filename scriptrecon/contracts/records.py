"""
Record and Event Contracts

Data crossing the ingestion -> classification -> aggregation boundary.

RawRecord is what a record source hands over: an already-decoded log record
with a kind discriminator and an untyped positional field list. The
classifier turns each one into exactly one typed SemanticEvent variant (or
nothing). Downstream layers never look at raw payload shape again.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple, Union
import hashlib

from .base import Timestamp, Error


# =============================================================================
# RAW RECORDS (as decoded by an external collaborator)
# =============================================================================

@dataclass(frozen=True)
class RawRecord:
    """
    One decoded log record.

    `kind` is the record's discriminator (the event id for Windows event
    logs). `fields` is positional and untyped; its schema depends on kind.
    """
    kind: Any
    fields: Tuple[Any, ...] = field(default_factory=tuple)
    created_at: Optional[Timestamp] = None
    record_number: Optional[int] = None

    def field_at(self, index: int) -> Any:
        """Positional field lookup that never raises."""
        if 0 <= index < len(self.fields):
            return self.fields[index]
        return None


# =============================================================================
# SEMANTIC EVENTS (closed set of typed variants)
# =============================================================================

class RecordKind(Enum):
    """Semantic kind of a classified record."""
    FRAGMENT = "fragment"
    CONTEXT = "context"
    START = "start"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class FragmentEvent:
    """One numbered piece of an artifact's content."""
    correlation_id: str
    sequence_number: Optional[int]
    total_fragments: Optional[int]
    content: str
    source_name: Optional[str] = None

    @property
    def kind(self) -> RecordKind:
        return RecordKind.FRAGMENT


@dataclass(frozen=True)
class ContextEvent:
    """Free-text execution context attached to a correlation ID."""
    correlation_id: str
    context_info: Optional[str]

    @property
    def kind(self) -> RecordKind:
        return RecordKind.CONTEXT


@dataclass(frozen=True)
class StartEvent:
    """Marks when execution for a correlation ID started."""
    correlation_id: str
    start_time: Optional[Timestamp]

    @property
    def kind(self) -> RecordKind:
        return RecordKind.START


SemanticEvent = Union[FragmentEvent, ContextEvent, StartEvent]


@dataclass(frozen=True)
class ClassificationOutcome:
    """
    Result of classifying one raw record.

    `event` is None when the record is unrecognized or carries no
    correlation ID. `issues` lists every field that had to be left empty.
    """
    kind: RecordKind
    event: Optional[SemanticEvent] = None
    issues: Tuple[Error, ...] = field(default_factory=tuple)


# =============================================================================
# AUDIT TRAIL
# =============================================================================

class AuditEventType(Enum):
    """Which stage of the pipeline an audit entry describes."""
    INGESTION = "ingestion"
    CLASSIFICATION = "classification"
    AGGREGATION = "aggregation"
    RECONSTRUCTION = "reconstruction"
    EMISSION = "emission"
    ERROR = "error"
    SYSTEM = "system"


@dataclass(frozen=True)
class AuditLogEntry:
    """
    One thing a layer did, e.g. "artifact_written" for a correlation ID.

    `metadata` is a tuple of string pairs so entries stay hashable.
    """
    entry_id: str
    event_type: AuditEventType
    timestamp: Timestamp
    layer: str
    action: str
    entity_id: Optional[str] = None
    entity_type: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @staticmethod
    def create(
        event_type: AuditEventType,
        layer: str,
        action: str,
        entity_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        metadata: Tuple[Tuple[str, str], ...] = ()
    ) -> AuditLogEntry:
        stamped = Timestamp.now()
        digest = hashlib.sha256(
            "|".join((layer, action, entity_id or "", stamped.to_iso())).encode('utf-8')
        ).hexdigest()
        return AuditLogEntry(
            f"audit_{digest[:16]}", event_type, stamped, layer, action,
            entity_id, entity_type, tuple(metadata)
        )


@dataclass(frozen=True)
class MetricPoint:
    """One counter increment."""
    metric_name: str
    value: float
    timestamp: Timestamp
    labels: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
