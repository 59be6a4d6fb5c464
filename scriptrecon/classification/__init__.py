"""
Classification Layer

RESPONSIBILITY: Map one decoded log record to one typed semantic event
ALLOWED INPUTS: RawRecord from the ingestion layer
OUTPUTS: ClassificationOutcome (SemanticEvent or nothing, plus field issues)

WHAT THIS LAYER MUST NOT DO:
============================
- Group records by correlation ID (aggregation layer's job)
- Decide completeness or order fragments
- Raise on malformed input - every bad field is left empty and reported

RECORD SCHEMAS:
===============
Dispatch is purely on the record's kind discriminator. Field extraction is
positional and differs per kind:

    FRAGMENT (4104)  [0] MessageNumber  [1] MessageTotal  [2] ScriptBlockText
                     [3] ScriptBlockId  [4] Path
    CONTEXT  (4103)  [0] ScriptBlockId  [1] ContextInfo
    START    (4105)  [0] ScriptBlockId  [1] RunspaceId
                     (start time is the record's creation timestamp)

Any other discriminator is UNRECOGNIZED and produces no event.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..contracts.base import Error, ErrorCode, Timestamp
from ..contracts.records import (
    RawRecord, RecordKind, FragmentEvent, ContextEvent, StartEvent,
    ClassificationOutcome, AuditEventType, AuditLogEntry,
)
from ..contracts.artifacts import default_display_name


# Positional field indices per record kind
FRAGMENT_SEQUENCE = 0
FRAGMENT_TOTAL = 1
FRAGMENT_TEXT = 2
FRAGMENT_CORRELATION = 3
FRAGMENT_PATH = 4

CONTEXT_CORRELATION = 0
CONTEXT_INFO = 1

START_CORRELATION = 0


@dataclass(frozen=True)
class ClassifierConfig:
    """Discriminator values for the three recognized record kinds."""
    fragment_event_id: int = 4104
    context_event_id: int = 4103
    start_event_id: int = 4105

    def kind_of(self, discriminator: Any) -> RecordKind:
        value = parse_positive_int(discriminator)
        if value is None:
            return RecordKind.UNRECOGNIZED
        return {
            self.fragment_event_id: RecordKind.FRAGMENT,
            self.context_event_id: RecordKind.CONTEXT,
            self.start_event_id: RecordKind.START,
        }.get(value, RecordKind.UNRECOGNIZED)


# =============================================================================
# FIELD PARSERS (fail soft: return None instead of raising)
# =============================================================================

def parse_positive_int(value: Any) -> Optional[int]:
    """Parse an int or decimal string; None unless the result is >= 1."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        text = value.strip()
        if text.isdecimal():
            number = int(text)
            return number if number > 0 else None
    return None


def normalize_correlation_id(value: Any) -> Optional[str]:
    """
    Canonical text form of a correlation ID.

    Surrounding whitespace and one pair of enclosing braces are removed so
    that "{GUID}" and "GUID" correlate together. Blank -> None.
    """
    if value is None:
        return None
    text = str(value).strip()
    if text.startswith('{') and text.endswith('}'):
        text = text[1:-1].strip()
    return text or None


def source_base_name(value: Any) -> Optional[str]:
    """Base name of a script path without its extension. Blank -> None."""
    if not isinstance(value, str):
        return None
    name = value.strip().replace('\\', '/').rstrip('/').split('/')[-1]
    stem, dot, _ = name.rpartition('.')
    if dot and stem:
        name = stem
    return name.strip() or None


# =============================================================================
# CLASSIFIER (pure)
# =============================================================================

def classify(record: RawRecord, config: Optional[ClassifierConfig] = None) -> ClassificationOutcome:
    """
    Classify one raw record.

    Pure function of its input: no side effects, never raises on record
    content. Returns an outcome with no event for unrecognized records and
    for records without a correlation ID.
    """
    config = config or ClassifierConfig()
    kind = config.kind_of(record.kind)

    if kind == RecordKind.FRAGMENT:
        return _classify_fragment(record)
    if kind == RecordKind.CONTEXT:
        return _classify_context(record)
    if kind == RecordKind.START:
        return _classify_start(record)
    return ClassificationOutcome(kind=RecordKind.UNRECOGNIZED)


def _field_issue(
    record: RawRecord,
    kind: RecordKind,
    field_name: str,
    index: int,
    correlation_id: Optional[str]
) -> Error:
    raw = record.field_at(index)
    problem = "absent" if raw is None else "malformed"
    return Error.create(
        code=ErrorCode.MALFORMED_RECORD_FIELD,
        message=f"{kind.value} record field '{field_name}' (position {index}) is {problem}",
        correlation_id=correlation_id,
        context=(
            ("field", field_name),
            ("position", str(index)),
            ("record_number", str(record.record_number) if record.record_number is not None else ""),
        )
    )


def _missing_correlation(record: RawRecord, kind: RecordKind) -> ClassificationOutcome:
    issue = Error.create(
        code=ErrorCode.MISSING_CORRELATION_ID,
        message=f"{kind.value} record has no correlation id; dropped",
        context=(
            ("record_number", str(record.record_number) if record.record_number is not None else ""),
        )
    )
    return ClassificationOutcome(kind=kind, event=None, issues=(issue,))


def _classify_fragment(record: RawRecord) -> ClassificationOutcome:
    kind = RecordKind.FRAGMENT
    correlation_id = normalize_correlation_id(record.field_at(FRAGMENT_CORRELATION))
    if correlation_id is None:
        return _missing_correlation(record, kind)

    issues: List[Error] = []

    sequence_number = parse_positive_int(record.field_at(FRAGMENT_SEQUENCE))
    if sequence_number is None:
        issues.append(_field_issue(record, kind, "MessageNumber", FRAGMENT_SEQUENCE, correlation_id))

    total_fragments = parse_positive_int(record.field_at(FRAGMENT_TOTAL))
    if total_fragments is None:
        issues.append(_field_issue(record, kind, "MessageTotal", FRAGMENT_TOTAL, correlation_id))

    content = record.field_at(FRAGMENT_TEXT)
    if not isinstance(content, str):
        issues.append(_field_issue(record, kind, "ScriptBlockText", FRAGMENT_TEXT, correlation_id))
        content = ""

    # Path is optional: interactive script blocks carry none
    source_name = source_base_name(record.field_at(FRAGMENT_PATH))

    event = FragmentEvent(
        correlation_id=correlation_id,
        sequence_number=sequence_number,
        total_fragments=total_fragments,
        content=content,
        source_name=source_name,
    )
    return ClassificationOutcome(kind=kind, event=event, issues=tuple(issues))


def _classify_context(record: RawRecord) -> ClassificationOutcome:
    kind = RecordKind.CONTEXT
    correlation_id = normalize_correlation_id(record.field_at(CONTEXT_CORRELATION))
    if correlation_id is None:
        return _missing_correlation(record, kind)

    issues: Tuple[Error, ...] = ()
    context_info = record.field_at(CONTEXT_INFO)
    if not isinstance(context_info, str):
        issues = (_field_issue(record, kind, "ContextInfo", CONTEXT_INFO, correlation_id),)
        context_info = None

    event = ContextEvent(correlation_id=correlation_id, context_info=context_info)
    return ClassificationOutcome(kind=kind, event=event, issues=issues)


def _classify_start(record: RawRecord) -> ClassificationOutcome:
    kind = RecordKind.START
    correlation_id = normalize_correlation_id(record.field_at(START_CORRELATION))
    if correlation_id is None:
        return _missing_correlation(record, kind)

    issues: Tuple[Error, ...] = ()
    start_time = record.created_at if isinstance(record.created_at, Timestamp) else None
    if start_time is None:
        issues = (Error.create(
            code=ErrorCode.MALFORMED_RECORD_FIELD,
            message="start record has no creation timestamp",
            correlation_id=correlation_id,
            context=(("field", "created_at"),)
        ),)

    event = StartEvent(correlation_id=correlation_id, start_time=start_time)
    return ClassificationOutcome(kind=kind, event=event, issues=issues)


# =============================================================================
# CLASSIFICATION ENGINE (counts and audits around the pure classifier)
# =============================================================================

class ClassificationEngine:
    """
    Stateful wrapper that tallies outcomes for one stream.

    BOUNDARY ENFORCEMENT:
    - Delegates every decision to classify()
    - Only records counts and audit entries
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        self._config = config or ClassifierConfig()
        self._counts: Dict[RecordKind, int] = {kind: 0 for kind in RecordKind}
        self._dropped = 0
        self._audit_log: List[AuditLogEntry] = []

    def classify(self, record: RawRecord) -> ClassificationOutcome:
        outcome = classify(record, self._config)
        self._counts[outcome.kind] += 1
        if outcome.event is None:
            self._dropped += 1
            if outcome.kind != RecordKind.UNRECOGNIZED:
                self._log_audit(
                    action="record_dropped",
                    metadata=(
                        ("kind", outcome.kind.value),
                        ("record_number", str(record.record_number)),
                    )
                )
        for issue in outcome.issues:
            self._log_audit(
                action="field_issue",
                entity_id=issue.correlation_id,
                metadata=(("code", issue.code.name), ("message", issue.message))
            )
        return outcome

    def count(self, kind: RecordKind) -> int:
        return self._counts[kind]

    @property
    def dropped(self) -> int:
        return self._dropped

    @property
    def total(self) -> int:
        return sum(self._counts.values())

    def _log_audit(
        self,
        action: str,
        entity_id: Optional[str] = None,
        metadata: tuple = ()
    ):
        """Add entry to internal audit log."""
        self._audit_log.append(AuditLogEntry.create(
            event_type=AuditEventType.CLASSIFICATION,
            layer="classification",
            action=action,
            entity_id=entity_id,
            entity_type="correlation" if entity_id else None,
            metadata=metadata
        ))

    def get_audit_log(self) -> List[AuditLogEntry]:
        """Return copy of audit log entries."""
        return list(self._audit_log)


__all__ = [
    "ClassifierConfig",
    "ClassificationEngine",
    "classify",
    "default_display_name",
    "normalize_correlation_id",
    "parse_positive_int",
    "source_base_name",
]
