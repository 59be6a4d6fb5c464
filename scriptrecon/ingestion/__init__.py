"""
Ingestion Layer

RESPONSIBILITY: Hand already-decoded log records to the pipeline
ALLOWED INPUTS: JSON / JSON-lines record exports, in-memory record lists
OUTPUTS: RecordBatch (RawRecord tuple + per-line issues)

WHAT THIS LAYER MUST NOT DO:
============================
- Interpret record kinds or fields (classification layer's job)
- Parse binary log containers; records arrive decoded
- Abort a multi-stream run: an unreadable stream is a SOURCE_UNAVAILABLE
  result for that stream only

RECORD EXPORT FORMAT:
=====================
Either one JSON array or one JSON object per line:

    {"event_id": 4104, "fields": [1, 3, "Write-Host", "5f2c...", "C:\\\\a.ps1"],
     "created_at": "2024-03-01T10:00:00Z", "record_number": 17}

"kind" is accepted in place of "event_id". "created_at" may be an ISO-8601
string or epoch seconds.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple
import json
import os

from ..contracts.base import SourceId, Timestamp, Error, ErrorCode, Result
from ..contracts.records import RawRecord, AuditEventType, AuditLogEntry


RECORD_FILE_EXTENSIONS = (".json", ".jsonl")


@dataclass(frozen=True)
class RecordBatch:
    """Every record read from one source, in source order."""
    source_id: SourceId
    records: Tuple[RawRecord, ...] = field(default_factory=tuple)
    issues: Tuple[Error, ...] = field(default_factory=tuple)


def parse_created_at(value: Any) -> Optional[Timestamp]:
    """ISO-8601 string or epoch seconds -> Timestamp; None if unusable."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            return Timestamp(datetime.fromtimestamp(value, tz=timezone.utc))
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            return Timestamp.from_iso(value)
        except ValueError:
            return None
    return None


def record_from_dict(item: Any, position: int) -> Tuple[Optional[RawRecord], Tuple[Error, ...]]:
    """Build a RawRecord from one decoded export item."""
    if not isinstance(item, dict):
        return None, (Error.create(
            code=ErrorCode.MALFORMED_RECORD_FIELD,
            message=f"item {position} is not a record object; skipped",
            context=(("position", str(position)),)
        ),)

    issues: List[Error] = []
    kind = item.get("event_id", item.get("kind"))

    fields = item.get("fields", ())
    if not isinstance(fields, (list, tuple)):
        issues.append(Error.create(
            code=ErrorCode.MALFORMED_RECORD_FIELD,
            message=f"item {position} 'fields' is not a list; treated as empty",
            context=(("position", str(position)),)
        ))
        fields = ()

    raw_created = item.get("created_at")
    created_at = parse_created_at(raw_created)
    if raw_created is not None and created_at is None:
        issues.append(Error.create(
            code=ErrorCode.MALFORMED_RECORD_FIELD,
            message=f"item {position} 'created_at' is unparseable: {raw_created!r}",
            context=(("position", str(position)),)
        ))

    record_number = item.get("record_number")
    if isinstance(record_number, bool) or not isinstance(record_number, int):
        record_number = None

    record = RawRecord(
        kind=kind,
        fields=tuple(fields),
        created_at=created_at,
        record_number=record_number
    )
    return record, tuple(issues)


# =============================================================================
# RECORD SOURCES (Strategy pattern for different inputs)
# =============================================================================

class RecordSource(ABC):
    """
    Abstract record source.

    Each source knows how to produce decoded records from ONE kind of
    input. Sources produce raw records, never interpreted data.
    """

    @property
    @abstractmethod
    def source_id(self) -> SourceId:
        """Identifier of the stream this source reads."""
        pass

    @abstractmethod
    def validate(self) -> Result:
        """Check the source can be read at all."""
        pass

    @abstractmethod
    def read(self) -> Result:
        """Read every record. Result value is a RecordBatch."""
        pass


class JsonFileSource(RecordSource):
    """Records exported to a JSON array file or a JSON-lines file."""

    def __init__(self, path: str):
        self._path = path
        self._source_id = SourceId(value=path, source_type="json_file")

    @property
    def source_id(self) -> SourceId:
        return self._source_id

    def _unavailable(self, message: str) -> Result:
        return Result.failure(Error.create(
            code=ErrorCode.SOURCE_UNAVAILABLE,
            message=message,
            context=(("source", self._path),)
        ))

    def validate(self) -> Result:
        if not os.path.exists(self._path):
            return self._unavailable(f"File not found: {self._path}")
        if not os.path.isfile(self._path):
            return self._unavailable(f"Path is not a file: {self._path}")
        return Result.success(True)

    def read(self) -> Result:
        validation = self.validate()
        if validation.is_failure:
            return validation

        try:
            with open(self._path, 'r', encoding='utf-8-sig') as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            return self._unavailable(f"Cannot read {self._path}: {e}")

        if text.lstrip().startswith('['):
            try:
                items = json.loads(text)
            except json.JSONDecodeError as e:
                return self._unavailable(f"Cannot decode {self._path}: {e}")
            return Result.success(self._batch(enumerate(items, start=1)))

        return Result.success(self._read_lines(text))

    def _read_lines(self, text: str) -> RecordBatch:
        items = []
        issues: List[Error] = []
        for line_number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                items.append((line_number, json.loads(line)))
            except json.JSONDecodeError as e:
                issues.append(Error.create(
                    code=ErrorCode.MALFORMED_RECORD_FIELD,
                    message=f"line {line_number} is not valid JSON ({e.msg}); skipped",
                    context=(("source", self._path), ("line", str(line_number)))
                ))
        batch = self._batch(items)
        return RecordBatch(
            source_id=batch.source_id,
            records=batch.records,
            issues=tuple(issues) + batch.issues
        )

    def _batch(self, items: Iterable[Tuple[int, Any]]) -> RecordBatch:
        records: List[RawRecord] = []
        issues: List[Error] = []
        for position, item in items:
            record, item_issues = record_from_dict(item, position)
            issues.extend(item_issues)
            if record is not None:
                records.append(record)
        return RecordBatch(source_id=self._source_id, records=tuple(records), issues=tuple(issues))


class InMemorySource(RecordSource):
    """Records already in memory (tests, embedding callers)."""

    def __init__(self, records: Sequence[RawRecord], name: str = "memory"):
        self._records = tuple(records)
        self._source_id = SourceId(value=name, source_type="in_memory")

    @property
    def source_id(self) -> SourceId:
        return self._source_id

    def validate(self) -> Result:
        return Result.success(True)

    def read(self) -> Result:
        return Result.success(RecordBatch(source_id=self._source_id, records=self._records))


def discover_sources(paths: Sequence[str]) -> List[RecordSource]:
    """
    Expand files and directories into record sources.

    Directories contribute their *.json / *.jsonl files (non-recursive),
    sorted by name. Anything else is passed through so the missing path
    surfaces as SOURCE_UNAVAILABLE for that stream.
    """
    sources: List[RecordSource] = []
    for path in paths:
        if os.path.isdir(path):
            for name in sorted(os.listdir(path)):
                full = os.path.join(path, name)
                if os.path.isfile(full) and name.lower().endswith(RECORD_FILE_EXTENSIONS):
                    sources.append(JsonFileSource(full))
        else:
            sources.append(JsonFileSource(path))
    return sources


# =============================================================================
# INGESTION ENGINE
# =============================================================================

class IngestionEngine:
    """
    Reads sources and audits what was read.

    BOUNDARY ENFORCEMENT:
    - This class ONLY produces RecordBatch objects
    - It does NOT interpret record kinds or fields
    """

    def __init__(self):
        self._audit_log: List[AuditLogEntry] = []

    def ingest(self, source: RecordSource) -> Result:
        result = source.read()
        if result.is_failure:
            self._log_audit(
                action="source_unavailable",
                entity_id=source.source_id.value,
                metadata=(("error", result.error.message),)
            )
            return result

        batch: RecordBatch = result.value
        self._log_audit(
            action="ingestion_completed",
            entity_id=source.source_id.value,
            metadata=(
                ("record_count", str(len(batch.records))),
                ("issue_count", str(len(batch.issues))),
            )
        )
        return result

    def _log_audit(
        self,
        action: str,
        entity_id: Optional[str] = None,
        metadata: tuple = ()
    ):
        """Add entry to internal audit log."""
        self._audit_log.append(AuditLogEntry.create(
            event_type=AuditEventType.INGESTION,
            layer="ingestion",
            action=action,
            entity_id=entity_id,
            entity_type="source" if entity_id else None,
            metadata=metadata
        ))

    def get_audit_log(self) -> List[AuditLogEntry]:
        """Return copy of audit log entries."""
        return list(self._audit_log)
