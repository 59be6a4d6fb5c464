"""
Report Contracts

Per-stream and per-batch summaries. These are what the analyst reads:
which correlation IDs produced artifacts, which were incomplete or skipped,
and which streams could not be read at all.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .base import Error, ErrorCode, Severity
from .artifacts import Completeness, ReconstructionState, SkipReason


@dataclass(frozen=True)
class ArtifactRecord:
    """One line of the run manifest."""
    source: str
    correlation_id: str
    display_name: str
    state: ReconstructionState
    identifier: Optional[str] = None
    completeness: Optional[Completeness] = None
    total_fragments: int = 0
    fragment_count: int = 0
    missing_indices: Tuple[int, ...] = field(default_factory=tuple)
    out_of_range_indices: Tuple[int, ...] = field(default_factory=tuple)
    content_hash: Optional[str] = None
    skip_reason: Optional[SkipReason] = None
    write_error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'source': self.source,
            'correlation_id': self.correlation_id,
            'display_name': self.display_name,
            'state': self.state.value,
            'identifier': self.identifier,
            'completeness': self.completeness.value if self.completeness else None,
            'total_fragments': self.total_fragments,
            'fragment_count': self.fragment_count,
            'missing_indices': list(self.missing_indices),
            'out_of_range_indices': list(self.out_of_range_indices),
            'content_hash': self.content_hash,
            'skip_reason': self.skip_reason.value if self.skip_reason else None,
            'write_error': self.write_error,
        }

    @staticmethod
    def from_dict(data: Dict) -> ArtifactRecord:
        completeness = data.get('completeness')
        skip_reason = data.get('skip_reason')
        return ArtifactRecord(
            source=data['source'],
            correlation_id=data['correlation_id'],
            display_name=data['display_name'],
            state=ReconstructionState(data['state']),
            identifier=data.get('identifier'),
            completeness=Completeness(completeness) if completeness else None,
            total_fragments=data.get('total_fragments', 0),
            fragment_count=data.get('fragment_count', 0),
            missing_indices=tuple(data.get('missing_indices', ())),
            out_of_range_indices=tuple(data.get('out_of_range_indices', ())),
            content_hash=data.get('content_hash'),
            skip_reason=SkipReason(skip_reason) if skip_reason else None,
            write_error=data.get('write_error'),
        )


@dataclass(frozen=True)
class StreamCounters:
    records_read: int = 0
    fragment_records: int = 0
    context_records: int = 0
    start_records: int = 0
    unrecognized_records: int = 0
    dropped_records: int = 0
    correlation_ids: int = 0


@dataclass(frozen=True)
class StreamReport:
    """Everything that happened while processing one input stream."""
    source: str
    counters: StreamCounters = field(default_factory=StreamCounters)
    artifacts: Tuple[ArtifactRecord, ...] = field(default_factory=tuple)
    diagnostics: Tuple[Error, ...] = field(default_factory=tuple)
    fatal_error: Optional[Error] = None

    @property
    def succeeded(self) -> bool:
        return self.fatal_error is None

    @property
    def emitted(self) -> Tuple[ArtifactRecord, ...]:
        return tuple(a for a in self.artifacts if a.identifier)

    @property
    def skipped(self) -> Tuple[ArtifactRecord, ...]:
        return tuple(a for a in self.artifacts if a.state == ReconstructionState.SKIPPED)

    @property
    def write_failures(self) -> Tuple[ArtifactRecord, ...]:
        return tuple(a for a in self.artifacts if a.write_error)

    def warnings(self) -> Tuple[Error, ...]:
        return tuple(d for d in self.diagnostics if d.severity == Severity.WARNING)

    def diagnostics_for(self, correlation_id: str) -> Tuple[Error, ...]:
        return tuple(d for d in self.diagnostics if d.correlation_id == correlation_id)

    def diagnostics_with(self, code: ErrorCode) -> Tuple[Error, ...]:
        return tuple(d for d in self.diagnostics if d.code == code)


@dataclass(frozen=True)
class BatchReport:
    """Reports for several independent streams, in submission order."""
    streams: Tuple[StreamReport, ...] = field(default_factory=tuple)

    @property
    def failed_streams(self) -> Tuple[StreamReport, ...]:
        return tuple(s for s in self.streams if not s.succeeded)

    @property
    def artifact_count(self) -> int:
        return sum(len(s.emitted) for s in self.streams)

    @property
    def succeeded(self) -> bool:
        return not self.failed_streams
