"""
Correlation Aggregator
======================

Folds a sequence of semantic events into one accumulator per correlation ID.

FIELD UPDATE RULES (last write wins):
=====================================
- FragmentEvent: fragments[sequence_number] = content (overwrites a repeat),
  total_fragments and source_name taken from the event when it carries them
- ContextEvent:  context_info
- StartEvent:    start_time

Fragment CONTENTS are keyed by sequence number, so arrival order never
changes what is stored for a given number. Only the scalar last-write-wins
fields depend on input order.

OWNERSHIP:
==========
The aggregator owns its accumulators for the duration of one pass.
drain() hands them off and leaves the aggregator empty; nothing is retained
across streams.
"""

from __future__ import annotations
from typing import Dict, Iterable, List, Optional

from ..contracts.base import Error, ErrorCode
from ..contracts.records import (
    FragmentEvent, ContextEvent, StartEvent, SemanticEvent,
    AuditEventType, AuditLogEntry,
)
from ..contracts.artifacts import CorrelationAccumulator


class CorrelationAggregator:
    """Single-pass, per-correlation-ID accumulation."""

    def __init__(self):
        # dict preserves first-sighting order of correlation IDs
        self._accumulators: Dict[str, CorrelationAccumulator] = {}
        self._diagnostics: List[Error] = []
        self._audit_log: List[AuditLogEntry] = []

    def fold(self, event: Optional[SemanticEvent]) -> None:
        """Fold one event into its accumulator. Unusable events are ignored."""
        if event is None:
            return
        correlation_id = getattr(event, "correlation_id", None)
        if not correlation_id:
            return

        accumulator = self._accumulators.get(correlation_id)
        if accumulator is None:
            accumulator = CorrelationAccumulator(correlation_id=correlation_id)
            self._accumulators[correlation_id] = accumulator
            self._log_audit("accumulator_created", correlation_id)

        if isinstance(event, FragmentEvent):
            self._fold_fragment(accumulator, event)
        elif isinstance(event, ContextEvent):
            if event.context_info is not None:
                accumulator.context_info = event.context_info
        elif isinstance(event, StartEvent):
            if event.start_time is not None:
                accumulator.start_time = event.start_time
        else:
            return

        accumulator.event_count += 1

    def fold_all(self, events: Iterable[Optional[SemanticEvent]]) -> None:
        for event in events:
            self.fold(event)

    def _fold_fragment(self, accumulator: CorrelationAccumulator, event: FragmentEvent) -> None:
        if event.sequence_number is not None:
            if event.sequence_number in accumulator.fragments:
                self._log_audit(
                    "fragment_overwritten",
                    accumulator.correlation_id,
                    (("sequence_number", str(event.sequence_number)),)
                )
            accumulator.fragments[event.sequence_number] = event.content
        elif event.content:
            self._diagnostics.append(Error.create(
                code=ErrorCode.ORPHAN_FRAGMENT_CONTENT,
                message=(
                    f"fragment for {accumulator.correlation_id} has content "
                    f"({len(event.content)} chars) but no sequence number; not placed"
                ),
                correlation_id=accumulator.correlation_id,
                context=(("content_length", str(len(event.content))),)
            ))

        if event.total_fragments is not None:
            accumulator.total_fragments = event.total_fragments
        if event.source_name:
            accumulator.source_name = event.source_name

    def drain(self) -> Dict[str, CorrelationAccumulator]:
        """Hand off all accumulators and reset. The caller becomes the owner."""
        accumulators = self._accumulators
        self._accumulators = {}
        self._log_audit(
            "accumulators_drained",
            metadata=(("correlation_ids", str(len(accumulators))),)
        )
        return accumulators

    @property
    def pending_count(self) -> int:
        return len(self._accumulators)

    def get_diagnostics(self) -> List[Error]:
        return list(self._diagnostics)

    def _log_audit(
        self,
        action: str,
        entity_id: Optional[str] = None,
        metadata: tuple = ()
    ):
        """Add entry to internal audit log."""
        self._audit_log.append(AuditLogEntry.create(
            event_type=AuditEventType.AGGREGATION,
            layer="aggregation",
            action=action,
            entity_id=entity_id,
            entity_type="correlation" if entity_id else None,
            metadata=metadata
        ))

    def get_audit_log(self) -> List[AuditLogEntry]:
        """Return copy of audit log entries."""
        return list(self._audit_log)


def aggregate(events: Iterable[Optional[SemanticEvent]]) -> Dict[str, CorrelationAccumulator]:
    """Fold a whole event sequence and return the per-correlation mapping."""
    aggregator = CorrelationAggregator()
    aggregator.fold_all(events)
    return aggregator.drain()
