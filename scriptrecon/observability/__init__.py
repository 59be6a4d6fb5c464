"""
Observability Layer

RESPONSIBILITY: Keep what every layer reports, in arrival order
ALLOWED INPUTS: AuditLogEntry copies, counter increments
OUTPUTS: Per-layer and merged audit logs, counter totals, audit summary

BOUNDARY ENFORCEMENT:
=====================
- Nothing stored here is ever read back by the pipeline
- Entries are kept exactly as received
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..contracts.base import Timestamp
from ..contracts.records import AuditLogEntry, AuditEventType, MetricPoint


LAYERS = ('ingestion', 'classification', 'aggregation', 'reconstruction', 'emission', 'engine')

DEFAULT_COUNTERS: Dict[str, str] = {
    "records_read_total": "Raw records read, by classified kind",
    "artifacts_reconstructed_total": "Artifacts written, by completeness",
    "artifacts_skipped_total": "Correlation IDs resolved without an artifact, by reason",
    "sink_write_failures_total": "Artifacts the sink refused",
    "sources_unavailable_total": "Input streams that could not be read",
}


class LayerLog:
    """Append-only audit entries of one layer."""

    def __init__(self, layer: str):
        self.layer = layer
        self._entries: List[AuditLogEntry] = []

    def append(self, entry: AuditLogEntry):
        self._entries.append(entry)

    def entries(self, action: Optional[str] = None, entity_id: Optional[str] = None) -> List[AuditLogEntry]:
        return [
            e for e in self._entries
            if (action is None or e.action == action)
            and (entity_id is None or e.entity_id == entity_id)
        ]

    def __len__(self) -> int:
        return len(self._entries)


class MetricsCollector:
    """
    Counter series. Every increment is kept as its own MetricPoint so a
    run can be replayed; totals are summed on demand.
    """

    def __init__(self, descriptions: Optional[Dict[str, str]] = None):
        self._descriptions = dict(DEFAULT_COUNTERS if descriptions is None else descriptions)
        self._points: List[MetricPoint] = []

    def describe(self, metric_name: str) -> Optional[str]:
        return self._descriptions.get(metric_name)

    def record(self, metric_name: str, value: float, labels: Optional[Dict[str, str]] = None):
        self._points.append(MetricPoint(
            metric_name=metric_name,
            value=value,
            timestamp=Timestamp.now(),
            labels=tuple(sorted((labels or {}).items()))
        ))

    def get_metric(self, metric_name: str) -> List[MetricPoint]:
        return [p for p in self._points if p.metric_name == metric_name]

    def total(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Sum of a counter; with labels, only points carrying all of them."""
        wanted = set((labels or {}).items())
        return sum(p.value for p in self.get_metric(metric_name) if wanted <= set(p.labels))

    def totals_by(self, metric_name: str, label: str) -> Dict[str, float]:
        """Counter totals split by the value of one label."""
        split: Dict[str, float] = {}
        for point in self.get_metric(metric_name):
            key = dict(point.labels).get(label)
            if key is not None:
                split[key] = split.get(key, 0.0) + point.value
        return split


@dataclass(frozen=True)
class ObservabilityConfig:
    enable_metrics: bool = True


class ObservabilityEngine:
    """
    Receives audit copies from every layer and counter increments from the
    pipeline. Callers that feed it from several threads serialize access.
    """

    def __init__(self, config: Optional[ObservabilityConfig] = None):
        self._config = config or ObservabilityConfig()
        self._logs: Dict[str, LayerLog] = {layer: LayerLog(layer) for layer in LAYERS}
        self._metrics = MetricsCollector() if self._config.enable_metrics else None

    def collect_audit(self, entry: AuditLogEntry):
        # Entries from layers outside LAYERS are not kept
        log = self._logs.get(entry.layer)
        if log is not None:
            log.append(entry)

    def collect_all(self, entries: List[AuditLogEntry]):
        for entry in entries:
            self.collect_audit(entry)

    def log_audit(
        self,
        action: str,
        entity_id: Optional[str] = None,
        outcome: str = "success",
        details: str = "",
        layer: str = "engine"
    ):
        """Record an engine-level event directly."""
        self.collect_audit(AuditLogEntry.create(
            event_type=AuditEventType.SYSTEM,
            layer=layer,
            action=action,
            entity_id=entity_id,
            metadata=(("outcome", outcome), ("details", details))
        ))

    def collect_metric(self, metric_name: str, value: float, labels: Optional[Dict[str, str]] = None):
        if self._metrics is not None:
            self._metrics.record(metric_name, value, labels)

    def get_layer_log(self, layer_name: str) -> List[AuditLogEntry]:
        log = self._logs.get(layer_name)
        return log.entries() if log is not None else []

    def get_unified_log(self, layers: Optional[List[str]] = None) -> List[AuditLogEntry]:
        """Entries of the given (default: all) layers, oldest first."""
        merged: List[AuditLogEntry] = []
        for layer in layers or LAYERS:
            merged.extend(self.get_layer_log(layer))
        return sorted(merged, key=lambda e: e.timestamp.value)

    def get_metrics(self) -> Optional[MetricsCollector]:
        return self._metrics

    def generate_audit_report(self) -> Dict:
        entries = self.get_unified_log()
        return {
            'total_entries': len(entries),
            'by_layer': dict(Counter(e.layer for e in entries)),
            'by_event_type': dict(Counter(e.event_type.value for e in entries)),
            'time_range': {
                'start': entries[0].timestamp.to_iso() if entries else None,
                'end': entries[-1].timestamp.to_iso() if entries else None,
            },
            'generated_at': Timestamp.now().to_iso()
        }
