"""
Engine Orchestration Module

This module provides the unified interface for running input streams
through every layer while maintaining strict boundary separation.

LAYER FLOW:
===========
1. Ingestion:       RecordSource       -> RecordBatch
2. Classification:  RawRecord          -> SemanticEvent
3. Aggregation:     SemanticEvent*     -> CorrelationAccumulator per ID
4. Reconstruction:  Accumulator        -> Artifact | Skipped(NO_CONTENT)
5. Emission:        Artifact           -> identifier in the sink
6. Observability:   records all layer activity

Data only moves forward. No layer revisits an earlier layer's decision.

CONCURRENCY:
============
One stream is processed strictly sequentially. Independent streams share
no mutable state except the sink, whose claim() step is atomic per
identifier, so process_batch() may run them on a thread pool.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import json
import threading

from .contracts.base import Error, ErrorCode
from .contracts.records import RawRecord, RecordKind
from .contracts.artifacts import ReconstructionState
from .contracts.reports import ArtifactRecord, StreamCounters, StreamReport, BatchReport
from .ingestion import IngestionEngine, RecordSource, InMemorySource
from .classification import ClassificationEngine, ClassifierConfig
from .core import CorrelationAggregator, Reconstructor
from .emission import ArtifactEmitter, ArtifactSink, EmitterConfig
from .observability import ObservabilityEngine, ObservabilityConfig


_CONFIG_KEYS = frozenset((
    'classifier', 'emitter', 'observability', 'max_concurrent_streams', 'write_manifest',
))


@dataclass
class PipelineConfig:
    """Unified configuration for the entire pipeline."""
    classifier: ClassifierConfig = None
    emitter: EmitterConfig = None
    observability: ObservabilityConfig = None
    max_concurrent_streams: int = 1
    write_manifest: bool = True

    def __post_init__(self):
        self.classifier = self.classifier or ClassifierConfig()
        self.emitter = self.emitter or EmitterConfig()
        self.observability = self.observability or ObservabilityConfig()
        if self.max_concurrent_streams < 1:
            raise ValueError("max_concurrent_streams must be at least 1")

    @classmethod
    def from_dict(cls, data: Dict) -> 'PipelineConfig':
        """Build from plain data. Raises ValueError on unknown or mistyped keys."""
        if not isinstance(data, dict):
            raise ValueError("configuration must be a JSON object")
        unknown = sorted(set(data) - _CONFIG_KEYS)
        if unknown:
            raise ValueError(f"unknown configuration key(s): {', '.join(unknown)}")
        try:
            return cls(
                classifier=ClassifierConfig(**data.get('classifier', {})),
                emitter=EmitterConfig(**data.get('emitter', {})),
                observability=ObservabilityConfig(**data.get('observability', {})),
                max_concurrent_streams=data.get('max_concurrent_streams', 1),
                write_manifest=data.get('write_manifest', True),
            )
        except TypeError as e:
            raise ValueError(f"invalid configuration: {e}") from e

    @classmethod
    def load(cls, config_path: str) -> 'PipelineConfig':
        """Load configuration from a JSON file with the same keys. Raises OSError or ValueError."""
        with open(config_path, 'r', encoding='utf-8-sig') as f:
            return cls.from_dict(json.load(f))


class ReconstructionPipeline:
    """
    Runs input streams through classification, aggregation,
    reconstruction and emission.

    Every stream gets fresh layer instances; only the sink and the
    observability engine outlive a stream.
    """

    def __init__(self, sink: ArtifactSink, config: Optional[PipelineConfig] = None):
        self._sink = sink
        self._config = config or PipelineConfig()
        self._observability = ObservabilityEngine(self._config.observability)
        self._observability_lock = threading.Lock()

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def sink(self) -> ArtifactSink:
        return self._sink

    @property
    def observability_layer(self) -> ObservabilityEngine:
        return self._observability

    # =========================================================================
    # STREAM PROCESSING
    # =========================================================================

    def process_records(self, records: Sequence[RawRecord], name: str = "memory") -> StreamReport:
        """Process an in-memory record sequence as one stream."""
        return self.process_stream(InMemorySource(records, name=name))

    def process_stream(self, source: RecordSource) -> StreamReport:
        """Process one input stream end to end."""
        source_name = source.source_id.value
        ingestion = IngestionEngine()
        classifier = ClassificationEngine(self._config.classifier)
        aggregator = CorrelationAggregator()
        executable_format = self._config.emitter.executable_format
        reconstructor = Reconstructor(executable_format=executable_format)
        emitter = ArtifactEmitter(self._sink, self._config.emitter)

        ingested = ingestion.ingest(source)
        if ingested.is_failure:
            self._sync(ingestion)
            self._metric("sources_unavailable_total", 1.0)
            return StreamReport(source=source_name, fatal_error=ingested.error)

        batch = ingested.value
        diagnostics: List[Error] = list(batch.issues)

        # Layers 2-3: classify and fold, one record at a time
        for record in batch.records:
            outcome = classifier.classify(record)
            diagnostics.extend(outcome.issues)
            aggregator.fold(outcome.event)

        accumulators = aggregator.drain()
        diagnostics.extend(aggregator.get_diagnostics())

        # Layers 4-5: resolve every accumulator exactly once
        artifacts: List[ArtifactRecord] = []
        for accumulator in accumulators.values():
            outcome = reconstructor.reconstruct(accumulator)
            diagnostics.extend(outcome.diagnostics)

            if outcome.is_skipped:
                entry = ArtifactRecord(
                    source=source_name,
                    correlation_id=accumulator.correlation_id,
                    display_name=accumulator.display_name,
                    state=ReconstructionState.SKIPPED,
                    skip_reason=outcome.skip_reason,
                )
                self._metric("artifacts_skipped_total", 1.0, {"reason": outcome.skip_reason.value})
            else:
                artifact = outcome.artifact
                emitted = emitter.emit_artifact(artifact)
                if not emitted.success:
                    diagnostics.append(emitted.error)
                    self._metric("sink_write_failures_total", 1.0)
                else:
                    self._metric(
                        "artifacts_reconstructed_total", 1.0,
                        {"completeness": artifact.completeness.value}
                    )
                entry = ArtifactRecord(
                    source=source_name,
                    correlation_id=artifact.correlation_id,
                    display_name=artifact.display_name,
                    state=outcome.state,
                    identifier=emitted.identifier,
                    completeness=artifact.completeness,
                    total_fragments=artifact.total_fragments,
                    fragment_count=artifact.fragment_count,
                    missing_indices=artifact.missing_indices,
                    out_of_range_indices=artifact.out_of_range_indices,
                    content_hash=artifact.content_hash if emitted.success else None,
                    write_error=emitted.error.message if emitted.error else None,
                )

            artifacts.append(entry)
            if self._config.write_manifest:
                manifest_error = self._record(entry)
                if manifest_error:
                    diagnostics.append(manifest_error)

        counters = StreamCounters(
            records_read=len(batch.records),
            fragment_records=classifier.count(RecordKind.FRAGMENT),
            context_records=classifier.count(RecordKind.CONTEXT),
            start_records=classifier.count(RecordKind.START),
            unrecognized_records=classifier.count(RecordKind.UNRECOGNIZED),
            dropped_records=classifier.dropped,
            correlation_ids=len(accumulators),
        )
        for kind in RecordKind:
            self._metric("records_read_total", float(classifier.count(kind)), {"kind": kind.value})

        self._sync(ingestion, classifier, aggregator, reconstructor, emitter)
        return StreamReport(
            source=source_name,
            counters=counters,
            artifacts=tuple(artifacts),
            diagnostics=tuple(diagnostics),
        )

    def process_batch(self, sources: Sequence[RecordSource]) -> BatchReport:
        """
        Process independent streams. A stream that cannot be read fails
        alone; reports come back in submission order.
        """
        workers = min(self._config.max_concurrent_streams, len(sources))
        if workers <= 1:
            reports = [self.process_stream(source) for source in sources]
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                reports = list(pool.map(self.process_stream, sources))

        self._observability.log_audit(
            action="batch_completed",
            details=f"{len(reports)} stream(s), {sum(1 for r in reports if not r.succeeded)} failed"
        )
        return BatchReport(streams=tuple(reports))

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _record(self, entry: ArtifactRecord) -> Optional[Error]:
        try:
            self._sink.record(entry)
        except OSError as e:
            return Error.create(
                code=ErrorCode.SINK_WRITE_FAILURE,
                message=f"{entry.correlation_id}: manifest entry not written: {e}",
                correlation_id=entry.correlation_id
            )
        return None

    def _metric(self, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        with self._observability_lock:
            self._observability.collect_metric(name, value, labels)

    def _sync(self, *layers):
        """Copy each layer's audit log into observability."""
        with self._observability_lock:
            for layer in layers:
                self._observability.collect_all(layer.get_audit_log())
