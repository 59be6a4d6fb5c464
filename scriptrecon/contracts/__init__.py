"""
Contracts Module

This module defines the explicit interfaces and data transfer objects
that form the contracts between layers. All inter-layer communication
MUST use these contracts. No layer may import implementation details
from another layer.

DESIGN PRINCIPLES:
==================
1. Contract types are immutable (frozen dataclasses), except the
   aggregation-owned CorrelationAccumulator
2. All contracts include explicit error states
3. All timestamps use UTC and are never mutated
4. Artifacts carry a content hash for integrity verification
"""

from .base import ErrorCode, Error, Result, Severity, SourceId, Timestamp
from .records import (
    RawRecord, RecordKind, FragmentEvent, ContextEvent, StartEvent,
    SemanticEvent, ClassificationOutcome, AuditEventType, AuditLogEntry,
    MetricPoint,
)
from .artifacts import (
    CorrelationAccumulator, Completeness, ReconstructionState, SkipReason,
    Artifact, ReconstructionOutcome, EmitResult, default_display_name,
)
from .reports import ArtifactRecord, StreamCounters, StreamReport, BatchReport
