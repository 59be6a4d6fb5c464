"""
Artifact Contracts

Per-correlation state and the outputs derived from it.

CorrelationAccumulator is the ONE mutable structure in the system. It is
created and written only by the aggregation layer during a single pass over
one input stream, then handed to the reconstruction layer, which reads it
once. Everything produced after that point is frozen.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple
import hashlib

from .base import Timestamp, Error


DEFAULT_DISPLAY_NAME_PREFIX = "Fragment_"


def default_display_name(correlation_id: str) -> str:
    """Deterministic display name for artifacts without a source name."""
    return f"{DEFAULT_DISPLAY_NAME_PREFIX}{correlation_id}"


# =============================================================================
# ACCUMULATOR (mutable, aggregation-owned)
# =============================================================================

@dataclass
class CorrelationAccumulator:
    """
    Everything seen for one correlation ID during one aggregation pass.

    FIELD UPDATE RULES:
    ===================
    - fragments: keyed by sequence number, last write wins per key
    - total_fragments: last value seen, 0 if never seen
    - source_name: last non-empty value seen
    - context_info: last value seen
    - start_time: last value seen
    """
    correlation_id: str
    fragments: Dict[int, str] = field(default_factory=dict)
    total_fragments: int = 0
    source_name: Optional[str] = None
    context_info: Optional[str] = None
    start_time: Optional[Timestamp] = None
    event_count: int = 0

    @property
    def display_name(self) -> str:
        if self.source_name:
            return self.source_name
        return default_display_name(self.correlation_id)

    @property
    def has_fragments(self) -> bool:
        return bool(self.fragments)


# =============================================================================
# RECONSTRUCTION OUTPUT
# =============================================================================

class Completeness(Enum):
    """Completeness verdict for a reconstructed artifact."""
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    UNKNOWN = "unknown"  # fragments present but no usable declared total
    CONTEXT_ONLY = "context_only"


class ReconstructionState(Enum):
    """
    Terminal states of one accumulator.

    Pending -> Reconstructed | Skipped. No further transitions.
    """
    PENDING = "pending"
    RECONSTRUCTED = "reconstructed"
    SKIPPED = "skipped"


class SkipReason(Enum):
    NO_CONTENT = "no_content"


@dataclass(frozen=True)
class Artifact:
    """A reconstructed artifact: provenance header plus ordered body."""
    correlation_id: str
    display_name: str
    header: str
    body: str
    completeness: Completeness
    total_fragments: int
    fragment_count: int
    missing_indices: Tuple[int, ...] = field(default_factory=tuple)
    out_of_range_indices: Tuple[int, ...] = field(default_factory=tuple)
    executable_format: bool = True

    @property
    def text(self) -> str:
        return f"{self.header}\n\n{self.body}"

    @property
    def content_hash(self) -> str:
        return hashlib.sha256(self.text.encode('utf-8')).hexdigest()

    @property
    def is_complete(self) -> bool:
        return self.completeness == Completeness.COMPLETE


@dataclass(frozen=True)
class ReconstructionOutcome:
    """
    Either an artifact or a skip reason, never both.
    `diagnostics` carries the per-correlation warnings raised on the way.
    """
    correlation_id: str
    state: ReconstructionState
    artifact: Optional[Artifact] = None
    skip_reason: Optional[SkipReason] = None
    diagnostics: Tuple[Error, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.state == ReconstructionState.RECONSTRUCTED and self.artifact is None:
            raise ValueError("Reconstructed outcome requires an artifact")
        if self.state == ReconstructionState.SKIPPED and self.skip_reason is None:
            raise ValueError("Skipped outcome requires a skip reason")
        if self.state == ReconstructionState.PENDING:
            raise ValueError("Outcome must be terminal")

    @property
    def is_skipped(self) -> bool:
        return self.state == ReconstructionState.SKIPPED


# =============================================================================
# EMISSION OUTPUT
# =============================================================================

@dataclass(frozen=True)
class EmitResult:
    """Outcome of handing one artifact to a sink."""
    correlation_id: str
    identifier: Optional[str] = None
    error: Optional[Error] = None

    @property
    def success(self) -> bool:
        return self.error is None and self.identifier is not None
