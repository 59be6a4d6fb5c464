"""
Core Reconstruction Engine

RESPONSIBILITY: Correlation, ordering and completeness decisions
ALLOWED INPUTS: SemanticEvent from the classification layer
OUTPUTS: ReconstructionOutcome (Artifact or skip, with diagnostics)

WHAT THIS LAYER MUST NOT DO:
============================
- Inspect raw record payloads (classification already typed them)
- Perform any I/O or choose output identifiers (emission layer's job)
- Merge or reject repeated events; repeats follow last-write-wins
"""

from .aggregation import CorrelationAggregator, aggregate
from .reconstruction import (
    Reconstructor, reconstruct, build_header, build_body,
    find_missing_indices, find_out_of_range_indices,
    HEADER_TITLE, CONTEXT_ONLY_PLACEHOLDER, SECURITY_DISCLAIMER,
)
