"""
Script Block Reconstruction Engine

This package reconstructs PowerShell script blocks from decoded event-log
records. It is a strictly layered pipeline; each layer communicates only
through explicit contracts (contracts/), never through shared mutable state.

LAYER STRUCTURE:
================

1. INGESTION LAYER (ingestion/)
   - Responsibility: Read decoded records from files or memory
   - Allowed inputs: JSON / JSON-lines exports, in-memory RawRecord sequences
   - Outputs: RecordBatch (records plus per-record parse issues)
   - MUST NOT: Classify, correlate or drop records

2. CLASSIFICATION LAYER (classification/)
   - Responsibility: Turn one RawRecord into a typed semantic event
   - Allowed inputs: RawRecord
   - Outputs: ClassificationOutcome (event or nothing, plus issues)
   - MUST NOT: Look at any other record

3. CORE (core/)
   - Aggregation: fold events into one accumulator per correlation ID
   - Reconstruction: accumulator -> Artifact, or Skipped(NO_CONTENT)
   - MUST NOT: Perform I/O

4. EMISSION LAYER (emission/)
   - Responsibility: Store each artifact under a unique identifier
   - Allowed inputs: Artifact
   - Outputs: EmitResult, manifest entries
   - MUST NOT: Overwrite an existing identifier

5. OBSERVABILITY & AUDIT LAYER (observability/)
   - Responsibility: Audit log and metrics for all layers
   - MUST NOT: Modify system behavior

CONSTRAINTS ENFORCED:
=====================
- Deterministic: Record order never changes an artifact
- Explicit errors: Every dropped record or partial artifact is reported
- Resolution: Every correlation ID ends reconstructed or skipped, never pending
"""

__version__ = "0.1.0"
