"""
Reconstructor
=============

Turns one finished accumulator into an artifact (header + ordered body) or
a skip.

ALGORITHM:
==========
1. Completeness: when a total is declared, every index in [1, total] must
   be present. Missing indices make the verdict INCOMPLETE, but
   reconstruction still proceeds with what exists.
2. Body:
   - fragments present   -> every present fragment, concatenated in
                            ascending INTEGER key order. Keys outside
                            [1, total] are kept in that order and flagged.
                            Gaps get no placeholder.
   - only context        -> placeholder line + context text
   - only a total        -> empty body, INCOMPLETE with every index missing
   - none of these       -> Skipped(NO_CONTENT)
3. Header: correlation ID always; start time, context, incompleteness and
   out-of-range notices when applicable; security disclaimer only for
   executable-format sinks (caller's choice, never inferred).

STATE MACHINE:
==============
Pending -> Reconstructed(complete | incomplete | unknown | context_only)
        -> Skipped(no_content)
Both are terminal.
"""

from __future__ import annotations
from typing import List, Optional, Sequence, Tuple

from ..contracts.base import Error, ErrorCode
from ..contracts.records import AuditEventType, AuditLogEntry
from ..contracts.artifacts import (
    CorrelationAccumulator, Artifact, Completeness, ReconstructionOutcome,
    ReconstructionState, SkipReason,
)


HEADER_TITLE = "# Reconstructed script block"
CONTEXT_ONLY_PLACEHOLDER = "# [No script block fragments recorded; context information only]"
SECURITY_DISCLAIMER = (
    "# SECURITY WARNING: reconstructed from event logs for forensic analysis. "
    "Do not execute."
)


def _format_indices(indices: Sequence[int]) -> str:
    return ", ".join(str(i) for i in indices)


def find_missing_indices(fragment_keys: Sequence[int], total_fragments: int) -> Tuple[int, ...]:
    """Indices in [1, total_fragments] with no fragment."""
    present = set(fragment_keys)
    return tuple(i for i in range(1, total_fragments + 1) if i not in present)


def find_out_of_range_indices(fragment_keys: Sequence[int], total_fragments: int) -> Tuple[int, ...]:
    """Present keys above the declared total (keys are always >= 1)."""
    if total_fragments <= 0:
        return ()
    return tuple(sorted(k for k in fragment_keys if k > total_fragments))


def build_header(
    accumulator: CorrelationAccumulator,
    completeness: Completeness,
    missing_indices: Tuple[int, ...],
    out_of_range_indices: Tuple[int, ...],
    executable_format: bool
) -> str:
    """Provenance header, one '# '-prefixed line per fact."""
    lines: List[str] = [
        HEADER_TITLE,
        f"# Correlation ID: {accumulator.correlation_id}",
        f"# Source name: {accumulator.display_name}",
    ]

    if accumulator.start_time is not None:
        lines.append(f"# Start time: {accumulator.start_time.to_iso()}")

    if accumulator.context_info is not None:
        context_lines = accumulator.context_info.splitlines() or [""]
        lines.append("# Context:")
        lines.extend(f"#   {line}".rstrip() for line in context_lines)

    present = len(accumulator.fragments)
    if completeness == Completeness.CONTEXT_ONLY:
        lines.append("# Fragments: none recorded")
    elif completeness == Completeness.UNKNOWN:
        lines.append(f"# Fragments: {present} present, declared total unknown")
    else:
        lines.append(
            f"# Fragments: {present} present of {accumulator.total_fragments} declared "
            f"({completeness.value})"
        )

    if missing_indices:
        lines.append(
            f"# WARNING: INCOMPLETE - missing fragment(s): {_format_indices(missing_indices)}"
        )
    if out_of_range_indices:
        lines.append(
            f"# WARNING: fragment(s) outside declared range 1-{accumulator.total_fragments}: "
            f"{_format_indices(out_of_range_indices)}"
        )

    if executable_format:
        lines.append(SECURITY_DISCLAIMER)

    return "\n".join(lines)


def build_body(accumulator: CorrelationAccumulator) -> Optional[str]:
    """
    Ordered body text, or None when there is nothing to reconstruct.

    A declared total with no placed fragment still yields a body: the
    context placeholder when context exists, otherwise an empty string.
    """
    if accumulator.fragments:
        # Integer keys: 1, 2, 10 - never the lexicographic 1, 10, 2
        return "".join(accumulator.fragments[key] for key in sorted(accumulator.fragments))
    if accumulator.context_info is not None:
        return f"{CONTEXT_ONLY_PLACEHOLDER}\n{accumulator.context_info}"
    if accumulator.total_fragments > 0:
        return ""
    return None


def reconstruct(
    accumulator: CorrelationAccumulator,
    executable_format: bool = True
) -> ReconstructionOutcome:
    """Reconstruct one accumulator. Pure: the accumulator is only read."""
    correlation_id = accumulator.correlation_id
    body = build_body(accumulator)

    if body is None:
        return ReconstructionOutcome(
            correlation_id=correlation_id,
            state=ReconstructionState.SKIPPED,
            skip_reason=SkipReason.NO_CONTENT,
            diagnostics=(Error.create(
                code=ErrorCode.NO_CONTENT,
                message=f"{correlation_id}: no fragments and no context recorded; no artifact written",
                correlation_id=correlation_id,
                context=(("events", str(accumulator.event_count)),)
            ),)
        )

    keys = list(accumulator.fragments)
    total = accumulator.total_fragments
    diagnostics: List[Error] = []
    missing: Tuple[int, ...] = ()
    out_of_range: Tuple[int, ...] = ()

    if total > 0:
        missing = find_missing_indices(keys, total)
        out_of_range = find_out_of_range_indices(keys, total)
        completeness = Completeness.INCOMPLETE if missing else Completeness.COMPLETE
    elif not keys:
        completeness = Completeness.CONTEXT_ONLY
    else:
        completeness = Completeness.UNKNOWN

    if missing:
        diagnostics.append(Error.create(
            code=ErrorCode.INCOMPLETE_ARTIFACT,
            message=(
                f"{correlation_id}: {len(missing)} of {total} fragment(s) missing: "
                f"{_format_indices(missing)}"
            ),
            correlation_id=correlation_id,
            context=(("missing_indices", _format_indices(missing)), ("total", str(total)))
        ))
    if out_of_range:
        diagnostics.append(Error.create(
            code=ErrorCode.FRAGMENT_OUT_OF_RANGE,
            message=(
                f"{correlation_id}: fragment(s) {_format_indices(out_of_range)} exceed "
                f"declared total {total}; included in key order"
            ),
            correlation_id=correlation_id,
            context=(("indices", _format_indices(out_of_range)), ("total", str(total)))
        ))

    header = build_header(accumulator, completeness, missing, out_of_range, executable_format)
    artifact = Artifact(
        correlation_id=correlation_id,
        display_name=accumulator.display_name,
        header=header,
        body=body,
        completeness=completeness,
        total_fragments=total,
        fragment_count=len(keys),
        missing_indices=missing,
        out_of_range_indices=out_of_range,
        executable_format=executable_format,
    )
    return ReconstructionOutcome(
        correlation_id=correlation_id,
        state=ReconstructionState.RECONSTRUCTED,
        artifact=artifact,
        diagnostics=tuple(diagnostics)
    )


class Reconstructor:
    """
    Applies reconstruct() to handed-off accumulators and audits each
    terminal transition.
    """

    def __init__(self, executable_format: bool = True):
        self._executable_format = executable_format
        self._audit_log: List[AuditLogEntry] = []

    @property
    def executable_format(self) -> bool:
        return self._executable_format

    def reconstruct(self, accumulator: CorrelationAccumulator) -> ReconstructionOutcome:
        outcome = reconstruct(accumulator, self._executable_format)
        if outcome.artifact is not None:
            metadata = (
                ("state", outcome.state.value),
                ("completeness", outcome.artifact.completeness.value),
                ("fragments", str(outcome.artifact.fragment_count)),
            )
        else:
            metadata = (
                ("state", outcome.state.value),
                ("skip_reason", outcome.skip_reason.value),
            )
        self._log_audit("accumulator_resolved", accumulator.correlation_id, metadata)
        return outcome

    def _log_audit(
        self,
        action: str,
        entity_id: Optional[str] = None,
        metadata: tuple = ()
    ):
        """Add entry to internal audit log."""
        self._audit_log.append(AuditLogEntry.create(
            event_type=AuditEventType.RECONSTRUCTION,
            layer="reconstruction",
            action=action,
            entity_id=entity_id,
            entity_type="correlation" if entity_id else None,
            metadata=metadata
        ))

    def get_audit_log(self) -> List[AuditLogEntry]:
        """Return copy of audit log entries."""
        return list(self._audit_log)
