"""
Reconstructor Tests

AXIOM UNDER TEST:
=================
Body = present fragments in ascending integer key order, no placeholders.
Every gap, stray index and missing total is named in the header.
"""

import hashlib

import pytest

from scriptrecon.contracts.base import ErrorCode, Timestamp
from scriptrecon.contracts.artifacts import (
    CorrelationAccumulator, Completeness, ReconstructionOutcome,
    ReconstructionState, SkipReason,
)
from scriptrecon.core import (
    Reconstructor, reconstruct, find_missing_indices, find_out_of_range_indices,
    HEADER_TITLE, CONTEXT_ONLY_PLACEHOLDER, SECURITY_DISCLAIMER,
)

from .fixtures import CID_A, T1


def accumulator(fragments=None, total=0, source="deploy", context=None, start=None):
    return CorrelationAccumulator(
        correlation_id=CID_A,
        fragments=dict(fragments or {}),
        total_fragments=total,
        source_name=source,
        context_info=context,
        start_time=start,
    )


class TestCompleteArtifact:

    def test_exact_text(self):
        acc = accumulator({1: "A", 2: "B", 3: "C"}, total=3, start=Timestamp(T1))
        outcome = reconstruct(acc, executable_format=True)

        assert outcome.state == ReconstructionState.RECONSTRUCTED
        assert outcome.diagnostics == ()
        artifact = outcome.artifact
        assert artifact.completeness == Completeness.COMPLETE
        assert artifact.is_complete
        assert artifact.text == "\n".join([
            HEADER_TITLE,
            f"# Correlation ID: {CID_A}",
            "# Source name: deploy",
            "# Start time: 2026-01-01T10:00:00Z",
            "# Fragments: 3 present of 3 declared (complete)",
            SECURITY_DISCLAIMER,
            "",
            "ABC",
        ])

    def test_content_hash_covers_text(self):
        artifact = reconstruct(accumulator({1: "A"}, total=1)).artifact

        assert artifact.content_hash == hashlib.sha256(artifact.text.encode('utf-8')).hexdigest()

    def test_text_format_has_no_disclaimer(self):
        artifact = reconstruct(accumulator({1: "A"}, total=1), executable_format=False).artifact

        assert SECURITY_DISCLAIMER not in artifact.header
        assert not artifact.executable_format

    def test_default_display_name_in_header(self):
        artifact = reconstruct(accumulator({1: "A"}, total=1, source=None)).artifact

        assert f"# Source name: Fragment_{CID_A}" in artifact.header
        assert artifact.display_name == f"Fragment_{CID_A}"

    def test_multiline_context_is_prefixed(self):
        artifact = reconstruct(accumulator({1: "A"}, total=1, context="Host = x\nUser = y")).artifact

        lines = artifact.header.splitlines()
        index = lines.index("# Context:")
        assert lines[index + 1:index + 3] == ["#   Host = x", "#   User = y"]


class TestOrdering:

    def test_numeric_not_lexicographic(self):
        fragments = {i: f"<{i}>" for i in (10, 2, 1)}
        artifact = reconstruct(accumulator(fragments, total=10)).artifact

        assert artifact.body == "<1><2><10>"

    def test_insertion_order_is_irrelevant(self):
        forward = reconstruct(accumulator({1: "A", 2: "B", 3: "C"}, total=3)).artifact
        backward = reconstruct(accumulator({3: "C", 2: "B", 1: "A"}, total=3)).artifact

        assert forward.text == backward.text


class TestIncompleteArtifact:

    def test_middle_fragment_missing(self):
        outcome = reconstruct(accumulator({1: "A", 3: "C"}, total=3))
        artifact = outcome.artifact

        assert artifact.completeness == Completeness.INCOMPLETE
        assert artifact.missing_indices == (2,)
        assert artifact.body == "AC"
        assert "# Fragments: 2 present of 3 declared (incomplete)" in artifact.header
        assert "# WARNING: INCOMPLETE - missing fragment(s): 2" in artifact.header

        assert [d.code for d in outcome.diagnostics] == [ErrorCode.INCOMPLETE_ARTIFACT]
        assert CID_A in outcome.diagnostics[0].message
        assert outcome.diagnostics[0].correlation_id == CID_A

    def test_only_last_fragment_present(self):
        artifact = reconstruct(accumulator({5: "E"}, total=5)).artifact

        assert artifact.missing_indices == (1, 2, 3, 4)
        assert artifact.fragment_count == 1

    def test_unknown_total(self):
        artifact = reconstruct(accumulator({2: "B", 1: "A"}, total=0)).artifact

        assert artifact.completeness == Completeness.UNKNOWN
        assert artifact.body == "AB"
        assert artifact.missing_indices == ()
        assert "# Fragments: 2 present, declared total unknown" in artifact.header


class TestOutOfRange:

    def test_fragment_beyond_total_is_included_and_flagged(self):
        outcome = reconstruct(accumulator({1: "A", 2: "B", 5: "E"}, total=2))
        artifact = outcome.artifact

        assert artifact.completeness == Completeness.COMPLETE
        assert artifact.body == "ABE"
        assert artifact.out_of_range_indices == (5,)
        assert "# WARNING: fragment(s) outside declared range 1-2: 5" in artifact.header
        assert [d.code for d in outcome.diagnostics] == [ErrorCode.FRAGMENT_OUT_OF_RANGE]

    def test_helpers(self):
        assert find_missing_indices([1, 3], 4) == (2, 4)
        assert find_missing_indices([1, 2], 0) == ()
        assert find_out_of_range_indices([7, 1, 9], 2) == (7, 9)
        assert find_out_of_range_indices([7], 0) == ()


class TestContextOnlyAndNoContent:

    def test_context_only(self):
        outcome = reconstruct(accumulator(context="Command = Get-Item"))
        artifact = outcome.artifact

        assert artifact.completeness == Completeness.CONTEXT_ONLY
        assert artifact.body == f"{CONTEXT_ONLY_PLACEHOLDER}\nCommand = Get-Item"
        assert "# Fragments: none recorded" in artifact.header
        assert artifact.fragment_count == 0
        assert outcome.diagnostics == ()

    def test_declared_total_without_fragments_is_incomplete(self):
        outcome = reconstruct(accumulator(context="Host = X", total=3))
        artifact = outcome.artifact

        assert artifact.completeness == Completeness.INCOMPLETE
        assert artifact.missing_indices == (1, 2, 3)
        assert artifact.body == f"{CONTEXT_ONLY_PLACEHOLDER}\nHost = X"
        assert "# Fragments: 0 present of 3 declared (incomplete)" in artifact.header
        assert "# WARNING: INCOMPLETE - missing fragment(s): 1, 2, 3" in artifact.header
        assert "none recorded" not in artifact.header
        assert [d.code for d in outcome.diagnostics] == [ErrorCode.INCOMPLETE_ARTIFACT]

    def test_declared_total_alone_gives_an_empty_incomplete_artifact(self):
        outcome = reconstruct(accumulator(total=2))

        assert outcome.state == ReconstructionState.RECONSTRUCTED
        assert outcome.artifact.body == ""
        assert outcome.artifact.completeness == Completeness.INCOMPLETE
        assert outcome.artifact.missing_indices == (1, 2)
        assert [d.code for d in outcome.diagnostics] == [ErrorCode.INCOMPLETE_ARTIFACT]

    def test_nothing_recorded_is_skipped(self):
        outcome = reconstruct(accumulator(start=Timestamp(T1)))

        assert outcome.state == ReconstructionState.SKIPPED
        assert outcome.is_skipped
        assert outcome.artifact is None
        assert outcome.skip_reason == SkipReason.NO_CONTENT
        assert [d.code for d in outcome.diagnostics] == [ErrorCode.NO_CONTENT]

    def test_empty_fragment_content_still_counts_as_content(self):
        outcome = reconstruct(accumulator({1: ""}, total=1))

        assert outcome.state == ReconstructionState.RECONSTRUCTED
        assert outcome.artifact.body == ""


class TestStateMachine:

    def test_pending_is_not_a_valid_outcome(self):
        with pytest.raises(ValueError):
            ReconstructionOutcome(correlation_id=CID_A, state=ReconstructionState.PENDING)

    def test_reconstructed_requires_artifact(self):
        with pytest.raises(ValueError):
            ReconstructionOutcome(correlation_id=CID_A, state=ReconstructionState.RECONSTRUCTED)

    def test_skipped_requires_reason(self):
        with pytest.raises(ValueError):
            ReconstructionOutcome(correlation_id=CID_A, state=ReconstructionState.SKIPPED)

    def test_reconstructor_audits_each_resolution(self):
        reconstructor = Reconstructor(executable_format=False)
        reconstructor.reconstruct(accumulator({1: "A"}, total=1))
        reconstructor.reconstruct(accumulator())

        log = reconstructor.get_audit_log()
        assert [e.action for e in log] == ["accumulator_resolved", "accumulator_resolved"]
        assert dict(log[1].metadata)["skip_reason"] == "no_content"
