"""
Property Tests for Reconstruction Contracts

Verifies ordering, completeness, resolution and identifier invariants
over generated record streams.
"""

from hypothesis import given, settings, strategies as st
from hypothesis.strategies import composite

from scriptrecon.contracts.artifacts import CorrelationAccumulator, Completeness
from scriptrecon.core import reconstruct
from scriptrecon.emission import InMemorySink, candidate_identifiers, sanitize_identifier
from scriptrecon.engine import ReconstructionPipeline

from ..fixtures import fragment_record, context_record, start_record, unrecognized_record


UNSAFE = set('<>:"/\\|?*') | {chr(c) for c in range(32)}


# =============================================================================
# STRATEGIES (Generators)
# =============================================================================

correlation_ids = st.uuids().map(str)


@composite
def fragment_maps(draw):
    """Present fragments for one script block plus a declared total."""
    total = draw(st.integers(min_value=1, max_value=25))
    keys = draw(st.sets(st.integers(min_value=1, max_value=total + 3), min_size=1, max_size=total + 3))
    fragments = {k: draw(st.text(max_size=20)) for k in keys}
    return fragments, total


@composite
def script_streams(draw):
    """Records for a few script blocks, each block internally consistent."""
    records = []
    for correlation_id in draw(st.lists(correlation_ids, min_size=1, max_size=4, unique=True)):
        total = draw(st.integers(min_value=1, max_value=8))
        present = draw(st.sets(st.integers(min_value=1, max_value=total)))
        path = draw(st.sampled_from([None, "C:\\a\\one.ps1", "/srv/two.psm1"]))
        for seq in sorted(present):
            records.append(fragment_record(seq, total, f"[{correlation_id}:{seq}]", correlation_id, path))
        if draw(st.booleans()):
            records.append(context_record(correlation_id, "Host = ConsoleHost"))
        if draw(st.booleans()):
            records.append(start_record(correlation_id))
    records.extend(unrecognized_record() for _ in range(draw(st.integers(min_value=0, max_value=3))))
    return records


def run_stream(records):
    sink = InMemorySink()
    report = ReconstructionPipeline(sink).process_records(records, name="generated")
    return report, {i: sink.read(i) for i in sink.identifiers}


# =============================================================================
# PROPERTY TESTS
# =============================================================================

@given(fragment_maps())
def test_body_is_present_fragments_in_integer_order(generated):
    """Body concatenates exactly the present fragments, ascending by key."""
    fragments, total = generated
    acc = CorrelationAccumulator(correlation_id="cid", fragments=fragments, total_fragments=total)

    artifact = reconstruct(acc).artifact

    assert artifact.body == "".join(fragments[k] for k in sorted(fragments))


@given(fragment_maps())
def test_missing_indices_are_exactly_the_gaps(generated):
    """Missing = [1, total] minus present; complete iff nothing missing."""
    fragments, total = generated
    acc = CorrelationAccumulator(correlation_id="cid", fragments=fragments, total_fragments=total)

    artifact = reconstruct(acc).artifact

    expected = tuple(i for i in range(1, total + 1) if i not in fragments)
    assert artifact.missing_indices == expected
    assert artifact.out_of_range_indices == tuple(sorted(k for k in fragments if k > total))
    assert (artifact.completeness == Completeness.COMPLETE) == (not expected)


@settings(max_examples=50, deadline=None)
@given(script_streams(), st.data())
def test_arrival_order_never_changes_output(records, data):
    """Any permutation of a stream yields the same identifiers and bytes."""
    shuffled = data.draw(st.permutations(records))

    _, original = run_stream(records)
    _, permuted = run_stream(shuffled)

    assert permuted == original


@settings(max_examples=50, deadline=None)
@given(script_streams())
def test_every_correlation_id_resolves_once(records):
    """Each referenced correlation ID ends in exactly one terminal entry."""
    report, written = run_stream(records)

    referenced = {r.fields[0] for r in records if r.kind in (4103, 4105)}
    referenced |= {r.fields[3] for r in records if r.kind == 4104}

    resolved = [a.correlation_id for a in report.artifacts]
    assert sorted(resolved) == sorted(referenced)
    assert len(written) == len(report.emitted)


@given(st.text())
def test_sanitized_identifiers_are_file_name_safe(text):
    cleaned = sanitize_identifier(text)

    assert cleaned
    assert not (set(cleaned) & UNSAFE)


@given(st.text(min_size=1, max_size=10), st.integers(min_value=1, max_value=30))
def test_candidate_identifiers_are_distinct(base, count):
    candidates = candidate_identifiers(base, ".ps1")
    names = [next(candidates) for _ in range(count)]

    assert len(set(names)) == count
