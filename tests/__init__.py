"""
Test Suite

TEST AXIOMS:
=============
1. Determinism: record order never changes an artifact
2. Explicit failure: every dropped record, gap or failed write is reported
3. Resolution: every correlation ID ends reconstructed or skipped
"""
