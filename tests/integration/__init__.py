"""
Integration Tests Package

End-to-end runs through the pipeline, the forensic CLI and the report API.

TEST AXIOMS:
=============
1. Determinism: same records = byte-identical artifacts
2. Isolation: one bad stream or one failed write affects nothing else
3. Explicit failure: no silent fallbacks
"""
