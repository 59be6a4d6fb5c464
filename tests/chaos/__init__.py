"""
Chaos Tests

Hostile arrival patterns: shuffled, duplicated, interleaved and noisy
record streams.
"""
