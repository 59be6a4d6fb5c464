"""Property tests for layer contracts."""
