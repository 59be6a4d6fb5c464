"""Read-only HTTP access to reconstruction results."""
