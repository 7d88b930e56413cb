"""HTTP API for strictpm."""
