"""Persistence layer for strictpm."""
