"""Redis-backed helpers."""
