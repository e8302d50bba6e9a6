"""Output helpers for the mcache CLI."""
