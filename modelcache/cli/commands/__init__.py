"""Command implementations package."""
