"""CLI layer."""
