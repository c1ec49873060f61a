"""Service runtime helpers."""
