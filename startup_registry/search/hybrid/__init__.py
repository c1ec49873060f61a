"""Hybrid semantic and keyword search over companies."""
