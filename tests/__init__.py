"""Tests for the startup registry.

Everything here runs against the in-memory company store and stub embedding
providers, so no database or embedding API is needed.
"""
