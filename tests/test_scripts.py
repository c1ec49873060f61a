"""Tests for the command-line entrypoints."""

import pytest

from startup_registry.scripts import init_db, reindex_embeddings


def test_schema_uses_configured_dimension():
    statements = init_db.build_schema_statements(384)
    ddl = "\n".join(statements)

    assert statements[0] == "CREATE EXTENSION IF NOT EXISTS vector;"
    assert "embedding vector(384)" in ddl
    assert "query_embedding vector(384)" in ddl
    assert "CREATE TABLE IF NOT EXISTS person__company" in ddl
    assert "RETURNS TABLE (id UUID, similarity FLOAT, rank_score FLOAT)" in ddl


def test_reindex_rejects_unknown_mode():
    with pytest.raises(SystemExit) as exc_info:
        reindex_embeddings.main(["rebuild"])
    assert exc_info.value.code == 2


def test_reindex_backfill_on_empty_store(monkeypatch, capsys):
    monkeypatch.setenv("REGISTRY_STORE_BACKEND", "memory")
    monkeypatch.setenv("REGISTRY_LOG_FORMAT", "console")

    with pytest.raises(SystemExit) as exc_info:
        reindex_embeddings.main(["backfill"])

    assert exc_info.value.code == 0
    assert "All companies already have embeddings" in capsys.readouterr().out
