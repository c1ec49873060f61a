"""Tests for common utilities."""

import pytest
from prometheus_client import CollectorRegistry

from startup_registry.common.config import BaseConfig, EmbeddingConfig, SearchConfig, get_config
from startup_registry.common.logging import RunLogger, configure_logging
from startup_registry.common.metrics import MetricsCollector


def test_config_loading(monkeypatch):
    """Test configuration loading."""
    monkeypatch.delenv("REGISTRY_LOG_LEVEL", raising=False)
    monkeypatch.delenv("REGISTRY_EMBEDDING_DIMENSION", raising=False)
    config = BaseConfig()
    assert config.registry_log_level == "INFO"
    assert config.registry_embedding_dimension == 1536
    assert config.registry_embedding_model == "text-embedding-3-small"


def test_config_reads_environment(monkeypatch):
    monkeypatch.setenv("REGISTRY_STORE_BACKEND", "memory")
    monkeypatch.setenv("REGISTRY_EMBEDDING_DIMENSION", "8")
    config = BaseConfig()
    assert config.registry_store_backend == "memory"
    assert config.registry_embedding_dimension == 8


def test_search_config(monkeypatch):
    """Test search configuration."""
    monkeypatch.delenv("REGISTRY_SEARCH_MATCH_THRESHOLD", raising=False)
    monkeypatch.delenv("REGISTRY_SEARCH_MATCH_COUNT", raising=False)
    config = SearchConfig()
    assert config.registry_search_match_threshold == pytest.approx(0.3)
    assert config.registry_search_match_count == 50
    assert config.registry_embedding_retry_attempts >= 1


def test_get_config():
    assert isinstance(get_config("search"), SearchConfig)
    assert isinstance(get_config("embedding"), EmbeddingConfig)
    assert type(get_config("unknown")) is BaseConfig


def test_logging_configuration():
    """Test logging configuration."""
    # This should not raise an exception
    configure_logging("test-service", "INFO", "json")
    configure_logging("test-service", "debug", "console")


def test_logging_rejects_unknown_settings():
    with pytest.raises(ValueError):
        configure_logging("test-service", "INFO", "xml")
    with pytest.raises(ValueError):
        configure_logging("test-service", "LOUD", "json")


def test_run_logger_bind_keeps_original_context():
    base = RunLogger("test", mode="backfill")
    bound = base.bind(company_id="abc")

    assert base.context == {"mode": "backfill", "run_id": base.run_id}
    assert bound.context == {"mode": "backfill", "run_id": base.run_id, "company_id": "abc"}
    assert RunLogger("test").run_id != base.run_id
    assert RunLogger("test", run_id="fixed").run_id == "fixed"


def test_metrics_collector():
    """Test metrics collector."""
    collector = MetricsCollector("test-service", registry=CollectorRegistry())
    assert collector.service_name == "test-service"

    collector.record_http_request("GET", "/api/companies", 200, 0.1)
    collector.record_search("keyword", 0.02)
    collector.record_search_fallback("provider_unavailable")
    collector.record_embedding("query", "ok", 0.05)
    collector.record_store_operation("insert", "success")
    collector.record_maintenance("backfill", "updated")

    metrics = collector.get_metrics()
    assert isinstance(metrics, str)
    assert "http_requests_total" in metrics
    assert 'registry_search_fallbacks_total{reason="provider_unavailable"} 1.0' in metrics
    assert collector.registry.get_sample_value(
        "registry_embedding_maintenance_total", {"mode": "backfill", "status": "updated"}
    ) == 1.0
