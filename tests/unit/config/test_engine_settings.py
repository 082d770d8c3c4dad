from __future__ import annotations

from src.surfacegen.config import EngineSettings


def test_defaults_match_production_tuning() -> None:
    settings = EngineSettings()

    assert settings.retry_base_delay_seconds == 2.0
    assert settings.retry_max_delay_seconds == 60.0
    assert settings.retry_max_attempts == 10
    assert settings.rate_limit_max_attempts == 2
    assert settings.retry_queue_max_size == 50
    assert settings.retry_queue_concurrency == 3
    assert settings.batch_size == 10
    assert settings.history_max_runs == 15
    assert settings.surface_single_item_errors is False


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("SURFACEGEN_BATCH_SIZE", "4")
    monkeypatch.setenv("SURFACEGEN_GEMINI_API_KEYS", '["k1", "k2"]')
    monkeypatch.setenv("SURFACEGEN_SURFACE_SINGLE_ITEM_ERRORS", "true")

    settings = EngineSettings.build_default()

    assert settings.batch_size == 4
    assert settings.gemini_api_keys == ["k1", "k2"]
    assert settings.surface_single_item_errors is True
