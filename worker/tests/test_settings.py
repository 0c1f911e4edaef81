import pytest
from loguru import logger
from pydantic import ValidationError

from orrery_worker.app.settings import (
    QualityConfig,
    QualityTier,
    Settings,
    log_quality_config,
    quality_config_issues,
)


def test_default_tiers() -> None:
    settings = Settings()
    assert settings.quality_env == QualityTier.DEVELOPMENT
    assert settings.active_tier.audition_gate_threshold == pytest.approx(0.55)
    production = settings.quality.tier(QualityTier.PRODUCTION)
    assert production.min_quality_threshold == pytest.approx(0.65)
    assert production.canary_rollback.latency_increase_ms == pytest.approx(50.0)
    assert quality_config_issues(settings.quality) == []


@pytest.mark.parametrize(
    ("value", "expected"),
    [("prod", QualityTier.PRODUCTION), ("preprod", QualityTier.PRE_PRODUCTION), (" Dev ", QualityTier.DEVELOPMENT)],
)
def test_quality_env_aliases(value: str, expected: QualityTier) -> None:
    assert Settings(quality_env=value).quality_env == expected


def test_quality_env_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORRERY_QUALITY_ENV", "pre-production")
    assert Settings().quality_env == QualityTier.PRE_PRODUCTION


def test_partial_override_keeps_defaults() -> None:
    config = QualityConfig.model_validate({"production": {"audition_gate_threshold": 0.7}})
    production = config.tier(QualityTier.PRODUCTION)
    assert production.audition_gate_threshold == pytest.approx(0.7)
    assert production.min_quality_threshold == pytest.approx(0.65)
    assert production.canary_rollback.quality_drop == pytest.approx(0.02)


def test_threshold_above_bounds_is_rejected() -> None:
    with pytest.raises(ValidationError) as excinfo:
        QualityConfig.model_validate({"development": {"min_quality_threshold": 0.95}})
    assert "development.min_quality_threshold" in str(excinfo.value)


def test_threshold_from_environment_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORRERY_QUALITY__DEVELOPMENT__MIN_QUALITY_THRESHOLD", "0.95")
    with pytest.raises(ValidationError):
        Settings()


def test_every_issue_is_reported() -> None:
    with pytest.raises(ValidationError) as excinfo:
        QualityConfig.model_validate(
            {
                "pre_production": {"canary_rollback": {"latency_increase_ms": 900}},
                "production": {"canary_rollback": {"error_rate_increase": 0.001}},
                "calibrated_axes": {"melody_arc": 1.5},
            }
        )
    message = str(excinfo.value)
    assert "pre_production.canary_rollback.latency_increase_ms" in message
    assert "production.canary_rollback.error_rate_increase" in message
    assert "calibrated_axes.melody_arc" in message


def test_log_quality_config_reports_active_tier() -> None:
    messages: list[str] = []
    handler_id = logger.add(messages.append, format="{message}")
    try:
        log_quality_config(Settings(quality_env="production"))
    finally:
        logger.remove(handler_id)
    assert any("Quality tier: production" in message for message in messages)
    assert any("audition_gate=0.65" in message for message in messages)
