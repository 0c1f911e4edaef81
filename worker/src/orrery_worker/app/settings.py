from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

THRESHOLD_BOUNDS = (0.5, 0.9)
PASS_RATE_DROP_BOUNDS = (0.01, 0.1)
QUALITY_DROP_BOUNDS = (0.01, 0.1)
ERROR_RATE_INCREASE_BOUNDS = (0.005, 0.1)
LATENCY_INCREASE_BOUNDS = (10.0, 500.0)


class QualityTier(str, Enum):
    DEVELOPMENT = "development"
    PRE_PRODUCTION = "pre_production"
    PRODUCTION = "production"


_TIER_ALIASES = {
    "dev": QualityTier.DEVELOPMENT,
    "development": QualityTier.DEVELOPMENT,
    "preprod": QualityTier.PRE_PRODUCTION,
    "pre-production": QualityTier.PRE_PRODUCTION,
    "pre_production": QualityTier.PRE_PRODUCTION,
    "prod": QualityTier.PRODUCTION,
    "production": QualityTier.PRODUCTION,
}


class RollbackThresholds(BaseModel):
    """Canary rollback deltas consumed by rollout tooling."""

    pass_rate_drop: float
    quality_drop: float
    error_rate_increase: float
    latency_increase_ms: float


class TierConfig(BaseModel):
    min_quality_threshold: float
    min_rule_quality: float
    audition_gate_threshold: float
    canary_rollback: RollbackThresholds


class AxisBaselines(BaseModel):
    """Calibrated per-axis gate thresholds at the reference tier."""

    melody_arc: float = 0.40
    melody_step_leap: float = 0.21
    melody_narrative: float = 0.35
    rhythm_diversity: float = 0.295


DEFAULT_TIERS: dict[str, TierConfig] = {
    QualityTier.DEVELOPMENT.value: TierConfig(
        min_quality_threshold=0.55,
        min_rule_quality=0.55,
        audition_gate_threshold=0.55,
        canary_rollback=RollbackThresholds(
            pass_rate_drop=0.05,
            quality_drop=0.03,
            error_rate_increase=0.02,
            latency_increase_ms=100.0,
        ),
    ),
    QualityTier.PRE_PRODUCTION.value: TierConfig(
        min_quality_threshold=0.60,
        min_rule_quality=0.60,
        audition_gate_threshold=0.60,
        canary_rollback=RollbackThresholds(
            pass_rate_drop=0.04,
            quality_drop=0.025,
            error_rate_increase=0.015,
            latency_increase_ms=80.0,
        ),
    ),
    QualityTier.PRODUCTION.value: TierConfig(
        min_quality_threshold=0.65,
        min_rule_quality=0.65,
        audition_gate_threshold=0.65,
        canary_rollback=RollbackThresholds(
            pass_rate_drop=0.03,
            quality_drop=0.02,
            error_rate_increase=0.01,
            latency_increase_ms=50.0,
        ),
    ),
}


class QualityConfig(BaseModel):
    """Threshold tiers for the audition gate, validated once at startup."""

    development: TierConfig
    pre_production: TierConfig
    production: TierConfig
    calibrated_axes: AxisBaselines = Field(default_factory=AxisBaselines)

    @model_validator(mode="before")
    @classmethod
    def _merge_tier_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        merged = dict(data)
        for tier, default in DEFAULT_TIERS.items():
            override = merged.get(tier)
            if isinstance(override, TierConfig):
                continue
            merged[tier] = _deep_merge(default.model_dump(), override or {})
        return merged

    @model_validator(mode="after")
    def _check_bounds(self) -> "QualityConfig":
        issues = quality_config_issues(self)
        if issues:
            raise ValueError("invalid quality configuration: " + "; ".join(issues))
        return self

    def tier(self, tier: QualityTier) -> TierConfig:
        return getattr(self, tier.value)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _outside(value: float, bounds: tuple[float, float]) -> bool:
    return value < bounds[0] or value > bounds[1]


def quality_config_issues(config: QualityConfig) -> list[str]:
    issues: list[str] = []
    for tier in QualityTier:
        settings = config.tier(tier)
        label = tier.value
        for name in ("min_quality_threshold", "min_rule_quality", "audition_gate_threshold"):
            value = getattr(settings, name)
            if _outside(value, THRESHOLD_BOUNDS):
                issues.append(
                    f"{label}.{name} {value} is outside [{THRESHOLD_BOUNDS[0]}, {THRESHOLD_BOUNDS[1]}]"
                )
        rollback = settings.canary_rollback
        for name, bounds in (
            ("pass_rate_drop", PASS_RATE_DROP_BOUNDS),
            ("quality_drop", QUALITY_DROP_BOUNDS),
            ("error_rate_increase", ERROR_RATE_INCREASE_BOUNDS),
            ("latency_increase_ms", LATENCY_INCREASE_BOUNDS),
        ):
            value = getattr(rollback, name)
            if _outside(value, bounds):
                issues.append(
                    f"{label}.canary_rollback.{name} {value} is outside [{bounds[0]}, {bounds[1]}]"
                )
    for axis, value in config.calibrated_axes.model_dump().items():
        if _outside(value, (0.0, 1.0)):
            issues.append(f"calibrated_axes.{axis} {value} is outside [0.0, 1.0]")
    return issues


def _default_quality() -> QualityConfig:
    return QualityConfig.model_validate({})


class Settings(BaseSettings):
    """Runtime configuration for the Orrery worker process."""

    model_config = SettingsConfigDict(
        env_prefix="ORRERY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    quality_env: QualityTier = Field(
        default=QualityTier.DEVELOPMENT,
        description="Active rollout tier for calibrated gate thresholds.",
    )
    quality: QualityConfig = Field(default_factory=_default_quality)

    @field_validator("quality_env", mode="before")
    @classmethod
    def _normalise_tier(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _TIER_ALIASES.get(value.strip().lower(), value)
        return value

    @property
    def active_tier(self) -> TierConfig:
        return self.quality.tier(self.quality_env)


def log_quality_config(settings: Settings) -> None:
    tier = settings.active_tier
    logger.info("Quality tier: {}", settings.quality_env.value)
    logger.info(
        "Thresholds: min_quality={} min_rule_quality={} audition_gate={}",
        tier.min_quality_threshold,
        tier.min_rule_quality,
        tier.audition_gate_threshold,
    )
    logger.info("Rollback thresholds: {}", tier.canary_rollback.model_dump())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
