"""Shared service data structures."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ResolvedControls:
    """Planner inputs after guidance has been merged onto the feature vector."""

    tempo: float
    brightness: float
    density: float
    arc: float
    tempo_bias: float
    arc_bias: float
    density_bias: float
    motif_idx: int
    cadence_idx: int

    @property
    def biased_tempo(self) -> float:
        return clamp(self.tempo * (1.0 + 0.1 * self.tempo_bias), 0.0, 1.0)

    @property
    def biased_arc(self) -> float:
        return clamp(self.arc * (1.0 + 0.3 * self.arc_bias), 0.0, 1.0)

    @property
    def biased_density(self) -> float:
        return clamp(self.density + 0.2 * self.density_bias, 0.0, 1.0)


@dataclass(frozen=True)
class StageTimings:
    predict_ms: float
    plan_ms: float
    total_ms: float

    def as_dict(self) -> dict[str, float]:
        return {
            "predict": round(self.predict_ms, 3),
            "plan": round(self.plan_ms, 3),
            "total": round(self.total_ms, 3),
        }


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
