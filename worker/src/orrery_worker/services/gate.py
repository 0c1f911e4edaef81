"""Tiered audition gate over critic scores."""

from __future__ import annotations

from typing import Mapping, Optional

from ..app.models import (
    GATE_AXES,
    AxisScores,
    GateFlags,
    GateReport,
    HarmonyScores,
    LatencyBreakdown,
    MelodicScores,
    RhythmScores,
)
from ..app.settings import QualityConfig, QualityTier
from .types import clamp

# tier audition threshold at which the calibrated baselines apply unshifted
REFERENCE_GATE_THRESHOLD = 0.55

# fixed bar, kept above the production tier's calibrated thresholds on every axis
STRICT_THRESHOLDS: Mapping[str, float] = {
    "melody_arc": 0.55,
    "melody_step_leap": 0.40,
    "melody_narrative": 0.50,
    "rhythm_diversity": 0.45,
}


def axis_scores(
    melody: MelodicScores,
    harmony: HarmonyScores,
    rhythm: RhythmScores,
) -> AxisScores:
    del harmony  # harmony feeds rule quality, not a gate axis
    return AxisScores(
        melody_arc=melody.arc,
        melody_step_leap=melody.step_leap_ratio,
        melody_narrative=melody.narrative_flow,
        rhythm_diversity=rhythm.diversity,
    )


def calibrated_thresholds(config: QualityConfig, tier: QualityTier) -> dict[str, float]:
    shift = config.tier(tier).audition_gate_threshold - REFERENCE_GATE_THRESHOLD
    baselines = config.calibrated_axes.model_dump()
    return {axis: clamp(baselines[axis] + shift, 0.0, 1.0) for axis in GATE_AXES}


def _flags(scores: AxisScores, thresholds: Mapping[str, float]) -> GateFlags:
    passed = {axis: getattr(scores, axis) >= thresholds[axis] for axis in GATE_AXES}
    return GateFlags(**passed, overall=all(passed.values()))


class GateEvaluator:
    """Compares critic scores against the calibrated tier and the fixed strict bar."""

    def __init__(self, config: QualityConfig, tier: QualityTier = QualityTier.DEVELOPMENT) -> None:
        self._config = config
        self._tier = tier
        self._calibrated = calibrated_thresholds(config, tier)
        self._strict = dict(STRICT_THRESHOLDS)

    @property
    def tier(self) -> QualityTier:
        return self._tier

    @property
    def calibrated(self) -> dict[str, float]:
        return dict(self._calibrated)

    @property
    def strict(self) -> dict[str, float]:
        return dict(self._strict)

    def evaluate(
        self,
        melody: MelodicScores,
        harmony: HarmonyScores,
        rhythm: RhythmScores,
        latency_ms: Optional[LatencyBreakdown] = None,
    ) -> GateReport:
        scores = axis_scores(melody, harmony, rhythm)
        return GateReport(
            calibrated=_flags(scores, self._calibrated),
            strict=_flags(scores, self._strict),
            scores=scores,
            latency_ms=latency_ms or LatencyBreakdown(),
        )
