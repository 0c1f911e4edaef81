"""Composition engine coordinating planning, critique, gating and text."""

from __future__ import annotations

import time
from typing import Optional, Sequence

from loguru import logger

from ..app.models import (
    AstroGuidance,
    ChartSignals,
    ComposeResponse,
    ControlSurface,
    FeatureVector,
    LatencyBreakdown,
    MelodicScores,
    Plan,
    RhythmScores,
)
from ..app.settings import QualityConfig, QualityTier, Settings
from .critics import audition, rule_quality_from_scores, score_harmony, score_melody, score_rhythm
from .gate import GateEvaluator
from .guidance import (
    AIR_INDEX,
    EARTH_INDEX,
    FIRE_INDEX,
    TENSION_INDEX,
    WATER_INDEX,
    derive_guidance,
    resolve_controls,
)
from .planner import MAX_BPM, MIN_BPM, MOTIFS, NarrativePlanner, plan_digest
from .realizer import TextRealizer
from .types import ResolvedControls, StageTimings, clamp

ELEMENT_INDICES = (
    ("fire", FIRE_INDEX),
    ("earth", EARTH_INDEX),
    ("air", AIR_INDEX),
    ("water", WATER_INDEX),
)
MIN_LEAP_CAP = 1.0
MAX_LEAP_CAP = 6.0


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


def _chart_value(chart: Optional[ChartSignals], index: int) -> Optional[float]:
    if chart is None or index >= len(chart.features):
        return None
    return chart.features[index]


def dominant_element(chart: Optional[ChartSignals]) -> str:
    weights = [(name, _chart_value(chart, index) or 0.0) for name, index in ELEMENT_INDICES]
    name, weight = max(weights, key=lambda item: item[1])
    return name if weight > 0.0 else "none"


def dominant_planets(chart: Optional[ChartSignals]) -> list[str]:
    if chart is None or chart.snapshot is None:
        return []
    return [planet.name.casefold() for planet in chart.snapshot.planets]


def derive_controls(
    resolved: ResolvedControls,
    plan: Plan,
    melody: MelodicScores,
    rhythm: RhythmScores,
    digest: str,
    chart: Optional[ChartSignals] = None,
) -> ControlSurface:
    """Describe a realized plan as the control surface the explainer reads."""
    motif = MOTIFS[resolved.motif_idx % len(MOTIFS)]
    widest = max(abs(current - previous) for previous, current in zip(motif, motif[1:]))
    tension = _chart_value(chart, TENSION_INDEX)
    return ControlSurface(
        arc_shape=resolved.biased_arc,
        density_level=resolved.biased_density,
        tempo_norm=(plan.bpm - MIN_BPM) / (MAX_BPM - MIN_BPM),
        step_bias=melody.step_leap_ratio,
        leap_cap=clamp(float(widest), MIN_LEAP_CAP, MAX_LEAP_CAP),
        rhythm_template_id=resolved.motif_idx,
        syncopation_bias=rhythm.syncopation,
        motif_rate=melody.motif_recurrence,
        element_dominance=dominant_element(chart),
        aspect_tension=clamp(tension, 0.0, 1.0) if tension is not None else 0.5,
        dominant_planets=dominant_planets(chart),
        hash=digest,
    )


class CompositionEngine:
    """Runs one composition end to end: plan, critics, gate and explainer text."""

    def __init__(
        self,
        config: Optional[QualityConfig] = None,
        tier: QualityTier = QualityTier.DEVELOPMENT,
        planner: Optional[NarrativePlanner] = None,
        realizer: Optional[TextRealizer] = None,
    ) -> None:
        self._config = config or QualityConfig.model_validate({})
        self._planner = planner or NarrativePlanner()
        self._gate = GateEvaluator(self._config, tier)
        self._min_rule_quality = self._config.tier(tier).min_rule_quality
        self._realizer = realizer or TextRealizer()

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompositionEngine":
        return cls(settings.quality, settings.quality_env)

    @property
    def gate(self) -> GateEvaluator:
        return self._gate

    @property
    def realizer(self) -> TextRealizer:
        return self._realizer

    def plan(
        self,
        vector: FeatureVector | Sequence[float],
        guidance: Optional[AstroGuidance] = None,
    ) -> Plan:
        return self._planner.plan(vector, guidance)

    def compose(
        self,
        vector: FeatureVector | Sequence[float],
        guidance: Optional[AstroGuidance] = None,
        chart: Optional[ChartSignals] = None,
        controls: Optional[ControlSurface] = None,
    ) -> ComposeResponse:
        started = time.perf_counter()
        features = FeatureVector.coerce(vector)
        if guidance is None and chart is not None:
            guidance = derive_guidance(chart.features, chart.snapshot)
        resolved = resolve_controls(features, guidance)
        predict_ms = _elapsed_ms(started)

        plan_started = time.perf_counter()
        plan = self._planner.plan_from_controls(resolved, features, guidance)
        plan_ms = _elapsed_ms(plan_started)

        digest = plan_digest(plan)
        melody = score_melody(plan)
        harmony = score_harmony(plan)
        rhythm = score_rhythm(plan)
        quality = rule_quality_from_scores(melody, harmony, rhythm)
        checks = audition(plan, quality, self._min_rule_quality)

        timings = StageTimings(predict_ms=predict_ms, plan_ms=plan_ms, total_ms=_elapsed_ms(started))
        report = self._gate.evaluate(
            melody,
            harmony,
            rhythm,
            latency_ms=LatencyBreakdown(**timings.as_dict()),
        )

        if controls is None:
            surface = derive_controls(resolved, plan, melody, rhythm, digest, chart)
        elif not controls.hash:
            surface = controls.model_copy(update={"hash": digest})
        else:
            surface = controls
        text = self._realizer.explain(surface, report)

        logger.debug(
            "Composed plan {} digest={} bpm={} events={} gate={} tier={} audition_issues={}",
            plan.id,
            digest[:12],
            plan.bpm,
            len(plan.events),
            "pass" if report.calibrated.overall else "fail",
            self._gate.tier.value,
            checks.issues,
        )
        return ComposeResponse(
            plan=plan,
            digest=digest,
            melody=melody,
            harmony=harmony,
            rhythm=rhythm,
            rule_quality=quality,
            audition=checks,
            gate_report=report,
            controls=surface,
            text=text,
        )
