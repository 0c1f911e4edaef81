from __future__ import annotations

import math
from enum import Enum
from numbers import Real
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..services.exceptions import InvalidFeatureVector

FEATURE_NAMES = ("tempo", "brightness", "density", "arc", "motif", "cadence")


class Channel(str, Enum):
    MELODY = "melody"
    BASS = "bass"
    HARMONY = "harmony"
    RHYTHM = "rhythm"


class FeatureVector(BaseModel):
    """Six-dimensional generation vector; values are clamped by the planner."""

    model_config = ConfigDict(frozen=True)

    tempo: float
    brightness: float
    density: float
    arc: float
    motif: float
    cadence: float

    @classmethod
    def from_sequence(cls, values: Sequence[object]) -> "FeatureVector":
        if isinstance(values, (str, bytes)):
            raise InvalidFeatureVector("feature vector must be a sequence of 6 numbers")
        try:
            items = list(values)
        except TypeError as exc:
            raise InvalidFeatureVector("feature vector must be a sequence of 6 numbers") from exc
        if len(items) != len(FEATURE_NAMES):
            raise InvalidFeatureVector(
                f"feature vector must have {len(FEATURE_NAMES)} components, got {len(items)}"
            )
        for name, value in zip(FEATURE_NAMES, items):
            if isinstance(value, bool) or not isinstance(value, Real):
                raise InvalidFeatureVector(f"feature '{name}' is not numeric: {value!r}")
            if not math.isfinite(float(value)):
                raise InvalidFeatureVector(f"feature '{name}' is not finite: {value!r}")
        return cls(**{name: float(value) for name, value in zip(FEATURE_NAMES, items)})

    @classmethod
    def coerce(cls, value: "FeatureVector | Sequence[object]") -> "FeatureVector":
        if isinstance(value, FeatureVector):
            return value
        return cls.from_sequence(value)

    def as_tuple(self) -> tuple[float, float, float, float, float, float]:
        return (self.tempo, self.brightness, self.density, self.arc, self.motif, self.cadence)


class AstroGuidance(BaseModel):
    model_config = ConfigDict(frozen=True)

    tempo_bias: Optional[float] = None
    arc_bias: Optional[float] = None
    density_bias: Optional[float] = None
    motif_idx: Optional[int] = None
    cadence_idx: Optional[int] = None


class PlanetPosition(BaseModel):
    name: str = Field(..., min_length=1, max_length=32)
    lon: float = 0.0


class ChartSnapshot(BaseModel):
    planets: list[PlanetPosition] = Field(default_factory=list)


class ChartSignals(BaseModel):
    """Raw chart signals as produced by the ephemeris feature service."""

    features: list[Optional[float]] = Field(default_factory=list)
    snapshot: Optional[ChartSnapshot] = None


class EventToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    t0: float = Field(..., ge=0.0)
    t1: float
    pitch: int
    velocity: float = Field(..., gt=0.0, le=1.0)
    channel: Channel

    @model_validator(mode="after")
    def _check_order(self) -> "EventToken":
        if not self.t0 < self.t1:
            raise ValueError(f"event must end after it starts (t0={self.t0}, t1={self.t1})")
        return self


class Plan(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, max_length=64)
    feature_hash: str = Field(..., min_length=1, max_length=16)
    duration_sec: float = Field(..., gt=0.0, le=60.0)
    bpm: int = Field(..., ge=70, le=140)
    key: str = Field(default="A minor", min_length=3, max_length=32)
    events: tuple[EventToken, ...]

    def channel_events(self, channel: Channel) -> list[EventToken]:
        return sorted(
            (event for event in self.events if event.channel == channel),
            key=lambda event: event.t0,
        )


class MelodicScores(BaseModel):
    arc: float = 0.0
    motif_recurrence: float = 0.0
    contour_entropy: float = 0.0
    step_leap_ratio: float = 0.0
    range_ok: float = 0.0
    narrative_flow: float = 0.0
    gaming_penalty: float = 0.0


class HarmonyScores(BaseModel):
    progression_legality: float = 0.0
    voice_leading: float = 0.0
    tension: float = 0.0
    complexity: float = 0.0
    resolution: float = 0.0


class RhythmScores(BaseModel):
    syncopation: float = 0.0
    groove: float = 0.0
    tempo: float = 0.0
    diversity: float = 0.0
    accent: float = 0.0


class RuleQuality(BaseModel):
    ok: bool
    score: float
    melody: MelodicScores
    harmony: HarmonyScores
    rhythm: RhythmScores


class AuditionReport(BaseModel):
    """Structural and rule-quality checks run before the axis gate."""

    passed: bool
    issues: list[str] = Field(default_factory=list)
    score: float = 0.0


class GateFlags(BaseModel):
    melody_arc: bool
    melody_step_leap: bool
    melody_narrative: bool
    rhythm_diversity: bool
    overall: bool

    def failing_axes(self) -> list[str]:
        return [axis for axis in GATE_AXES if not getattr(self, axis)]


class AxisScores(BaseModel):
    melody_arc: float
    melody_step_leap: float
    melody_narrative: float
    rhythm_diversity: float


class LatencyBreakdown(BaseModel):
    predict: float = Field(default=0.0, ge=0.0)
    plan: float = Field(default=0.0, ge=0.0)
    total: float = Field(default=0.0, ge=0.0)


class GateReport(BaseModel):
    calibrated: GateFlags
    strict: GateFlags
    scores: AxisScores
    latency_ms: LatencyBreakdown = Field(default_factory=LatencyBreakdown)


GATE_AXES = ("melody_arc", "melody_step_leap", "melody_narrative", "rhythm_diversity")


class ControlSurface(BaseModel):
    arc_shape: float = 0.5
    density_level: float = 0.5
    tempo_norm: float = 0.5
    step_bias: float = 0.5
    leap_cap: float = 3.0
    rhythm_template_id: int = 0
    syncopation_bias: float = 0.0
    motif_rate: float = 0.5
    element_dominance: str = Field(default="none", max_length=16)
    aspect_tension: float = 0.5
    modality: str = Field(default="cardinal", max_length=16)
    dominant_planets: list[str] = Field(default_factory=list)
    hash: str = Field(default="", max_length=128)


class ExplainerAtoms(BaseModel):
    movement: str
    arc_desc: str
    rhythm_feel: str
    density_desc: str
    motif_desc: str
    astro_color: str


class GateStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"


class ExplainerText(BaseModel):
    short: str
    long: str
    bullets: list[str] = Field(default_factory=list)
    atoms: Optional[ExplainerAtoms] = None
    template_id: str
    seed: str
    gate_status: GateStatus


class PlanRequest(BaseModel):
    vector: list[float] = Field(..., min_length=6, max_length=6)
    guidance: Optional[AstroGuidance] = None


class ComposeRequest(BaseModel):
    vector: list[float] = Field(..., min_length=6, max_length=6)
    guidance: Optional[AstroGuidance] = None
    chart: Optional[ChartSignals] = None
    controls: Optional[ControlSurface] = None


class ComposeResponse(BaseModel):
    plan: Plan
    digest: str
    melody: MelodicScores
    harmony: HarmonyScores
    rhythm: RhythmScores
    rule_quality: RuleQuality
    audition: AuditionReport
    gate_report: GateReport
    controls: ControlSurface
    text: ExplainerText
