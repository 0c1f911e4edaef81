"""Narrative planner producing quantized multi-channel event plans."""

from __future__ import annotations

import hashlib
import json
import math
from typing import Optional, Sequence

from ..app.models import AstroGuidance, Channel, EventToken, FeatureVector, Plan
from .guidance import resolve_controls
from .types import ResolvedControls

PLAN_VERSION = "v6"
PLAN_KEY = "A minor"
BARS = 16
PHRASE_BARS = 4
BEATS_PER_BAR = 4
MAX_DURATION_SECONDS = 60.0
MIN_BPM = 70
MAX_BPM = 140
REGISTER_LOW = 55
REGISTER_HIGH = 67
ARC_LIFT_MIN = 3.0
ARC_LIFT_MAX = 10.0

# rise-then-resolve weights applied to the arc lift, one per phrase
PHRASE_WEIGHTS = (-0.5, 0.4, 1.0, -0.2)

MOTIFS: tuple[tuple[int, int, int], ...] = (
    (0, 2, 4),
    (0, 3, 5),
    (0, 2, -1),
    (0, -2, -4),
    (0, 4, 7),
    (0, 1, 2),
    (0, 5, 7),
    (0, -1, 2),
)

CADENCE_PITCHES = (71, 72, 74, 76)

MELODY_VELOCITIES = (0.7, 0.8)
CADENCE_VELOCITY = 0.9
BASS_VELOCITY = 0.7
HARMONY_VELOCITY = 0.5
KICK_PITCH = 36
HAT_PITCH = 42

# (beat within bar, duration in beats, pitch, velocity)
RHYTHM_GRID = (
    (0.0, 0.1, KICK_PITCH, 0.8),
    (2.0, 0.1, KICK_PITCH, 0.7),
    (1.0, 0.05, HAT_PITCH, 0.4),
    (3.0, 0.05, HAT_PITCH, 0.4),
)


def lerp(low: float, high: float, t: float) -> float:
    return low + (high - low) * t


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def tempo_to_bpm(biased_tempo: float) -> int:
    return round_half_up(lerp(MIN_BPM, MAX_BPM, biased_tempo))


def drops_for_density(density: float) -> int:
    if density > 0.75:
        return 3
    if density > 0.5:
        return 2
    return 1


def phrase_centers(base_center: int, arc_lift: float) -> list[int]:
    centers = []
    for weight in PHRASE_WEIGHTS:
        offset = round_half_up(arc_lift * abs(weight))
        centers.append(base_center + offset if weight >= 0 else base_center - offset)
    return centers


class _EventBuffer:
    """Collects events in insertion order, quantizing onto the beat grid."""

    def __init__(self, bpm: int) -> None:
        self._seconds_per_beat = 60.0 / float(bpm)
        self.events: list[EventToken] = []

    def push(
        self,
        beat: float,
        duration_beats: float,
        pitch: int,
        velocity: float,
        channel: Channel,
    ) -> None:
        start_step = round_half_up(beat)
        end_step = round_half_up(beat + duration_beats)
        if end_step <= start_step:
            end_step = start_step + 1
        self.events.append(
            EventToken(
                t0=start_step * self._seconds_per_beat,
                t1=end_step * self._seconds_per_beat,
                pitch=pitch,
                velocity=velocity,
                channel=channel,
            )
        )


class NarrativePlanner:
    """Generates deterministic 16-bar event plans from feature vectors."""

    def plan(
        self,
        vector: FeatureVector | Sequence[float],
        guidance: Optional[AstroGuidance] = None,
    ) -> Plan:
        features = FeatureVector.coerce(vector)
        controls = resolve_controls(features, guidance)
        return self.plan_from_controls(controls, features, guidance)

    def plan_from_controls(
        self,
        controls: ResolvedControls,
        features: FeatureVector,
        guidance: Optional[AstroGuidance] = None,
    ) -> Plan:
        bpm = tempo_to_bpm(controls.biased_tempo)
        base_center = round_half_up(lerp(REGISTER_LOW, REGISTER_HIGH, controls.brightness))
        arc_lift = lerp(ARC_LIFT_MIN, ARC_LIFT_MAX, controls.biased_arc)
        centers = phrase_centers(base_center, arc_lift)
        motif = MOTIFS[controls.motif_idx % len(MOTIFS)]
        cadence_pitch = CADENCE_PITCHES[controls.cadence_idx % len(CADENCE_PITCHES)]
        density = lerp(0.3, 0.9, controls.biased_density)
        drops = drops_for_density(density)

        buffer = _EventBuffer(bpm)
        _melody_pass(buffer, centers, motif, cadence_pitch, drops)
        _bass_pass(buffer, centers)
        _harmony_pass(buffer, centers)
        _rhythm_pass(buffer)

        total_beats = BARS * BEATS_PER_BAR
        duration = min(MAX_DURATION_SECONDS, total_beats * (60.0 / float(bpm)))

        return Plan(
            id=_plan_id(features, guidance),
            feature_hash=PLAN_VERSION,
            duration_sec=duration,
            bpm=bpm,
            key=PLAN_KEY,
            events=buffer.events,
        )


def _melody_pass(
    buffer: _EventBuffer,
    centers: list[int],
    motif: tuple[int, int, int],
    cadence_pitch: int,
    drops: int,
) -> None:
    for bar in range(BARS):
        center = centers[bar // PHRASE_BARS]
        bar_start = bar * BEATS_PER_BAR
        root = center + (0 if bar % 2 else -2)
        for drop in range(drops):
            slot = drop * (BEATS_PER_BAR / drops)
            velocity = MELODY_VELOCITIES[drop % 2]
            for step, interval in enumerate(motif):
                buffer.push(bar_start + slot + step, 1.0, root + interval, velocity, Channel.MELODY)
        if (bar + 1) % PHRASE_BARS == 0:
            buffer.push(bar_start + 3, 1.0, cadence_pitch, CADENCE_VELOCITY, Channel.MELODY)


def _bass_pass(buffer: _EventBuffer, centers: list[int]) -> None:
    for bar in range(BARS):
        tonic = centers[bar // PHRASE_BARS] - 24
        bar_start = bar * BEATS_PER_BAR
        buffer.push(bar_start, 2.0, tonic, BASS_VELOCITY, Channel.BASS)
        buffer.push(bar_start + 2, 2.0, tonic + 7, BASS_VELOCITY, Channel.BASS)


def _harmony_pass(buffer: _EventBuffer, centers: list[int]) -> None:
    for bar in range(BARS):
        center = centers[bar // PHRASE_BARS]
        bar_start = bar * BEATS_PER_BAR
        for pitch in (center, center + 4, center + 7):
            buffer.push(bar_start, 4.0, pitch, HARMONY_VELOCITY, Channel.HARMONY)


def _rhythm_pass(buffer: _EventBuffer) -> None:
    for bar in range(BARS):
        bar_start = bar * BEATS_PER_BAR
        for beat, duration, pitch, velocity in RHYTHM_GRID:
            buffer.push(bar_start + beat, duration, pitch, velocity, Channel.RHYTHM)


def _plan_id(features: FeatureVector, guidance: Optional[AstroGuidance]) -> str:
    payload = {
        "version": PLAN_VERSION,
        "vector": list(features.as_tuple()),
        "guidance": guidance.model_dump() if guidance is not None else None,
    }
    token = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
    return f"plan_{digest[:16]}"


def plan_digest(plan: Plan) -> str:
    """Content digest of the canonical plan JSON."""
    return hashlib.sha256(plan.model_dump_json().encode("utf-8")).hexdigest()
