"""Pure musical critics scoring one plan channel at a time.

Every metric is a deterministic function of the channel's events sorted by
onset, scaled to 0..1 (``gaming_penalty`` is the exception: higher is worse).
"""

from __future__ import annotations

import math
from collections import Counter
from itertools import groupby
from typing import Sequence

import numpy as np

from ..app.models import (
    AuditionReport,
    Channel,
    EventToken,
    HarmonyScores,
    MelodicScores,
    Plan,
    RhythmScores,
    RuleQuality,
)
from .types import clamp

MIN_MELODY_EVENTS = 8
MIN_HARMONY_EVENTS = 4
MIN_RHYTHM_EVENTS = 4

# audition floor: a full 16-bar plan carries well over this many events
MIN_AUDITION_EVENTS = 120
REQUIRED_CHANNELS = (Channel.MELODY, Channel.HARMONY)

# weight of a chord-root motion keyed by interval class (semitones mod 12)
ROOT_MOTION_LEGALITY = {
    0: 1.0,
    1: 0.3,
    2: 0.8,
    3: 0.7,
    4: 0.6,
    5: 1.0,
    6: 0.0,
    7: 1.0,
    8: 0.6,
    9: 0.7,
    10: 0.8,
    11: 0.3,
}

MAX_VOICE_MOVEMENT = 7.0
TEMPO_SWEET_SPOT = 105.0
TEMPO_TOLERANCE = 70.0
MAX_HIT_CLASSES = 8
STRONG_BEATS = (0, 2)

RULE_THRESHOLDS = {
    "arc": 0.40,
    "motif_recurrence": 0.35,
    "contour_entropy": 0.35,
    "step_leap_ratio": 0.35,
    "range_ok": 0.5,
    "progression_legality": 0.4,
    "syncopation": 0.4,
}


# -----------------------------------------------------------------------------
# Melody
# -----------------------------------------------------------------------------


def score_melody(plan: Plan) -> MelodicScores:
    events = plan.channel_events(Channel.MELODY)
    if len(events) < MIN_MELODY_EVENTS:
        return MelodicScores(gaming_penalty=1.0)

    pitches = np.asarray([event.pitch for event in events], dtype=np.int64)
    deltas = np.diff(pitches)

    return MelodicScores(
        arc=_arc(pitches),
        motif_recurrence=_motif_recurrence(pitches.tolist()),
        contour_entropy=_contour_entropy(deltas),
        step_leap_ratio=_step_leap_ratio(deltas),
        range_ok=_range_ok(pitches),
        narrative_flow=_narrative_flow(deltas),
        gaming_penalty=_gaming_penalty(pitches, deltas),
    )


def _arc(pitches: np.ndarray) -> float:
    third = max(3, len(pitches) // 3)
    first = pitches[:third]
    middle = pitches[third : 2 * third]
    last = pitches[2 * third :]
    first_mean, middle_mean, last_mean = (_mean(segment) for segment in (first, middle, last))
    rise = max(0.0, middle_mean - first_mean) / 12.0
    resolve = max(0.0, middle_mean - last_mean) / 12.0
    return clamp((rise + resolve) / 2.0, 0.0, 1.0)


def _mean(values: np.ndarray) -> float:
    if values.size == 0:
        return 0.0
    return float(np.mean(values))


def _motif_recurrence(pitches: list[int]) -> float:
    windows = Counter(tuple(pitches[index : index + 3]) for index in range(len(pitches) - 2))
    if not windows:
        return 0.0
    repeated = sum(1 for count in windows.values() if count > 1)
    return repeated / len(windows)


def _contour_entropy(deltas: np.ndarray) -> float:
    contour = np.sign(deltas).tolist()
    transitions = Counter(zip(contour, contour[1:]))
    total = sum(transitions.values())
    if total == 0:
        return 0.0
    entropy = 0.0
    for count in transitions.values():
        probability = count / total
        entropy -= probability * math.log2(probability)
    return min(1.0, entropy / 3.0)


def _step_leap_ratio(deltas: np.ndarray) -> float:
    if deltas.size == 0:
        return 0.0
    steps = int(np.count_nonzero(np.abs(deltas) <= 2))
    return steps / int(deltas.size)


def _range_ok(pitches: np.ndarray) -> float:
    span = int(pitches.max() - pitches.min())
    if 12 <= span <= 24:
        return 1.0
    if span < 12:
        return span / 12.0
    return max(0.0, 1.0 - (span - 24) / 12.0)


def _narrative_flow(deltas: np.ndarray) -> float:
    rising = (deltas > 0).tolist()
    changes = sum(1 for previous, current in zip(rising, rising[1:]) if previous != current)
    flow = 1.0 - changes / max(1, len(rising))
    return clamp(flow, 0.0, 1.0)


def _gaming_penalty(pitches: np.ndarray, deltas: np.ndarray) -> float:
    penalty = 0.0
    if deltas.size and np.count_nonzero(deltas == 0) / deltas.size > 0.3:
        penalty += 0.3
    if len(np.unique(np.abs(deltas))) < 3 and len(pitches) > 10:
        penalty += 0.4
    if int(pitches.max() - pitches.min()) > 36:
        penalty += 0.3
    return min(1.0, penalty)


# -----------------------------------------------------------------------------
# Harmony
# -----------------------------------------------------------------------------


def score_harmony(plan: Plan) -> HarmonyScores:
    events = plan.channel_events(Channel.HARMONY)
    if len(events) < MIN_HARMONY_EVENTS:
        return HarmonyScores()

    chords = _group_chords(events)
    roots = [chord[0] for chord in chords]
    motions = [(current - previous) % 12 for previous, current in zip(roots, roots[1:])]

    if motions:
        legality = sum(ROOT_MOTION_LEGALITY[motion] for motion in motions) / len(motions)
        movement = [_voice_movement(previous, current) for previous, current in zip(chords, chords[1:])]
        voice_leading = clamp(1.0 - (sum(movement) / len(movement)) / MAX_VOICE_MOVEMENT, 0.0, 1.0)
    else:
        legality = 0.0
        voice_leading = 0.0

    departures = [abs(root - roots[0]) for root in roots]
    tension = clamp((sum(departures) / len(departures)) / 12.0, 0.0, 1.0)
    pitch_classes = {event.pitch % 12 for event in events}
    complexity = len(pitch_classes) / 12.0

    return HarmonyScores(
        progression_legality=legality,
        voice_leading=voice_leading,
        tension=tension,
        complexity=complexity,
        resolution=_resolution(roots, motions),
    )


def _group_chords(events: Sequence[EventToken]) -> list[list[int]]:
    chords = []
    for _, group in groupby(events, key=lambda event: event.t0):
        chords.append(sorted(event.pitch for event in group))
    return chords


def _voice_movement(previous: list[int], current: list[int]) -> float:
    """Mean distance from each voice of ``current`` to the nearest voice of ``previous``."""
    moves = [min(abs(pitch - source) for source in previous) for pitch in current]
    return sum(moves) / len(moves)


def _resolution(roots: list[int], motions: list[int]) -> float:
    if len(roots) < 2:
        return 0.0
    score = 0.5 if roots[-1] % 12 == roots[0] % 12 else 0.0
    changes = [motion for motion in motions if motion != 0]
    if changes:
        score += 0.5 * ROOT_MOTION_LEGALITY[changes[-1]]
    return score


# -----------------------------------------------------------------------------
# Rhythm
# -----------------------------------------------------------------------------


def score_rhythm(plan: Plan) -> RhythmScores:
    events = plan.channel_events(Channel.RHYTHM)
    if len(events) < MIN_RHYTHM_EVENTS:
        return RhythmScores()

    seconds_per_beat = 60.0 / float(plan.bpm)
    onsets = np.asarray([event.t0 for event in events], dtype=np.float64)
    beats = onsets / seconds_per_beat
    strong = _strong_beat_mask(beats)

    return RhythmScores(
        syncopation=float(np.count_nonzero(~strong)) / len(events),
        groove=_groove(onsets),
        tempo=_tempo_fitness(onsets),
        diversity=_hit_diversity(events),
        accent=_accent(events, strong),
    )


def _strong_beat_mask(beats: np.ndarray) -> np.ndarray:
    rounded = np.round(beats)
    on_grid = np.isclose(beats, rounded, atol=1e-6)
    position = np.mod(rounded.astype(np.int64), 4)
    return on_grid & np.isin(position, STRONG_BEATS)


def _inter_onset_intervals(onsets: np.ndarray) -> np.ndarray:
    intervals = np.diff(onsets)
    return intervals[intervals > 1e-9]


def _groove(onsets: np.ndarray) -> float:
    intervals = _inter_onset_intervals(onsets)
    if intervals.size == 0:
        return 0.0
    mean = float(np.mean(intervals))
    variation = float(np.std(intervals)) / mean
    return clamp(1.0 - variation, 0.0, 1.0)


def _tempo_fitness(onsets: np.ndarray) -> float:
    intervals = _inter_onset_intervals(onsets)
    if intervals.size == 0:
        return 0.0
    implied_bpm = 60.0 / float(np.median(intervals))
    return clamp(1.0 - abs(implied_bpm - TEMPO_SWEET_SPOT) / TEMPO_TOLERANCE, 0.0, 1.0)


def _hit_diversity(events: Sequence[EventToken]) -> float:
    classes = Counter((event.pitch, round(event.velocity, 3)) for event in events)
    total = sum(classes.values())
    entropy = 0.0
    for count in classes.values():
        probability = count / total
        entropy -= probability * math.log2(probability)
    return min(1.0, entropy / math.log2(MAX_HIT_CLASSES))


def _accent(events: Sequence[EventToken], strong: np.ndarray) -> float:
    velocities = np.asarray([event.velocity for event in events], dtype=np.float64)
    strong_velocities = velocities[strong]
    if strong_velocities.size == 0:
        return 0.0
    weak_velocities = velocities[~strong]
    weak_mean = float(np.mean(weak_velocities)) if weak_velocities.size else 0.0
    return float(np.count_nonzero(strong_velocities > weak_mean)) / strong_velocities.size


# -----------------------------------------------------------------------------
# Aggregate
# -----------------------------------------------------------------------------


def rule_quality(plan: Plan) -> RuleQuality:
    return rule_quality_from_scores(score_melody(plan), score_harmony(plan), score_rhythm(plan))


def rule_quality_from_scores(
    melody: MelodicScores,
    harmony: HarmonyScores,
    rhythm: RhythmScores,
) -> RuleQuality:
    """Rule-quality verdict over critic scores that were already computed."""
    values = {
        **melody.model_dump(),
        **harmony.model_dump(),
        **rhythm.model_dump(),
    }
    ok = all(values[metric] >= threshold for metric, threshold in RULE_THRESHOLDS.items())

    melodic = (
        melody.arc
        + melody.motif_recurrence
        + melody.contour_entropy
        + melody.step_leap_ratio
        + melody.range_ok
    ) / 5.0
    penalised = max(0.0, melodic - melody.gaming_penalty)
    score = (penalised + harmony.progression_legality + rhythm.syncopation) / 3.0

    return RuleQuality(ok=ok, score=score, melody=melody, harmony=harmony, rhythm=rhythm)


# -----------------------------------------------------------------------------
# Audition
# -----------------------------------------------------------------------------


def structural_issues(plan: Plan, min_events: int = MIN_AUDITION_EVENTS) -> list[str]:
    issues: list[str] = []
    if len(plan.events) < min_events:
        issues.append(f"events<{min_events}")
    channels = {event.channel for event in plan.events}
    for channel in REQUIRED_CHANNELS:
        if channel not in channels:
            issues.append(f"missing:{channel.value}")
    for event in plan.events:
        if not all(math.isfinite(value) for value in (event.t0, event.t1, event.pitch, event.velocity)):
            issues.append("non-finite-values")
            break
    return issues


def audition(
    plan: Plan,
    quality: RuleQuality,
    min_rule_quality: float,
    min_events: int = MIN_AUDITION_EVENTS,
) -> AuditionReport:
    issues = structural_issues(plan, min_events)
    if not quality.ok:
        issues.append("rule-quality-failed")
    if quality.score < min_rule_quality:
        issues.append(f"rule-quality<{min_rule_quality:.2f}")
    return AuditionReport(passed=not issues, issues=issues, score=quality.score)
