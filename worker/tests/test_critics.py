import math

import pytest

from orrery_worker.app.models import Channel, EventToken, MelodicScores, Plan
from orrery_worker.services.critics import (
    audition,
    rule_quality,
    rule_quality_from_scores,
    score_harmony,
    score_melody,
    score_rhythm,
    structural_issues,
)
from orrery_worker.services.planner import NarrativePlanner

SCENARIO = (0.8, 0.6, 0.7, 0.65, 0.357, 0.5)


def _plan(events: list[EventToken], bpm: int = 120) -> Plan:
    return Plan(id="plan_test", feature_hash="v6", duration_sec=30.0, bpm=bpm, events=events)


def _note(t0: float, pitch: int, channel: Channel, length: float = 0.5, velocity: float = 0.7) -> EventToken:
    return EventToken(t0=t0, t1=t0 + length, pitch=pitch, velocity=velocity, channel=channel)


def test_under_populated_plan_scores_zero() -> None:
    plan = _plan([_note(0.0, 60, Channel.MELODY), _note(0.5, 62, Channel.MELODY)])
    assert score_melody(plan) == MelodicScores(gaming_penalty=1.0)
    harmony = score_harmony(plan)
    assert harmony.progression_legality == 0.0
    assert harmony.voice_leading == 0.0
    rhythm = score_rhythm(plan)
    assert rhythm.syncopation == 0.0
    assert rhythm.diversity == 0.0


def test_melody_scores_on_scenario_plan() -> None:
    plan = NarrativePlanner().plan(SCENARIO)
    melody = score_melody(plan)
    assert melody.step_leap_ratio == pytest.approx(53 / 99)
    assert melody.narrative_flow == pytest.approx(36 / 99)
    assert melody.arc == pytest.approx(0.4945, abs=1e-3)
    assert melody.range_ok == 1.0
    for value in melody.model_dump().values():
        assert 0.0 <= value <= 1.0


def test_repeated_pitch_melody_is_penalised() -> None:
    events = [_note(index * 0.5, 60, Channel.MELODY) for index in range(12)]
    melody = score_melody(_plan(events))
    assert melody.step_leap_ratio == 1.0
    assert melody.range_ok == 0.0
    assert melody.gaming_penalty == pytest.approx(0.7)


def test_harmony_legality_on_scenario_plan() -> None:
    harmony = score_harmony(NarrativePlanner().plan(SCENARIO))
    # one whole-step root motion (0.8) among fifteen otherwise fully legal motions
    assert harmony.progression_legality == pytest.approx(14.8 / 15)
    assert 0.0 <= harmony.voice_leading <= 1.0
    # pitch classes of the four phrase triads: {0, 2, 4, 5, 7, 9, 10}
    assert harmony.complexity == pytest.approx(7 / 12)


def test_tritone_root_motion_is_illegal() -> None:
    events = [
        *(_note(0.0, pitch, Channel.HARMONY, length=2.0) for pitch in (60, 64, 67)),
        *(_note(2.0, pitch, Channel.HARMONY, length=2.0) for pitch in (66, 70, 73)),
    ]
    harmony = score_harmony(_plan(events))
    assert harmony.progression_legality == 0.0
    assert harmony.resolution == 0.0
    assert harmony.voice_leading == pytest.approx(1.0 - (10 / 3) / 7.0)


def test_rhythm_scores_on_planner_grid() -> None:
    rhythm = score_rhythm(NarrativePlanner().plan(SCENARIO))
    assert rhythm.syncopation == pytest.approx(0.5)
    assert rhythm.diversity == pytest.approx(0.5)
    assert rhythm.groove == pytest.approx(1.0)
    assert rhythm.accent == pytest.approx(1.0)
    assert rhythm.tempo == pytest.approx(1.0 - 21.0 / 70.0)


def test_rule_quality_aggregates_critics() -> None:
    plan = NarrativePlanner().plan(SCENARIO)
    quality = rule_quality(plan)
    assert quality.melody == score_melody(plan)
    assert quality.harmony == score_harmony(plan)
    assert quality.rhythm == score_rhythm(plan)
    assert 0.0 <= quality.score <= 1.0
    assert rule_quality(plan) == quality


def test_rule_quality_from_scores_matches_plan_pass() -> None:
    plan = NarrativePlanner().plan(SCENARIO)
    quality = rule_quality_from_scores(score_melody(plan), score_harmony(plan), score_rhythm(plan))
    assert quality == rule_quality(plan)


def test_structural_issues_on_full_plan() -> None:
    assert structural_issues(NarrativePlanner().plan(SCENARIO)) == []


def test_structural_issues_flag_sparse_and_missing_channels() -> None:
    plan = _plan([_note(index * 0.5, 60, Channel.MELODY) for index in range(12)])
    assert structural_issues(plan) == ["events<120", "missing:harmony"]
    assert structural_issues(plan, min_events=10) == ["missing:harmony"]


def test_structural_issues_flag_non_finite_values() -> None:
    events = [
        _note(0.0, 60, Channel.MELODY),
        EventToken(t0=0.5, t1=math.inf, pitch=62, velocity=0.7, channel=Channel.MELODY),
        _note(0.0, 57, Channel.HARMONY),
    ]
    assert structural_issues(_plan(events), min_events=1) == ["non-finite-values"]


def test_audition_applies_rule_quality_floor() -> None:
    plan = NarrativePlanner().plan(SCENARIO)
    quality = rule_quality(plan)
    lenient = audition(plan, quality, min_rule_quality=0.0)
    assert "events<120" not in lenient.issues
    assert lenient.score == quality.score
    assert lenient.passed == quality.ok
    # legality and syncopation cap the mean well below 0.9
    strict = audition(plan, quality, min_rule_quality=0.9)
    assert not strict.passed
    assert "rule-quality<0.90" in strict.issues
