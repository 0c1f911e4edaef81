import itertools

import pytest

from orrery_worker.app.models import HarmonyScores, MelodicScores, RhythmScores
from orrery_worker.app.settings import QualityConfig, QualityTier
from orrery_worker.services.gate import STRICT_THRESHOLDS, GateEvaluator, calibrated_thresholds


def _scores(arc: float, step: float, narrative: float, diversity: float):
    melody = MelodicScores(arc=arc, step_leap_ratio=step, narrative_flow=narrative)
    return melody, HarmonyScores(), RhythmScores(diversity=diversity)


def test_calibrated_thresholds_shift_with_tier() -> None:
    config = QualityConfig.model_validate({})
    development = calibrated_thresholds(config, QualityTier.DEVELOPMENT)
    production = calibrated_thresholds(config, QualityTier.PRODUCTION)
    assert development == pytest.approx(
        {
            "melody_arc": 0.40,
            "melody_step_leap": 0.21,
            "melody_narrative": 0.35,
            "rhythm_diversity": 0.295,
        }
    )
    for axis, value in production.items():
        assert value == pytest.approx(development[axis] + 0.10)


def test_scores_at_threshold_pass() -> None:
    evaluator = GateEvaluator(QualityConfig.model_validate({}))
    report = evaluator.evaluate(*_scores(0.40, 0.21, 0.35, 0.295))
    assert report.calibrated.overall
    assert report.calibrated.failing_axes() == []
    assert not report.strict.overall
    assert report.scores.melody_arc == 0.40
    assert report.latency_ms.total == 0.0


def test_single_failing_axis_fails_overall() -> None:
    evaluator = GateEvaluator(QualityConfig.model_validate({}))
    report = evaluator.evaluate(*_scores(0.9, 0.9, 0.2, 0.9))
    assert not report.calibrated.overall
    assert report.calibrated.failing_axes() == ["melody_narrative"]
    assert report.strict.failing_axes() == ["melody_narrative"]


def test_strict_thresholds_ignore_tier() -> None:
    config = QualityConfig.model_validate({})
    for tier in QualityTier:
        assert GateEvaluator(config, tier).strict == dict(STRICT_THRESHOLDS)


def test_gate_is_monotone_across_tiers() -> None:
    config = QualityConfig.model_validate({})
    evaluators = [GateEvaluator(config, tier) for tier in QualityTier]
    grid = [0.2, 0.3, 0.4, 0.45, 0.5, 0.6]
    for values in itertools.product(grid, repeat=4):
        reports = [evaluator.evaluate(*_scores(*values)) for evaluator in evaluators]
        for looser, stricter in zip(reports, reports[1:]):
            assert set(looser.calibrated.failing_axes()) <= set(stricter.calibrated.failing_axes())
            if stricter.calibrated.overall:
                assert looser.calibrated.overall


def test_strict_thresholds_sit_above_production_bar() -> None:
    production = calibrated_thresholds(QualityConfig.model_validate({}), QualityTier.PRODUCTION)
    for axis, value in production.items():
        assert STRICT_THRESHOLDS[axis] > value
