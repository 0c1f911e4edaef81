import itertools
import re

from orrery_worker.app.models import (
    GATE_AXES,
    AxisScores,
    ControlSurface,
    GateFlags,
    GateReport,
    GateStatus,
)
from orrery_worker.services.realizer import (
    FAIL_TEMPLATE_ID,
    TextRealizer,
    find_quality_language,
    sandbox_suggestions,
    truncate_text,
)

RICH_CONTROLS = ControlSurface(
    step_bias=0.8,
    leap_cap=5.0,
    arc_shape=0.7,
    rhythm_template_id=7,
    syncopation_bias=0.7,
    density_level=0.8,
    motif_rate=0.9,
    tempo_norm=0.9,
    element_dominance="fire",
    dominant_planets=["Mars", "Venus", "Sun"],
    hash="abc123",
)


def _flags(failing: tuple[str, ...] = ()) -> GateFlags:
    return GateFlags(**{axis: axis not in failing for axis in GATE_AXES}, overall=not failing)


def _report(calibrated_fail: tuple[str, ...] = (), strict_fail: tuple[str, ...] = ()) -> GateReport:
    return GateReport(
        calibrated=_flags(calibrated_fail),
        strict=_flags(strict_fail),
        scores=AxisScores(melody_arc=0.5, melody_step_leap=0.5, melody_narrative=0.5, rhythm_diversity=0.5),
    )


def _all_text(text) -> str:
    return " ".join([text.short, text.long, *text.bullets])


def test_pass_path_exposes_atoms() -> None:
    realizer = TextRealizer()
    text = realizer.explain(RICH_CONTROLS, _report())
    assert text.gate_status == GateStatus.PASS
    assert text.atoms is not None
    assert re.fullmatch(r"v1\.short\.0[0-3]", text.template_id)
    assert text.seed == "abc123"
    assert len(text.short) <= 120
    assert len(text.long) <= 300
    assert text.short.startswith("Tone: fiery, driven.")
    assert realizer.explain(RICH_CONTROLS, _report()) == text


def test_fail_path_hides_atoms_and_lists_hints() -> None:
    text = TextRealizer().explain(RICH_CONTROLS, _report(calibrated_fail=("melody_arc", "rhythm_diversity")))
    assert text.gate_status == GateStatus.FAIL
    assert text.atoms is None
    assert text.template_id == FAIL_TEMPLATE_ID
    assert text.short == "Adjust: raise arc_shape. Try: another rhythm_template_id (0-7)."
    assert text.bullets == ["• Adjust: raise arc_shape.", "• Try: another rhythm_template_id (0-7)."]
    assert "melody_arc, rhythm_diversity" in text.long


def test_fail_path_never_uses_quality_language() -> None:
    realizer = TextRealizer()
    for size in range(1, len(GATE_AXES) + 1):
        for failing in itertools.combinations(GATE_AXES, size):
            text = realizer.explain(RICH_CONTROLS, _report(calibrated_fail=failing))
            assert len(text.bullets) == len(failing)
            assert find_quality_language(_all_text(text)) == []


def test_fail_path_without_axes_gives_generic_hint() -> None:
    report = _report().model_copy(update={"calibrated": _flags().model_copy(update={"overall": False})})
    text = TextRealizer().explain(RICH_CONTROLS, report)
    assert text.gate_status == GateStatus.FAIL
    assert len(text.bullets) == 1
    assert find_quality_language(_all_text(text)) == []


def test_find_quality_language() -> None:
    found = find_quality_language("A Gentle, FULL sound; well-proportioned and gentle again.")
    assert found == ["gentle", "full", "well-proportioned"]
    assert find_quality_language("gentleness is not a match") == []


def test_overlay_prefixes_large_changes() -> None:
    realizer = TextRealizer()
    natal = ControlSurface(step_bias=0.3, hash="natal")
    current = ControlSurface(step_bias=0.6, syncopation_bias=0.05, hash="current")
    text = realizer.realize_overlay(natal, current, _report())
    assert text.short.startswith("Compared to your natal chart, today's transits add more stepwise motion.")
    assert text.bullets[0] == "• more stepwise motion compared to natal"


def test_overlay_skips_small_changes_and_failures() -> None:
    realizer = TextRealizer()
    natal = ControlSurface(step_bias=0.3, hash="natal")
    nudged = ControlSurface(step_bias=0.35, hash="current")
    assert realizer.realize_overlay(natal, nudged, _report()) == realizer.explain(nudged, _report())

    moved = ControlSurface(step_bias=0.9, hash="current")
    failing = _report(calibrated_fail=("melody_narrative",))
    text = realizer.realize_overlay(natal, moved, failing)
    assert text.gate_status == GateStatus.FAIL
    assert "Compared" not in text.short


def test_sandbox_appends_strict_suggestions() -> None:
    report = _report(strict_fail=("melody_step_leap",))
    assert sandbox_suggestions(report) == [
        "Try increasing step_bias (more stepwise motion)",
        "Try decreasing leap_cap (smaller leaps)",
    ]
    text = TextRealizer().realize_sandbox(RICH_CONTROLS, report)
    assert "• Sandbox suggestions:" in text.bullets
    assert "  - Try increasing step_bias (more stepwise motion)" in text.bullets
    assert sandbox_suggestions(_report()) == []


def test_truncate_text_respects_limit() -> None:
    words = "orbit " * 40
    assert len(truncate_text(words, 120)) <= 120
    assert truncate_text("short", 120) == "short"
    sentences = "First sentence here. " * 10
    assert truncate_text(sentences, 100).endswith(".")
