"""Text realization for gate-passing and fail-closed compositions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from ..app.models import (
    ControlSurface,
    ExplainerAtoms,
    ExplainerText,
    GateReport,
    GateStatus,
)
from .atoms import AtomsGenerator, stable_index

SHORT_MAX_LENGTH = 120
LONG_MAX_LENGTH = 300
SHORT_RHYTHM_ROOM = 80
MAX_BULLETS = 6
TEMPLATE_COUNT = 4
FAIL_TEMPLATE_ID = "v1.fail.00"
ELLIPSIS = "..."

# musical-quality adjectives that must never appear in fail-closed text
FORBIDDEN_ADJECTIVES = (
    "gentle",
    "soft",
    "smooth",
    "gradual",
    "steady",
    "moderate",
    "clear",
    "confident",
    "dramatic",
    "bold",
    "powerful",
    "sharp",
    "complex",
    "intricate",
    "layered",
    "nuanced",
    "balanced",
    "harmonious",
    "well-proportioned",
    "controlled",
    "restrained",
    "measured",
    "disciplined",
    "wide",
    "expansive",
    "broad",
    "extended",
    "light",
    "airy",
    "floating",
    "rich",
    "full",
    "lush",
    "satisfying",
    "dense",
    "thick",
    "frequent",
    "occasional",
    "sparse",
    "cohesive",
    "unifying",
    "binding",
    "connecting",
)

_FORBIDDEN_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(word) for word in FORBIDDEN_ADJECTIVES) + r")\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RemediationHint:
    axis: str
    knob: str
    text: str


REMEDIATION_HINTS = {
    "melody_arc": RemediationHint("melody_arc", "arc_shape", "Adjust: raise arc_shape"),
    "melody_step_leap": RemediationHint("melody_step_leap", "step_bias", "Adjust: increase step_bias"),
    "melody_narrative": RemediationHint("melody_narrative", "motif_rate", "Adjust: lower motif_rate"),
    "rhythm_diversity": RemediationHint(
        "rhythm_diversity", "rhythm_template_id", "Try: another rhythm_template_id (0-7)"
    ),
}

GENERIC_HINT = "Adjust: revisit control parameters to meet calibrated gate thresholds"

SANDBOX_SUGGESTIONS = {
    "melody_arc": ("Try different arc_shape values",),
    "melody_step_leap": (
        "Try increasing step_bias (more stepwise motion)",
        "Try decreasing leap_cap (smaller leaps)",
    ),
    "melody_narrative": ("Try lowering motif_rate",),
    "rhythm_diversity": (
        "Try different rhythm_template_id (0-7)",
        "Try adjusting syncopation_bias (0-1)",
    ),
}

# minimum absolute natal/current change before overlay text mentions it
OVERLAY_THRESHOLDS = {
    "step_bias": 0.10,
    "syncopation_bias": 0.15,
    "density_level": 0.20,
    "leap_cap": 1.0,
}

OVERLAY_PHRASES = {
    "step_bias": ("more stepwise motion", "more leaping motion"),
    "leap_cap": ("wider leaps", "narrower leaps"),
    "syncopation_bias": ("more syncopation", "less syncopation"),
    "density_level": ("more voices in the texture", "fewer voices in the texture"),
}


def find_quality_language(text: str) -> list[str]:
    """Return the forbidden quality adjectives present in ``text`` (lowercased, unique)."""
    found: list[str] = []
    for match in _FORBIDDEN_PATTERN.finditer(text):
        word = match.group(1).lower()
        if word not in found:
            found.append(word)
    return found


def remediation_hints(gate_report: GateReport) -> list[RemediationHint]:
    return [REMEDIATION_HINTS[axis] for axis in gate_report.calibrated.failing_axes()]


def sandbox_suggestions(gate_report: GateReport) -> list[str]:
    suggestions: list[str] = []
    for axis in gate_report.strict.failing_axes():
        suggestions.extend(SANDBOX_SUGGESTIONS[axis])
    return suggestions


def should_contrast(knob: str, delta: float) -> bool:
    return abs(delta) >= OVERLAY_THRESHOLDS[knob]


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    window = text[:max_length]
    sentence_end = max(window.rfind("."), window.rfind("!"), window.rfind("?"))
    if sentence_end > max_length * 0.7:
        return window[: sentence_end + 1]
    clipped = text[: max_length - len(ELLIPSIS)]
    last_space = clipped.rfind(" ")
    if last_space > max_length * 0.8:
        return clipped[:last_space] + ELLIPSIS
    return clipped + ELLIPSIS


class TextRealizer:
    """Turns control surfaces and gate reports into deterministic text."""

    def __init__(self, atoms: Optional[AtomsGenerator] = None) -> None:
        self._atoms = atoms or AtomsGenerator()

    def explain(self, controls: ControlSurface, gate_report: GateReport) -> ExplainerText:
        seed = controls.hash
        if gate_report.calibrated.overall:
            text = self._realize_pass(controls, seed)
        else:
            text = self._realize_fail(gate_report, seed)
        logger.debug(
            "Explainer hash={} template_id={} gate_scores={} fail_closed_text={}",
            seed,
            text.template_id,
            gate_report.scores.model_dump(),
            text.gate_status == GateStatus.FAIL,
        )
        return text

    def realize_overlay(
        self,
        natal: ControlSurface,
        current: ControlSurface,
        gate_report: GateReport,
    ) -> ExplainerText:
        text = self.explain(current, gate_report)
        if text.gate_status == GateStatus.FAIL:
            return text
        deltas = _describe_deltas(natal, current)
        if not deltas:
            return text
        joined = ", ".join(deltas)
        prefix = f"Compared to your natal chart, today's transits add {joined}."
        return text.model_copy(
            update={
                "short": f"{prefix} {text.short}",
                "long": f"{prefix} {text.long}",
                "bullets": [f"• {joined} compared to natal", *text.bullets],
            }
        )

    def realize_sandbox(self, controls: ControlSurface, gate_report: GateReport) -> ExplainerText:
        text = self.explain(controls, gate_report)
        if gate_report.strict.overall:
            return text
        suggestions = sandbox_suggestions(gate_report)
        if not suggestions:
            return text
        bullets = [*text.bullets, "• Sandbox suggestions:", *(f"  - {item}" for item in suggestions)]
        return text.model_copy(update={"bullets": bullets})

    def _realize_pass(self, controls: ControlSurface, seed: str) -> ExplainerText:
        atoms = self._atoms.generate(controls)
        tempo = self._atoms.tempo_fragment(controls)
        template_index = stable_index(seed, "template", TEMPLATE_COUNT)
        return ExplainerText(
            short=_short_text(atoms),
            long=_long_text(atoms, tempo),
            bullets=_bullets(atoms),
            atoms=atoms,
            template_id=f"v1.short.{template_index:02d}",
            seed=seed,
            gate_status=GateStatus.PASS,
        )

    def _realize_fail(self, gate_report: GateReport, seed: str) -> ExplainerText:
        hints = [hint.text for hint in remediation_hints(gate_report)] or [GENERIC_HINT]
        short = " ".join(f"{hint}." for hint in hints)
        failing = gate_report.calibrated.failing_axes()
        long = short
        if failing:
            long = f"{short} Calibrated gate not met on: {', '.join(failing)}."
        return ExplainerText(
            short=short,
            long=long,
            bullets=[f"• {hint}." for hint in hints],
            atoms=None,
            template_id=FAIL_TEMPLATE_ID,
            seed=seed,
            gate_status=GateStatus.FAIL,
        )


def _short_text(atoms: ExplainerAtoms) -> str:
    short = f"{atoms.astro_color} {atoms.movement} {atoms.arc_desc}"
    if len(short) < SHORT_RHYTHM_ROOM:
        short = f"{short} {atoms.rhythm_feel}"
    return truncate_text(short, SHORT_MAX_LENGTH)


def _long_text(atoms: ExplainerAtoms, tempo: str) -> str:
    sentences = [
        atoms.astro_color,
        atoms.movement,
        f"{atoms.rhythm_feel.rstrip('.')} {tempo}",
        atoms.density_desc,
        atoms.motif_desc,
    ]
    return truncate_text(" ".join(sentences), LONG_MAX_LENGTH)


def _bullets(atoms: ExplainerAtoms) -> list[str]:
    items = [
        atoms.movement,
        atoms.arc_desc,
        atoms.rhythm_feel,
        atoms.density_desc,
        atoms.motif_desc,
    ]
    return [f"• {item}" for item in items][:MAX_BULLETS]


def _describe_deltas(natal: ControlSurface, current: ControlSurface) -> list[str]:
    descriptions: list[str] = []
    for knob in ("step_bias", "leap_cap", "syncopation_bias", "density_level"):
        delta = float(getattr(current, knob)) - float(getattr(natal, knob))
        if delta == 0.0 or not should_contrast(knob, delta):
            continue
        increase, decrease = OVERLAY_PHRASES[knob]
        descriptions.append(increase if delta > 0 else decrease)
    if current.element_dominance != natal.element_dominance:
        descriptions.append(f"{current.element_dominance} influence")
    return descriptions
