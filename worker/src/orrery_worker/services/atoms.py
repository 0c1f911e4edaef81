"""Deterministic explainer atoms from the control surface."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from ..app.models import ControlSurface, ExplainerAtoms
from .types import clamp


@dataclass(frozen=True)
class Bucket:
    """One tagged range of a control value.

    A bucket matches when the value is at or above ``lower`` (strictly above
    when ``inclusive`` is false). Tables list buckets from the highest cut-point
    down and end with an unbounded catch-all.
    """

    tag: str
    lower: float
    phrases: tuple[str, ...]
    inclusive: bool = True

    def matches(self, value: float) -> bool:
        return value >= self.lower if self.inclusive else value > self.lower


_FLOOR = -math.inf

MOVEMENT_TABLE = (
    Bucket("stepwise_heavy", 0.70, ("Venus and Earth guide mostly connected motion",)),
    Bucket("balanced", 0.40, ("Mercury and Air balance steps with occasional leaps",)),
    Bucket("leaping_lead", _FLOOR, ("Mars and Fire push the line into open leaps",)),
)

LEAP_MODIFIER_TABLE = (
    Bucket("wide_reaches", 5.0, (" with Jupiter's expansive reach",)),
    Bucket("middle", 2.0, ("",), inclusive=False),
    Bucket("close_careful", _FLOOR, (" held close by Saturn's careful hand",)),
)

ARC_TABLE = (
    Bucket(
        "rise_peak_release",
        0.6,
        (
            "The line climbs toward a peak and then lets go{tint}.",
            "A rising path crests and settles back down{tint}.",
        ),
    ),
    Bucket(
        "wave",
        0.4,
        (
            "The line moves in rolling waves{tint}.",
            "Swells come and go like a tide{tint}.",
        ),
    ),
    Bucket("plateau_hold", 0.2, ("The line holds a high plateau{tint}.",)),
    Bucket("mixed_rise_release", _FLOOR, ("The line rises and falls in turns{tint}.",)),
)

RHYTHM_CLASS_TABLE = (
    Bucket("fluid_open", 7, ("Neptune's fluid, open flow",)),
    Bucket("strong_accented", 5, ("Mars's strongly accented drive",)),
    Bucket("lightly_shifting", 3, ("Mercury's lightly shifting step",)),
    Bucket("simple_even", _FLOOR, ("Earth's steady, even pulse",)),
)

SYNCOPATION_TABLE = (
    Bucket("pronounced", 0.60, ("with pronounced off-beat play",)),
    Bucket("subtle", 0.30, ("with subtle off-beat lifts",)),
    Bucket("straight", _FLOOR, ("with steady cosmic time",)),
)

DENSITY_TABLE = (
    Bucket("dense", 0.65, ("Jupiter fills the texture",)),
    Bucket("balanced", 0.35, ("Jupiter and Saturn share the texture",)),
    Bucket("sparse", _FLOOR, ("Saturn keeps the texture spare",)),
)

MOTIF_TABLE = (
    Bucket("frequent", 0.7, ("Venus's love of return brings the motif back often.",), inclusive=False),
    Bucket("moderate", 0.4, ("The Moon's cycle returns the motif now and then.",)),
    Bucket("sparse", _FLOOR, ("Uranus lets the motif surface only in flashes.",)),
)

TEMPO_TABLE = (
    Bucket("brisk", 0.7, ("at a brisk pace.",), inclusive=False),
    Bucket("measured", 0.4, ("at a walking pace.",)),
    Bucket("slow", _FLOOR, ("at an unhurried pace.",)),
)

STELLIUM_SUFFIX = ", gathered as in a stellium"
STELLIUM_MIN_PLANETS = 3

ELEMENT_TINTS = {
    "fire": " under Fire's spark",
    "earth": " on Earth's ground",
    "air": " on Air's currents",
    "water": " through Water's tide",
}

ELEMENT_ADJECTIVES = {
    "fire": "fiery",
    "earth": "grounded",
    "air": "breezy",
    "water": "tidal",
}

PLANET_ADJECTIVES = {
    "sun": "radiant",
    "moon": "reflective",
    "mercury": "quick",
    "venus": "tender",
    "mars": "driven",
    "jupiter": "generous",
    "saturn": "patient",
    "uranus": "electric",
    "neptune": "dreamy",
    "pluto": "deep",
}

PLANET_TINTS = {
    "moon": ", colored by the Moon's tides",
    "mars": ", spurred on by Mars",
    "venus": ", softened by Venus",
    "mercury": ", quickened by Mercury",
    "saturn": ", steadied by Saturn",
    "neptune": ", veiled by Neptune",
}

DEFAULT_ELEMENT_ADJECTIVE = "mixed"
DEFAULT_PLANET_ADJECTIVE = "centered"


def select_bucket(table: Sequence[Bucket], value: float) -> Bucket:
    for bucket in table:
        if bucket.matches(value):
            return bucket
    return table[-1]


def stable_index(seed: str, context: str, count: int) -> int:
    """FNV-1a over ``seed:context`` reduced to ``count`` options."""
    if count <= 1:
        return 0
    hash_value = 0x811C9DC5
    for byte in f"{seed}:{context}".encode("utf-8"):
        hash_value ^= byte
        hash_value = (hash_value * 0x01000193) % (1 << 32)
    return hash_value % count


class AtomsGenerator:
    """Buckets each control value and picks its astrology-first phrase."""

    def generate(self, controls: ControlSurface) -> ExplainerAtoms:
        seed = controls.hash
        planets = [planet.casefold() for planet in controls.dominant_planets]
        element = controls.element_dominance.casefold()
        return ExplainerAtoms(
            movement=self._movement(controls.step_bias, controls.leap_cap, planets),
            arc_desc=self._arc(controls.arc_shape, element, seed),
            rhythm_feel=self._rhythm(controls.rhythm_template_id, controls.syncopation_bias),
            density_desc=self._density(controls.density_level, planets),
            motif_desc=self._phrase(MOTIF_TABLE, controls.motif_rate, seed, "motif"),
            astro_color=self._astro_color(element, planets),
        )

    def tempo_fragment(self, controls: ControlSurface) -> str:
        return self._phrase(TEMPO_TABLE, controls.tempo_norm, controls.hash, "tempo")

    def _phrase(self, table: Sequence[Bucket], value: float, seed: str, context: str) -> str:
        bucket = select_bucket(table, clamp(value, 0.0, 1.0))
        return bucket.phrases[stable_index(seed, context, len(bucket.phrases))]

    def _movement(self, step_bias: float, leap_cap: float, planets: list[str]) -> str:
        primary = select_bucket(MOVEMENT_TABLE, clamp(step_bias, 0.0, 1.0)).phrases[0]
        modifier = select_bucket(LEAP_MODIFIER_TABLE, clamp(leap_cap, 1.0, 6.0)).phrases[0]
        tint = next((PLANET_TINTS[planet] for planet in planets if planet in PLANET_TINTS), "")
        return f"{primary}{modifier}{tint}."

    def _arc(self, arc_shape: float, element: str, seed: str) -> str:
        template = self._phrase(ARC_TABLE, arc_shape, seed, "arc")
        return template.replace("{tint}", ELEMENT_TINTS.get(element, ""))

    def _rhythm(self, template_id: int, syncopation_bias: float) -> str:
        rhythm_class = select_bucket(RHYTHM_CLASS_TABLE, clamp(template_id, 0, 7)).phrases[0]
        syncopation = select_bucket(SYNCOPATION_TABLE, clamp(syncopation_bias, 0.0, 1.0)).phrases[0]
        return f"{rhythm_class}, {syncopation}."

    def _density(self, density_level: float, planets: list[str]) -> str:
        base = select_bucket(DENSITY_TABLE, clamp(density_level, 0.0, 1.0)).phrases[0]
        suffix = STELLIUM_SUFFIX if len(planets) >= STELLIUM_MIN_PLANETS else ""
        return f"{base}{suffix}."

    def _astro_color(self, element: str, planets: list[str]) -> str:
        element_adjective = ELEMENT_ADJECTIVES.get(element, DEFAULT_ELEMENT_ADJECTIVE)
        planet_adjective = next(
            (PLANET_ADJECTIVES[planet] for planet in planets if planet in PLANET_ADJECTIVES),
            DEFAULT_PLANET_ADJECTIVE,
        )
        return f"Tone: {element_adjective}, {planet_adjective}."
