"""Astrological guidance derived from chart signals."""

from __future__ import annotations

import math
from typing import Optional, Sequence

from ..app.models import AstroGuidance, ChartSnapshot, FeatureVector
from .types import ResolvedControls, clamp

FIRE_INDEX = 27
EARTH_INDEX = 28
AIR_INDEX = 29
WATER_INDEX = 30
MOON_PHASE_INDEX = 31
TENSION_INDEX = 32
CLUSTER_DENSITY_INDEX = 33

MOTIF_COUNT = 8
CADENCE_COUNT = 4
SIGN_DEGREES = 30.0


def derive_guidance(
    features: Sequence[object] | None,
    snapshot: ChartSnapshot | None = None,
) -> AstroGuidance:
    """Map chart element balance, tension and sun/moon placement onto planner biases.

    Never raises: missing slots, a missing sun and non-numeric values all read as 0.
    """
    fire = _feature(features, FIRE_INDEX)
    earth = _feature(features, EARTH_INDEX)
    air = _feature(features, AIR_INDEX)
    water = _feature(features, WATER_INDEX)

    dynamic = fire + air
    stable = earth + water
    if dynamic > stable:
        tempo_bias = (dynamic - stable) / 2.0
    else:
        tempo_bias = -(stable - dynamic) / 2.0

    tension = _feature(features, TENSION_INDEX)
    cluster_density = _feature(features, CLUSTER_DENSITY_INDEX)
    moon_phase = _feature(features, MOON_PHASE_INDEX)

    sun_lon = _sun_longitude(snapshot)
    motif_idx = int(math.floor(sun_lon / SIGN_DEGREES)) % MOTIF_COUNT

    return AstroGuidance(
        tempo_bias=clamp(tempo_bias, -1.0, 1.0),
        arc_bias=clamp((tension - 0.5) * 2.0, -1.0, 1.0),
        density_bias=clamp((cluster_density - 0.5) * 2.0, -1.0, 1.0),
        motif_idx=motif_idx,
        cadence_idx=0 if moon_phase < 0.5 else 1,
    )


def resolve_controls(
    vector: FeatureVector,
    guidance: Optional[AstroGuidance] = None,
) -> ResolvedControls:
    """Merge guidance onto the vector.

    Precedence is field by field: a guidance value, when present, overrides the
    default derived from the vector. Absent biases are neutral (0).
    """
    tempo_bias = arc_bias = density_bias = 0.0
    motif_idx = int(math.floor(clamp(vector.motif, 0.0, 1.0) * MOTIF_COUNT))
    cadence_idx = int(math.floor(clamp(vector.cadence, 0.0, 1.0) * CADENCE_COUNT))

    if guidance is not None:
        if guidance.tempo_bias is not None:
            tempo_bias = clamp(guidance.tempo_bias, -1.0, 1.0)
        if guidance.arc_bias is not None:
            arc_bias = clamp(guidance.arc_bias, -1.0, 1.0)
        if guidance.density_bias is not None:
            density_bias = clamp(guidance.density_bias, -1.0, 1.0)
        if guidance.motif_idx is not None:
            motif_idx = guidance.motif_idx
        if guidance.cadence_idx is not None:
            cadence_idx = guidance.cadence_idx

    return ResolvedControls(
        tempo=vector.tempo,
        brightness=clamp(vector.brightness, 0.0, 1.0),
        density=vector.density,
        arc=vector.arc,
        tempo_bias=tempo_bias,
        arc_bias=arc_bias,
        density_bias=density_bias,
        motif_idx=motif_idx % MOTIF_COUNT,
        cadence_idx=cadence_idx % CADENCE_COUNT,
    )


def _feature(features: Sequence[object] | None, index: int) -> float:
    if features is None:
        return 0.0
    try:
        value = features[index]
    except (IndexError, TypeError, KeyError):
        return 0.0
    return _as_number(value)


def _sun_longitude(snapshot: ChartSnapshot | None) -> float:
    if snapshot is None:
        return 0.0
    for planet in snapshot.planets:
        if planet.name.casefold() == "sun":
            return _as_number(planet.lon)
    return 0.0


def _as_number(value: object) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number
