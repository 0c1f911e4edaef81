"""
CLI entry point to run a one-off composition through the engine.

Example:
    python -m orrery_worker.generate --vector 0.8 0.6 0.7 0.65 0.357 0.5 --check-determinism
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from .app.models import AstroGuidance, ComposeResponse
from .app.settings import QualityTier, Settings
from .services.engine import CompositionEngine


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compose a plan via the Orrery worker engine.")
    parser.add_argument(
        "--vector",
        type=float,
        nargs=6,
        required=True,
        metavar=("TEMPO", "BRIGHTNESS", "DENSITY", "ARC", "MOTIF", "CADENCE"),
        help="Six-dimensional feature vector.",
    )
    parser.add_argument("--motif-idx", type=int, default=None, help="Optional motif index override.")
    parser.add_argument("--cadence-idx", type=int, default=None, help="Optional cadence index override.")
    parser.add_argument("--tempo-bias", type=float, default=None, help="Optional tempo bias (-1..1).")
    parser.add_argument("--arc-bias", type=float, default=None, help="Optional arc bias (-1..1).")
    parser.add_argument("--density-bias", type=float, default=None, help="Optional density bias (-1..1).")
    parser.add_argument(
        "--tier",
        choices=[tier.value for tier in QualityTier],
        default=None,
        help="Quality tier override (defaults to worker settings).",
    )
    parser.add_argument(
        "--check-determinism",
        action="store_true",
        help="Compose twice and fail when digest or text differ.",
    )
    return parser.parse_args(argv)


def _guidance(args: argparse.Namespace) -> Optional[AstroGuidance]:
    values = {
        "motif_idx": args.motif_idx,
        "cadence_idx": args.cadence_idx,
        "tempo_bias": args.tempo_bias,
        "arc_bias": args.arc_bias,
        "density_bias": args.density_bias,
    }
    if all(value is None for value in values.values()):
        return None
    return AstroGuidance(**values)


def _same_output(first: ComposeResponse, second: ComposeResponse) -> bool:
    return first.digest == second.digest and first.text == second.text


def _run(
    vector: Sequence[float],
    *,
    guidance: Optional[AstroGuidance] = None,
    tier: Optional[str] = None,
    check_determinism: bool = False,
) -> int:
    settings = Settings()
    engine = CompositionEngine(settings.quality, QualityTier(tier) if tier else settings.quality_env)

    result = engine.compose(vector, guidance=guidance)
    status = "pass" if result.gate_report.calibrated.overall else "fail"

    print(f"plan_id       : {result.plan.id}")
    print(f"bpm           : {result.plan.bpm}")
    print(f"events        : {len(result.plan.events)}")
    print(f"digest        : {result.digest}")
    print(f"gate          : {status}")
    print(f"text          : {result.text.short}")

    if not check_determinism:
        return 0
    repeat = engine.compose(vector, guidance=guidance)
    if not _same_output(result, repeat):
        print(f"determinism   : FAILED ({repeat.digest})")
        return 1
    print("determinism   : ok")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = _parse_args(argv)
    sys.exit(
        _run(
            args.vector,
            guidance=_guidance(args),
            tier=args.tier,
            check_determinism=args.check_determinism,
        )
    )


if __name__ == "__main__":
    main()
