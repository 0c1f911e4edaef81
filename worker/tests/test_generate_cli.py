from __future__ import annotations

import pytest

from orrery_worker.app.models import AstroGuidance
from orrery_worker.generate import _run, main


def test_generate_cli_prints_summary(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = _run([0.8, 0.6, 0.7, 0.65, 0.357, 0.5], check_determinism=True)
    captured = capsys.readouterr()
    assert exit_code == 0
    assert "bpm           : 126" in captured.out
    assert "gate          : pass" in captured.out
    assert "determinism   : ok" in captured.out


def test_generate_cli_tier_override(capsys: pytest.CaptureFixture[str]) -> None:
    _run([0.8, 0.6, 0.7, 0.65, 0.357, 0.5], tier="pre_production")
    captured = capsys.readouterr()
    assert "gate          : fail" in captured.out
    assert "Adjust:" in captured.out


def test_generate_cli_main_parses_guidance(
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    seen: dict[str, object] = {}

    def _fake_run(vector, *, guidance=None, tier=None, check_determinism=False) -> int:
        seen.update(vector=vector, guidance=guidance, tier=tier, check=check_determinism)
        return 0

    monkeypatch.setattr("orrery_worker.generate._run", _fake_run)
    with pytest.raises(SystemExit) as excinfo:
        main(["--vector", "0.1", "0.2", "0.3", "0.4", "0.5", "0.6", "--motif-idx", "3", "--check-determinism"])
    assert excinfo.value.code == 0
    assert seen["vector"] == [0.1, 0.2, 0.3, 0.4, 0.5, 0.6]
    assert seen["guidance"] == AstroGuidance(motif_idx=3)
    assert seen["check"] is True
    assert seen["tier"] is None
