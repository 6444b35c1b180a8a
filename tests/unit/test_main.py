"""Tests for the ``python -m listingbot`` entry-point."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from listingbot.__main__ import main
from listingbot.orchestrator.runner import CycleReport, CycleStatus


@pytest.fixture()
def creds(clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MARKETPLACE_USERNAME", "store")
    monkeypatch.setenv("MARKETPLACE_PASSWORD", "s3cret")


def _report(task: str, status: CycleStatus = CycleStatus.OK) -> CycleReport:
    return CycleReport(task=task, cycle_id="test", status=status)


def test_missing_credentials_exit_1(clean_env: None) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main(["--once"])
    assert exc_info.value.code == 1


def test_invalid_setting_exit_1(creds: None, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEASE_TIER", "forever")
    with pytest.raises(SystemExit) as exc_info:
        main(["--once"])
    assert exc_info.value.code == 1


def test_unknown_task_is_rejected_by_argparse(creds: None) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main(["--task", "billing"])
    assert exc_info.value.code == 2


def test_once_runs_every_task_and_exits_0(creds: None) -> None:
    run = AsyncMock(side_effect=lambda task, *_: _report(task))
    with (
        patch("listingbot.orchestrator.runner.run_once", run),
        pytest.raises(SystemExit) as exc_info,
    ):
        main(["--once"])

    assert exc_info.value.code == 0
    assert [c.args[0] for c in run.await_args_list] == ["orders", "rented", "listed"]


def test_once_with_failed_cycle_exits_1(creds: None) -> None:
    def _fail_rented(task: str, *_: object) -> CycleReport:
        return _report(task, CycleStatus.TRANSIENT if task == "rented" else CycleStatus.OK)

    with (
        patch("listingbot.orchestrator.runner.run_once", AsyncMock(side_effect=_fail_rented)),
        pytest.raises(SystemExit) as exc_info,
    ):
        main(["--once", "--task", "rented", "--task", "orders"])

    assert exc_info.value.code == 1


def test_continuous_mode_hands_off_to_scheduler(creds: None) -> None:
    with patch("listingbot.orchestrator.scheduler.run_continuous", AsyncMock()) as run:
        main(["--task", "listed"])

    settings, tasks = run.await_args.args
    assert tasks == ["listed"]
    assert settings.marketplace_username == "store"


def test_help_documents_exit_status(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        main(["--help"])

    assert exc_info.value.code == 0
    out = " ".join(capsys.readouterr().out.split())
    assert "1 configuration error, or a failed cycle with --once" in out
