"""Exit-code contract of the process entrypoint."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from release_train.main import ExitCode, cli_entrypoint
from release_train.planning.errors import (
    InvalidDependencyGraphError,
    PlanningInputError,
    PlanningIssue,
)
from release_train.ui import cli

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("RELEASE_TRAIN_PROFILE", raising=False)


def _raising(exc: BaseException) -> Callable[..., int]:
    def _run(argv: object = None) -> int:
        raise exc

    return _run


def test_successful_command_returns_zero(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["config", "--json"]) == ExitCode.SUCCESS
    assert '"command":"config"' in capsys.readouterr().out


def test_argparse_errors_are_normalized(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["bogus"]) == ExitCode.INPUT_ERROR
    assert "invalid choice" in capsys.readouterr().err


def test_unknown_return_codes_become_internal_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "run_cli", lambda argv=None: 42)

    assert cli_entrypoint([]) == ExitCode.INTERNAL_ERROR


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (InvalidDependencyGraphError([("A", "B", "A")]), ExitCode.INVALID_GRAPH),
        (PlanningInputError([PlanningIssue("teams", "required")]), ExitCode.INPUT_ERROR),
        (FileNotFoundError("pi.yaml"), ExitCode.INPUT_ERROR),
    ],
)
def test_escaping_domain_errors_map_to_exit_codes(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    exc: BaseException,
    expected: ExitCode,
) -> None:
    monkeypatch.setattr(cli, "run_cli", _raising(exc))

    assert cli_entrypoint([]) == expected
    assert str(exc).splitlines()[0] in capsys.readouterr().err


def test_wrapped_cause_is_followed(monkeypatch: pytest.MonkeyPatch) -> None:
    try:
        try:
            raise PlanningInputError([PlanningIssue("work_items", "bad")])
        except PlanningInputError as inner:
            raise RuntimeError("planning failed") from inner
    except RuntimeError as outer:
        wrapped = outer

    monkeypatch.setattr(cli, "run_cli", _raising(wrapped))

    assert cli_entrypoint([]) == ExitCode.INPUT_ERROR


def test_unexpected_errors_print_traceback(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(cli, "run_cli", _raising(ZeroDivisionError("boom")))

    assert cli_entrypoint([]) == ExitCode.INTERNAL_ERROR
    err = capsys.readouterr().err
    assert "Traceback" in err
    assert "ZeroDivisionError: boom" in err


def test_exit_code_values_are_stable() -> None:
    assert [int(code) for code in ExitCode] == [0, 1, 2, 3, 4]
