"""
release-train-planner — CLI behaviour tests

File: tests/unit/ui/test_cli.py
Last updated: 2026-10-18

Purpose
- Exercise ``art-plan`` subcommands end to end through ``run_cli``.

What this test file should cover
- Exit-code contract: 0 ready, 1 not ready, 2 input/config error, 3 hard cycle.
- Deterministic ``--json`` payloads and ``--output`` artifacts.
- Config precedence surfaced by ``art-plan config``.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from release_train.ui.cli import build_parser, run_cli

pytestmark = pytest.mark.unit

REPO_ROOT = Path(__file__).resolve().parents[3]
CYCLIC_INPUT = REPO_ROOT / "samples" / "planning" / "cyclic_dependencies.yaml"

_READY_INPUT = """
program_increment: {id: PI-T, name: Tiny, start_date: 2024-01-01, end_date: 2024-01-14}
teams:
  - {id: solo, name: Solo, member_count: 5, average_velocity: 10}
work_items:
  - id: S1
    kind: story
    title: Checkout button
    description: Add a checkout button to the cart page for signed-in users.
    estimated_size: 5
    acceptance_criteria: [visible, clickable, tracked]
    verification: [unit]
"""

_SPREAD_INPUT = _READY_INPUT.replace("2024-01-14", "2024-02-11")

_INVALID_INPUT = """
program_increment: {id: PI-T, name: Tiny, start_date: 2024-01-01, end_date: 2024-01-14}
teams:
  - {id: solo, name: Solo, member_count: 5, average_velocity: 10}
work_items:
  - {id: S1, kind: story, title: No size}
dependencies:
  - {source_id: S1, target_id: GHOST}
"""


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in list(os.environ):
        if name.startswith("RELEASE_TRAIN_") or name == "NO_COLOR":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def _write_input(tmp_path: Path, text: str, name: str = "input.yaml") -> str:
    path = tmp_path / name
    path.write_text(text.lstrip(), encoding="utf-8")
    return str(path)


def _stdout_json(capsys: pytest.CaptureFixture[str]) -> dict[str, object]:
    out = capsys.readouterr().out
    lines = [line for line in out.splitlines() if line.strip()]
    assert len(lines) == 1
    payload = json.loads(lines[0])
    assert isinstance(payload, dict)
    return payload


def test_plan_ready_input_exits_zero_with_text_report(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    input_path = _write_input(tmp_path, _READY_INPUT)

    exit_code = run_cli(["plan", input_path, "--no-color"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Program Increment PI-T: Tiny" in out
    assert "Ready: yes" in out
    assert "ITERATION" in out
    assert "Tiny - Iteration 1" in out
    assert "Next steps:" in out
    assert "Critical blockers:" not in out
    assert f"$ art-plan plan {input_path} --json --output plan.json" in out


def test_plan_lists_critical_blockers_without_failing_readiness(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    undescribed = _READY_INPUT.replace(
        "    description: Add a checkout button to the cart page for signed-in users.\n", ""
    )
    input_path = _write_input(tmp_path, undescribed)

    exit_code = run_cli(["plan", input_path, "--no-color"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Ready: yes" in out
    assert "Critical blockers:" in out
    assert "- Tiny - Iteration 1 cannot deliver working software" in out


def test_plan_json_payload_is_deterministic(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    input_path = _write_input(tmp_path, _READY_INPUT)

    assert run_cli(["plan", input_path, "--json"]) == 0
    first = _stdout_json(capsys)
    assert run_cli(["plan", input_path, "--json"]) == 0
    second = _stdout_json(capsys)

    assert first == second
    assert first["command"] == "plan"
    plan = first["plan"]
    assert isinstance(plan, dict)
    assert plan["readiness"]["is_ready"] is True
    assert plan["iteration_plans"][0]["allocations"][0]["work_item_id"] == "S1"


def test_plan_below_threshold_exits_one(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    input_path = _write_input(tmp_path, _SPREAD_INPUT)
    monkeypatch.setenv("RELEASE_TRAIN_PLANNING_READINESS_THRESHOLD", "0.99")

    exit_code = run_cli(["plan", input_path, "--no-color"])

    out = capsys.readouterr().out
    assert exit_code == 1
    assert "Ready: no" in out
    assert f"$ art-plan validate {input_path}" in out


def test_plan_writes_output_artifact(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    input_path = _write_input(tmp_path, _READY_INPUT)
    output_path = tmp_path / "plan.json"

    exit_code = run_cli(["plan", input_path, "--json", "--output", str(output_path)])

    payload = _stdout_json(capsys)
    assert exit_code == 0
    written = json.loads(output_path.read_text(encoding="utf-8"))
    assert written == payload["plan"]


def test_cli_flags_override_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    input_path = _write_input(tmp_path, _SPREAD_INPUT)

    run_cli(["plan", input_path, "--json", "--iteration-length", "7", "--no-optimize"])

    plan = _stdout_json(capsys)["plan"]
    assert isinstance(plan, dict)
    assert len(plan["iteration_plans"]) == 6
    assert plan["optimization"] is None


def test_plan_invalid_input_exits_two_with_every_issue(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    input_path = _write_input(tmp_path, _INVALID_INPUT)

    exit_code = run_cli(["plan", input_path])

    err = capsys.readouterr().err
    assert exit_code == 2
    assert "error: invalid planning input:" in err
    assert "work_items[0].estimated_size" in err
    assert "dependencies[0].target_id" in err


def test_plan_hard_cycle_exits_three(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = run_cli(["plan", str(CYCLIC_INPUT)])

    err = capsys.readouterr().err
    assert exit_code == 3
    assert "hard cycle" in err


def test_plan_missing_input_exits_two(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = run_cli(["plan", str(tmp_path / "absent.yaml")])

    assert exit_code == 2
    assert "unable to read planning input" in capsys.readouterr().err


def test_unknown_profile_exits_two(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    input_path = _write_input(tmp_path, _READY_INPUT)

    exit_code = run_cli(["plan", input_path, "--profile", "turbo"])

    assert exit_code == 2
    assert "'turbo' is not defined" in capsys.readouterr().err


def test_validate_reports_cycles_and_reference_issues(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert run_cli(["validate", str(CYCLIC_INPUT), "--json"]) == 3
    cyclic = _stdout_json(capsys)
    assert cyclic["is_valid"] is False
    validation = cyclic["validation"]
    assert isinstance(validation, dict)
    assert validation["cycles"][0]["members"] == ["A", "B", "C", "A"]

    invalid_path = _write_input(tmp_path, _INVALID_INPUT)
    assert run_cli(["validate", invalid_path, "--no-color"]) == 2
    out = capsys.readouterr().out
    assert "FAIL  2 reference issue(s)" in out
    assert "OK  no hard dependency cycles" in out


def test_validate_clean_input_exits_zero(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    input_path = _write_input(tmp_path, _READY_INPUT)

    assert run_cli(["validate", input_path, "--json"]) == 0
    payload = _stdout_json(capsys)
    assert payload["is_valid"] is True
    assert payload["critical_path"] == ["S1"]


def test_config_command_reflects_profile_and_env(
    capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("RELEASE_TRAIN_PLANNING_MAX_OPTIMIZATION_ROUNDS", "2")

    assert run_cli(["config", "--profile", "conservative", "--json"]) == 0

    payload = _stdout_json(capsys)
    assert payload["active_profile"] == "conservative"
    config = payload["config"]
    assert isinstance(config, dict)
    assert config["planning"]["buffer_capacity"] == 0.3
    assert config["planning"]["max_optimization_rounds"] == 2


def test_config_file_option_is_honoured(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    config_path = tmp_path / "custom.toml"
    config_path.write_text("[planning]\nbuffer_capacity = 0.4\n", encoding="utf-8")

    assert run_cli(["config", "--config", str(config_path)]) == 0

    out = capsys.readouterr().out
    assert "Active profile: (default)" in out
    assert '"buffer_capacity": 0.4' in out


def test_missing_subcommand_prints_help_and_exits_two(
    capsys: pytest.CaptureFixture[str],
) -> None:
    assert run_cli([]) == 2
    assert "usage: art-plan" in capsys.readouterr().err


def test_parser_exposes_expected_subcommands() -> None:
    parser = build_parser()

    args = parser.parse_args(["plan", "pi.yaml", "--buffer", "0.3", "-v"])

    assert args.command == "plan"
    assert args.buffer == 0.3
    assert args.verbose is True
    assert args.config_path is None
