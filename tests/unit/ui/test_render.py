"""Tests for the plain-text CLI renderer."""

from __future__ import annotations

import io

import pytest

from release_train.ui.render import CLIRenderer, create_renderer

pytestmark = pytest.mark.unit


class _TTYBuffer(io.StringIO):
    def isatty(self) -> bool:
        return True


def test_table_aligns_columns_and_skips_empty_rows() -> None:
    stream = io.StringIO()
    renderer = CLIRenderer(stream=stream)

    renderer.table(["NAME", "POINTS"], [])
    renderer.table(["NAME", "POINTS"], [["Iteration 1", "8"], ["It 2", "13"]], title="Plan:")

    assert stream.getvalue().splitlines() == [
        "",
        "Plan:",
        "  NAME         POINTS",
        "  -----------  ------",
        "  Iteration 1  8",
        "  It 2         13",
    ]


def test_detail_only_in_verbose_mode() -> None:
    quiet = io.StringIO()
    loud = io.StringIO()

    create_renderer(stream=quiet).detail("S1 -> team-a")
    create_renderer(verbose=True, stream=loud).detail("S1 -> team-a")

    assert quiet.getvalue() == ""
    assert loud.getvalue() == "    S1 -> team-a\n"


def test_status_lines_and_next_steps_are_plain_off_tty() -> None:
    stream = io.StringIO()
    renderer = CLIRenderer(stream=stream)

    renderer.ok("references resolve")
    renderer.fail("1 hard dependency cycle(s)")
    renderer.warning("soft dependency cycle: A -> B -> A")
    renderer.next_steps([])
    renderer.next_steps(["art-plan validate pi.yaml"])

    output = stream.getvalue()
    assert "\033[" not in output
    assert output.splitlines() == [
        "  OK  references resolve",
        "  FAIL  1 hard dependency cycle(s)",
        "  Warning: soft dependency cycle: A -> B -> A",
        "",
        "Next steps:",
        "  $ art-plan validate pi.yaml",
    ]


def test_tty_stream_gets_ansi_styling(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NO_COLOR", raising=False)
    stream = _TTYBuffer()

    CLIRenderer(stream=stream).ok("ready")

    assert stream.getvalue() == "  \033[32mOK\033[0m  ready\n"


@pytest.mark.parametrize("use_env", [True, False])
def test_color_can_be_disabled(monkeypatch: pytest.MonkeyPatch, use_env: bool) -> None:
    if use_env:
        monkeypatch.setenv("NO_COLOR", "1")
    else:
        monkeypatch.delenv("NO_COLOR", raising=False)
    stream = _TTYBuffer()

    CLIRenderer(no_color=not use_env, stream=stream).heading("Program Increment PI-1")

    assert stream.getvalue() == "Program Increment PI-1\n"
