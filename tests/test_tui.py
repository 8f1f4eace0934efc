"""Tests for the line-driven interactive front end."""

from __future__ import annotations

import io
from pathlib import Path

from rich.console import Console

from veil.bundles import find_secret
from veil.interactive import InteractiveController, Mode, Page
from veil.tui import feed_line, render, run_tui


def scripted(*lines: str):
    """A read_line stand-in that replays lines, then signals end of input."""
    pending = list(lines)

    def read_line(prompt: str) -> str:
        if not pending:
            raise EOFError
        return pending.pop(0)

    return read_line


def screen(controller: InteractiveController) -> str:
    out = io.StringIO()
    Console(file=out, width=160).print(render(controller))
    return out.getvalue()


class TestFeedLine:
    """Lines become key presses."""

    def test_add_secret_in_two_lines(self, initialized_session, project_dir: Path) -> None:
        ctl = InteractiveController(initialized_session, cwd=project_dir, sync=lambda s: None)
        feed_line(ctl, "a")
        assert ctl.mode == Mode.ADD_KEY
        feed_line(ctl, "API_KEY=abc")
        assert ctl.mode == Mode.NORMAL
        assert find_secret(ctl.bundle, "API_KEY").value == "abc"

    def test_keys_after_mode_change_are_not_typed(self, initialized_session, project_dir) -> None:
        ctl = InteractiveController(initialized_session, cwd=project_dir, sync=lambda s: None)
        feed_line(ctl, "axyz")
        assert ctl.mode == Mode.ADD_KEY
        assert ctl.buffer == ""

    def test_cancel_input(self, initialized_session, project_dir) -> None:
        ctl = InteractiveController(initialized_session, cwd=project_dir, sync=lambda s: None)
        feed_line(ctl, "a")
        feed_line(ctl, ":cancel")
        assert ctl.mode == Mode.NORMAL
        assert ctl.status == "Cancelled"

    def test_empty_line_accepts_prefilled_buffer(self, initialized_session, project_dir) -> None:
        ctl = InteractiveController(initialized_session, cwd=project_dir, sync=lambda s: None)
        feed_line(ctl, "a")
        feed_line(ctl, "PORT=8080")
        feed_line(ctl, "P 2")
        assert ctl.page == Page.PROJECT

        feed_line(ctl, "e")
        assert ctl.buffer == "8080"
        feed_line(ctl, "")
        assert ctl.status == "Updated secret PORT"

    def test_named_keys_and_double_press(self, initialized_session, project_dir) -> None:
        ctl = InteractiveController(initialized_session, cwd=project_dir, sync=lambda s: None)
        for line in ("a", "A=1", "a", "B=2", "P2", "down", "dd"):
            feed_line(ctl, line)
        assert ctl.status == "Deleted B"
        assert find_secret(ctl.bundle, "B") is None


class TestRender:
    def test_init_screen(self, session) -> None:
        text = screen(InteractiveController(session))
        assert "no identity yet" in text
        assert "k keychain" in text

    def test_project_screen_masks_values(self, initialized_session, project_dir) -> None:
        ctl = InteractiveController(initialized_session, cwd=project_dir, sync=lambda s: None)
        for line in ("a", "OPENAI_API_KEY=sk-abcdef123", "P2"):
            feed_line(ctl, line)
        text = screen(ctl)
        assert "OPENAI_API_KEY" in text
        assert "sk-abc******" in text
        assert "sk-abcdef123" not in text
        assert "myapp" in text

    def test_settings_screen(self, initialized_session) -> None:
        ctl = InteractiveController(initialized_session, sync=lambda s: None)
        feed_line(ctl, "P3")
        text = screen(ctl)
        assert "test-machine" in text
        assert "not linked" in text


class TestRunLoop:
    def test_quit(self, initialized_session, project_dir) -> None:
        out = io.StringIO()
        run_tui(initialized_session, Console(file=out, width=120), scripted("a", "K=v", "q"), project_dir)
        stored = initialized_session.bundles.load_project("myapp")
        assert find_secret(stored, "K").value == "v"
        assert "Saved secret K" in out.getvalue()

    def test_end_of_input_stops(self, session) -> None:
        out = io.StringIO()
        run_tui(session, Console(file=out, width=120), scripted("i"))
        assert session.is_initialized()
        assert "Initialized with file key storage" in out.getvalue()
