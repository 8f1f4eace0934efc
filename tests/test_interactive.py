"""Tests for the interactive keypress state machine."""

from __future__ import annotations

from pathlib import Path

import pytest

from veil.bundles import find_secret
from veil.errors import RemoteAPIError, StoreIOError
from veil.interactive import InteractiveController, Mode, Page


def type_and_enter(ctl: InteractiveController, text: str) -> None:
    ctl.type_text(text)
    ctl.press("enter")


@pytest.fixture
def ctl(initialized_session, project_dir: Path) -> InteractiveController:
    return InteractiveController(initialized_session, cwd=project_dir, sync=lambda s: None)


@pytest.fixture
def populated(ctl: InteractiveController) -> InteractiveController:
    ctl.press("a")
    type_and_enter(ctl, "OPENAI_API_KEY=sk-abcdef123")
    ctl.press("a")
    type_and_enter(ctl, "PORT=8080")
    ctl.press("P")
    ctl.press("2")
    return ctl


class TestInit:
    """Uninitialized homes."""

    def test_prompts_for_init(self, session) -> None:
        ctl = InteractiveController(session)
        assert ctl.needs_init
        assert "press i" in ctl.status

    def test_i_initializes_file_mode(self, session) -> None:
        ctl = InteractiveController(session)
        ctl.press("i")
        assert not ctl.needs_init
        assert session.config.key_storage == "file"
        assert ctl.status == "Initialized with file key storage"

    def test_k_initializes_keychain_mode(self, session) -> None:
        ctl = InteractiveController(session)
        ctl.press("k")
        assert session.config.key_storage == "keychain"

    def test_commands_ignored_before_init(self, session) -> None:
        ctl = InteractiveController(session)
        ctl.press("a")
        ctl.press("S")
        assert ctl.mode == Mode.NORMAL


class TestAddAndEdit:
    """add_key, add_value and edit_value."""

    def test_add_key_value_in_one_line(self, ctl, initialized_session) -> None:
        ctl.press("a")
        assert ctl.mode == Mode.ADD_KEY
        type_and_enter(ctl, "API_KEY=abc=def")

        assert ctl.mode == Mode.NORMAL
        assert ctl.status == "Saved secret API_KEY"
        stored = initialized_session.bundles.load_project("myapp")
        assert find_secret(stored, "API_KEY").value == "abc=def"

    def test_add_key_chains_to_add_value(self, ctl, initialized_session) -> None:
        ctl.press("a")
        type_and_enter(ctl, "TOKEN")
        assert ctl.mode == Mode.ADD_VALUE
        assert ctl.pending_key == "TOKEN"

        type_and_enter(ctl, "secret value")
        assert ctl.mode == Mode.NORMAL
        stored = initialized_session.bundles.load_project("myapp")
        assert find_secret(stored, "TOKEN").value == "secret value"

    def test_add_requires_key(self, ctl) -> None:
        ctl.press("a")
        type_and_enter(ctl, "=value")
        assert ctl.mode == Mode.ADD_KEY
        assert ctl.status == "Use format KEY=VALUE"

    def test_esc_cancels_without_side_effects(self, ctl) -> None:
        ctl.press("a")
        ctl.type_text("GHOST=1")
        ctl.press("esc")
        assert ctl.mode == Mode.NORMAL
        assert ctl.status == "Cancelled"
        assert ctl.buffer == ""
        assert find_secret(ctl.bundle, "GHOST") is None

    def test_typing_keys_and_backspace(self, ctl) -> None:
        ctl.press("a")
        for key in "AB=1x":
            ctl.press(key)
        ctl.press("backspace")
        ctl.press("enter")
        assert find_secret(ctl.bundle, "AB").value == "1"

    def test_edit_selected_value(self, populated) -> None:
        populated.press("e")
        assert populated.mode == Mode.EDIT_VALUE
        assert populated.buffer == "sk-abcdef123"
        populated.buffer = "sk-new"
        populated.press("enter")
        assert populated.status == "Updated secret OPENAI_API_KEY"
        assert find_secret(populated.bundle, "OPENAI_API_KEY").value == "sk-new"


class TestTable:
    """Rows, filter, reveal and delete."""

    def test_rows_sorted_and_masked(self, populated) -> None:
        rows = populated.visible_rows()
        assert [(r.group, r.key) for r in rows] == [("API Keys", "OPENAI_API_KEY"), ("General", "PORT")]
        assert rows[0].value == "sk-abc******"
        assert rows[1].value == "****"

    def test_filter(self, populated) -> None:
        populated.press("/")
        type_and_enter(populated, "general")
        assert populated.status == "Filter applied"
        assert [r.key for r in populated.visible_rows()] == ["PORT"]

    def test_reveal_needs_second_press(self, populated) -> None:
        populated.press("r")
        assert populated.status == "Press r again to reveal OPENAI_API_KEY"
        assert populated.visible_rows()[0].value.endswith("*")

        populated.press("r")
        assert populated.visible_rows()[0].value == "sk-abcdef123"

        populated.press("r")
        assert populated.status == "Masked"
        assert populated.visible_rows()[0].value.endswith("*")

    def test_delete_needs_second_press(self, populated, initialized_session) -> None:
        populated.press("down")
        populated.press("d")
        assert populated.status == "Press d again to delete PORT"
        assert find_secret(populated.bundle, "PORT") is not None

        populated.press("d")
        assert populated.status == "Deleted PORT"
        stored = initialized_session.bundles.load_project("myapp")
        assert find_secret(stored, "PORT") is None


class TestImportExport:
    def test_import_env_file(self, ctl, tmp_path: Path) -> None:
        env = tmp_path / "in.env"
        env.write_text('A=1\nB="two words"\n')
        ctl.press("i")
        assert ctl.mode == Mode.IMPORT_PATH
        type_and_enter(ctl, str(env))
        assert ctl.status == "Imported 2 keys"
        assert find_secret(ctl.bundle, "B").value == "two words"

    def test_import_missing_file_stays_in_mode(self, ctl, tmp_path: Path) -> None:
        ctl.press("i")
        type_and_enter(ctl, str(tmp_path / "missing.env"))
        assert ctl.mode == Mode.IMPORT_PATH

    def test_import_non_utf8_file_reports_line(self, ctl, tmp_path: Path) -> None:
        env = tmp_path / "latin1.env"
        env.write_bytes(b"A=1\nNAME=caf\xe9\n")
        ctl.press("i")
        type_and_enter(ctl, str(env))
        assert ctl.mode == Mode.IMPORT_PATH
        assert ctl.status == "invalid UTF-8 at .env line 2"
        assert ctl.bundle is None or find_secret(ctl.bundle, "A") is None

    def test_export_json_and_env(self, populated, tmp_path: Path) -> None:
        populated.press("x")
        assert populated.buffer == "myapp.env"
        populated.buffer = str(tmp_path / "out.json")
        populated.press("enter")
        assert '"OPENAI_API_KEY"' in (tmp_path / "out.json").read_text()

        populated.press("x")
        populated.buffer = str(tmp_path / "out.env")
        populated.press("enter")
        assert "PORT=8080" in (tmp_path / "out.env").read_text()
        assert populated.status == f"Exported to {tmp_path / 'out.env'}"


class TestPagesAndSync:
    def test_page_select(self, ctl) -> None:
        ctl.press("P")
        assert ctl.mode == Mode.PAGE_SELECT
        ctl.press("3")
        assert ctl.page == Page.SETTINGS
        assert ctl.mode == Mode.NORMAL

        ctl.press("P")
        ctl.press("esc")
        assert ctl.page == Page.SETTINGS

    def test_sync_error_goes_to_status(self, initialized_session, project_dir) -> None:
        def failing(session):
            raise RemoteAPIError("github gist get failed: 500")

        ctl = InteractiveController(initialized_session, cwd=project_dir, sync=failing)
        ctl.press("S")
        assert ctl.status == "github gist get failed: 500"
        assert ctl.mode == Mode.NORMAL

    def test_sync_success(self, ctl) -> None:
        ctl.press("S")
        assert ctl.status == "Synced"

    def test_failed_save_keeps_memory_edit(self, ctl, monkeypatch) -> None:
        def broken(bundle):
            raise StoreIOError("write project file: disk full")

        monkeypatch.setattr(ctl.session.bundles, "save_project", broken)
        ctl.press("a")
        type_and_enter(ctl, "K=v")
        assert ctl.status == "write project file: disk full"
        assert find_secret(ctl.bundle, "K").value == "v"

    def test_quit(self, ctl) -> None:
        ctl.press("q")
        assert ctl.quit
