"""Tests for the veil command line."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
from click.testing import CliRunner

from veil.cli import main


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def home(veil_home: Path, project_dir: Path, monkeypatch) -> str:
    """Veil home path with the cwd inside a project directory."""
    monkeypatch.chdir(project_dir)
    return str(veil_home)


@pytest.fixture
def ready(runner: CliRunner, home: str) -> str:
    result = runner.invoke(main, ["init", "--home", home, "--machine-name", "ci"])
    assert result.exit_code == 0, result.output
    return home


class TestInit:
    def test_init(self, runner, home) -> None:
        result = runner.invoke(main, ["init", "--home", home])
        assert result.exit_code == 0
        assert "Initialized" in result.output
        config = json.loads((Path(home) / "config.json").read_text())
        assert config["key_storage"] == "file"
        assert config["recipients"] == [config["machine"]["public_key"]]

    def test_init_twice(self, runner, ready) -> None:
        result = runner.invoke(main, ["init", "--home", ready])
        assert result.exit_code == 0
        assert "Already initialized" in result.output

    def test_invalid_key_storage(self, runner, home) -> None:
        result = runner.invoke(main, ["init", "--home", home, "--key-storage", "floppy"])
        assert result.exit_code != 0

    def test_version(self, runner) -> None:
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestSecrets:
    def test_set_get(self, runner, ready) -> None:
        result = runner.invoke(main, ["set", "--home", ready, "GREETING", "hello", "world"])
        assert result.exit_code == 0, result.output
        assert "myapp" in result.output

        result = runner.invoke(main, ["get", "--home", ready, "GREETING"])
        assert result.exit_code == 0
        assert result.output == "hello world\n"

    def test_get_missing_key(self, runner, ready) -> None:
        result = runner.invoke(main, ["get", "--home", ready, "NOPE"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_commands_need_init(self, runner, home) -> None:
        result = runner.invoke(main, ["set", "--home", home, "K", "v"])
        assert result.exit_code == 1
        assert "veil init" in result.output

    def test_explicit_project(self, runner, ready) -> None:
        runner.invoke(main, ["set", "--home", ready, "-p", "other", "K", "v"])
        result = runner.invoke(main, ["get", "--home", ready, "-p", "other", "K"])
        assert result.output == "v\n"
        # The explicit name is now bound to the current directory.
        result = runner.invoke(main, ["get", "--home", ready, "K"])
        assert result.output == "v\n"

    @pytest.mark.parametrize("key", ["", "   ", "A=B"])
    def test_set_rejects_bad_key(self, runner, ready, key) -> None:
        result = runner.invoke(main, ["set", "--home", ready, key, "v"])
        assert result.exit_code == 1
        assert "key must be non-empty" in result.output
        assert runner.invoke(main, ["list", "--home", ready]).output.count("myapp") == 0

    def test_rm(self, runner, ready) -> None:
        runner.invoke(main, ["set", "--home", ready, "K", "v"])
        result = runner.invoke(main, ["rm", "--home", ready, "-y", "K"])
        assert result.exit_code == 0
        assert runner.invoke(main, ["get", "--home", ready, "K"]).exit_code == 1

    def test_rm_missing(self, runner, ready) -> None:
        result = runner.invoke(main, ["rm", "--home", ready, "-y", "K"])
        assert result.exit_code == 1

    def test_ls_masks_values(self, runner, ready) -> None:
        runner.invoke(main, ["set", "--home", ready, "STRIPE_SECRET", "sk_live_abcdef"])
        result = runner.invoke(main, ["ls", "--home", ready])
        assert result.exit_code == 0
        assert "STRIPE_SECRET" in result.output
        assert "Payments" in result.output
        assert "sk_liv" in result.output
        assert "sk_live_abcdef" not in result.output

        revealed = runner.invoke(main, ["ls", "--home", ready, "--reveal"])
        assert "sk_live_abcdef" in revealed.output

    def test_ls_unknown_project(self, runner, ready) -> None:
        result = runner.invoke(main, ["ls", "--home", ready, "ghost"])
        assert result.exit_code == 1
        assert "ghost" in result.output

    def test_import_and_export(self, runner, ready, tmp_path) -> None:
        env = tmp_path / "in.env"
        env.write_text('# app\nA=1\nB="two words"\n')
        result = runner.invoke(main, ["import", "--home", ready, str(env)])
        assert result.exit_code == 0, result.output
        assert "2 added" in result.output

        result = runner.invoke(main, ["export", "--home", ready])
        assert result.exit_code == 0
        assert result.output == 'A=1\nB="two words"\n'

        result = runner.invoke(main, ["export", "--home", ready, "myapp", "--format", "json"])
        assert json.loads(result.output)["project"] == "myapp"

        out = tmp_path / "exports" / "app.yaml"
        result = runner.invoke(main, ["export", "--home", ready, "--format", "yaml", "--out", str(out)])
        assert result.exit_code == 0
        assert "two words" in out.read_text()

    def test_import_from_stdin(self, runner, ready) -> None:
        result = runner.invoke(main, ["import", "--home", ready, "-"], input="X=1\n")
        assert result.exit_code == 0
        assert runner.invoke(main, ["get", "--home", ready, "X"]).output == "1\n"

    def test_import_bad_line(self, runner, ready) -> None:
        result = runner.invoke(main, ["import", "--home", ready, "-"], input="A=1\nbroken\n")
        assert result.exit_code == 1
        assert "line 2" in result.output

    def test_import_non_utf8_file(self, runner, ready, tmp_path) -> None:
        bad = tmp_path / "bad.env"
        bad.write_bytes(b"A=\xff\xfe\n")
        result = runner.invoke(main, ["import", "--home", ready, str(bad)])
        assert result.exit_code == 1
        assert not isinstance(result.exception, UnicodeDecodeError)
        assert "invalid UTF-8 at .env line 1" in result.output

    def test_import_non_utf8_stdin(self, runner, ready) -> None:
        result = runner.invoke(main, ["import", "--home", ready, "-"], input=b"A=1\nB=\xff\n")
        assert result.exit_code == 1
        assert "line 2" in result.output

    def test_import_missing_file(self, runner, ready, tmp_path) -> None:
        result = runner.invoke(main, ["import", "--home", ready, str(tmp_path / "nope.env")])
        assert result.exit_code == 1
        assert not isinstance(result.exception, OSError)
        assert "Error:" in result.output

    def test_run_injects_secrets(self, runner, ready, tmp_path) -> None:
        runner.invoke(main, ["set", "--home", ready, "VEIL_TEST_VALUE", "injected"])
        target = tmp_path / "seen.txt"
        script = (
            "import os, pathlib; "
            f"pathlib.Path({str(target)!r}).write_text(os.environ['VEIL_TEST_VALUE'])"
        )
        result = runner.invoke(main, ["run", "--home", ready, "--", sys.executable, "-c", script])
        assert result.exit_code == 0, result.output
        assert target.read_text() == "injected"

    def test_run_propagates_exit_code(self, runner, ready) -> None:
        result = runner.invoke(
            main, ["run", "--home", ready, "--", sys.executable, "-c", "raise SystemExit(3)"]
        )
        assert result.exit_code == 3


class TestProjectsAndSync:
    def test_list(self, runner, ready) -> None:
        runner.invoke(main, ["set", "--home", ready, "A", "1"])
        runner.invoke(main, ["set", "--home", ready, "-p", "api", "B", "2"])
        result = runner.invoke(main, ["list", "--home", ready])
        assert result.exit_code == 0
        assert "myapp" in result.output
        assert "api" in result.output

    def test_sync_unlinked(self, runner, ready) -> None:
        result = runner.invoke(main, ["sync", "--home", ready, "--token", "t"])
        assert result.exit_code == 1
        assert "veil link" in result.output

    def test_link_local_then_sync_and_status(self, runner, ready, tmp_path) -> None:
        runner.invoke(main, ["set", "--home", ready, "A", "1"])
        shared = tmp_path / "usb"

        result = runner.invoke(main, ["link", "--home", ready, "--local", str(shared)])
        assert result.exit_code == 0, result.output
        assert "Linked" in result.output

        result = runner.invoke(main, ["sync", "--home", ready])
        assert result.exit_code == 0, result.output
        assert "Pushed 1" in result.output
        containers = [p for p in shared.iterdir() if p.is_dir()]
        assert (containers[0] / "myapp.json.age").is_file()

        result = runner.invoke(main, ["status", "--home", ready])
        assert result.exit_code == 0
        assert "local" in result.output
        assert "never" not in result.output

    def test_status_uninitialized(self, runner, home) -> None:
        result = runner.invoke(main, ["status", "--home", home])
        assert result.exit_code == 0
        assert "Not initialized" in result.output


class TestInteractiveCommand:
    def test_ui_adds_secret_and_quits(self, runner, ready) -> None:
        result = runner.invoke(main, ["ui", "--home", ready], input="a\nK=v\nq\n")
        assert result.exit_code == 0, result.output
        assert "Saved secret K" in result.output
        assert runner.invoke(main, ["get", "--home", ready, "K"]).output == "v\n"

    def test_ui_ends_with_input(self, runner, ready) -> None:
        result = runner.invoke(main, ["ui", "--home", ready], input="")
        assert result.exit_code == 0
        assert "veil | home" in result.output

    def test_bare_command_opens_ui(self, runner, ready, monkeypatch) -> None:
        import veil.cli.ui
        import veil.tui

        calls = []
        monkeypatch.setattr(veil.cli.ui, "open_session", lambda home: "session")
        monkeypatch.setattr(veil.tui, "run_tui", lambda session, **kwargs: calls.append(session))
        result = runner.invoke(main, [])
        assert result.exit_code == 0, result.output
        assert calls == ["session"]
