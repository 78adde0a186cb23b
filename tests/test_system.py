from __future__ import annotations

import base64
import subprocess
import tempfile
from pathlib import Path

import pytest

from prdeck import system
from prdeck.errors import CheckoutError


class FakeRun:
    def __init__(self, returncode: int = 0, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        self.calls: list[list[str]] = []

    def __call__(self, args, **kwargs):
        self.calls.append(list(args))
        return subprocess.CompletedProcess(args, self.returncode, "", self.stderr)


def test_git_checkout(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    run = FakeRun()
    monkeypatch.setattr(system.subprocess, "run", run)

    system.checkout_branch("fix-1", cwd=tmp_path)

    assert run.calls == [["git", "switch", "fix-1"]]


def test_jj_checkout(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    (tmp_path / ".jj").mkdir()
    run = FakeRun()
    monkeypatch.setattr(system.subprocess, "run", run)

    system.checkout_branch("fix-1", cwd=tmp_path)

    assert run.calls == [["jj", "new", "fix-1@origin"]]


def test_checkout_failure_carries_stderr(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(system.subprocess, "run", FakeRun(1, "error: pathspec 'fix-1' did not match\n"))

    with pytest.raises(CheckoutError, match="did not match"):
        system.checkout_branch("fix-1", cwd=tmp_path)


def test_osc52_sequence():
    sequence = system.osc52_sequence("hello")

    assert sequence.startswith("\x1b]52;c;")
    assert sequence.endswith("\x07")
    assert base64.b64decode(sequence[7:-1]) == b"hello"


def test_copy_in_container_writes_osc52(capsys: pytest.CaptureFixture[str]):
    assert system.copy_to_clipboard("hi", in_container=True)

    assert capsys.readouterr().out == system.osc52_sequence("hi")


def test_copy_without_any_clipboard_tool(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(system.shutil, "which", lambda name: None)

    assert not system.copy_to_clipboard("hi")


def test_open_url_in_container_returns_url():
    assert system.open_url("https://github.com", in_container=True) == "https://github.com"


def test_open_url_without_opener_returns_url(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(system.shutil, "which", lambda name: None)

    assert system.open_url("https://github.com") == "https://github.com"


def test_open_in_editor_uses_private_dir_and_cleans_up(monkeypatch: pytest.MonkeyPatch):
    seen = []

    def fake_run(args, **kwargs):
        path = Path(args[-1])
        seen.append((args[:-1], path.name, path.read_text(), path.parent))
        return subprocess.CompletedProcess(args, 0)

    monkeypatch.setattr(system.subprocess, "run", fake_run)

    assert system.open_in_editor("log text", "prdeck-test.log", "code --wait") is None

    [(command, name, text, parent)] = seen
    assert (command, name, text) == (["code", "--wait"], "prdeck-test.log", "log text")
    assert parent.name.startswith("prdeck-")
    assert parent != Path(tempfile.gettempdir())
    assert not parent.exists()


def test_open_in_editor_ignores_planted_file_in_shared_tmp(monkeypatch: pytest.MonkeyPatch):
    planted = Path(tempfile.gettempdir()) / "prdeck-planted.log"
    planted.write_text("keep me")
    monkeypatch.setattr(system.subprocess, "run", lambda args, **kwargs: subprocess.CompletedProcess(args, 0))

    try:
        assert system.open_in_editor("log text", planted.name, "vim") is None
        assert planted.read_text() == "keep me"
    finally:
        planted.unlink(missing_ok=True)


def test_open_in_editor_reports_missing_editor():
    error = system.open_in_editor("x", "prdeck-x.log", "definitely-not-an-editor-binary")

    assert error is not None
    assert error.startswith("Failed to open definitely-not-an-editor-binary")
