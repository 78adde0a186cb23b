from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from prdeck import __version__, cli
from prdeck.cache import CacheStore
from prdeck.paths import get_cache_path
from tests.factories import make_pr

runner = CliRunner()


@pytest.fixture
def in_repo(clean_env: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setattr(cli, "get_current_repo", lambda: ("acme", "widgets"))
    return clean_env


def test_version():
    result = runner.invoke(cli.app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_list_prints_cached_prs(in_repo: Path):
    CacheStore(get_cache_path()).save_pull_requests(
        "acme", "widgets", "my_prs", [make_pr(12, title="Speed up search")]
    )

    result = runner.invoke(cli.app, ["list"])

    assert result.exit_code == 0
    assert "Speed up search" in result.output


def test_list_with_empty_cache(in_repo: Path):
    result = runner.invoke(cli.app, ["list", "--filter", "review"])

    assert result.exit_code == 0
    assert "No cached PRs for Review Requested" in result.output


def test_labels_lists_scopes(in_repo: Path):
    store = CacheStore(get_cache_path())
    store.save_label_filter("bug", "acme", "widgets")
    store.save_label_filter("security")

    result = runner.invoke(cli.app, ["labels"])

    assert result.exit_code == 0
    assert "acme/widgets" in result.output
    assert "global" in result.output


def test_outside_a_repo_exits_with_error(clean_env: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(cli, "get_current_repo", lambda: None)

    result = runner.invoke(cli.app, ["list"])

    assert result.exit_code == 1


def test_clear_cache(in_repo: Path):
    CacheStore(get_cache_path())

    result = runner.invoke(cli.app, ["--clear-cache"])

    assert result.exit_code == 0
    assert not get_cache_path().exists()
