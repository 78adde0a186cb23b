"""Main CLI entry point for prdeck."""

from __future__ import annotations

from enum import Enum
from functools import partial
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from prdeck import __version__
from prdeck.cache import CacheStore, clear_cache
from prdeck.config import Config, load_config
from prdeck.errors import CacheError, ConfigError
from prdeck.github import get_current_repo, has_gh_cli
from prdeck.log import log
from prdeck.models import FilterKind, PrFilter
from prdeck.paths import get_cache_path
from prdeck.pipeline import FetchPipeline
from prdeck.state import initial_state
from prdeck.system import checkout_branch, copy_to_clipboard, is_interactive, open_url
from prdeck.tui import PrDeckTUI
from prdeck.update import Env

app = typer.Typer(
    name="prdeck",
    help="Terminal dashboard for your pull requests and their CI",
    invoke_without_command=True,
)
console = Console()


class ListFilter(str, Enum):
    mine = "mine"
    review = "review"
    labels = "labels"


ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config file"),
]


def version_callback(value: bool) -> None:
    if value:
        console.print(f"prdeck {__version__}")
        raise typer.Exit()


def _get_config(config_path: Path | None) -> Config:
    try:
        return load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


def _require_repo() -> tuple[str, str]:
    repo = get_current_repo()
    if repo is None:
        console.print("[red]Not inside a GitHub repository (no github.com origin remote)[/red]")
        raise typer.Exit(1)
    return repo


def _open_store() -> CacheStore | None:
    """Open the cache; a broken cache only costs the startup snapshot."""
    try:
        return CacheStore(get_cache_path())
    except CacheError as e:
        log(f"Cache unavailable: {e}")
        return None


def run_dashboard(config: Config) -> None:
    if not is_interactive():
        console.print("[red]prdeck needs an interactive terminal; try `prdeck list`[/red]")
        raise typer.Exit(1)
    owner, repo = _require_repo()
    if not has_gh_cli():
        console.print("[red]gh CLI not found or not authenticated; run `gh auth login`[/red]")
        raise typer.Exit(1)

    store = _open_store()
    state = initial_state(store, owner, repo)
    env = Env(
        config=config,
        store=store,
        checkout=checkout_branch,
        copy=partial(copy_to_clipboard, in_container=config.in_container),
        open_url=partial(open_url, in_container=config.in_container),
    )
    pipeline = FetchPipeline(owner, repo, circleci_token=config.ci.circleci_token)
    log(f"Starting dashboard for {owner}/{repo}")

    branch = PrDeckTUI(config, state, env, pipeline).run()
    if branch:
        console.print(f"[green]Checked out {branch}[/green]")


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option("--version", "-V", callback=version_callback, is_eager=True),
    ] = None,
    clear: Annotated[
        bool,
        typer.Option("--clear-cache", help="Delete the local cache and exit"),
    ] = False,
    config_path: ConfigOption = None,
) -> None:
    """prdeck - your PRs, reviews and CI in one terminal view.

    Keys:
    - j/k or arrows: navigate
    - 1/2/3 or tab: My PRs, Review Requested, Labels
    - /: fuzzy search
    - enter/p: preview the PR conversation
    - w: CI checks, enter on a job for its logs
    - c: checkout the branch and exit
    - o: open in browser
    - l: manage label filters
    - r: refresh
    - q: quit
    """
    if clear:
        path = get_cache_path()
        try:
            removed = clear_cache(path)
        except CacheError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1) from e
        if removed:
            console.print(f"[green]Removed {path}[/green]")
        else:
            console.print(f"[dim]No cache at {path}[/dim]")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        run_dashboard(_get_config(config_path))


def _cached_filter(store: CacheStore, owner: str, repo: str, which: ListFilter) -> PrFilter:
    if which == ListFilter.mine:
        return PrFilter.my_prs()
    if which == ListFilter.review:
        return PrFilter.review_requested()
    labels = [lf.label_name for lf in store.load_label_filters(owner, repo)]
    return PrFilter.with_labels(labels)


@app.command(name="list")
def list_cmd(
    which: Annotated[
        ListFilter,
        typer.Option("--filter", "-f", help="Which tab to list"),
    ] = ListFilter.mine,
) -> None:
    """Print the cached PR list for a tab (non-interactive)."""
    owner, repo = _require_repo()
    try:
        store = CacheStore(get_cache_path())
        pr_filter = _cached_filter(store, owner, repo, which)
        prs = store.load_pull_requests(owner, repo, pr_filter.cache_key)
    except CacheError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    if not prs:
        console.print(f"[dim]No cached PRs for {pr_filter.title}; run prdeck to fetch[/dim]")
        return

    table = Table(title=f"{owner}/{repo} ({pr_filter.title})", show_header=True, header_style="bold cyan")
    table.add_column("#", width=6)
    table.add_column("Author")
    table.add_column("Title")
    table.add_column("Branch")
    table.add_column("CI")
    for pr in prs:
        table.add_row(
            f"[cyan]#{pr.number}[/cyan]",
            pr.author,
            pr.title,
            f"[magenta]{pr.branch}[/magenta]",
            f"[{pr.ci_status.style}]{pr.ci_status.display}[/{pr.ci_status.style}]",
        )
    console.print(table)


@app.command()
def labels() -> None:
    """List the label filters used by the Labels tab."""
    owner, repo = _require_repo()
    try:
        filters = CacheStore(get_cache_path()).load_label_filters(owner, repo)
    except CacheError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    if not filters:
        console.print("[dim]No label filters configured; press l in the dashboard to add one[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Label")
    table.add_column("Scope")
    for lf in filters:
        scope = "global" if lf.is_global else f"{lf.repo_owner}/{lf.repo_name}"
        table.add_row(lf.label_name, scope)
    console.print(table)


if __name__ == "__main__":
    app()
