"""CLI entry point for gh-offline."""

import asyncio
import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Optional

import typer

from gh_offline.adapters.render import TextRenderer
from gh_offline.adapters.sources import GitHubSource
from gh_offline.adapters.storage import SQLiteStore
from gh_offline.config import Settings, get_settings
from gh_offline.core import KindFilter, RemoteFetcher, RetryPolicy, StateFilter
from gh_offline.core.errors import AlreadyTracked, IntegrityViolation, NotFound
from gh_offline.use_cases import QueryService, RepositoryService, SyncService

app = typer.Typer(help="Browse GitHub issues and pull requests offline.", no_args_is_help=True)
repo_app = typer.Typer(help="Repository management. Without a subcommand, list tracked repositories.")
app.add_typer(repo_app, name="repo")


class TypeOption(str, Enum):
    """Item type accepted on the command line."""

    ISSUE = "issue"
    PR = "pr"
    ALL = "all"


TYPE_TO_KIND = {
    TypeOption.ISSUE: KindFilter.ISSUE,
    TypeOption.PR: KindFilter.PULL_REQUEST,
    TypeOption.ALL: KindFilter.ALL,
}


def open_store(settings: Settings) -> SQLiteStore:
    return SQLiteStore(settings.db_path)


def build_sync_service(settings: Settings, store: SQLiteStore) -> SyncService:
    """Wire the GitHub source, fetcher and store into a sync service."""
    source = GitHubSource(
        token=settings.github_token,
        api_base=settings.github.api_base,
        per_page=settings.github.per_page,
        timeout=settings.github.timeout,
    )
    retry_policy = RetryPolicy(
        max_attempts=settings.sync.max_attempts,
        initial_delay=settings.sync.initial_retry_delay,
        max_delay=settings.sync.max_retry_delay,
        default_rate_limit_delay=settings.sync.default_rate_limit_delay,
    )
    return SyncService(store, RemoteFetcher(source, retry_policy), concurrency=settings.concurrency)


def fail(message: str, code: int = 1) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Keep a local mirror of GitHub issues and pull requests."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = get_settings(config)


@app.command()
def sync(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Refetch everything, ignoring the last sync time"),
) -> None:
    """Sync issues and pull requests of all tracked repositories."""
    settings: Settings = ctx.obj
    store = open_store(settings)

    if not store.list_repositories():
        print("No repositories to sync. Add one with: gh-offline repo add owner/name")
        return

    if not settings.github_token:
        print("⚠️  GITHUB_TOKEN not found (unauthenticated rate limit, public repositories only)")

    service = build_sync_service(settings, store)
    try:
        report = asyncio.run(service.sync_all(force=force))
    except IntegrityViolation as e:
        fail(f"mirror integrity violation, sync aborted: {e}", code=2)

    for summary in report.summaries:
        if summary.ok:
            line = (
                f"✓ {summary.repository.full_name}: {summary.items_upserted} synced, "
                f"{summary.items_unchanged} unchanged"
            )
            if summary.warnings:
                line += f", {summary.warnings} warnings"
            print(line)
        else:
            print(f"✗ {summary.repository.full_name}: failed during {summary.phase}: {summary.error}")
            if summary.hint:
                print(f"  └─ {summary.hint}")

    if report.failed:
        raise typer.Exit(1)


@repo_app.callback(invoke_without_command=True)
def repo(ctx: typer.Context) -> None:
    """List tracked repositories."""
    if ctx.invoked_subcommand is not None:
        return

    store = open_store(ctx.obj)
    repositories = RepositoryService(store).list()
    if not repositories:
        print("No tracked repositories. Add one with: gh-offline repo add owner/name")
        return

    counts = store.get_stats()["by_repository"]
    for repository in repositories:
        synced = repository.last_synced_at.strftime("%Y-%m-%d %H:%M") if repository.last_synced_at else "never"
        items = counts.get(repository.full_name, 0)
        print(f"{repository.full_name}  ({items} items, last synced {synced})")


@repo_app.command("add")
def repo_add(
    ctx: typer.Context,
    spec: str = typer.Argument(..., metavar="OWNER/NAME", help="Repository in format owner/name"),
) -> None:
    """Add a repository to the mirror."""
    service = RepositoryService(open_store(ctx.obj))
    try:
        repository = service.add(spec)
    except ValueError as e:
        fail(str(e), code=2)
    except AlreadyTracked as e:
        fail(str(e))

    print(f"Repository '{repository.full_name}' added successfully.")


@repo_app.command("rm")
def repo_rm(
    ctx: typer.Context,
    spec: str = typer.Argument(..., metavar="OWNER/NAME", help="Repository in format owner/name"),
) -> None:
    """Remove a repository and all of its mirrored data."""
    service = RepositoryService(open_store(ctx.obj))
    try:
        service.remove(spec)
    except ValueError as e:
        fail(str(e), code=2)
    except NotFound as e:
        fail(str(e))

    print(f"Repository '{spec}' removed successfully.")


def show_items(
    settings: Settings,
    number: Optional[int],
    state: StateFilter,
    kind: KindFilter,
    repository: Optional[str],
    detail_kind: Optional[KindFilter],
) -> None:
    """List items, or show one item when a number is given."""
    service = QueryService(open_store(settings))
    renderer = TextRenderer(color=sys.stdout.isatty())

    try:
        if number is not None:
            print(renderer.render_detail(service.get_item(number, kind=detail_kind, repository=repository)), end="")
            return
        items = service.list_items(kind=kind, state=state, repository=repository)
    except ValueError as e:
        fail(str(e), code=2)
    except NotFound as e:
        fail(str(e))

    output = renderer.render_list(
        items,
        show_kind=kind == KindFilter.ALL,
        show_state=state != StateFilter.OPEN,
    )
    typer.echo_via_pager(output)


@app.command()
def issue(
    ctx: typer.Context,
    number: Optional[int] = typer.Argument(None, metavar="NUMBER", help="Show this issue instead of the list"),
    state: StateFilter = typer.Option(StateFilter.OPEN, "--state", "-s", help="Filter by state"),
    item_type: TypeOption = typer.Option(TypeOption.ISSUE, "--type", "-t", help="Filter by type"),
    repo: Optional[str] = typer.Option(None, "--repo", "-r", help="Limit to repository owner/name"),
) -> None:
    """List issues, or view a specific issue or pull request."""
    show_items(ctx.obj, number, state, TYPE_TO_KIND[item_type], repo, detail_kind=None)


@app.command()
def pr(
    ctx: typer.Context,
    number: Optional[int] = typer.Argument(None, metavar="NUMBER", help="Show this pull request instead of the list"),
    state: StateFilter = typer.Option(StateFilter.OPEN, "--state", "-s", help="Filter by state"),
    repo: Optional[str] = typer.Option(None, "--repo", "-r", help="Limit to repository owner/name"),
) -> None:
    """List pull requests, or view a specific pull request."""
    show_items(ctx.obj, number, state, KindFilter.PULL_REQUEST, repo, detail_kind=KindFilter.PULL_REQUEST)


if __name__ == "__main__":
    app()
