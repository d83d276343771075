"""Definy CLI application -- Typer-based interface to the version store.

Provides commands to initialise the local store, create projects and inspect
branches and commit history.  Human-readable output goes to *stderr* via
Rich; ``--json`` switches to machine-readable JSON on *stdout*.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from sqlalchemy.ext.asyncio import AsyncSession

from definy_cli.display import display_branches, display_commit, display_history, display_project
from definy_core.branches import BranchRegistry
from definy_core.config import Settings, StateStoreType, load_settings
from definy_core.errors import VersionStoreError
from definy_core.projects import ProjectDirectory
from definy_core.state.database import engine_from_settings, get_session
from definy_core.state.sqlite_adapter import create_local_tables

T = TypeVar("T")

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="definy",
    help="Definy - content-addressed version store for projects, branches and commits",
    no_args_is_help=True,
)
console = Console(stderr=True)

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_db_path: Path | None = None


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    db_path: Path | None = typer.Option(
        None,
        "--db",
        help="Path of the local SQLite store (implies local mode).",
        envvar="DEFINY_LOCAL_DB_PATH",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _db_path  # noqa: PLW0603
    _json_output = json_mode
    _db_path = db_path


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings() -> Settings:
    if _db_path is not None:
        return load_settings(state_store_type=StateStoreType.LOCAL, local_db_path=_db_path)
    return load_settings()


def _run(operation: Callable[[AsyncSession, Settings], Awaitable[T]]) -> T:
    """Run *operation* in one session against the configured store.

    Domain errors are reported on the console and turn into exit code 3.
    """
    settings = _settings()

    async def _main() -> T:
        engine = engine_from_settings(settings)
        try:
            async with get_session(engine) as session:
                return await operation(session, settings)
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_main())
    except (VersionStoreError, ValueError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=3) from exc


def _emit_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db() -> None:
    """Create the version store tables in the local SQLite database."""
    settings = _settings()
    if settings.state_store_type != StateStoreType.LOCAL:
        console.print("[yellow]PostgreSQL schemas are managed by Alembic: run 'alembic upgrade head'.[/yellow]")
        raise typer.Exit(code=3)

    async def _main() -> None:
        engine = engine_from_settings(settings)
        try:
            await create_local_tables(engine)
        finally:
            await engine.dispose()

    asyncio.run(_main())
    if _json_output:
        _emit_json({"database": str(settings.local_db_path), "initialised": True})
    else:
        console.print(f"[green]Initialised[/green] {settings.local_db_path}")


@app.command("create-project")
def create_project(
    owner_id: str = typer.Argument(..., help="Id of the owning account."),
    name: str = typer.Argument(..., help="Display name of the project."),
) -> None:
    """Create a project with its initial commit and master branch."""

    async def _op(session: AsyncSession, settings: Settings) -> Any:
        return await ProjectDirectory.from_settings(session, settings).create_project(owner_id, name)

    project = _run(_op)
    if _json_output:
        _emit_json(project.model_dump(mode="json"))
    else:
        display_project(console, project)


@app.command("branches")
def branches(
    project_id: str = typer.Argument(..., help="Project whose branches to list."),
) -> None:
    """List the branches of a project."""

    async def _op(session: AsyncSession, settings: Settings) -> Any:
        project = await ProjectDirectory.from_settings(session, settings).get_project(project_id)
        found = await BranchRegistry.from_settings(session, settings).list_branches(project_id)
        return project, found

    project, found = _run(_op)
    if _json_output:
        _emit_json([b.model_dump(mode="json") for b in found])
    else:
        display_branches(console, found, master_branch_id=project.master_branch_id)


@app.command("log")
def log(
    branch_id: str = typer.Argument(..., help="Branch whose history to show."),
    limit: int | None = typer.Option(None, "--limit", "-n", min=1, help="Show at most this many commits."),
) -> None:
    """Show the commit history of a branch, newest first."""

    async def _op(session: AsyncSession, settings: Settings) -> Any:
        registry = BranchRegistry.from_settings(session, settings)
        branch = await registry.get_branch(branch_id)
        return await registry.graph.history(branch.head_hash, limit=limit)

    commits = _run(_op)
    if _json_output:
        _emit_json([c.model_dump(mode="json") for c in commits])
    else:
        display_history(console, commits)


@app.command("show-commit")
def show_commit(
    commit_hash: str = typer.Argument(..., help="Hash of the commit to show."),
) -> None:
    """Show the full content of one commit."""

    async def _op(session: AsyncSession, settings: Settings) -> Any:
        return await BranchRegistry.from_settings(session, settings).graph.get_commit(commit_hash)

    commit = _run(_op)
    if _json_output:
        _emit_json(commit.model_dump(mode="json"))
    else:
        display_commit(console, commit)
