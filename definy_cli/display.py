"""Rich output formatting for the Definy CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that JSON output on *stdout* stays clean.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from rich.console import Console

    from definy_core.models import Branch, Commit, Project


def _short(hash_: str | None) -> str:
    return hash_[:12] if hash_ else "-"


def _timestamp(commit: Commit) -> str:
    return commit.created_at.strftime("%Y-%m-%d %H:%M:%S")


# ---------------------------------------------------------------------------
# Projects and branches
# ---------------------------------------------------------------------------


def display_project(console: Console, project: Project) -> None:
    """Render a summary panel for *project*."""
    lines = [
        f"[bold]Name:[/bold]          {project.name or '-'}",
        f"[bold]Owner:[/bold]         {project.owner_id}",
        f"[bold]Master branch:[/bold] {project.master_branch_id}",
        f"[bold]Branches:[/bold]      {len(project.branch_ids)}",
        f"[bold]Stable:[/bold]        {len(project.stable_released)} release(s)",
        f"[bold]Beta:[/bold]          {len(project.beta_released)} release(s)",
    ]
    console.print(Panel("\n".join(lines), title=f"Project {project.id}", expand=False))


def display_branches(console: Console, branches: list[Branch], master_branch_id: str | None = None) -> None:
    """Render a table of branches.

    Parameters
    ----------
    console:
        Rich console to write to.
    branches:
        Branches of one project.
    master_branch_id:
        Highlighted in the table when given.
    """
    if not branches:
        console.print("[dim]No branches found.[/dim]")
        return

    table = Table(title=f"Branches ({len(branches)})", show_lines=False, expand=False)
    table.add_column("Name", style="bold")
    table.add_column("Id")
    table.add_column("Head")
    table.add_column("Draft")
    table.add_column("Version", justify="right")
    table.add_column("Description")

    for branch in branches:
        name = branch.name
        if branch.id == master_branch_id:
            name = f"[green]{name}[/green]"
        table.add_row(
            name,
            branch.id,
            _short(branch.head_hash),
            _short(branch.draft_hash),
            str(branch.version),
            branch.description or "-",
        )

    console.print(table)


# ---------------------------------------------------------------------------
# Commits
# ---------------------------------------------------------------------------


def display_history(console: Console, commits: list[Commit]) -> None:
    """Render commits newest first, one row each."""
    if not commits:
        console.print("[dim]No commits.[/dim]")
        return

    table = Table(title=f"History ({len(commits)})", show_lines=False, expand=False)
    table.add_column("Commit", style="yellow")
    table.add_column("Date")
    table.add_column("Author")
    table.add_column("Parents")
    table.add_column("Message")

    for commit in commits:
        table.add_row(
            _short(commit.hash),
            _timestamp(commit),
            commit.author_id or "-",
            " ".join(_short(p) for p in commit.parent_hashes) or "[dim]root[/dim]",
            commit.message or "-",
        )

    console.print(table)


def display_commit(console: Console, commit: Commit) -> None:
    """Render the full content of one commit."""
    tree = commit.tree
    lines = [
        f"[bold]Hash:[/bold]         {commit.hash}",
        f"[bold]Parents:[/bold]      {', '.join(commit.parent_hashes) or '(root)'}",
        f"[bold]Branch:[/bold]       {commit.branch_id or '-'}",
        f"[bold]Author:[/bold]       {commit.author_id or '-'}",
        f"[bold]Date:[/bold]         {_timestamp(commit)}",
        f"[bold]Project name:[/bold] {commit.project.name or '-'}",
        f"[bold]Message:[/bold]      {commit.message or '-'}",
        "",
        f"modules={len(tree.modules)}  type_defs={len(tree.type_defs)}  "
        f"part_defs={len(tree.part_defs)}  dependencies={len(tree.dependencies)}",
    ]
    console.print(Panel("\n".join(lines), title=f"Commit {_short(commit.hash)}", expand=False))
