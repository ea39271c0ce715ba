"""CLI interface for the family graph engine."""

import json
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import load_config
from .engine import FamilyGraphEngine
from .exceptions import FamilyGraphError, ValidationError
from .logging import configure_logging, get_logger
from .models import Gender, RelationType, RelType, TreeRole
from .results import OperationResult

app = typer.Typer(
    name="family-graph",
    help="Family relationship graph: trees, members, relationships and invitations",
    add_completion=False,
)
console = Console()
logger = get_logger("family_graph.cli")

DB_OPTION = typer.Option(None, "--db", help="SQLite record store (default: FAMILY_GRAPH_DB_PATH)")
CALLER_OPTION = typer.Option(..., "--caller", "-c", help="Member id of the acting user")


def get_engine(db: Optional[Path]) -> FamilyGraphEngine:
    """Open the engine over the configured SQLite store."""
    config = load_config()
    if db is not None:
        config = replace(config, db_path=str(db))
    configure_logging(config.log_level)
    return FamilyGraphEngine.from_config(config)


@contextmanager
def engine_errors():
    """Report engine errors in red and exit non-zero."""
    try:
        yield
    except FamilyGraphError as e:
        logger.warning("cli.operation_failed", code=e.code.value, error=e.message)
        _report(e)
        raise typer.Exit(1)


def _report(e: FamilyGraphError) -> None:
    if isinstance(e, ValidationError):
        console.print(f"[red]Error: {e.message}[/red]")
        for violation in e.violations:
            console.print(f"[red]  • {violation.code}: {violation.message}[/red]")
    else:
        console.print(f"[red]Error ({e.code.value}): {e.message}[/red]")


def _attributes(first_name: str, last_name: Optional[str], gender: Gender, born: Optional[str]) -> dict:
    attributes = {"firstName": first_name, "gender": gender.value}
    if last_name:
        attributes["lastName"] = last_name
    if born:
        attributes["dateOfBirth"] = born
    return attributes


def _print_written(result: OperationResult) -> None:
    for node in result.updated_nodes:
        console.print(f"[dim]  updated {node['id']} ({node['attributes']['displayName']})[/dim]")


@app.command("create-tree")
def create_tree(
    first_name: str = typer.Argument(..., help="Root member's first name"),
    last_name: Optional[str] = typer.Option(None, "--last-name", "-l"),
    gender: Gender = typer.Option(Gender.OTHER, "--gender", "-g"),
    born: Optional[str] = typer.Option(None, "--born", help="Date of birth (YYYY-MM-DD)"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Tree name"),
    db: Optional[Path] = DB_OPTION,
):
    """Create a tree with its root member as admin."""
    engine = get_engine(db)
    with engine_errors():
        result = engine.trees.create_tree(_attributes(first_name, last_name, gender, born), name=name)
    console.print(f"[green]Created tree '{result.tree.name}'[/green]")
    console.print(f"Tree id: {result.tree.id}")
    console.print(f"Root member id: {result.member_id}")


@app.command("add-member")
def add_member(
    tree_id: str = typer.Argument(..., help="Tree id"),
    first_name: str = typer.Argument(..., help="First name"),
    caller: str = CALLER_OPTION,
    relation: Optional[RelationType] = typer.Option(None, "--relation", "-r", help="Relation to the target"),
    target: Optional[str] = typer.Option(None, "--target", "-t", help="Member to attach to"),
    last_name: Optional[str] = typer.Option(None, "--last-name", "-l"),
    gender: Gender = typer.Option(Gender.OTHER, "--gender", "-g"),
    born: Optional[str] = typer.Option(None, "--born", help="Date of birth (YYYY-MM-DD)"),
    edge_type: Optional[RelType] = typer.Option(None, "--edge-type", help="Type of the primary edge"),
    connect_spouse: bool = typer.Option(False, "--connect-spouse", help="Child: target's spouses become parents"),
    connect_parent: bool = typer.Option(False, "--connect-parent", help="Parent: marry target's other parents"),
    connect_children: bool = typer.Option(False, "--connect-children", help="Spouse: parent target's children"),
    db: Optional[Path] = DB_OPTION,
):
    """Add a member, optionally attached to an existing relative."""
    options = {
        "connect_to_spouse": connect_spouse,
        "connect_to_existing_parent": connect_parent,
        "connect_to_children": connect_children,
        "edge_type": edge_type,
    }
    engine = get_engine(db)
    with engine_errors():
        result = engine.members.create_member(
            tree_id,
            _attributes(first_name, last_name, gender, born),
            relation,
            target,
            options,
            caller_id=caller,
        )
    console.print(f"[green]Added member {result.member_id}[/green]")
    _print_written(result)


def _parse_types(pairs: List[str]) -> dict:
    types = {}
    for pair in pairs:
        member_id, sep, rel_type = pair.partition("=")
        if not sep:
            console.print(f"[red]Error: --type expects MEMBER_ID=TYPE, got '{pair}'[/red]")
            raise typer.Exit(1)
        types[member_id] = rel_type
    return types


@app.command()
def link(
    member_id: str = typer.Argument(..., help="Member whose relationships change"),
    tree_id: str = typer.Argument(..., help="Tree id"),
    caller: str = CALLER_OPTION,
    add_parent: Optional[List[str]] = typer.Option(None, "--add-parent"),
    remove_parent: Optional[List[str]] = typer.Option(None, "--remove-parent"),
    add_child: Optional[List[str]] = typer.Option(None, "--add-child"),
    remove_child: Optional[List[str]] = typer.Option(None, "--remove-child"),
    add_spouse: Optional[List[str]] = typer.Option(None, "--add-spouse"),
    remove_spouse: Optional[List[str]] = typer.Option(None, "--remove-spouse"),
    rel_type: Optional[List[str]] = typer.Option(None, "--type", help="MEMBER_ID=TYPE, e.g. id=divorced"),
    db: Optional[Path] = DB_OPTION,
):
    """Apply a batch of relationship changes atomically."""
    updates = {
        "addParents": add_parent or [],
        "removeParents": remove_parent or [],
        "addChildren": add_child or [],
        "removeChildren": remove_child or [],
        "addSpouses": add_spouse or [],
        "removeSpouses": remove_spouse or [],
        "relationshipTypes": _parse_types(rel_type or []),
    }
    engine = get_engine(db)
    with engine_errors():
        result = engine.relationships.update_relationships(member_id, tree_id, updates, caller_id=caller)
    console.print(f"[green]Updated relationships of {member_id}[/green]")
    _print_written(result)


@app.command("remove-member")
def remove_member(
    member_id: str = typer.Argument(..., help="Member to delete"),
    tree_id: str = typer.Argument(..., help="Tree id"),
    caller: str = CALLER_OPTION,
    db: Optional[Path] = DB_OPTION,
):
    """Delete a member and every edge referencing it."""
    engine = get_engine(db)
    with engine_errors():
        result = engine.members.delete_member(member_id, tree_id, caller)
    console.print(f"[green]Removed member {member_id}[/green]")
    _print_written(result)


@app.command()
def show(
    tree_id: str = typer.Argument(..., help="Tree id"),
    as_json: bool = typer.Option(False, "--json", help="Print renderer nodes as JSON"),
    db: Optional[Path] = DB_OPTION,
):
    """Show a tree's members and relationships."""
    engine = get_engine(db)
    with engine_errors():
        view = engine.tree_view(tree_id)

    if as_json:
        typer.echo(json.dumps(view, indent=2))
        return

    table = Table(title=view["treeName"])
    table.add_column("ID", style="dim", max_width=12)
    table.add_column("Name", style="cyan")
    table.add_column("Parents")
    table.add_column("Children")
    table.add_column("Spouses")
    table.add_column("Siblings")
    table.add_column("Admin")

    names = {n["id"]: n["attributes"]["displayName"] for n in view["nodes"]}

    def fmt(edges):
        return ", ".join(f"{names.get(e['id'], e['id'][:8])} ({e['type']})" for e in edges) or "-"

    for node in view["nodes"]:
        table.add_row(
            node["id"][:12],
            node["attributes"]["displayName"] + (" ★" if node["id"] == view["rootId"] else ""),
            fmt(node["parents"]),
            fmt(node["children"]),
            fmt(node["spouses"]),
            fmt(node["siblings"]),
            "yes" if node["attributes"]["isAdmin"] else "",
        )

    console.print(table)
    console.print(f"[dim]{len(view['nodes'])} members[/dim]")


@app.command()
def invite(
    tree_id: str = typer.Argument(..., help="Tree id"),
    email: str = typer.Argument(..., help="Invitee email"),
    caller: str = CALLER_OPTION,
    relation: RelationType = typer.Option(..., "--relation", "-r"),
    target: str = typer.Option(..., "--target", "-t", help="Member the invitee relates to"),
    display_name: Optional[str] = typer.Option(None, "--name", "-n", help="Invitee display name"),
    role: TreeRole = typer.Option(TreeRole.MEMBER, "--role"),
    message: Optional[str] = typer.Option(None, "--message", "-m"),
    db: Optional[Path] = DB_OPTION,
):
    """Invite someone to join the tree."""
    engine = get_engine(db)
    with engine_errors():
        result = engine.trees.create_invitation(
            tree_id,
            caller,
            {"email": email, "displayName": display_name},
            {"relationType": relation.value, "targetMemberId": target},
            role=role,
            message=message,
        )
    invitation = result.invitation
    console.print(
        Panel(
            f"[bold]Invitation:[/bold] {invitation.id}\n"
            f"[bold]Invitee:[/bold] {email}\n"
            f"[bold]Expires:[/bold] {invitation.expires_at:%Y-%m-%d %H:%M} UTC",
            title="Invitation created",
        )
    )


@app.command()
def accept(
    invitation_id: str = typer.Argument(..., help="Invitation id"),
    db: Optional[Path] = DB_OPTION,
):
    """Accept an invitation, creating the invitee's member."""
    engine = get_engine(db)
    with engine_errors():
        result = engine.trees.accept_invitation(invitation_id)
    if result.replayed:
        console.print(f"[yellow]Invitation already {result.invitation.status.value}[/yellow]")
        return
    console.print(f"[green]Accepted; new member {result.member_id}[/green]")
    _print_written(result)


@app.command()
def reject(
    invitation_id: str = typer.Argument(..., help="Invitation id"),
    db: Optional[Path] = DB_OPTION,
):
    """Reject an invitation."""
    engine = get_engine(db)
    with engine_errors():
        result = engine.trees.reject_invitation(invitation_id)
    if result.replayed:
        console.print(f"[yellow]Invitation already {result.invitation.status.value}[/yellow]")
        return
    console.print("[green]Invitation rejected[/green]")


@app.command()
def promote(
    member_id: str = typer.Argument(..., help="Member to promote"),
    tree_id: str = typer.Argument(..., help="Tree id"),
    caller: str = CALLER_OPTION,
    db: Optional[Path] = DB_OPTION,
):
    """Make a member a tree admin."""
    engine = get_engine(db)
    with engine_errors():
        tree = engine.trees.promote_to_admin(member_id, tree_id, caller)
    console.print(f"[green]{member_id} is now an admin ({len(tree.admin_ids)} admins)[/green]")


@app.command()
def demote(
    member_id: str = typer.Argument(..., help="Admin to demote"),
    tree_id: str = typer.Argument(..., help="Tree id"),
    caller: str = CALLER_OPTION,
    db: Optional[Path] = DB_OPTION,
):
    """Remove a member's admin rights."""
    engine = get_engine(db)
    with engine_errors():
        tree = engine.trees.demote_to_member(member_id, tree_id, caller)
    console.print(f"[green]{member_id} is no longer an admin ({len(tree.admin_ids)} admins)[/green]")


if __name__ == "__main__":
    app()
