"""CLI interface for the pedigree layout engine."""

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .logging import configure_logging

app = typer.Typer(
    name="pedigree-layout",
    help="Lay out family pedigrees and inspect saved layouts",
    add_completion=False,
)
console = Console()


def get_config():
    """Load configuration from environment (and a .env file, if present)."""
    from dotenv import load_dotenv

    from .config import LayoutConfig

    load_dotenv()
    return LayoutConfig.from_env()


def _read(path: Path) -> str:
    if not path.exists():
        console.print(f"[red]Error: File not found: {path}[/red]")
        raise typer.Exit(1)
    return path.read_text()


def _load_pedigree(path: Path):
    from .dynamic import DynamicPedigree

    config = get_config()
    pedigree = DynamicPedigree.make_empty(config)
    if pedigree.from_json(_read(path)) is None:
        console.print(f"[red]Error: {path.name} is not a valid layout snapshot[/red]")
        raise typer.Exit(1)
    return pedigree


def _vertex_table(pedigree, title: str, all_vertices: bool) -> Table:
    store = pedigree.store
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Kind")
    table.add_column("Rank", justify="right")
    table.add_column("Order", justify="right")
    table.add_column("X", justify="right")
    table.add_column("Name")

    vertices = store.vertex_ids() if all_vertices else store.real_vertices()
    for v in sorted(vertices, key=lambda u: (pedigree.ranks[u], pedigree.layout.order.index(u))):
        props = store.properties(v)
        name = " ".join(filter(None, [getattr(props, "first_name", ""), getattr(props, "last_name", "")]))
        table.add_row(
            str(v),
            store.kind(v).value,
            str(pedigree.ranks[v]),
            str(pedigree.layout.order.index(v)),
            f"{pedigree.positions[v]:.1f}",
            name,
        )
    return table


@app.command()
def layout(
    graph_file: Path = typer.Argument(..., help="Abstract pedigree (JSON)"),
    output: Path = typer.Option(None, "--output", "-o", help="Write the layout snapshot to this file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show every vertex, virtual ones included"),
):
    """Import a pedigree and lay it out."""
    from .dynamic import DynamicPedigree

    configure_logging("DEBUG" if verbose else "WARNING", json_output=not verbose)
    text = _read(graph_file)

    pedigree = DynamicPedigree.make_empty(get_config())
    if pedigree.from_import(text) is None:
        console.print(f"[red]Error: could not lay out {graph_file.name}[/red]")
        raise typer.Exit(1)

    console.print(_vertex_table(pedigree, f"Layout of {graph_file.name}", verbose))
    persons = pedigree.store.persons()
    generations = max(pedigree.get_generation(p) for p in persons)
    console.print(f"[green]Laid out {len(persons)} persons in {generations} generations[/green]")

    if output:
        output.write_text(pedigree.to_json(indent=2))
        console.print(f"[green]Snapshot saved to {output}[/green]")


@app.command()
def show(
    snapshot_file: Path = typer.Argument(..., help="Layout snapshot (JSON)"),
):
    """Print the generations of a saved layout."""
    configure_logging("WARNING")
    pedigree = _load_pedigree(snapshot_file)
    store = pedigree.store

    generations: dict[int, list[tuple[int, str]]] = {}
    for person in store.persons():
        label = str(person)
        props = store.properties(person)
        if props.first_name:  # type: ignore[union-attr]
            label += f" {props.first_name}"  # type: ignore[union-attr]
        generations.setdefault(pedigree.get_generation(person), []).append(
            (pedigree.get_order_within_generation(person), label)
        )

    for generation in sorted(generations):
        row = [label for _, label in sorted(generations[generation])]
        console.print(Panel("  ".join(row), title=f"[bold]Generation {generation}[/bold]"))

    consanguineous = [rel for rel in store.relationships() if pedigree.is_consangr_relationship(rel)]
    if consanguineous:
        console.print(f"[yellow]Consanguineous relationships: {', '.join(map(str, consanguineous))}[/yellow]")


@app.command()
def check(
    snapshot_file: Path = typer.Argument(..., help="Layout snapshot (JSON)"),
):
    """Validate a saved layout."""
    from .errors import PedigreeInvariantError

    configure_logging("WARNING")
    pedigree = _load_pedigree(snapshot_file)
    try:
        pedigree.layout.check()
    except PedigreeInvariantError as e:
        console.print(f"[red]Invalid layout: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]{snapshot_file.name} is valid ({len(pedigree.store)} vertices)[/green]")


@app.command("preview-removal")
def preview_removal(
    snapshot_file: Path = typer.Argument(..., help="Layout snapshot (JSON)"),
    vertex_id: int = typer.Argument(..., help="Person or relationship to remove"),
):
    """List the vertices that would be cut off from the proband by a removal."""
    configure_logging("WARNING")
    pedigree = _load_pedigree(snapshot_file)
    if not pedigree.is_valid_id(vertex_id):
        console.print(f"[red]Error: {vertex_id} is not a person or relationship[/red]")
        raise typer.Exit(1)

    affected = pedigree.get_disconnected_set_if_node_removed(vertex_id)
    table = Table(title=f"Removing {vertex_id} disconnects")
    table.add_column("ID", style="dim")
    table.add_column("Kind")
    for v in affected:
        table.add_row(str(v), pedigree.store.kind(v).value)
    console.print(table)
    console.print(f"[dim]{len(affected)} vertices affected[/dim]")


if __name__ == "__main__":
    app()
