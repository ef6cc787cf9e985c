"""System status and check commands."""

import click
from rich.table import Table

from mdreader.cli import console, format_size, format_timestamp


@click.command()
@click.pass_obj
def status(ctx_obj):
    """Show index status"""
    stats = ctx_obj.db.get_stats()

    table = Table(title="System Status", show_header=False, box=None)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Watch directory", ctx_obj.config.watch_directory)
    table.add_row("Index", f"{ctx_obj.config.db_path} ({format_size(stats['db_size'])})")
    table.add_row("Documents", str(stats["documents"]))
    table.add_row("Words", str(stats["total_words"]))
    table.add_row("Annotations", str(stats["annotations"]))
    table.add_row("Collections", str(stats["collections"]))
    table.add_row("Last indexed", format_timestamp(stats["last_indexed_at"]))

    console.print(table)

    if stats["documents"] == 0:
        console.print("[yellow]Index is empty.[/yellow] Run '[bold]mdreader index[/bold]' to build it.")


@click.command()
@click.option("--repair", is_flag=True, help="Rebuild the full-text index if it is out of sync")
@click.pass_obj
def check(ctx_obj, repair):
    """Check that every document has exactly one full-text entry"""
    report = ctx_obj.db.check_consistency()
    console.print(f"Documents: {report['documents']}, index entries: {report['index_entries']}")

    if report["consistent"]:
        console.print("[green]Index is consistent.[/green]")
        return

    for path in report["missing_index"]:
        console.print(f"  [yellow]missing from index:[/yellow] {path}")
    for path in report["orphaned_index"]:
        console.print(f"  [yellow]orphaned index entry:[/yellow] {path}")

    if not repair:
        console.print("[red]Index is out of sync.[/red] Run '[bold]mdreader check --repair[/bold]'.")
        raise click.exceptions.Exit(1)

    count = ctx_obj.db.rebuild_fts()
    ctx_obj.db.assert_consistent()
    console.print(f"[green]Rebuilt full-text index ({count} entries).[/green]")
