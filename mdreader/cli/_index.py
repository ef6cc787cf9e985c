"""Index command."""

import click

from mdreader.cli import console, fail


@click.command()
@click.option(
    "--reconcile/--no-reconcile",
    default=None,
    help="Remove documents whose file is gone (default: watch.reconcile_on_scan)",
)
@click.pass_obj
def index(ctx_obj, reconcile):
    """Scan the watch directory and (re)index every markdown file"""
    root = ctx_obj.coordinator.root
    if not root.is_dir():
        fail(f"Watch directory does not exist: {root}")

    console.print(f"Indexing [cyan]{root}[/cyan]...")
    summary = ctx_obj.coordinator.index_existing_files(reconcile=reconcile)

    console.print(f"  Indexed [green]{summary.indexed}[/green] documents")
    if summary.failed:
        console.print(f"  [yellow]Skipped {summary.failed} unreadable files[/yellow]")
    if summary.removed:
        console.print(f"  Removed [magenta]{summary.removed}[/magenta] missing documents")
