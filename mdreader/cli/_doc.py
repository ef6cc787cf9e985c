"""Document retrieval commands (ls, get, tags, topics, annotation)."""

import dataclasses
import json

import click
from rich.markup import escape
from rich.table import Table

from mdreader.cli import console, fail, format_timestamp


@click.command()
@click.option("--limit", "-n", type=int, default=100, help="Maximum number of documents")
@click.option("--offset", type=int, default=0, help="Number of documents to skip")
@click.pass_obj
def ls(ctx_obj, limit, offset):
    """List indexed documents, most recently modified first"""
    documents = ctx_obj.db.list_documents(limit=limit, offset=offset)
    if not documents:
        console.print("[yellow]No documents indexed.[/yellow]")
        return

    table = Table(box=None)
    table.add_column("Modified", style="blue")
    table.add_column("Words", justify="right", style="green")
    table.add_column("Path", style="white")
    table.add_column("Title", style="cyan")

    for doc in documents:
        table.add_row(
            format_timestamp(doc.modified_at),
            str(doc.word_count),
            escape(doc.path),
            escape(doc.title),
        )
    console.print(table)


@click.command()
@click.argument("path")
@click.option("--json", "as_json", is_flag=True, help="Print the full record as JSON")
@click.pass_obj
def get(ctx_obj, path, as_json):
    """Print a document's raw content (or full record with --json)"""
    doc = ctx_obj.db.get_document(path)
    if doc is None:
        fail(f"Document not found: {path}")

    if as_json:
        click.echo(json.dumps(dataclasses.asdict(doc), indent=2, ensure_ascii=False))
    else:
        click.echo(doc.raw_content)


def _print_counts(title: str, counts):
    if not counts:
        console.print(f"[yellow]No {title.lower()} found.[/yellow]")
        return
    table = Table(title=title, box=None)
    table.add_column("Name", style="cyan")
    table.add_column("Documents", justify="right", style="green")
    for item in counts:
        table.add_row(escape(item["name"]), str(item["count"]))
    console.print(table)


@click.command()
@click.pass_obj
def tags(ctx_obj):
    """List tags with document counts"""
    _print_counts("Tags", ctx_obj.db.tag_counts())


@click.command()
@click.pass_obj
def topics(ctx_obj):
    """List topics with document counts"""
    _print_counts("Topics", ctx_obj.db.topic_counts())


@click.group()
def annotation():
    """Inspect annotations"""
    pass


@annotation.command(name="list")
@click.argument("path")
@click.pass_obj
def annotation_list(ctx_obj, path):
    """List annotations of a document in offset order"""
    annotations = ctx_obj.db.list_annotations(path)
    if not annotations:
        console.print("No annotations found.")
        return

    table = Table(title=f"Annotations: {escape(path)}")
    table.add_column("Range", style="magenta")
    table.add_column("Color", style="yellow")
    table.add_column("Selection", style="white")
    table.add_column("Note", style="cyan")
    for a in annotations:
        selection = a.selected_text if len(a.selected_text) <= 40 else a.selected_text[:40] + "..."
        table.add_row(
            f"{a.start_offset}-{a.end_offset}",
            a.color,
            escape(selection),
            escape(a.note or ""),
        )
    console.print(table)
