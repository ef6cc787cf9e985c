"""Collection command group."""

import re
import uuid

import click
from rich.markup import escape

from mdreader.cli import console, fail, print_table
from mdreader.errors import MdReaderError
from mdreader.models.document import Collection


def _slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or uuid.uuid4().hex[:8]


def _resolve(ctx_obj, key: str) -> Collection:
    """Find a collection by id, then by name."""
    collection = ctx_obj.db.get_collection(key)
    if collection is not None:
        return collection
    for c in ctx_obj.db.list_collections():
        if c.name == key:
            return c
    fail(f"Collection not found: {key}")


@click.group()
def collection():
    """Manage document collections"""
    pass


@collection.command(name="create")
@click.argument("name")
@click.option("--id", "collection_id", help="Collection id (default: derived from the name)")
@click.option("--description", "-d", help="Description")
@click.option("--color", help="Display color (default: #3b82f6)")
@click.pass_obj
def collection_create(ctx_obj, name, collection_id, description, color):
    """Create a new collection"""
    try:
        created = ctx_obj.db.create_collection(
            Collection(
                id=collection_id or _slug(name),
                name=name,
                description=description,
                color=color,
            )
        )
    except MdReaderError as e:
        fail(str(e))
    console.print(f"[green]Created collection:[/green] {escape(created.name)} ({created.id})")


@collection.command(name="list")
@click.pass_obj
def collection_list(ctx_obj):
    """List all collections"""
    collections = ctx_obj.db.list_collections()
    if not collections:
        console.print("No collections found.")
        return

    table = print_table(
        "Collections",
        [("Id", "dim"), ("Name", "cyan"), ("Documents", "green"), ("Description", "white")],
    )
    for c in collections:
        table.add_row(c.id, escape(c.name), str(c.document_count), escape(c.description or ""))
    console.print(table)


@collection.command(name="show")
@click.argument("key")
@click.pass_obj
def collection_show(ctx_obj, key):
    """Show a collection and its documents"""
    c = _resolve(ctx_obj, key)
    console.print(f"[bold cyan]{escape(c.name)}[/bold cyan] [dim]({c.id}, {c.color})[/dim]")
    if c.description:
        console.print(escape(c.description))
    documents = ctx_obj.db.get_collection_documents(c.id, limit=1000)
    console.print(f"{c.document_count} documents")
    for doc in documents:
        console.print(f"  [magenta]{escape(doc.path)}[/magenta]  {escape(doc.title)}")


@collection.command(name="remove")
@click.argument("key")
@click.pass_obj
def collection_remove(ctx_obj, key):
    """Delete a collection (documents stay indexed)"""
    c = _resolve(ctx_obj, key)
    ctx_obj.db.delete_collection(c.id)
    console.print(f"[green]Removed collection:[/green] {escape(c.name)}")


@collection.command(name="add")
@click.argument("key")
@click.argument("paths", nargs=-1, required=True)
@click.pass_obj
def collection_add(ctx_obj, key, paths):
    """Add indexed documents to a collection"""
    c = _resolve(ctx_obj, key)
    try:
        result = ctx_obj.db.add_documents_to_collection(paths, c.id)
    except MdReaderError as e:
        fail(str(e))
    console.print(f"Added [green]{result['added']}[/green] of {result['requested']} documents to {escape(c.name)}")


@collection.command(name="drop")
@click.argument("key")
@click.argument("paths", nargs=-1, required=True)
@click.pass_obj
def collection_drop(ctx_obj, key, paths):
    """Remove documents from a collection"""
    c = _resolve(ctx_obj, key)
    result = ctx_obj.db.remove_documents_from_collection(paths, c.id)
    console.print(f"Removed [green]{result['removed']}[/green] of {result['requested']} documents from {escape(c.name)}")
