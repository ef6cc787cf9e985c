"""Search command."""

import dataclasses
import json

import click
from rich.markup import escape

from mdreader.cli import console, fail, format_timestamp, parse_date
from mdreader.errors import InvalidInputError
from mdreader.search.fts import SearchService


@click.command()
@click.argument("query")
@click.option("--limit", "-n", type=int, default=None, help="Maximum number of results")
@click.option("--offset", type=int, default=0, help="Number of results to skip")
@click.option("--tag", "-t", "tags", multiple=True, help="Require tag (repeatable)")
@click.option("--topic", "topics", multiple=True, help="Require topic (repeatable)")
@click.option("--type", "content_type", help="Content type filter")
@click.option("--from", "date_from", help="Modified on/after (YYYY-MM-DD or millis)")
@click.option("--to", "date_to", help="Modified on/before (YYYY-MM-DD or millis)")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["cli", "json", "files"]),
    default="cli",
    help="Output format (default: cli)",
)
@click.pass_obj
def search(ctx_obj, query, limit, offset, tags, topics, content_type, date_from, date_to, output_format):
    """Full-text search with tag/topic/type/date filters.

    Supports quoted phrases, AND/OR/NOT, -exclude, +require and prefix*.
    """
    searcher = SearchService(
        ctx_obj.db,
        snippet_tokens=ctx_obj.config.search.snippet_tokens,
        default_limit=ctx_obj.config.search.default_limit,
    )
    try:
        page = searcher.search(
            query,
            tags=tags,
            topics=topics,
            content_type=content_type,
            date_from=parse_date(date_from),
            date_to=parse_date(date_to, end_of_day=True),
            limit=limit,
            offset=offset,
        )
    except InvalidInputError as e:
        fail(str(e))

    if output_format == "json":
        data = {
            "query": page.query,
            "total": page.total,
            "results": [dataclasses.asdict(hit) for hit in page.results],
        }
        click.echo(json.dumps(data, indent=2, ensure_ascii=False))
        return

    if not page.results:
        console.print("[yellow]No results found.[/yellow]")
        return

    if output_format == "files":
        for hit in page.results:
            click.echo(hit.path)
        return

    console.print(f"[dim]{page.total} matches[/dim]\n")
    for i, hit in enumerate(page.results, offset + 1):
        console.print(f"[bold cyan]{i}. {escape(hit.title)}[/bold cyan] [dim]({hit.score:.2f})[/dim]")
        console.print(f"   [magenta]{escape(hit.path)}[/magenta]  [dim]{format_timestamp(hit.modified_at)}[/dim]")
        if hit.tags:
            console.print(f"   [green]#{' #'.join(hit.tags)}[/green]")
        snippet = escape(hit.snippet).replace("<mark>", "[bold yellow]").replace("</mark>", "[/bold yellow]")
        console.print(f"   {snippet}\n", highlight=False)
