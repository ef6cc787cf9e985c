"""mdreader CLI - Entry point for command line interface.

This module provides the main CLI entry point and imports all command groups
from the modular cli subpackage.
"""

import logging
from pathlib import Path

import click

from mdreader import __version__
from mdreader.cli import Context
from mdreader.cli._collection import collection
from mdreader.cli._config import config_group
from mdreader.cli._doc import annotation, get, ls, tags, topics
from mdreader.cli._index import index
from mdreader.cli._search import search
from mdreader.cli._server import server
from mdreader.cli._system import check, status
from mdreader.cli._watch import watch


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="MDREADER_CONFIG",
    help="Config file (default: ~/.mdreader/config.yml)",
)
@click.version_option(__version__, prog_name="mdreader")
@click.pass_context
def cli(ctx, config_path):
    """mdreader - index and search a directory of markdown documents"""
    ctx.obj = Context(config_path)
    logging.basicConfig(
        level=getattr(logging, ctx.obj.config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register command groups
cli.add_command(config_group)
cli.add_command(collection)
cli.add_command(annotation)
cli.add_command(server)
cli.add_command(watch)
cli.add_command(index)
cli.add_command(search)
cli.add_command(ls)
cli.add_command(get)
cli.add_command(tags)
cli.add_command(topics)
cli.add_command(status)
cli.add_command(check)


if __name__ == "__main__":
    cli()
