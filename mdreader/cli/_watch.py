"""Watch command."""

import threading

import click

from mdreader.cli import console, fail
from mdreader.errors import InvalidInputError


@click.command()
@click.pass_obj
def watch(ctx_obj):
    """Index the watch directory, then keep the index updated until Ctrl+C"""
    coordinator = ctx_obj.coordinator
    try:
        summary = coordinator.start(watch=True)
    except InvalidInputError as e:
        fail(str(e))

    console.print(
        f"[green]Watching[/green] {coordinator.root}"
        f" ({summary.indexed} indexed, {summary.removed} removed). Press Ctrl+C to stop."
    )
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        coordinator.stop()
        console.print("Stopped.")
