"""Config command group."""

from pathlib import Path

import click
from rich.table import Table

from mdreader.cli import console, fail


@click.group(name="config")
def config_group():
    """Manage configuration"""
    pass


@config_group.command(name="show")
@click.pass_obj
def config_show(ctx_obj):
    """Show current configuration"""
    config = ctx_obj.config
    console.print(f"Config path: [cyan]{ctx_obj.config_path}[/cyan]")

    table = Table(title="Configuration")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row("db_path", config.db_path)
    table.add_row("watch_directory", config.watch_directory)
    table.add_row("upload_directory", str(config.upload_directory()))
    table.add_row("watch.extensions", ", ".join(config.watch.extensions))
    table.add_row("watch.ignore_dirs", ", ".join(config.watch.ignore_dirs))
    table.add_row("watch.debounce_ms", str(config.watch.debounce_ms))
    table.add_row("watch.reconcile_on_scan", str(config.watch.reconcile_on_scan))
    table.add_row("search.default_limit", str(config.search.default_limit))
    table.add_row("server", f"{config.server.host}:{config.server.port}")
    table.add_row("log_level", config.log_level)

    console.print(table)


@config_group.command(name="set-root")
@click.argument("directory", type=click.Path(file_okay=False))
@click.pass_obj
def config_set_root(ctx_obj, directory):
    """Set the watch directory"""
    path = Path(directory).expanduser()
    if not path.is_dir():
        fail(f"Directory does not exist: {directory}")
    ctx_obj.config.watch_directory = str(path.resolve())
    ctx_obj.save_config()
    console.print(f"[green]Set watch_directory to:[/green] {ctx_obj.config.watch_directory}")
    console.print("[dim]Run 'mdreader index' to index it.[/dim]")


@config_group.command(name="set")
@click.argument("key", type=click.Choice(["db_path", "upload_subdir", "log_level"]))
@click.argument("value")
@click.pass_obj
def config_set(ctx_obj, key, value):
    """Set a configuration value"""
    setattr(ctx_obj.config, key, value)
    ctx_obj.save_config()
    console.print(f"[green]Set {key} to:[/green] {value}")
