"""Server command."""

import click

from mdreader.cli import console


@click.command()
@click.option("--host", default=None, help="Host to bind to (default: server.host)")
@click.option("--port", default=None, type=int, help="Port to bind to (default: server.port)")
@click.option("--watch/--no-watch", default=True, help="Index and watch the directory while serving")
@click.pass_obj
def server(ctx_obj, host, port, watch):
    """Start the HTTP API server"""
    import uvicorn

    from mdreader.server.app import create_app

    host = host or ctx_obj.config.server.host
    port = port or ctx_obj.config.server.port

    app = create_app(ctx_obj.config, config_path=ctx_obj.config_path, start_watcher=watch)
    console.print(f"[cyan]Serving[/cyan] http://{host}:{port}/api  [dim]({ctx_obj.config.watch_directory})[/dim]")
    uvicorn.run(app, host=host, port=port, log_level=ctx_obj.config.log_level.lower())
