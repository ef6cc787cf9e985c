"""
FastAPI application for the mdreader server.

Serves faceted full-text search, document access, annotations and
collections over the index kept in step with the watch directory.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from mdreader import __version__
from mdreader.errors import (
    ConflictError,
    ConsistencyError,
    InvalidInputError,
    MdReaderError,
    NotFoundError,
)
from mdreader.models.config import AppConfig
from mdreader.server._endpoints import router
from mdreader.server._middleware import RequestLoggingMiddleware, RequestSizeLimitMiddleware
from mdreader.server._state import ServerState, srv_console

logger = logging.getLogger(__name__)

# Most specific first: MissingReferenceError is a NotFoundError
ERROR_STATUS = (
    (InvalidInputError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (ConsistencyError, 500),
)


def status_for_error(error: MdReaderError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def create_app(
    config: Optional[AppConfig] = None,
    config_path: Optional[Path] = None,
    start_watcher: bool = True,
    max_upload_size: int = 10 * 1024 * 1024,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: application configuration (loaded from config_path if omitted)
        config_path: where configuration changes made over the API are saved
        start_watcher: run the initial scan and watch the directory while serving
        max_upload_size: largest accepted POST/PUT body in bytes
    """
    if config is None:
        config = AppConfig.load(config_path)
    state = ServerState.from_config(config, config_path=config_path, start_watcher=start_watcher)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if state.start_watcher:
            try:
                summary = await run_in_threadpool(state.coordinator.start, True)
                srv_console.print(
                    f"[green]Watching[/green] {config.watch_directory}"
                    f" ({summary.indexed} indexed, {summary.removed} removed)"
                )
            except InvalidInputError as e:
                logger.error(f"File watcher not started: {e}")
                srv_console.print(f"[red]File watcher not started:[/red] {e}")
        yield
        logger.info("Shutting down server")
        await run_in_threadpool(state.coordinator.stop)

    app = FastAPI(
        title="mdreader",
        description="Markdown document index with faceted full-text search",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.mdreader = state

    app.add_middleware(RequestSizeLimitMiddleware, max_size=max_upload_size)
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(MdReaderError)
    async def handle_mdreader_error(request: Request, exc: MdReaderError):
        status = status_for_error(exc)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    app.include_router(router, prefix="/api")
    return app
