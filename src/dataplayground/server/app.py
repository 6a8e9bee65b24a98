"""FastAPI applications for dataplayground.

Two independent apps run side by side:

* the session app, whose WebSocket route at ``/`` gives every
  connection its own interpreter session (query parameters become the
  interpreter's environment), plus a ``/health`` probe;
* the static app, a bare file server for the browser client bundle.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, WebSocket
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from dataplayground.config.settings import InterpreterConfig, ServerConfig
from dataplayground.session.orchestrator import SessionOrchestrator, interpreter_environment

logger = logging.getLogger(__name__)


class ServerStatus(BaseModel):
    status: str = "ok"
    sessions: int = 0


def create_app(config: InterpreterConfig | None = None) -> FastAPI:
    """Create the WebSocket session application."""
    interpreter_config = config or InterpreterConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting R service...")
        yield
        for session in list(app.state.sessions):
            logger.info("Session still open at shutdown (state=%s)", session.state.value)
        logger.info("R service stopped")

    app = FastAPI(
        title="dataplayground",
        description="WebSocket bridge to per-connection R interpreter sessions",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = interpreter_config
    app.state.sessions = set()

    @app.get("/health")
    async def health_check() -> ServerStatus:
        return ServerStatus(status="ok", sessions=len(app.state.sessions))

    @app.websocket("/")
    async def session_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        params = dict(websocket.query_params)
        logger.info("SESSION %s", websocket.url)
        session = SessionOrchestrator(
            websocket,
            app.state.config,
            interpreter_environment(params, app.state.config),
        )
        app.state.sessions.add(session)
        try:
            await session.run()
        finally:
            app.state.sessions.discard(session)

    return app


def create_static_app(directory: Path | str = "public") -> FastAPI:
    """Create the static file host for the client bundle."""
    if not Path(directory).is_dir():
        logger.warning("Static directory %s does not exist; every request will 404", directory)
    app = FastAPI(
        title="dataplayground static host",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.mount("/", StaticFiles(directory=str(directory), html=True, check_dir=False), name="static")
    return app


async def serve(server_config: ServerConfig, interpreter_config: InterpreterConfig) -> None:
    """Run the session server and the static host on one event loop."""
    logger.info("Starting static host on port %d (%s)", server_config.static_port, server_config.static_dir)
    logger.info("Starting session server on port %d", server_config.port)
    session_server = uvicorn.Server(
        uvicorn.Config(
            create_app(interpreter_config),
            host=server_config.host,
            port=server_config.port,
            log_config=None,
        )
    )
    static_server = uvicorn.Server(
        uvicorn.Config(
            create_static_app(server_config.static_dir),
            host=server_config.host,
            port=server_config.static_port,
            log_config=None,
        )
    )
    await asyncio.gather(session_server.serve(), static_server.serve())


def main() -> None:
    """Entry point for running the servers standalone with defaults."""
    asyncio.run(serve(ServerConfig(), InterpreterConfig()))


if __name__ == "__main__":
    main()
