"""Read-only HTTP server for detached files.

A single catch-all route hands every request to :class:`RetrievalHandler`;
docs and OpenAPI routes are disabled so that every path reaches it.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import BinaryIO

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from .config import DetacherConfig
from .hashing import CHUNK_SIZE
from .retrieval import RetrievalHandler, RetrievalResponse
from .store import ContentStore

logger = structlog.get_logger()

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def create_app(config: DetacherConfig, store: ContentStore | None = None) -> FastAPI:
    """Build the FastAPI app serving objects from *store*.

    *store* defaults to a :class:`ContentStore` rooted at ``common.dir``.
    """
    if store is None:
        store = ContentStore(config.common.dir)
    handler = RetrievalHandler(store)

    app = FastAPI(title="detacher", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.config = config
    app.state.handler = handler

    @app.api_route("/{path:path}", methods=ALL_METHODS, include_in_schema=False)
    async def retrieve(request: Request) -> Response:
        path = _raw_path(request)
        try:
            result = await asyncio.to_thread(
                handler.handle,
                request.method,
                path,
                request.headers,
            )
        except Exception:
            logger.exception("retrieval_failed", method=request.method, path=path)
            return PlainTextResponse(
                "Internal Server Error",
                status_code=500,
                headers={"Connection": "close"},
            )
        return _to_response(result)

    return app


def serve(config: DetacherConfig) -> None:
    """Run the retrieval server until interrupted."""
    store = ContentStore(config.common.dir)
    if not store.root.is_dir():
        logger.warning("store_dir_missing", dir=str(store.root))

    app = create_app(config, store)
    logger.info(
        "server_starting",
        addr=config.server.addr,
        port=config.server.port,
        dir=str(store.root),
    )
    uvicorn.run(
        app,
        host=config.server.addr,
        port=config.server.port,
        log_level=config.log_level.lower(),
        log_config=None,
    )


def _raw_path(request: Request) -> str:
    """The undecoded request path, without the query string."""
    raw = request.scope.get("raw_path")
    if not raw:
        return request.url.path
    return raw.split(b"?", 1)[0].decode("latin-1")


def _to_response(result: RetrievalResponse) -> Response:
    if result.body is None:
        if result.status >= 400:
            return PlainTextResponse(
                result.detail or "",
                status_code=result.status,
                headers=result.headers,
            )
        return Response(status_code=result.status, headers=result.headers)

    return StreamingResponse(
        _iter_payload(result.body, result.headers.get("ETag")),
        status_code=result.status,
        headers=result.headers,
        background=BackgroundTask(result.close),
    )


async def _iter_payload(body: BinaryIO, digest: str | None) -> AsyncIterator[bytes]:
    """Stream *body* in chunks, closing it on every exit path."""
    try:
        while True:
            chunk = await asyncio.to_thread(body.read, CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
    except asyncio.CancelledError:
        logger.info("client_disconnected", digest=digest)
        raise
    finally:
        body.close()
