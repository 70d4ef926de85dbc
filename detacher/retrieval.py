"""Transport-independent request handling for the retrieval server.

:class:`RetrievalHandler` turns (method, path, headers) into a
:class:`RetrievalResponse`; :mod:`detacher.server` adapts that to HTTP.
"""

from __future__ import annotations

import email.utils
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import BinaryIO

import structlog

from .errors import MalformedRequest, MetadataMissing, MetadataUnreadable, NotFound
from .store import ContentStore, StoredObject

logger = structlog.get_logger()

_NON_HEX_RE = re.compile(r"[^0-9A-Fa-f]")


@dataclass
class RetrievalResponse:
    """Status, headers and (for 200) an open payload stream.

    The caller owns ``body`` and must close it; :meth:`close` is safe to
    call for every response.
    """

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: BinaryIO | None = None
    detail: str | None = None

    def close(self) -> None:
        if self.body is not None:
            self.body.close()


def extract_digest(path: str) -> str:
    """Drop every non-hex character from *path* and lower-case the rest."""
    return _NON_HEX_RE.sub("", path).lower()


def parse_http_date(value: str) -> datetime | None:
    """Parse an HTTP date header; ``None`` when it is not a valid date."""
    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_http_date(moment: datetime) -> str:
    return email.utils.format_datetime(moment.astimezone(UTC), usegmt=True)


def content_disposition(filename: str) -> str:
    escaped = filename.replace("\\", "\\\\").replace('"', '\\"')
    return f'attachment; filename="{escaped}"'


class RetrievalHandler:
    """Resolve a request path to a stored object, honouring conditional GET.

    Stateless across requests: every call re-stats the store.
    """

    def __init__(self, store: ContentStore) -> None:
        self._store = store

    def handle(self, method: str, path: str, headers: Mapping[str, str]) -> RetrievalResponse:
        try:
            _require_get(method)
        except MalformedRequest as exc:
            logger.info("retrieval_method_not_allowed", method=method, path=path)
            return _error(405, str(exc))

        digest = extract_digest(path)
        try:
            stored = self._store.stat(digest)
        except NotFound:
            logger.info("retrieval_not_found", path=path, digest=digest)
            return _error(404, "Not Found")
        except (MetadataMissing, MetadataUnreadable) as exc:
            logger.error("retrieval_metadata_error", digest=digest, error=str(exc))
            return _error(500, str(exc))

        request_headers = {name.lower(): value for name, value in headers.items()}
        if self._not_modified(stored, request_headers):
            logger.debug("retrieval_not_modified", digest=digest)
            return RetrievalResponse(
                status=304,
                headers={
                    "Last-Modified": format_http_date(stored.last_modified),
                    "ETag": stored.digest,
                    "Connection": "close",
                },
            )

        try:
            body = self._store.open(digest)
        except NotFound:
            logger.warning("retrieval_vanished", digest=digest)
            return _error(404, "Not Found")

        logger.info("retrieval_served", digest=digest, size=stored.size_bytes)
        return RetrievalResponse(
            status=200,
            headers={
                "Content-Type": stored.media_type,
                "Content-Disposition": content_disposition(stored.suggested_name),
                "Content-Length": str(stored.size_bytes),
                "Last-Modified": format_http_date(stored.last_modified),
                "ETag": stored.digest,
                "Connection": "close",
            },
            body=body,
        )

    @staticmethod
    def _not_modified(stored: StoredObject, headers: Mapping[str, str]) -> bool:
        since_header = headers.get("if-modified-since")
        if since_header:
            since = parse_http_date(since_header)
            # HTTP dates carry whole seconds only.
            if since is not None and stored.last_modified.replace(microsecond=0) <= since:
                return True

        etag = headers.get("if-none-match")
        return bool(etag) and etag == stored.digest


def _require_get(method: str) -> None:
    if method.upper() != "GET":
        raise MalformedRequest(f"Method {method} not allowed")


def _error(status: int, detail: str) -> RetrievalResponse:
    return RetrievalResponse(status=status, headers={"Connection": "close"}, detail=detail)
