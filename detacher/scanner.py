"""Depth-first scan of a MIME tree that detaches oversized leaf parts.

Each leaf whose decoded body is larger than the threshold is hashed,
written to the content store, and rewritten in place as a ``text/plain``
part pointing at the stored object.  Containers (``multipart/*`` and
``message/rfc822``) keep their children in the original order.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from email.message import EmailMessage
from typing import TYPE_CHECKING

import structlog

from .errors import DetacherError, DetachFailed
from .hashing import Hasher
from .store import ContentStore, ObjectMetadata
from .templates import build_message, build_url

if TYPE_CHECKING:
    from .config import DetacherConfig

logger = structlog.get_logger()


@dataclass(frozen=True)
class DetachedPart:
    """Record of one part replaced during a scan."""

    position: str
    digest: str
    url: str
    size_bytes: int


class AttachmentScanner:
    def __init__(
        self,
        store: ContentStore,
        hasher: Hasher,
        *,
        threshold_bytes: int,
        url_template: str,
        message_template: str,
        server_host: str,
        server_port: int,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._threshold = threshold_bytes
        self._url_template = url_template
        self._message_template = message_template
        self._server_host = server_host
        self._server_port = server_port
        self.detached: list[DetachedPart] = []

    @classmethod
    def from_config(cls, config: DetacherConfig) -> AttachmentScanner:
        return cls(
            ContentStore(config.common.dir),
            Hasher(config.common.alg, config.common.key.get_secret_value()),
            threshold_bytes=config.milter.size,
            url_template=config.milter.urlfmt,
            message_template=config.milter.msgfmt,
            server_host=config.server.name,
            server_port=config.server.port,
        )

    def scan(self, root: EmailMessage) -> EmailMessage:
        """Detach every oversized leaf under *root*, in pre-order.

        Mutates and returns *root*.  The first failure raises
        :class:`DetachFailed` and ends the scan.
        """
        self.detached = []
        stack: list[tuple[str, EmailMessage]] = [("", root)]

        while stack:
            position, part = stack.pop()

            if part.is_multipart():
                children = part.get_payload()
                # Pushed in reverse so the first child is visited first.
                for index in range(len(children) - 1, -1, -1):
                    stack.append((_child_position(position, index), children[index]))
                continue
            if part.get_content_maintype() == "multipart":
                # Declared multipart without parseable children (e.g. no boundary).
                logger.debug("multipart_without_children", position=position or "<root>")
                continue

            body = part.get_payload(decode=True)
            if body is None or len(body) <= self._threshold:
                continue
            self._detach(position, part, body)

        return root

    def _detach(self, position: str, part: EmailMessage, body: bytes) -> None:
        digest: str | None = None
        filename = part.get_filename() or ""
        media_type = part.get_content_type()

        try:
            digest = self._hasher.digest(io.BytesIO(body))
            self._store.put(
                digest,
                io.BytesIO(body),
                ObjectMetadata(media_type=media_type, suggested_name=filename),
            )
        except (DetacherError, OSError) as exc:
            logger.error(
                "attachment_detach_failed",
                position=position or "<root>",
                digest=digest,
                error=str(exc),
            )
            raise DetachFailed(position, digest, exc) from exc

        url = build_url(
            self._url_template,
            host=self._server_host,
            port=self._server_port,
            digest=digest,
        )
        part.set_content(build_message(self._message_template, url=url))

        self.detached.append(
            DetachedPart(position=position, digest=digest, url=url, size_bytes=len(body)),
        )
        logger.info(
            "attachment_detached",
            position=position or "<root>",
            digest=digest,
            size=len(body),
            media_type=media_type,
            filename=filename,
        )


def _child_position(parent: str, index: int) -> str:
    return f"{parent}.{index}" if parent else str(index)
