"""Write-once content-addressed store on the local filesystem.

Layout::

    <dir>/<digest>       payload bytes, mode 0400
    <dir>/<digest>.js    {"type": <media type>, "name": <suggested filename>}, mode 0400

Objects are published with create-if-absent links from a fully written
temp file, so a reader never sees a partial payload and two processes
racing on the same digest both succeed without overwriting each other.
"""

from __future__ import annotations

import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import BinaryIO

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import MetadataMissing, MetadataUnreadable, NotFound, StoreWriteFailure

logger = structlog.get_logger()

READ_ONLY = 0o400
METADATA_SUFFIX = ".js"

_DIGEST_RE = re.compile(r"^[0-9a-f]+$")


class ObjectMetadata(BaseModel):
    """Sidecar record stored next to every payload.

    Serialized with the short keys ``type`` and ``name``; ``populate_by_name``
    allows construction via either key.
    """

    model_config = {"populate_by_name": True}

    media_type: str = Field(alias="type")
    suggested_name: str | None = Field(default=None, alias="name")

    @field_validator("suggested_name", mode="before")
    @classmethod
    def coerce_scalar_name(cls, v: object) -> object:
        """Numeric names from hand-written sidecars are served as their text."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    def to_json(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


@dataclass(frozen=True)
class StoredObject:
    digest: str
    path: Path
    metadata_path: Path
    media_type: str
    suggested_name: str
    size_bytes: int
    last_modified: datetime


class ContentStore:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, digest: str) -> Path:
        return self.root / digest

    def metadata_path_for(self, digest: str) -> Path:
        return self.root / f"{digest}{METADATA_SUFFIX}"

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def exists(self, digest: str) -> bool:
        """True iff both the payload and its metadata sidecar are present."""
        if not _DIGEST_RE.match(digest):
            return False
        return self.path_for(digest).is_file() and self.metadata_path_for(digest).is_file()

    def stat(self, digest: str) -> StoredObject:
        """Describe a stored object.

        Raises :class:`NotFound` when the payload is absent,
        :class:`MetadataMissing` when only the sidecar is absent and
        :class:`MetadataUnreadable` when the sidecar cannot be parsed.
        """
        if not _DIGEST_RE.match(digest):
            raise NotFound(digest)

        path = self.path_for(digest)
        try:
            st = path.stat()
        except FileNotFoundError:
            raise NotFound(digest) from None
        if not path.is_file():
            raise NotFound(digest)

        metadata_path = self.metadata_path_for(digest)
        if not metadata_path.exists():
            raise MetadataMissing(digest)
        metadata = self._read_metadata(digest, metadata_path)

        return StoredObject(
            digest=digest,
            path=path,
            metadata_path=metadata_path,
            media_type=metadata.media_type,
            suggested_name=metadata.suggested_name or "",
            size_bytes=st.st_size,
            last_modified=datetime.fromtimestamp(st.st_mtime, tz=UTC),
        )

    def open(self, digest: str) -> BinaryIO:
        """Open the payload for binary reading."""
        if not _DIGEST_RE.match(digest):
            raise NotFound(digest)
        try:
            return self.path_for(digest).open("rb")
        except (FileNotFoundError, IsADirectoryError):
            raise NotFound(digest) from None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, digest: str, reader: BinaryIO, metadata: ObjectMetadata) -> StoredObject:
        """Store *reader* under *digest* unless the object already exists.

        An existing object is never rewritten; its description is returned
        unchanged.  Any filesystem error is raised as
        :class:`StoreWriteFailure`.
        """
        if not _DIGEST_RE.match(digest):
            raise ValueError(f"Invalid digest: {digest!r}")

        if self.exists(digest):
            logger.debug("object_exists", digest=digest)
            return self.stat(digest)

        try:
            self.ensure_root()
            path = self.path_for(digest)
            if not path.exists():
                self._publish(path, lambda handle: shutil.copyfileobj(reader, handle))
            metadata_path = self.metadata_path_for(digest)
            if not metadata_path.exists():
                self._publish(metadata_path, lambda handle: handle.write(metadata.to_json()))
        except OSError as exc:
            raise StoreWriteFailure(digest, str(exc)) from exc

        stored = self.stat(digest)
        logger.info(
            "object_stored",
            digest=digest,
            size=stored.size_bytes,
            media_type=stored.media_type,
        )
        return stored

    def _publish(self, target: Path, write) -> None:
        """Write via a temp file in the store directory, then link into place.

        ``os.link`` fails with ``FileExistsError`` if *target* appeared in the
        meantime; the other writer's copy wins and ours is discarded.
        """
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{target.name}.", suffix=".tmp")
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                write(handle)
                handle.flush()
                os.fsync(handle.fileno())
            tmp.chmod(READ_ONLY)
            try:
                os.link(tmp, target)
            except FileExistsError:
                logger.debug("object_write_race_lost", path=str(target))
        finally:
            tmp.unlink(missing_ok=True)

    def _read_metadata(self, digest: str, metadata_path: Path) -> ObjectMetadata:
        try:
            raw = metadata_path.read_bytes()
        except OSError as exc:
            raise MetadataUnreadable(digest, str(exc)) from exc
        if not raw.strip():
            raise MetadataUnreadable(digest, "empty metadata file")
        try:
            return ObjectMetadata.model_validate_json(raw)
        except ValidationError as exc:
            raise MetadataUnreadable(digest, str(exc)) from exc
