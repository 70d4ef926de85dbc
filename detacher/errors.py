"""Exception taxonomy shared by the milter and server paths."""

from __future__ import annotations


class DetacherError(Exception):
    """Base class for every error raised by detacher."""


class ConfigError(DetacherError):
    """The configuration file could not be read, parsed, or validated."""


class UnsupportedAlgorithm(DetacherError):
    """The configured hash algorithm is not recognised."""

    def __init__(self, algorithm: str) -> None:
        super().__init__(f"Unsupported hash algorithm: {algorithm!r}")
        self.algorithm = algorithm


class StoreWriteFailure(DetacherError):
    """An I/O error occurred while writing an object into the store."""

    def __init__(self, digest: str, reason: str) -> None:
        super().__init__(f"Failed to store {digest}: {reason}")
        self.digest = digest
        self.reason = reason


class NotFound(DetacherError):
    """No payload exists for the requested digest."""

    def __init__(self, digest: str) -> None:
        super().__init__(f"No object stored for {digest!r}")
        self.digest = digest


class MetadataMissing(DetacherError):
    """The payload exists but its metadata sidecar does not."""

    def __init__(self, digest: str) -> None:
        super().__init__(f"Metadata for {digest} not found")
        self.digest = digest


class MetadataUnreadable(DetacherError):
    """The metadata sidecar exists but cannot be read or parsed."""

    def __init__(self, digest: str, reason: str = "") -> None:
        super().__init__(f"Metadata for {digest} not readable")
        self.digest = digest
        self.reason = reason


class MalformedRequest(DetacherError):
    """The request cannot be served (e.g. a method other than GET)."""


class DetachFailed(DetacherError):
    """Detaching one part failed; the whole scan is aborted.

    ``position`` is the dotted child-index path of the failing part
    (``""`` for the root), ``digest`` is set when hashing succeeded
    before the failure.
    """

    def __init__(self, position: str, digest: str | None, cause: BaseException) -> None:
        where = position or "<root>"
        super().__init__(f"Failed to detach part {where} (digest={digest}): {cause}")
        self.position = position
        self.digest = digest
        self.cause = cause
