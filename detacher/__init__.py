"""Detacher: move large email attachments into a content-addressed store
and serve them back over HTTP.
"""

from .config import CommonConfig, DetacherConfig, MilterConfig, ServerConfig, load_config
from .errors import (
    ConfigError,
    DetacherError,
    DetachFailed,
    MalformedRequest,
    MetadataMissing,
    MetadataUnreadable,
    NotFound,
    StoreWriteFailure,
    UnsupportedAlgorithm,
)
from .hashing import Hasher, digest, resolve_algorithm
from .logging import setup_logging
from .retrieval import RetrievalHandler, RetrievalResponse
from .scanner import AttachmentScanner, DetachedPart
from .store import ContentStore, ObjectMetadata, StoredObject
from .templates import build_message, build_url

__all__ = [
    "AttachmentScanner",
    "CommonConfig",
    "ConfigError",
    "ContentStore",
    "DetachFailed",
    "DetachedPart",
    "DetacherConfig",
    "DetacherError",
    "Hasher",
    "MalformedRequest",
    "MetadataMissing",
    "MetadataUnreadable",
    "MilterConfig",
    "NotFound",
    "ObjectMetadata",
    "RetrievalHandler",
    "RetrievalResponse",
    "ServerConfig",
    "StoreWriteFailure",
    "StoredObject",
    "UnsupportedAlgorithm",
    "build_message",
    "build_url",
    "digest",
    "load_config",
    "resolve_algorithm",
    "setup_logging",
]
