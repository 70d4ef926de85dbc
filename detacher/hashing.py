"""Keyed content digests.

The digest of a payload is the named hash applied to the secret key bytes
followed by the payload bytes, in a single pass.  With an empty key this is
a plain content hash.
"""

from __future__ import annotations

import hashlib
import re
from typing import BinaryIO

from .errors import UnsupportedAlgorithm

CHUNK_SIZE = 1024 * 1024

# SHA family spellings accepted in config files: "SHA-256", "sha256", "256",
# "sha512/224" and so on.
_SHA_BITS = {
    "1": "sha1",
    "224": "sha224",
    "256": "sha256",
    "384": "sha384",
    "512": "sha512",
    "512224": "sha512_224",
    "512256": "sha512_256",
}


def resolve_algorithm(name: str) -> str:
    """Map a configured algorithm name onto a :mod:`hashlib` name.

    Raises :class:`UnsupportedAlgorithm` for unknown names and for
    variable-length digests (``shake_*``), which have no fixed hex form.
    """
    normalized = name.strip().lower()
    compact = re.sub(r"[-_/]", "", normalized)
    bits = compact[3:] if compact.startswith("sha") else compact
    candidate = _SHA_BITS.get(bits, normalized.replace("-", "_"))

    if not candidate or candidate.startswith("shake"):
        raise UnsupportedAlgorithm(name)
    try:
        hashlib.new(candidate)
    except (TypeError, ValueError):
        raise UnsupportedAlgorithm(name) from None
    return candidate


def _key_bytes(key: str | bytes) -> bytes:
    return key.encode("utf-8") if isinstance(key, str) else key


def digest(algorithm: str, key: str | bytes, reader: BinaryIO) -> str:
    """Stream *reader* through *algorithm*, feeding *key* first."""
    return Hasher(algorithm, key).digest(reader)


class Hasher:
    """Digest calculator bound to one algorithm and key.

    The algorithm is resolved at construction so a bad configuration fails
    at startup rather than on the first oversized attachment.
    """

    def __init__(self, algorithm: str, key: str | bytes = "") -> None:
        self._algorithm = resolve_algorithm(algorithm)
        self._key = _key_bytes(key)

    @property
    def algorithm(self) -> str:
        return self._algorithm

    def digest(self, reader: BinaryIO) -> str:
        hasher = hashlib.new(self._algorithm)
        hasher.update(self._key)
        for chunk in iter(lambda: reader.read(CHUNK_SIZE), b""):
            hasher.update(chunk)
        return hasher.hexdigest().lower()
