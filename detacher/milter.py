"""Milter mode: read a message, detach oversized parts, write it back out.

The input is spooled through ``milter.tmpdir`` (large messages spill to
disk there and are removed afterwards), parsed with ``email.policy.default``
and scanned.  The rewritten message is written only after the whole scan
succeeded, so a failure never produces a half-detached message.
"""

from __future__ import annotations

import email.generator
import email.parser
import email.policy
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO

import structlog

from .config import DetacherConfig
from .scanner import AttachmentScanner, DetachedPart

logger = structlog.get_logger()

SPOOL_MAX_BYTES = 8 * 1024 * 1024

# No header refolding: headers we did not touch are emitted as received.
OUTPUT_POLICY = email.policy.default.clone(max_line_length=None)


def run_milter(
    config: DetacherConfig,
    source: BinaryIO,
    sink: BinaryIO,
    scanner: AttachmentScanner | None = None,
) -> list[DetachedPart]:
    """Filter one message from *source* to *sink*.

    Returns the parts that were detached.  Errors propagate and leave
    *sink* untouched.
    """
    if scanner is None:
        scanner = AttachmentScanner.from_config(config)
    tmpdir = _prepare_tmpdir(config.milter.tmpdir)

    with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES, dir=tmpdir) as spool:
        shutil.copyfileobj(source, spool)
        size = spool.tell()
        spool.seek(0)
        message = email.parser.BytesParser(policy=email.policy.default).parse(spool)

    logger.debug("milter_message_parsed", size=size, multipart=message.is_multipart())
    scanner.scan(message)

    generator = email.generator.BytesGenerator(sink, mangle_from_=False, policy=OUTPUT_POLICY)
    generator.flatten(message)
    sink.flush()

    logger.info(
        "milter_message_filtered",
        message_id=message.get("Message-ID", ""),
        size=size,
        detached=len(scanner.detached),
    )
    return list(scanner.detached)


def _prepare_tmpdir(tmpdir: str) -> Path:
    """Create *tmpdir* owner-only if it does not exist yet."""
    path = Path(tmpdir)
    if not path.exists():
        path.mkdir(parents=True, mode=0o700)
    return path
