"""Shared test fixtures for the detacher test suite."""

from __future__ import annotations

import email.parser
import email.policy
import io
import logging
from email import encoders
from email.message import EmailMessage
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path

import pytest

from detacher.config import CommonConfig, DetacherConfig, MilterConfig, ServerConfig
from detacher.hashing import Hasher
from detacher.scanner import AttachmentScanner
from detacher.store import ContentStore, ObjectMetadata, StoredObject

THRESHOLD = 1024
URL_TEMPLATE = "http://{host}:{port}/{hash}"
MESSAGE_TEMPLATE = "See: {url}\n"


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Undo handlers installed by setup_logging() during a test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    return tmp_path / "store"


@pytest.fixture
def config(tmp_path: Path, store_dir: Path) -> DetacherConfig:
    return DetacherConfig(
        common=CommonConfig(dir=str(store_dir), alg="sha256", key=""),
        milter=MilterConfig(
            tmpdir=str(tmp_path / "spool"),
            size=THRESHOLD,
            urlfmt=URL_TEMPLATE,
            msgfmt=MESSAGE_TEMPLATE,
        ),
        server=ServerConfig(name="files.example.com", addr="127.0.0.1", port=8080),
        log_json=False,
    )


@pytest.fixture
def store(store_dir: Path) -> ContentStore:
    return ContentStore(store_dir)


@pytest.fixture
def hasher() -> Hasher:
    return Hasher("sha256")


@pytest.fixture
def scanner(store: ContentStore, hasher: Hasher) -> AttachmentScanner:
    return AttachmentScanner(
        store,
        hasher,
        threshold_bytes=THRESHOLD,
        url_template=URL_TEMPLATE,
        message_template=MESSAGE_TEMPLATE,
        server_host="files.example.com",
        server_port=8080,
    )


# ------------------------------------------------------------------
# Store helpers
# ------------------------------------------------------------------


def put_bytes(
    store: ContentStore,
    data: bytes,
    *,
    media_type: str = "application/pdf",
    name: str = "report.pdf",
) -> StoredObject:
    """Hash *data* with plain sha256 and put it into *store*."""
    digest = Hasher("sha256").digest(io.BytesIO(data))
    return store.put(
        digest,
        io.BytesIO(data),
        ObjectMetadata(media_type=media_type, suggested_name=name),
    )


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_plain_email(
    *,
    subject: str = "Test Subject",
    body: str = "Hello, World!",
    message_id: str = "<test-001@example.com>",
) -> bytes:
    """Build a simple plain-text email as raw bytes."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = message_id
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def _attachment_part(filename: str, content_type: str, payload: bytes) -> MIMEBase:
    maintype, subtype = content_type.split("/", 1)
    part = MIMEBase(maintype, subtype)
    part.set_payload(payload)
    encoders.encode_base64(part)
    part.add_header("Content-Disposition", "attachment", filename=filename)
    return part


def _build_multipart_email(
    *,
    body_text: str = "Plain body",
    body_html: str = "<p>HTML body</p>",
    attachments: list[tuple[str, str, bytes]] | None = None,
) -> bytes:
    """Build a multipart email with text, HTML, and optional attachments."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = "Multipart Email"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<multi-001@example.com>"
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"

    # Text + HTML alternative
    alt = MIMEMultipart("alternative")
    alt.attach(MIMEText(body_text, "plain"))
    alt.attach(MIMEText(body_html, "html"))
    msg.attach(alt)

    for filename, content_type, payload in attachments or []:
        msg.attach(_attachment_part(filename, content_type, payload))

    return msg.as_bytes()


def parse(raw: bytes) -> EmailMessage:
    return email.parser.BytesParser(policy=email.policy.default).parsebytes(raw)


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return _build_plain_email()


@pytest.fixture
def multipart_eml_bytes() -> bytes:
    return _build_multipart_email(
        attachments=[
            ("report.pdf", "application/pdf", b"%PDF-1.4 " + b"x" * 4096),
            ("data.csv", "text/csv", b"col1,col2\na,b\n"),
        ],
    )
