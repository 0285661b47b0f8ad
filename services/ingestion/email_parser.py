"""Parse raw RFC 822 solicitation emails into Documents."""

import logging
import re
from datetime import datetime
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import parsedate_to_datetime
from pathlib import PurePosixPath

from services.extraction.schema import Document

logger = logging.getLogger(__name__)

DEFAULT_BODY_MAX_CHARS = 20000

HTML_TAG = re.compile(r"<[^>]+>")


def document_id_from_ref(document_ref: str) -> str:
    """Document id derived from an object store key, e.g. 'emails/abc.eml' -> 'abc'."""
    return PurePosixPath(document_ref).stem or document_ref


def parse_email_document(
    raw: bytes,
    document_ref: str,
    max_body_chars: int = DEFAULT_BODY_MAX_CHARS,
) -> Document:
    """Parse a raw email into a Document.

    The plain-text part is preferred; HTML is used with tags stripped when
    no plain-text part exists. Bodies longer than `max_body_chars` are
    truncated.

    Args:
        raw: Raw .eml bytes
        document_ref: Object store key the bytes were read from
        max_body_chars: Body length cap

    Returns:
        Parsed Document
    """
    parser = BytesParser(policy=policy.default)
    message: EmailMessage = parser.parsebytes(raw)  # type: ignore[assignment]

    body = _body_text(message).strip()
    if len(body) > max_body_chars:
        logger.info(f"Truncating body of {document_ref} from {len(body)} to {max_body_chars} chars")
        body = body[:max_body_chars]

    return Document(
        document_id=document_id_from_ref(document_ref),
        subject=str(message.get("subject", "") or ""),
        sender=str(message.get("from", "") or ""),
        recipient=str(message.get("to", "") or ""),
        body=body,
        attachments=_attachment_names(message),
        source_ref=document_ref,
        received_at=_received_at(message),
    )


def _body_text(message: EmailMessage) -> str:
    part = message.get_body(preferencelist=("plain", "html"))
    if part is None:
        return ""
    content = part.get_content()
    if part.get_content_subtype() == "html":
        content = HTML_TAG.sub(" ", content)
    return str(content)


def _attachment_names(message: EmailMessage) -> list[str]:
    names = []
    for part in message.iter_attachments():
        filename = part.get_filename()
        if filename:
            names.append(filename)
    return names


def _received_at(message: EmailMessage) -> datetime | None:
    value = message.get("date")
    if not value:
        return None
    try:
        return parsedate_to_datetime(str(value))
    except (TypeError, ValueError):
        logger.warning(f"Unparseable Date header: {value}")
        return None
