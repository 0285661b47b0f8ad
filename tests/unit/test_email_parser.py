"""Unit tests for raw email parsing."""

from datetime import UTC, datetime
from email.message import EmailMessage

import pytest

from services.ingestion.email_parser import document_id_from_ref, parse_email_document


@pytest.fixture
def message() -> EmailMessage:
    """Plain-text solicitation email with headers."""
    msg = EmailMessage()
    msg["Subject"] = "SEWP V RFQ SEWP-2024-0142 - Nutanix HCI refresh"
    msg["From"] = "quotes@sewp.nasa.gov"
    msg["To"] = "bids@example.com"
    msg["Date"] = "Mon, 10 Mar 2025 09:30:00 -0500"
    msg.set_content("Please quote 4 Nutanix NX-3060 nodes.\nTAA compliance required.")
    return msg


def test_document_id_from_ref() -> None:
    assert document_id_from_ref("emails/2025/abc123.eml") == "abc123"
    assert document_id_from_ref("abc123") == "abc123"


class TestParseEmailDocument:
    """Test conversion of raw emails to Documents."""

    def test_headers_and_body(self, message: EmailMessage) -> None:
        """Headers map to document fields and the body is trimmed."""
        document = parse_email_document(message.as_bytes(), "emails/abc123.eml")

        assert document.document_id == "abc123"
        assert document.source_ref == "emails/abc123.eml"
        assert document.subject == "SEWP V RFQ SEWP-2024-0142 - Nutanix HCI refresh"
        assert document.sender == "quotes@sewp.nasa.gov"
        assert document.recipient == "bids@example.com"
        assert document.body == (
            "Please quote 4 Nutanix NX-3060 nodes.\nTAA compliance required."
        )
        assert document.attachments == []

    def test_received_at(self, message: EmailMessage) -> None:
        """The Date header is parsed to an aware datetime."""
        document = parse_email_document(message.as_bytes(), "abc123.eml")

        assert document.received_at == datetime(2025, 3, 10, 14, 30, tzinfo=UTC)

    def test_raw_bytes_without_date(self) -> None:
        """A minimal message without a Date header still parses."""
        raw = b"Subject: Quote request\r\nFrom: buyer@agency.gov\r\n\r\nNeed 10 laptops.\r\n"

        document = parse_email_document(raw, "doc-7")

        assert document.document_id == "doc-7"
        assert document.subject == "Quote request"
        assert document.body == "Need 10 laptops."
        assert document.received_at is None

    def test_html_fallback(self) -> None:
        """HTML bodies are used with tags stripped when no plain part exists."""
        msg = EmailMessage()
        msg["Subject"] = "RFQ"
        msg.set_content("<p>Deliver to <b>Greenbelt, MD</b></p>", subtype="html")

        document = parse_email_document(msg.as_bytes(), "doc-1")

        assert "<" not in document.body
        assert "Deliver to" in document.body
        assert "Greenbelt, MD" in document.body

    def test_attachments(self, message: EmailMessage) -> None:
        """Attachment filenames are collected; the plain part stays the body."""
        message.add_attachment(
            b"%PDF-1.4", maintype="application", subtype="pdf", filename="SOW.pdf"
        )

        document = parse_email_document(message.as_bytes(), "doc-1")

        assert document.attachments == ["SOW.pdf"]
        assert document.body.startswith("Please quote 4 Nutanix")

    def test_body_truncated(self, message: EmailMessage) -> None:
        """Bodies longer than the cap are cut."""
        document = parse_email_document(message.as_bytes(), "doc-1", max_body_chars=10)

        assert document.body == "Please quo"
