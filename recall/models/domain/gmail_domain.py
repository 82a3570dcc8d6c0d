# recall/models/domain/gmail_domain.py
"""
Gmail Domain Models
Wraps raw Gmail API message payloads and adapts them to NormalizedMessage.
"""

from datetime import UTC, datetime

from recall.models.domain.search_domain import AccountHandle, NormalizedMessage, Platform
from recall.models.domain.signal_domain import SignalDocument
from recall.utils.text import collapse_whitespace, decode_base64url, html_to_text, truncate


class GmailMessage:
    """Domain model for a Gmail message (``full`` or ``metadata`` format)."""

    def __init__(self, data: dict):
        self.id = data.get("id")
        self.thread_id = data.get("threadId")
        self.label_ids = data.get("labelIds", [])
        self.snippet = data.get("snippet", "") or ""
        self.internal_date = data.get("internalDate")
        self.payload = data.get("payload", {}) or {}
        self.raw_data = data

        self._parse_headers()
        self._parse_body()

    def _parse_headers(self):
        """Parse email headers from payload."""
        headers = self.payload.get("headers", [])
        self.headers = {h["name"].lower(): h.get("value", "") for h in headers if h.get("name")}

        self.subject = self.headers.get("subject", "")
        self.sender = self.headers.get("from", "")
        self.to = self.headers.get("to", "")
        self.date = self.headers.get("date", "")

    def _parse_body(self):
        """Decode the body, preferring text/plain over text/html at any depth."""
        self.body_text = ""
        self.body_html = ""

        if not self.payload:
            return

        self._collect_part(self.payload)

    def _collect_part(self, part: dict):
        mime_type = part.get("mimeType", "")
        data = part.get("body", {}).get("data")

        if mime_type.startswith("multipart/") or part.get("parts"):
            for child in part.get("parts", []):
                self._collect_part(child)
            return

        if not data:
            return

        if mime_type == "text/html":
            if not self.body_html:
                self.body_html = decode_base64url(data)
        elif mime_type == "text/plain" or not mime_type:
            if not self.body_text:
                self.body_text = decode_base64url(data)

    @property
    def body(self) -> str:
        """Plain-text body: text/plain if present, otherwise stripped text/html."""
        if self.body_text:
            return self.body_text.strip()
        if self.body_html:
            return html_to_text(self.body_html)
        return ""

    def get_received_datetime(self) -> datetime | None:
        """Get received datetime from internal date."""
        if self.internal_date:
            try:
                # Internal date is in milliseconds
                timestamp = int(self.internal_date) / 1000
                return datetime.fromtimestamp(timestamp, tz=UTC)
            except (ValueError, OSError):
                pass
        return None

    def get_timestamp(self) -> str:
        """Date header as sent, falling back to the server-side internal date."""
        if self.date:
            return self.date
        received = self.get_received_datetime()
        return received.isoformat() if received else ""

    def normalize(self, account: AccountHandle, url: str, preview_chars: int) -> NormalizedMessage:
        return NormalizedMessage(
            id=self.id,
            platform=Platform.MAIL,
            account_label=account.display_label,
            title=self.subject or "(No Subject)",
            sender_label=self.sender,
            timestamp=self.get_timestamp(),
            body_preview=truncate(self.body, preview_chars),
            external_url=url,
            raw={
                "thread_id": self.thread_id,
                "to": self.to,
                "snippet": self.snippet,
                "labels": self.label_ids,
                "account_email": account.display_label,
                "account_index": account.account_index,
            },
        )

    def to_signal_document(self, url: str, body: str | None = None) -> SignalDocument:
        return SignalDocument(
            id=self.id,
            subject=self.subject or "No Subject",
            body=collapse_whitespace(body if body is not None else self.body),
            sender_label=self.sender,
            timestamp=self.get_timestamp(),
            url=url,
        )
