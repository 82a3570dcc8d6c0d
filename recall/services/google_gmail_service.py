"""
Read-only Gmail API client: list message ids for a query and fetch
individual messages. Blocking HTTP runs in a worker thread so fan-out across
accounts stays concurrent.
"""

import asyncio

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from recall.infrastructure.observability.logging import get_logger
from recall.models.domain.gmail_domain import GmailMessage

logger = get_logger(__name__)

# Google Gmail API configuration
GMAIL_API_BASE_URL = "https://gmail.googleapis.com/gmail/v1"
GMAIL_USER_ID = "me"
GMAIL_LIST_MAX = 500

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 30
MAX_RETRIES = 3
BACKOFF_FACTOR = 2

METADATA_HEADERS = ["From", "To", "Subject", "Date"]

STATUS_MESSAGES = {
    "400": "Invalid Gmail request format.",
    "401": "Gmail authorization expired. Please reconnect.",
    "403": "Gmail access denied. Please check permissions.",
    "404": "Email message not found.",
    "429": "Too many Gmail requests. Please try again later.",
    "500": "Gmail service temporarily unavailable.",
}


class GoogleGmailError(Exception):
    """Gmail API failure; ``status_code`` is None for transport errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}

    def is_auth_error(self) -> bool:
        """True when the credential is expired or revoked."""
        if self.status_code == 401:
            return True
        error_field = self.response_data.get("error")
        if error_field == "invalid_grant":
            return True
        return "invalid_grant" in str(self)


class GoogleGmailService:
    """Lists and fetches messages for one OAuth token at a time. Retries live in the session."""

    def __init__(self, session: requests.Session | None = None):
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()

        retry_strategy = Retry(
            total=MAX_RETRIES,
            backoff_factor=BACKOFF_FACTOR,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("https://", adapter)

        return session

    def _auth_headers(self, access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    def _decode(self, response: requests.Response, operation: str) -> dict:
        """
        Return the JSON body of a successful response.

        Raises:
            GoogleGmailError: On a non-2xx status or an unparseable body
        """
        if not response.ok:
            raise self._error_from(response, operation)

        if not response.text:
            return {}
        try:
            return response.json()
        except ValueError as e:
            logger.error("Unparseable Gmail response", operation=operation, error=str(e))
            raise GoogleGmailError(f"Unparseable Gmail response: {e}") from e

    def _error_from(self, response: requests.Response, operation: str) -> GoogleGmailError:
        status = response.status_code
        try:
            body = response.json() if response.text else {}
        except ValueError:
            body = {}

        detail = body.get("error", {})
        if isinstance(detail, dict):
            code = str(detail.get("code", status))
            reason = detail.get("message", "unknown error")
        else:
            # token endpoint shape: {"error": "invalid_grant", "error_description": ...}
            code = str(status)
            reason = body.get("error_description", str(detail))

        logger.error(
            "Gmail request rejected",
            operation=operation,
            status_code=status,
            error_code=code,
            reason=reason,
        )
        return GoogleGmailError(
            STATUS_MESSAGES.get(code, f"Gmail error: {reason}"),
            error_code=code,
            status_code=status,
            response_data=body,
        )

    def _get(self, url: str, access_token: str, params: dict | list, operation: str) -> dict:
        try:
            response = self._session.get(
                url,
                headers=self._auth_headers(access_token),
                params=params,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.error("Gmail request did not complete", operation=operation, error=str(e))
            raise GoogleGmailError(f"Gmail request failed: {e}") from e
        return self._decode(response, operation)

    async def list_message_ids(
        self,
        access_token: str,
        query: str | None = None,
        max_results: int = 50,
    ) -> list[str]:
        """
        List message ids matching a Gmail search query, in Gmail's listing order.

        Args:
            access_token: Valid OAuth access token
            query: Gmail search query; None or "" lists the most recent messages
            max_results: Upper bound on ids returned

        Raises:
            GoogleGmailError: If listing fails
        """
        url = f"{GMAIL_API_BASE_URL}/users/{GMAIL_USER_ID}/messages"
        params: dict = {"maxResults": min(max_results, GMAIL_LIST_MAX)}
        if query:
            params["q"] = query

        logger.debug("Listing Gmail messages", max_results=max_results, query=query)

        data = await asyncio.to_thread(self._get, url, access_token, params, "list_messages")
        return [msg["id"] for msg in data.get("messages", []) if msg.get("id")]

    async def get_message(
        self,
        access_token: str,
        message_id: str,
        format: str = "full",
    ) -> GmailMessage:
        """
        Get a specific message by ID.

        Args:
            access_token: Valid OAuth access token
            message_id: Gmail message ID
            format: "full" for bodies, "metadata" for headers and snippet only

        Raises:
            GoogleGmailError: If getting message fails
        """
        url = f"{GMAIL_API_BASE_URL}/users/{GMAIL_USER_ID}/messages/{message_id}"
        params: list[tuple[str, str]] = [("format", format)]
        if format == "metadata":
            params.extend(("metadataHeaders", header) for header in METADATA_HEADERS)

        data = await asyncio.to_thread(self._get, url, access_token, params, "get_message")
        return GmailMessage(data)


google_gmail_service = GoogleGmailService()
