import base64
import json

import pytest

from recall.models.domain.gmail_domain import GmailMessage
from recall.models.domain.search_domain import AccountHandle, Platform
from recall.repositories.account_repository import InMemoryAccountRepository
from recall.repositories.message_cache import InMemoryMessageCache
from recall.services.account_service import AccountService
from recall.services.google_gmail_service import GoogleGmailError
from recall.services.intent_service import IntentService
from recall.services.openai_service import ConfigurationError
from recall.services.retrieval.fan_out import FanOutRetriever
from recall.services.retrieval.searchers import BufferedChatSearcher, GmailSearcher
from recall.services.search_service import SearchService


def encode_body(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def gmail_payload(
    message_id: str,
    subject: str = "Hello",
    sender: str = "alice@example.com",
    date: str = "Mon, 06 Jan 2025 10:00:00 +0000",
    body: str = "",
    snippet: str = "",
) -> dict:
    return {
        "id": message_id,
        "threadId": f"thread-{message_id}",
        "labelIds": ["INBOX"],
        "snippet": snippet,
        "payload": {
            "mimeType": "text/plain",
            "headers": [
                {"name": "Subject", "value": subject},
                {"name": "From", "value": sender},
                {"name": "To", "value": "me@example.com"},
                {"name": "Date", "value": date},
            ],
            "body": {"data": encode_body(body)} if body else {},
        },
    }


def make_account(
    account_id: str,
    platform: Platform = Platform.MAIL,
    token: str | None = "token",
    index: int = 0,
    **auth_context,
) -> AccountHandle:
    context = dict(auth_context)
    if token is not None:
        context["access_token"] = token
    return AccountHandle(
        platform=platform,
        account_id=account_id,
        display_label=f"{account_id}@example.com",
        auth_context=context,
        account_index=index,
    )


class FakeBackend:
    """Language backend double. ``responder`` maps (system_prompt, user_text) to output."""

    def __init__(self, responder=None, configured: bool = True):
        self.responder = responder or (lambda system_prompt, user_text: "{}")
        self.configured = configured
        self.calls: list[dict] = []

    def is_configured(self) -> bool:
        return self.configured

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError(
                "OpenAI not configured. Please set OPENAI_API_KEY environment variable."
            )

    async def complete(
        self,
        system_prompt: str,
        user_text: str,
        temperature: float = 0.0,
        max_tokens: int = 500,
        json_object: bool = False,
    ) -> str:
        self.ensure_configured()
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_text": user_text,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        result = self.responder(system_prompt, user_text)
        if isinstance(result, Exception):
            raise result
        return result


class FakeGmailService:
    """In-memory Gmail API keyed by access token."""

    def __init__(self, mailboxes: dict[str, list[dict]] | None = None):
        self.mailboxes = mailboxes or {}
        self.list_calls: list[tuple[str, str | None]] = []
        self.get_calls: list[tuple[str, str, str]] = []
        self.list_errors: dict[str, GoogleGmailError] = {}
        self.get_errors: dict[str, GoogleGmailError] = {}
        self.empty_queries: set[str] = set()

    async def list_message_ids(self, access_token, query=None, max_results=50):
        self.list_calls.append((access_token, query))
        if access_token in self.list_errors:
            raise self.list_errors[access_token]
        if query in self.empty_queries:
            return []
        return [item["id"] for item in self.mailboxes.get(access_token, [])][:max_results]

    async def get_message(self, access_token, message_id, format="full"):
        self.get_calls.append((access_token, message_id, format))
        if message_id in self.get_errors:
            raise self.get_errors[message_id]
        for item in self.mailboxes.get(access_token, []):
            if item["id"] == message_id:
                return GmailMessage(item)
        raise GoogleGmailError("Not found", "not_found", 404)


def signal_json(*signals: dict) -> str:
    return json.dumps(list(signals))



def build_search_service(backend, gmail, accounts, cache=None, user_id="user-1"):
    """SearchService over in-memory stores with ``accounts`` connected for ``user_id``."""
    repository = InMemoryAccountRepository({user_id: accounts})
    buffered = BufferedChatSearcher(cache or InMemoryMessageCache())
    retriever = FanOutRetriever(
        {
            Platform.MAIL: GmailSearcher(gmail),
            Platform.CHAT: buffered,
            Platform.WORKSPACE: buffered,
        },
        account_repository=repository,
    )
    return SearchService(backend, IntentService(backend), AccountService(repository), retriever)


class FakeRedis:
    """Stands in for RedisClient: string keys and hashes, no TTL handling."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def set(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        return True

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self.hashes.get(key, {}))

    async def hset(self, key: str, field: str, value: str) -> None:
        self.hashes.setdefault(key, {})[field] = value

    async def hdel(self, key: str, field: str) -> bool:
        return self.hashes.get(key, {}).pop(field, None) is not None


@pytest.fixture
def fake_redis():
    return FakeRedis()
