# recall/dependencies.py
"""
Service wiring.

Routes receive services through these providers so tests can swap them with
``app.dependency_overrides``. Redis-backed stores are used when REDIS_URL is
set, in-memory stores otherwise.
"""

from recall.config import settings
from recall.models.domain.search_domain import Platform
from recall.repositories.account_repository import (
    AccountRepository,
    InMemoryAccountRepository,
    RedisAccountRepository,
)
from recall.repositories.message_cache import (
    InMemoryMessageCache,
    MessageCache,
    RedisMessageCache,
)
from recall.services.account_service import AccountService
from recall.services.chat_clients import DiscordClient, SlackClient
from recall.services.chat_service import ChatService
from recall.services.google_gmail_service import google_gmail_service
from recall.services.infrastructure.redis_client import redis_client
from recall.services.intent_service import IntentService
from recall.services.openai_service import OpenAIService
from recall.services.retrieval.fan_out import FanOutRetriever
from recall.services.retrieval.searchers import BufferedChatSearcher, GmailSearcher
from recall.services.search_service import SearchService
from recall.services.signal_service import (
    BufferedSignalSource,
    GmailSignalSource,
    SignalService,
)
from recall.services.sync_service import SyncService

account_repository: AccountRepository
message_cache: MessageCache

if redis_client.enabled:
    account_repository = RedisAccountRepository(redis_client)
    message_cache = RedisMessageCache(redis_client)
else:
    account_repository = InMemoryAccountRepository()
    message_cache = InMemoryMessageCache()

openai_service = OpenAIService()
account_service = AccountService(account_repository)

_buffered_searcher = BufferedChatSearcher(message_cache)
fan_out_retriever = FanOutRetriever(
    searchers={
        Platform.MAIL: GmailSearcher(google_gmail_service),
        Platform.CHAT: _buffered_searcher,
        Platform.WORKSPACE: _buffered_searcher,
    },
    account_repository=account_repository,
)

search_service = SearchService(
    openai_service,
    IntentService(openai_service),
    account_service,
    fan_out_retriever,
)
chat_service = ChatService(openai_service, search_service)

_buffered_signal_source = BufferedSignalSource(message_cache)
signal_service = SignalService(
    openai_service,
    account_service,
    sources={
        Platform.MAIL: GmailSignalSource(google_gmail_service),
        Platform.CHAT: _buffered_signal_source,
        Platform.WORKSPACE: _buffered_signal_source,
    },
)

sync_service = SyncService(
    account_service,
    message_cache,
    SlackClient(),
    DiscordClient(settings.DISCORD_BOT_TOKEN),
)


def get_search_service() -> SearchService:
    return search_service


def get_chat_service() -> ChatService:
    return chat_service


def get_signal_service() -> SignalService:
    return signal_service


def get_sync_service() -> SyncService:
    return sync_service
