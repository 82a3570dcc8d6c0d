# recall/services/chat_service.py
"""
Answer synthesis over cross-platform search results.
"""

from dataclasses import dataclass

from recall.config import settings
from recall.infrastructure.observability.logging import get_logger
from recall.models.domain.search_domain import NormalizedMessage, Platform, SearchResult
from recall.services.openai_service import ConfigurationError, LanguageBackendError, OpenAIService
from recall.services.search_service import SearchService

logger = get_logger(__name__)

CONTEXT_CONTENT_CHARS = 800
CONTEXT_ITEM_SEPARATOR = "\n\n---\n\n"
CONTEXT_SECTION_SEPARATOR = "\n\n===\n\n"

REFINE_QUERY_RESPONSE = (
    "I couldn't find any messages matching your search. "
    "Try refining your query with a name, a topic or a time period."
)
CONNECT_ACCOUNT_RESPONSE = (
    "No accounts are connected for the selected platforms. "
    "Connect an account to search your messages."
)
FALLBACK_RESPONSE = "I encountered an error while processing your request. Please try again."

ANSWER_SYSTEM_PROMPT = """You are a helpful assistant that helps users search and understand their conversations across email, Discord and Slack.
You have access to the user's messages that match their search query.
When answering, be specific and cite relevant sources (mention sender, channel or subject, and date).
If you found relevant content, summarize what you found.
Clearly indicate which platform each piece of information comes from.
If no messages match what the user is looking for, say so clearly.

Here are the messages matching the user's search:

{context}"""


def _mail_block(message: NormalizedMessage) -> str:
    content = message.raw.get("snippet") or message.body_preview
    return (
        f"[EMAIL] From: {message.sender_label}\n"
        f"To: {message.raw.get('to', '')}\n"
        f"Subject: {message.title}\n"
        f"Date: {message.timestamp}\n"
        f"Content: {content[:CONTEXT_CONTENT_CHARS]}"
    )


def _chat_block(message: NormalizedMessage) -> str:
    return (
        f"[DISCORD] Server: {message.raw.get('guildName', '')}\n"
        f"Channel: #{message.raw.get('channelName', '')}\n"
        f"From: {message.sender_label}\n"
        f"Date: {message.timestamp}\n"
        f"Message: {message.body_preview[:CONTEXT_CONTENT_CHARS]}"
    )


def _workspace_block(message: NormalizedMessage) -> str:
    return (
        f"[SLACK] Channel: #{message.raw.get('channelName', '')}\n"
        f"Date: {message.timestamp}\n"
        f"Message: {message.body_preview[:CONTEXT_CONTENT_CHARS]}"
    )


CONTEXT_BLOCKS = {
    Platform.MAIL: _mail_block,
    Platform.CHAT: _chat_block,
    Platform.WORKSPACE: _workspace_block,
}


def build_context(result: SearchResult) -> str:
    """Per-platform sections, mail then chat then workspace."""
    sections = []
    for platform in (Platform.MAIL, Platform.CHAT, Platform.WORKSPACE):
        messages = result.results_by_platform.get(platform) or []
        if messages:
            block = CONTEXT_BLOCKS[platform]
            sections.append(CONTEXT_ITEM_SEPARATOR.join(block(message) for message in messages))
    return CONTEXT_SECTION_SEPARATOR.join(sections)


@dataclass(frozen=True)
class ChatAnswer:
    response: str
    sources: dict[Platform, list[NormalizedMessage]]
    search: SearchResult


@dataclass(frozen=True)
class RecentMessages:
    messages: list[NormalizedMessage]
    total: int


class ChatService:
    def __init__(
        self,
        backend: OpenAIService,
        search_service: SearchService,
        source_cap: int | None = None,
    ):
        self.backend = backend
        self.search_service = search_service
        self.source_cap = source_cap or settings.RESPONSE_SOURCE_CAP

    async def answer(self, user_id: str, message: str, platforms: list[str] | None) -> ChatAnswer:
        """
        Search, then ask the language backend to answer from what was found.

        Raises:
            ConfigurationError: If the language backend is not configured
        """
        result = await self.search_service.search(user_id, message, platforms)
        sources = result.sources(self.source_cap)

        if result.needs_authentication:
            return ChatAnswer(response=CONNECT_ACCOUNT_RESPONSE, sources=sources, search=result)

        if result.is_empty():
            logger.info("No results to answer from", user_id=user_id)
            return ChatAnswer(response=REFINE_QUERY_RESPONSE, sources=sources, search=result)

        system_prompt = ANSWER_SYSTEM_PROMPT.format(context=build_context(result))
        try:
            response = await self.backend.complete(
                system_prompt, message, temperature=0.7, max_tokens=1000
            )
        except ConfigurationError:
            raise
        except LanguageBackendError as e:
            logger.error("Answer synthesis failed", user_id=user_id, error=str(e))
            response = FALLBACK_RESPONSE

        return ChatAnswer(response=response, sources=sources, search=result)

    async def recent(self, user_id: str, limit: int = 5) -> RecentMessages:
        """Newest mail across every mail account, unfiltered."""
        result = await self.search_service.recent_mail(user_id)
        return RecentMessages(messages=result.messages[:limit], total=len(result.messages))
