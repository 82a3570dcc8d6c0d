# recall/services/search_service.py
"""
Cross-platform search orchestration.

Flow: intent extraction (once) -> per-platform query -> concurrent fan-out
across every account of every selected platform -> per-platform ranked lists.
"""

import asyncio
import time

from recall.config import settings
from recall.infrastructure.observability.logging import get_logger, log_pipeline_stage
from recall.models.domain.search_domain import (
    AccountHandle,
    NormalizedMessage,
    Platform,
    SearchIntent,
    SearchResult,
)
from recall.services.account_service import AccountService
from recall.services.intent_service import IntentService
from recall.services.openai_service import OpenAIService
from recall.services.query_builders import build_platform_query
from recall.services.retrieval.fan_out import FanOutResult, FanOutRetriever

logger = get_logger(__name__)


def parse_platforms(values: list[str] | None) -> list[Platform]:
    """Known platforms in request order, without duplicates. Defaults to mail."""
    if not values:
        return [Platform.MAIL]

    platforms: list[Platform] = []
    for value in values:
        platform = Platform.parse(value) if isinstance(value, str) else None
        if platform is None:
            logger.warning("Ignoring unknown platform", platform=value)
            continue
        if platform not in platforms:
            platforms.append(platform)
    return platforms


class SearchService:
    def __init__(
        self,
        backend: OpenAIService,
        intent_service: IntentService,
        account_service: AccountService,
        retriever: FanOutRetriever,
        per_account_limit: int | None = None,
    ):
        self.backend = backend
        self.intent_service = intent_service
        self.account_service = account_service
        self.retriever = retriever
        self.per_account_limit = per_account_limit or settings.SEARCH_PER_ACCOUNT_LIMIT

    async def search(self, user_id: str, free_text: str, platforms: list[str] | None) -> SearchResult:
        """
        Search every connected account of the requested platforms.

        Raises:
            ConfigurationError: If the language backend is not configured
        """
        self.backend.ensure_configured()
        started = time.perf_counter()

        selected = parse_platforms(platforms)
        intent = await self.intent_service.extract_intent(free_text)
        accounts = await self.account_service.accounts_by_platform(user_id, selected)

        if selected and all(not accounts[platform] for platform in selected):
            logger.info(
                "No accounts connected for requested platforms",
                user_id=user_id,
                platforms=[platform.value for platform in selected],
            )
            return SearchResult(
                intent=intent,
                results_by_platform={platform: [] for platform in selected},
                needs_authentication=True,
            )

        fan_outs = await asyncio.gather(
            *(
                self._search_platform(user_id, platform, accounts[platform], intent)
                for platform in selected
            )
        )

        results_by_platform: dict[Platform, list[NormalizedMessage]] = {}
        failed_accounts: list[str] = []
        for platform, fan_out in zip(selected, fan_outs):
            results_by_platform[platform] = fan_out.messages
            failed_accounts.extend(outcome.account.account_id for outcome in fan_out.failed_accounts)

        result = SearchResult(
            intent=intent,
            results_by_platform=results_by_platform,
            failed_accounts=failed_accounts,
        )

        log_pipeline_stage(
            "search",
            user_id=user_id,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            result_count=sum(result.totals().values()),
            failures=len(failed_accounts),
        )
        return result

    async def recent_mail(self, user_id: str) -> FanOutResult:
        """Most recent mail across all mail accounts, unfiltered."""
        accounts = await self.account_service.list_accounts(user_id, Platform.MAIL)
        query = build_platform_query(Platform.MAIL, SearchIntent())
        return await self.retriever.retrieve(
            accounts, query, self.per_account_limit, user_id=user_id
        )

    async def _search_platform(
        self,
        user_id: str,
        platform: Platform,
        accounts: list[AccountHandle],
        intent: SearchIntent,
    ) -> FanOutResult:
        if not accounts:
            logger.info("Platform has no connected accounts", platform=platform.value)
            return FanOutResult(messages=[], outcomes=[])

        query = build_platform_query(platform, intent)
        logger.info(
            "Platform query built",
            platform=platform.value,
            query=query.text,
            terms=query.terms,
        )

        result = await self.retriever.retrieve(
            accounts, query, self.per_account_limit, user_id=user_id
        )

        # Over-constrained mail queries fall back once to "most recent", unless every account failed
        if (
            platform is Platform.MAIL
            and not result.messages
            and query.text
            and result.succeeded_accounts
        ):
            logger.info("No mail results, fetching recent emails as fallback", query=query.text)
            result = await self.retriever.retrieve(
                accounts, query.unfiltered(), self.per_account_limit, user_id=user_id
            )

        return result
