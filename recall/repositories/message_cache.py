"""
Synced message buffers for platforms without server-side search.
Buffers are keyed by platform + account and hold raw message dicts, newest first.
"""

import json
from typing import Any, Protocol

from recall.infrastructure.observability.logging import get_logger
from recall.models.domain.search_domain import Platform
from recall.services.infrastructure.redis_client import RedisClient

logger = get_logger(__name__)


def merge_message_buffers(
    new_items: list[dict[str, Any]],
    existing_items: list[dict[str, Any]],
    cap: int,
) -> list[dict[str, Any]]:
    """
    Merge a fresh fetch into a stored buffer.

    New items come first; any existing item whose id reappears in the fresh
    fetch is dropped (new replaces old). The result is capped to ``cap``.
    """
    new_ids = {item.get("id") for item in new_items}
    retained = [item for item in existing_items if item.get("id") not in new_ids]
    return [*new_items, *retained][:cap]


class MessageCache(Protocol):
    async def get_buffer(self, platform: Platform, account_id: str) -> list[dict[str, Any]]: ...

    async def set_buffer(
        self, platform: Platform, account_id: str, items: list[dict[str, Any]]
    ) -> None: ...


class InMemoryMessageCache:
    def __init__(self):
        self._buffers: dict[tuple[Platform, str], list[dict[str, Any]]] = {}

    async def get_buffer(self, platform: Platform, account_id: str) -> list[dict[str, Any]]:
        return list(self._buffers.get((platform, account_id), []))

    async def set_buffer(
        self, platform: Platform, account_id: str, items: list[dict[str, Any]]
    ) -> None:
        self._buffers[(platform, account_id)] = list(items)


class RedisMessageCache:
    KEY_PREFIX = "recall:buffer"

    def __init__(self, client: RedisClient):
        self.client = client

    def _key(self, platform: Platform, account_id: str) -> str:
        return f"{self.KEY_PREFIX}:{platform.value}:{account_id}"

    async def get_buffer(self, platform: Platform, account_id: str) -> list[dict[str, Any]]:
        payload = await self.client.get(self._key(platform, account_id))
        if not payload:
            return []
        try:
            items = json.loads(payload)
        except json.JSONDecodeError as e:
            logger.warning(
                "Discarding unreadable message buffer",
                platform=platform.value,
                account_id=account_id,
                error=str(e),
            )
            return []
        return items if isinstance(items, list) else []

    async def set_buffer(
        self, platform: Platform, account_id: str, items: list[dict[str, Any]]
    ) -> None:
        await self.client.set(self._key(platform, account_id), json.dumps(items))
