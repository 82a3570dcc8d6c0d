"""
REST clients for the chat (Discord) and workspace (Slack) platforms.
Used only by buffer sync; search and signal scanning read the synced buffers.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import httpx

from recall.infrastructure.observability.logging import get_logger
from recall.models.domain.chat_domain import DiscordMessage, SlackMessage
from recall.models.domain.search_domain import Platform

logger = get_logger(__name__)

SLACK_API_BASE_URL = "https://slack.com/api"
DISCORD_API_BASE_URL = "https://discord.com/api/v10"

REQUEST_TIMEOUT = 15.0
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

# Discord channel types that carry text messages (guild text, DM, announcement)
DISCORD_TEXT_CHANNEL_TYPES = {0, 1, 5}


class PlatformClientError(Exception):
    """Raised when a chat/workspace API call fails."""

    def __init__(
        self,
        message: str,
        platform: Platform,
        status_code: int | None = None,
        auth_expired: bool = False,
    ):
        super().__init__(message)
        self.platform = platform
        self.status_code = status_code
        self.auth_expired = auth_expired


@asynccontextmanager
async def _client_scope(http_client: httpx.AsyncClient | None):
    """Yield the injected client as-is, or a short-lived one that is closed after use."""
    if http_client is not None:
        yield http_client
        return
    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
        yield client


async def _get_with_retry(
    client: httpx.AsyncClient,
    url: str,
    params: dict | None,
    headers: dict,
    operation: str,
    platform: Platform,
) -> httpx.Response:
    """GET with retry/backoff on transient statuses and transport errors."""
    last_error: Exception | None = None

    for attempt in range(1, MAX_RETRIES + 1):
        try:
            response = await client.get(url, params=params, headers=headers)

            if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                wait_time = float(response.headers.get("Retry-After", BACKOFF_FACTOR**attempt))
                logger.warning(
                    "Platform API transient status",
                    platform=platform.value,
                    operation=operation,
                    status_code=response.status_code,
                    attempt=attempt,
                    wait_time=wait_time,
                )
                await asyncio.sleep(wait_time)
                continue

            return response

        except httpx.RequestError as exc:
            last_error = exc

            if attempt == MAX_RETRIES:
                break

            wait_time = BACKOFF_FACTOR**attempt
            logger.warning(
                "Platform API request error, retrying",
                platform=platform.value,
                operation=operation,
                attempt=attempt,
                wait_time=wait_time,
                error=str(exc),
            )
            await asyncio.sleep(wait_time)

    raise PlatformClientError(
        f"{operation} failed: {last_error}", platform=platform
    ) from last_error


class SlackClient:
    """Workspace platform client (Slack Web API)."""

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self._http_client = http_client

    async def _call(self, client: httpx.AsyncClient, method: str, token: str, params: dict) -> dict:
        response = await _get_with_retry(
            client,
            f"{SLACK_API_BASE_URL}/{method}",
            params,
            {"Authorization": f"Bearer {token}"},
            method,
            Platform.WORKSPACE,
        )
        try:
            data = response.json()
        except ValueError as e:
            raise PlatformClientError(
                f"Slack {method} returned invalid JSON",
                platform=Platform.WORKSPACE,
                status_code=response.status_code,
            ) from e

        if not data.get("ok"):
            error = data.get("error", "unknown_error")
            raise PlatformClientError(
                f"Slack {method} failed: {error}",
                platform=Platform.WORKSPACE,
                status_code=response.status_code,
                auth_expired=error in {"invalid_auth", "token_revoked", "account_inactive"},
            )
        return data

    async def fetch_recent_messages(
        self,
        token: str,
        max_channels: int = 10,
        per_channel: int = 50,
    ) -> list[SlackMessage]:
        """
        Fetch recent human messages from the first ``max_channels`` conversations.

        A channel whose history cannot be read is skipped.
        """
        async with self._client() as client:
            channels_data = await self._call(
                client,
                "conversations.list",
                token,
                {"types": "public_channel,private_channel,im,mpim", "limit": 100},
            )

            messages: list[SlackMessage] = []
            for channel in channels_data.get("channels", [])[:max_channels]:
                try:
                    history = await self._call(
                        client,
                        "conversations.history",
                        token,
                        {"channel": channel["id"], "limit": per_channel},
                    )
                except PlatformClientError as e:
                    logger.warning(
                        "Skipping Slack channel", channel_id=channel.get("id"), error=str(e)
                    )
                    continue

                for payload in history.get("messages", []):
                    if payload.get("text") and not payload.get("subtype"):
                        messages.append(SlackMessage.from_api(payload, channel))

        return messages

    def _client(self):
        return _client_scope(self._http_client)


class DiscordClient:
    """Chat platform client (Discord REST API, bot-token authenticated)."""

    def __init__(self, bot_token: str | None, http_client: httpx.AsyncClient | None = None):
        self.bot_token = bot_token
        self._http_client = http_client

    async def _call(self, client: httpx.AsyncClient, path: str, params: dict | None = None) -> Any:
        if not self.bot_token:
            raise PlatformClientError("Discord bot token not configured", platform=Platform.CHAT)

        response = await _get_with_retry(
            client,
            f"{DISCORD_API_BASE_URL}{path}",
            params,
            {"Authorization": f"Bot {self.bot_token}"},
            path,
            Platform.CHAT,
        )
        if response.status_code >= 400:
            raise PlatformClientError(
                f"Discord {path} failed (HTTP {response.status_code})",
                platform=Platform.CHAT,
                status_code=response.status_code,
                auth_expired=response.status_code == 401,
            )
        return response.json()

    async def fetch_recent_messages(
        self,
        guild_ids: list[str],
        per_channel: int = 20,
    ) -> list[DiscordMessage]:
        """
        Fetch recent non-bot messages from every readable text channel of the
        given guilds. Guilds and channels the bot cannot read are skipped.
        """
        messages: list[DiscordMessage] = []

        async with self._client() as client:
            for guild_id in guild_ids:
                try:
                    guild = await self._call(client, f"/guilds/{guild_id}")
                    channels = await self._call(client, f"/guilds/{guild_id}/channels")
                except PlatformClientError as e:
                    logger.warning("Bot cannot access guild", guild_id=guild_id, error=str(e))
                    continue

                for channel in channels:
                    if channel.get("type") not in DISCORD_TEXT_CHANNEL_TYPES:
                        continue
                    try:
                        payloads = await self._call(
                            client, f"/channels/{channel['id']}/messages", {"limit": per_channel}
                        )
                    except PlatformClientError:
                        continue

                    for payload in payloads:
                        if payload.get("author", {}).get("bot"):
                            continue
                        messages.append(DiscordMessage.from_api(payload, channel, guild))

        return messages

    def _client(self):
        return _client_scope(self._http_client)
