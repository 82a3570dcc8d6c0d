# recall/models/domain/chat_domain.py
"""
Chat and Workspace Domain Models
Buffered Discord and Slack messages. Neither platform offers server-side
free-text search to this app, so messages are synced into a per-account
buffer and filtered locally.
"""

from typing import Any

from recall.models.domain.search_domain import AccountHandle, NormalizedMessage, Platform
from recall.models.domain.signal_domain import SignalDocument
from recall.utils.text import decode_entities, epoch_to_iso, truncate


class BufferedMessage:
    """Common behaviour for messages held in a synced buffer."""

    platform: Platform

    def __init__(self, data: dict):
        self.data = data
        self.id = data.get("id", "")
        self.timestamp = data.get("timestamp", "")
        self.channel_name = data.get("channelName", "")

    @property
    def text(self) -> str:
        raise NotImplementedError

    def search_text(self) -> str:
        raise NotImplementedError

    def matches(self, terms: list[str]) -> bool:
        """Case-insensitive OR substring match. No terms matches everything."""
        if not terms:
            return True
        haystack = self.search_text().lower()
        return any(term.lower() in haystack for term in terms)

    def to_dict(self) -> dict[str, Any]:
        return dict(self.data)


class DiscordMessage(BufferedMessage):
    platform = Platform.CHAT

    def __init__(self, data: dict):
        super().__init__(data)
        self.guild_name = data.get("guildName", "Direct Message")
        self.author_username = data.get("authorUsername", "")
        self.content = data.get("content", "")
        self.url = data.get("url", "")

    @classmethod
    def from_api(cls, payload: dict, channel: dict, guild: dict | None) -> "DiscordMessage":
        """Build a buffer entry from a Discord REST message object."""
        guild_id = (guild or {}).get("id")
        channel_id = channel.get("id", "")
        message_id = payload.get("id", "")
        url = (
            f"https://discord.com/channels/{guild_id or '@me'}/{channel_id}/{message_id}"
            if message_id
            else ""
        )
        return cls(
            {
                "id": f"discord-{message_id}",
                "platform": Platform.CHAT.value,
                "channelId": channel_id,
                "channelName": channel.get("name") or "DM",
                "guildId": guild_id,
                "guildName": (guild or {}).get("name") or "Direct Message",
                "authorId": payload.get("author", {}).get("id"),
                "authorUsername": payload.get("author", {}).get("username", ""),
                "content": payload.get("content", ""),
                "timestamp": payload.get("timestamp", ""),
                "url": url,
            }
        )

    @property
    def text(self) -> str:
        return self.content

    def search_text(self) -> str:
        return f"{self.content} {self.author_username} {self.channel_name} {self.guild_name}"

    def normalize(self, account: AccountHandle, preview_chars: int) -> NormalizedMessage:
        return NormalizedMessage(
            id=self.id,
            platform=self.platform,
            account_label=account.display_label,
            title=f"#{self.channel_name} in {self.guild_name}",
            sender_label=self.author_username,
            timestamp=self.timestamp,
            body_preview=truncate(self.content, preview_chars),
            external_url=self.url,
            raw=self.to_dict(),
        )

    def to_signal_document(self) -> SignalDocument:
        return SignalDocument(
            id=self.id,
            subject=f"#{self.channel_name} in {self.guild_name}",
            body=self.content,
            sender_label=self.author_username,
            timestamp=self.timestamp,
            url=self.url,
        )


class SlackMessage(BufferedMessage):
    platform = Platform.WORKSPACE

    def __init__(self, data: dict):
        super().__init__(data)
        self.raw_text = data.get("text", "")
        self.user_id = data.get("userId", "")

    @classmethod
    def from_api(cls, payload: dict, channel: dict) -> "SlackMessage":
        """Build a buffer entry from a Slack ``conversations.history`` message."""
        ts = payload.get("ts", "0")
        try:
            timestamp = epoch_to_iso(float(ts))
        except (TypeError, ValueError):
            timestamp = ""
        return cls(
            {
                "id": f"slack-{ts}",
                "platform": Platform.WORKSPACE.value,
                "channelId": channel.get("id", ""),
                "channelName": channel.get("name") or "Direct Message",
                "text": payload.get("text", ""),
                "timestamp": timestamp,
                "userId": payload.get("user"),
            }
        )

    @property
    def text(self) -> str:
        # Slack escapes &, < and > in message text
        return decode_entities(self.raw_text)

    def search_text(self) -> str:
        return f"{self.text} {self.channel_name}"

    def normalize(self, account: AccountHandle, preview_chars: int) -> NormalizedMessage:
        return NormalizedMessage(
            id=self.id,
            platform=self.platform,
            account_label=account.display_label,
            title=f"#{self.channel_name}",
            sender_label=self.user_id or "Slack",
            timestamp=self.timestamp,
            body_preview=truncate(self.text, preview_chars),
            external_url="",
            raw=self.to_dict(),
        )

    def to_signal_document(self) -> SignalDocument:
        return SignalDocument(
            id=self.id,
            subject=f"#{self.channel_name}",
            body=self.text,
            sender_label=self.user_id or "Slack",
            timestamp=self.timestamp,
        )


BUFFERED_MESSAGE_TYPES: dict[Platform, type[BufferedMessage]] = {
    Platform.CHAT: DiscordMessage,
    Platform.WORKSPACE: SlackMessage,
}


def buffered_message(platform: Platform, data: dict) -> BufferedMessage:
    return BUFFERED_MESSAGE_TYPES[platform](data)
