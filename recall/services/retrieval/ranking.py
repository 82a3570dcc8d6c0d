"""
Recency ranking for retrieved messages.
"""

from recall.models.domain.search_domain import NormalizedMessage
from recall.utils.text import parse_timestamp


def recency_key(message: NormalizedMessage) -> tuple[int, float]:
    parsed = parse_timestamp(message.timestamp)
    if parsed is None:
        return (1, 0.0)
    return (0, -parsed.timestamp())


def rank_by_recency(
    messages: list[NormalizedMessage], cap: int | None = None
) -> list[NormalizedMessage]:
    """
    Newest first; unparsable timestamps sort last. Stable, so ties keep
    arrival order.
    """
    ranked = sorted(messages, key=recency_key)
    return ranked[:cap] if cap is not None else ranked
