"""
Memories API Routes
Recent mail and AI-extracted memory signals.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from recall.dependencies import get_chat_service, get_signal_service
from recall.infrastructure.observability.logging import get_logger
from recall.models.api.search_response import (
    MessageResponse,
    RecentMessagesResponse,
    SignalResponse,
    SignalsResponse,
)
from recall.models.domain.search_domain import Platform
from recall.services.chat_service import ChatService
from recall.services.openai_service import ConfigurationError
from recall.services.signal_service import SignalService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/memories", tags=["memories"])


@router.get("/recent", response_model=RecentMessagesResponse)
async def get_recent_messages(
    user_id: str = Query(..., min_length=1, description="User whose mail is listed"),
    limit: int = Query(default=5, ge=1, le=50, description="Messages to return"),
    chat_service: ChatService = Depends(get_chat_service),
):
    """Newest mail across every connected mail account."""
    try:
        recent = await chat_service.recent(user_id, limit)
        return RecentMessagesResponse(
            messages=[MessageResponse.from_domain(message) for message in recent.messages],
            total=recent.total,
        )

    except Exception as e:
        logger.error("Error fetching recent messages", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch recent messages",
        )


@router.get("/signals", response_model=SignalsResponse)
async def get_memory_signals(
    user_id: str = Query(..., min_length=1, description="User whose messages are scanned"),
    platform: str = Query(default="gmail", description="gmail, discord or slack"),
    limit: int = Query(default=5, ge=1, le=20, description="Signals to return"),
    signal_service: SignalService = Depends(get_signal_service),
):
    """Most important decisions, risks, questions, commitments and insights from recent messages."""
    selected = Platform.parse(platform)
    if selected is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown platform: {platform}"
        )

    try:
        report = await signal_service.get_signals(user_id, selected, limit)
        return SignalsResponse(
            signals=[SignalResponse.from_domain(signal) for signal in report.signals],
            total_considered=report.total_considered,
        )

    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except Exception as e:
        logger.error("Error extracting signals", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to extract memory signals",
        )
