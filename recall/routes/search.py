"""
Search and Chat API Routes
Cross-platform search and answer synthesis.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from recall.config import settings
from recall.dependencies import get_chat_service, get_search_service
from recall.infrastructure.observability.logging import get_logger
from recall.models.api.search_request import ChatRequest, SearchRequest
from recall.models.api.search_response import ChatResponse, SearchResponse, group_messages
from recall.services.chat_service import ChatService
from recall.services.openai_service import ConfigurationError
from recall.services.search_service import SearchService

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["search"])


@router.post("/search", response_model=SearchResponse)
async def search_messages(
    request: SearchRequest,
    search_service: SearchService = Depends(get_search_service),
):
    """Search every connected account of the requested platforms."""
    try:
        result = await search_service.search(request.user_id, request.query, request.platforms)
        return SearchResponse.from_domain(result, settings.RESPONSE_SOURCE_CAP)

    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except Exception as e:
        logger.error("Search failed", user_id=request.user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to search messages",
        )


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    chat_service: ChatService = Depends(get_chat_service),
):
    """Answer a question from the user's messages."""
    try:
        answer = await chat_service.answer(request.user_id, request.message, request.platforms)
        return ChatResponse(
            response=answer.response,
            sources=group_messages(answer.sources),
            search=SearchResponse.from_domain(answer.search, settings.RESPONSE_SOURCE_CAP),
            has_relevant_sources=not answer.search.is_empty(),
        )

    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except Exception as e:
        logger.error("Chat failed", user_id=request.user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process chat",
        )
