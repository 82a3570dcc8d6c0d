"""
Sync API Routes
Refresh the local message buffers of chat and workspace accounts.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from recall.dependencies import get_sync_service
from recall.infrastructure.observability.logging import get_logger
from recall.models.api.search_response import SyncResponse
from recall.models.domain.search_domain import Platform
from recall.services.sync_service import SyncError, SyncService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("/{platform}", response_model=SyncResponse)
async def sync_platform(
    platform: str,
    user_id: str = Query(..., min_length=1, description="User whose accounts are synced"),
    sync_service: SyncService = Depends(get_sync_service),
):
    """Fetch recent messages and merge them into each account's buffer."""
    selected = Platform.parse(platform)
    if selected is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown platform: {platform}"
        )

    try:
        report = await sync_service.sync(user_id, selected)
        return SyncResponse(
            platform=selected.value,
            synced=report.synced,
            total=report.total,
            accounts=report.accounts,
        )

    except SyncError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error("Sync failed", user_id=user_id, platform=selected.value, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sync messages",
        )
