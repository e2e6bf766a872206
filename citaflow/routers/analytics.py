from fastapi import APIRouter, Depends

from citaflow.dependencies import get_analytics_service
from citaflow.services.analytics_service import AnalyticsService

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/{tenant_slug}")
async def tenant_analytics(tenant_slug: str, analytics: AnalyticsService = Depends(get_analytics_service)):
    """Counters and most recent events for one tenant since process start."""
    return analytics.get_stats(tenant_slug)
