from fastapi import APIRouter, HTTPException, status

from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.models.api.export_response import UsageResponse
from lead_enricher.services.ai import rate_limiter

router = APIRouter(tags=["usage"])
logger = get_logger(__name__)


@router.get("/usage", response_model=UsageResponse)
async def get_usage():
    """Persisted successful-call counts per day plus per-model quota state."""
    limiter = rate_limiter.rate_limiter
    try:
        usage = await limiter.get_usage_stats()
    except Exception as e:
        logger.error("Failed to read usage stats", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Store unavailable"
        )
    return UsageResponse(usage=usage, quotas=limiter.get_quota_status())
