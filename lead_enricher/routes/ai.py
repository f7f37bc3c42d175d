"""
ai.py
-----
Single free-form prompt endpoint. The call goes through the same rate
limiter, retry and fallback path as batch lookups.
"""

from fastapi import APIRouter, HTTPException, status

from lead_enricher.config import settings
from lead_enricher.errors import DailyQuotaExceeded, EnrichmentError, UnknownModelError
from lead_enricher.infrastructure.observability.logging import get_logger
from lead_enricher.models.api.export_request import GeneratePromptRequest
from lead_enricher.models.api.export_response import GeneratePromptResponse
from lead_enricher.services.ai import gemini_client

router = APIRouter(prefix="/ai", tags=["ai"])
logger = get_logger(__name__)


@router.post("/generate", response_model=GeneratePromptResponse)
async def generate(request: GeneratePromptRequest):
    """
    Send one prompt to Gemini and return the parsed JSON answer.

    Raises:
        400: No API key available or unknown model
        429: Daily quota for the model is used up
        502: Gemini failed after retries and fallback
    """
    api_key = request.api_key or settings.GEMINI_API_KEY
    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Gemini API key is not configured"
        )

    model = request.model or settings.GEMINI_DEFAULT_MODEL
    try:
        result = await gemini_client.generate_json(request.prompt, api_key, model)
    except DailyQuotaExceeded as e:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(e))
    except UnknownModelError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except EnrichmentError as e:
        logger.error("Prompt call failed", model=model, error=str(e), error_type=type(e).__name__)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return GeneratePromptResponse(model=model, result=result)
