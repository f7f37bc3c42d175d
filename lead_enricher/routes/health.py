# lead_enricher/routes/health.py
"""
Health check endpoints.
"""

import time

from fastapi import APIRouter

from lead_enricher.config import settings
from lead_enricher.services.kv_store import kv_store

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "lead-enricher"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check: the durable store must answer and a Gemini key should
    be configured for exports that request AI lookups.
    """
    checks = {}
    overall_ok = True

    t0 = time.time()
    try:
        redis_ok = await kv_store.ping()
        checks["redis"] = {
            "ok": bool(redis_ok),
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = overall_ok and bool(redis_ok)
    except Exception as e:
        checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        overall_ok = False

    # A missing key only disables AI lookups, so it is reported but not fatal
    checks["configuration"] = {
        "ok": True,
        "gemini_api_key_configured": bool(settings.GEMINI_API_KEY),
        "default_model": settings.GEMINI_DEFAULT_MODEL,
        "environment": settings.environment,
    }

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
