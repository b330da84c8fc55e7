from datetime import datetime, timezone

from fastapi import APIRouter, Request

from growwise.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_root(request: Request):
    now = datetime.now(timezone.utc)
    started_at = getattr(request.app.state, "started_at", None) or now
    services = getattr(request.app.state, "services", None)
    return {
        "status": "ok",
        "timestamp": now.isoformat(),
        "uptime": round((now - started_at).total_seconds(), 3),
        "orderStore": services.store.name if services else None,
        "rateLimit": rate_limit_health_info(request),
    }
