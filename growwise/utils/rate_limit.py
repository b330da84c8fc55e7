from typing import Optional, Dict, Any
from fastapi import Request, Response, HTTPException
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter
import logging
import os
import time

logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str:
    """IP client: premier X-Forwarded-For (derrière proxy), sinon l'adresse de la socket."""
    forwarded = request.headers.get("x-forwarded-for") or ""
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    return request.client.host if request.client else "local"


def _key_from_request(request: Request) -> str:
    return f"ip:{client_ip(request)}:{request.url.path}"


def optional_rate_limit(times: int, seconds: int):
    """
    Dépendance de rate limiting par IP et par route.
    - LOCAL_RATE_LIMIT_FALLBACK=1: fenêtre glissante en mémoire (app.state)
    - app.state.rate_limit_enabled False: aucun contrôle
    - sinon fastapi-limiter (Redis); une panne Redis ne bloque pas le checkout
    Dépassement: HTTP 429.
    """
    async def _dep(request: Request, response: Response):
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            now = time.time()
            key = _key_from_request(request)
            store = getattr(request.app.state, "_rl_store", {})
            hits = [t for t in store.get(key, []) if now - t < seconds]
            if len(hits) >= times:
                raise HTTPException(status_code=429, detail="Trop de requêtes, réessayez plus tard")
            hits.append(now)
            store[key] = hits
            request.app.state._rl_store = store
            return

        if getattr(request.app.state, "rate_limit_enabled", None) is not True:
            return

        async def _identifier(req: Request) -> str:
            return _key_from_request(req)

        try:
            await RateLimiter(times=times, seconds=seconds, identifier=_identifier)(request, response)
        except HTTPException:
            raise
        except Exception:
            logger.exception("rate_limit indisponible path=%s", request.url.path)
    return _dep


def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled: Optional[bool] = getattr(request.app.state, "rate_limit_enabled", None)
    local = os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1"
    limiter_ready = getattr(FastAPILimiter, "redis", None) is not None
    if local:
        backend = "memory"
    elif limiter_ready:
        backend = "redis"
    else:
        backend = None
    return {
        "enabled": bool(enabled) or local,
        "ready": limiter_ready or local,
        "backend": backend,
    }
