"""
Rate limiting de la API de puerta (slowapi, contadores en Redis).

En un acceso varios scanners salen por la misma IP del router, así que el
límite se lleva por operador (claim `sub` de su token) y sólo cae a la IP
cuando el request no trae token.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request, Response
from starlette.responses import JSONResponse
import logging

from shared.auth.jwt_handler import operator_subject
from shared.config import settings

logger = logging.getLogger(__name__)

RATE_LIMITS = {
    # Un scanner en puerta: ráfagas de ~2 lecturas por segundo
    "validation": "120/minute",
    "lookup": "60/minute",
    # Expirar tickets y listar logs
    "admin": "30/minute",
}


def client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.headers.get("X-Real-IP") or get_remote_address(request)


def operator_key(request: Request) -> str:
    """Clave de rate limit: operador si hay token, IP si no"""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        subject = operator_subject(auth_header[len("Bearer "):])
        if subject:
            return f"operator:{subject}"
    return f"ip:{client_ip(request)}"


def build_limiter(storage_uri: str, enabled: bool) -> Limiter:
    try:
        return Limiter(
            key_func=operator_key,
            storage_uri=storage_uri,
            strategy="fixed-window",
            headers_enabled=False,  # response_model de FastAPI no expone headers
            enabled=enabled,
        )
    except Exception as e:
        logger.warning(f"Rate limit storage unavailable ({e}), falling back to in-memory counters")
        return Limiter(key_func=operator_key, strategy="fixed-window", headers_enabled=False, enabled=enabled)


limiter = build_limiter(settings.REDIS_URL, settings.RATE_LIMIT_ENABLED)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """429 con cuerpo JSON que el scanner puede mostrar"""
    logger.warning(f"Rate limit exceeded for {operator_key(request)} on {request.url.path}: {exc.detail}")

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "detail": "Demasiados escaneos seguidos. Espera unos segundos y vuelve a intentar.",
            "limit": str(exc.detail),
        },
        headers={"Retry-After": "60"},
    )
