"""JWT de operadores de puerta (scanner, coordinator, admin)"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
from jose import JWTError, jwt
import logging

from shared.config import settings

logger = logging.getLogger(__name__)

OPERATOR_ROLES = ('scanner', 'coordinator', 'admin')
TOKEN_TYPE = 'access'


def create_operator_token(
    user_id: str,
    role: str,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    '''Emitir token de operador con rol'''
    if role not in OPERATOR_ROLES:
        raise ValueError(f"Rol de operador desconocido: {role}")

    expires_delta = expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {
        'sub': user_id,
        'email': email,
        'role': role,
        'type': TOKEN_TYPE,
        'exp': datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_operator_token(token: str) -> Optional[Dict]:
    '''Validar firma, expiración y tipo; None si el token no sirve'''
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.debug(f"Operator token rejected: {e}")
        return None

    if payload.get('type') != TOKEN_TYPE:
        logger.debug(f"Operator token rejected: unexpected type {payload.get('type')!r}")
        return None
    return payload


def operator_subject(token: str) -> Optional[str]:
    '''Leer `sub` sin verificar firma (sólo para agrupar requests, nunca para autorizar)'''
    try:
        return jwt.get_unverified_claims(token).get('sub')
    except JWTError:
        return None
