"""
Codec de tokens QR de tickets.

El token es un JWT firmado (HS256 por defecto) que viaja dentro del QR.
Claims:
- ticketId: UUID del ticket
- eventId: evento al que pertenece
- ticketTypeId: tipo de ticket
- generatedAt: instante de emisión (ISO 8601)
- iat / exp: emisión y vencimiento (exp = emisión + ttl)
- version: formato del token
"""
import base64
import binascii
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from jose import jwt, JWTError, ExpiredSignatureError

from services.ticket_validation.models.domain import TokenClaims
from services.ticket_validation.models.errors import TokenInvalidError, TokenExpiredError

TOKEN_VERSION = "1.0"
DEFAULT_TTL = timedelta(days=30)

_REQUIRED_CLAIMS = ("ticketId", "eventId", "ticketTypeId", "generatedAt")


def _b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _is_canonical(token: str) -> bool:
    """
    Cada segmento debe ser base64url canónico.

    base64 ignora los bits de relleno del último carácter, así que dos
    strings distintos pueden decodificar a los mismos bytes; aquí se exige
    que re-codificar devuelva exactamente el mismo texto.
    """
    segments = token.split(".")
    if len(segments) != 3:
        return False
    for segment in segments:
        if not segment.isascii():
            return False
        try:
            if _b64url_encode(_b64url_decode(segment)) != segment:
                return False
        except (binascii.Error, ValueError):
            return False
    return True


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TicketTokenCodec:
    """Codifica y verifica tokens QR; función pura del token y la clave"""

    def __init__(self, secret: str, algorithm: str = "HS256", default_ttl: timedelta = DEFAULT_TTL):
        if not secret:
            raise ValueError("Se requiere un secret para firmar tokens QR")
        self._secret = secret
        self._algorithm = algorithm
        self._default_ttl = default_ttl

    def encode(
        self,
        ticket_id: str,
        event_id: str,
        ticket_type_id: str,
        issued_at: Optional[datetime] = None,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """Generar token firmado para un ticket"""
        issued_at = _as_utc(issued_at or datetime.now(timezone.utc))
        expires_at = issued_at + (ttl if ttl is not None else self._default_ttl)

        payload: Dict[str, Any] = {
            "ticketId": str(ticket_id),
            "eventId": str(event_id),
            "ticketTypeId": str(ticket_type_id),
            "generatedAt": issued_at.isoformat(),
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "version": TOKEN_VERSION,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> TokenClaims:
        """
        Verificar firma y vencimiento de un token.

        Raises:
            TokenExpiredError: firma correcta pero exp ya pasó.
            TokenInvalidError: cualquier otro problema (formato, firma, claims).
        """
        if not isinstance(token, str) or not _is_canonical(token.strip()):
            raise TokenInvalidError("Formato de token inválido")
        token = token.strip()

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require_exp": True, "require_iat": True, "leeway": 0},
            )
        except ExpiredSignatureError:
            raise TokenExpiredError()
        except JWTError as e:
            raise TokenInvalidError(f"Token QR inválido: {e}")
        except (ValueError, TypeError, UnicodeError) as e:
            raise TokenInvalidError(f"Token QR ilegible: {type(e).__name__}")

        for claim in _REQUIRED_CLAIMS:
            if not isinstance(payload.get(claim), str) or not payload[claim]:
                raise TokenInvalidError(f"Falta el claim {claim}")

        try:
            issued_at = _as_utc(datetime.fromisoformat(payload["generatedAt"]))
        except ValueError:
            raise TokenInvalidError("generatedAt inválido")

        return TokenClaims(
            ticket_id=payload["ticketId"],
            event_id=payload["eventId"],
            ticket_type_id=payload["ticketTypeId"],
            issued_at=issued_at,
        )
