"""
Motor de validación de tickets en puerta.

Orden fijo de verificaciones (el scanner recibe siempre el error más específico):
    1. decodificar token        -> invalid
    2. resolver ticket          -> invalid
    3. evento correcto          -> wrong_event
    4. estado del ticket        -> used / invalid
    5. canje atómico            -> valid / used
Cualquier falla de infraestructura del store -> system_error.

El motor no guarda estado entre llamadas: toda la exclusión mutua vive en
TicketStore.try_redeem. Nunca se reintenta un canje; si el resultado es
ambiguo se reporta system_error y el operador vuelve a escanear.
"""
import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from services.ticket_validation.models.domain import (
    AuditRecord, EventStatus, EventSummary, RedeemStatus, ScanOutcome, ScannerInfo,
    TicketInfo, TicketRecord, TicketState, ValidationResult,
)
from services.ticket_validation.models.errors import TokenError, TokenExpiredError
from services.ticket_validation.services.audit_log import AuditLog
from services.ticket_validation.services.ticket_store import TicketStore
from services.ticket_validation.services.token_codec import TicketTokenCodec

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REDEEMED_BY = "Sistema"


class StoreUnavailable(Exception):
    """El store no respondió a tiempo o falló"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _same_id(a: str, b: str) -> bool:
    try:
        return uuid.UUID(str(a)) == uuid.UUID(str(b))
    except ValueError:
        return str(a) == str(b)


class ValidationEngine:
    """Orquesta codec, store y audit log para validar un token presentado"""

    def __init__(
        self,
        codec: TicketTokenCodec,
        store: TicketStore,
        audit_log: AuditLog,
        *,
        store_timeout: float = 5.0,
        audit_timeout: float = 2.0,
        allow_finished_events: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._codec = codec
        self._store = store
        self._audit_log = audit_log
        self._store_timeout = store_timeout
        self._audit_timeout = audit_timeout
        self._allow_finished_events = allow_finished_events
        self._clock = clock

    async def validate(
        self,
        token: str,
        event_id: str,
        scanner_info: Optional[ScannerInfo] = None,
    ) -> ValidationResult:
        """Validar y canjear un token; nunca lanza excepción hacia el caller"""
        scanner_info = scanner_info or ScannerInfo()
        try:
            return await self._validate(token, event_id, scanner_info)
        except StoreUnavailable as e:
            logger.error(f"Ticket store unavailable during validation ({e.reason}) for event {event_id}")
            return await self._finish(ScanOutcome.SYSTEM_ERROR, e.reason, event_id, scanner_info)
        except Exception as e:
            logger.exception(f"Unexpected error validating ticket for event {event_id}: {type(e).__name__}")
            return await self._finish(ScanOutcome.SYSTEM_ERROR, "internal_error", event_id, scanner_info)

    async def _validate(self, token: str, event_id: str, scanner_info: ScannerInfo) -> ValidationResult:
        # 1. Decodificar
        try:
            claims = self._codec.decode(token)
        except TokenExpiredError:
            return await self._finish(ScanOutcome.INVALID, "token_expired", event_id, scanner_info)
        except TokenError as e:
            logger.debug(f"Token rejected: {e}")
            return await self._finish(ScanOutcome.INVALID, "token_invalid", event_id, scanner_info)

        # 2. Resolver ticket
        ticket = await self._call_store(lambda: self._store.find(claims.ticket_id))
        if ticket is None:
            return await self._finish(ScanOutcome.INVALID, "ticket_not_found", event_id, scanner_info)

        # 3. Evento (antes que el estado: es el error más específico)
        if not _same_id(ticket.event_id, event_id):
            claimed_event = await self._find_claimed_event(event_id)
            return await self._finish(
                ScanOutcome.WRONG_EVENT, "wrong_event", event_id, scanner_info, ticket,
                claimed_event=claimed_event,
            )

        # 4. Estados terminales
        if ticket.state == TicketState.SCANNED:
            return await self._finish(ScanOutcome.USED, "already_redeemed", event_id, scanner_info, ticket)
        if ticket.state == TicketState.EXPIRED:
            return await self._finish(ScanOutcome.INVALID, "ticket_expired", event_id, scanner_info, ticket)

        if not self._allow_finished_events and ticket.event.status == EventStatus.FINISHED:
            return await self._finish(ScanOutcome.INVALID, "event_finished", event_id, scanner_info, ticket)

        # 5. Canje atómico; sólo try_redeem puede producir valid
        now = self._clock()
        redeemed_by = scanner_info.user or DEFAULT_REDEEMED_BY
        redeem = await self._call_store(lambda: self._store.try_redeem(ticket.id, redeemed_by, now))

        if redeem.status == RedeemStatus.REDEEMED:
            redeemed = redeem.ticket or ticket.with_state(TicketState.SCANNED, now, redeemed_by)
            return await self._finish(ScanOutcome.VALID, "redeemed", event_id, scanner_info, redeemed)
        if redeem.status == RedeemStatus.ALREADY_REDEEMED:
            # Otro scanner ganó la carrera entre el paso 4 y el 5
            return await self._finish(ScanOutcome.USED, "race_lost", event_id, scanner_info, redeem.ticket or ticket)
        if redeem.status == RedeemStatus.EXPIRED:
            return await self._finish(ScanOutcome.INVALID, "ticket_expired", event_id, scanner_info, redeem.ticket or ticket)
        return await self._finish(ScanOutcome.INVALID, "ticket_not_found", event_id, scanner_info)

    async def _call_store(self, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(call(), timeout=self._store_timeout)
        except asyncio.TimeoutError:
            raise StoreUnavailable("store_timeout")
        except Exception as e:
            logger.error(f"Ticket store error: {type(e).__name__}: {e}")
            raise StoreUnavailable("store_error") from e

    async def _find_claimed_event(self, event_id: str) -> Optional[EventSummary]:
        """Nombre del evento del acceso para el mensaje; una falla aquí no cambia el resultado"""
        try:
            return await asyncio.wait_for(self._store.find_event(event_id), timeout=self._store_timeout)
        except Exception as e:
            logger.warning(f"Could not load claimed event {event_id}: {type(e).__name__}: {e}")
            return None

    async def _finish(
        self,
        outcome: ScanOutcome,
        reason: str,
        event_id: str,
        scanner_info: ScannerInfo,
        ticket: Optional[TicketRecord] = None,
        claimed_event: Optional[EventSummary] = None,
    ) -> ValidationResult:
        ticket_id = ticket.id if ticket else None
        self._log_outcome(outcome, reason, event_id, ticket_id, scanner_info)

        record = AuditRecord(
            event_id=event_id,
            outcome=outcome,
            scanner_info=scanner_info,
            timestamp=self._clock(),
            ticket_id=ticket_id,
        )
        audit_recorded = await self._append_audit(record)

        return ValidationResult(
            outcome=outcome,
            reason=reason,
            ticket_info=TicketInfo.from_record(ticket) if ticket else None,
            claimed_event=claimed_event,
            audit_recorded=audit_recorded,
        )

    async def _append_audit(self, record: AuditRecord) -> bool:
        """Best-effort: una falla aquí nunca cambia el resultado ya decidido"""
        try:
            await asyncio.wait_for(self._audit_log.append(record), timeout=self._audit_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                f"Audit append timed out (degraded mode): outcome={record.outcome.value} "
                f"ticket={record.ticket_id} event={record.event_id}"
            )
        except Exception as e:
            logger.warning(
                f"Audit append failed (degraded mode): {type(e).__name__}: {e} - "
                f"outcome={record.outcome.value} ticket={record.ticket_id} event={record.event_id}"
            )
        return False

    @staticmethod
    def _log_outcome(
        outcome: ScanOutcome,
        reason: str,
        event_id: str,
        ticket_id: Optional[str],
        scanner_info: ScannerInfo,
    ) -> None:
        message = (
            f"Scan {outcome.value} ({reason}) ticket={ticket_id} event={event_id} "
            f"scanner={scanner_info.user} device={scanner_info.device}"
        )
        if outcome == ScanOutcome.VALID:
            logger.info(message)
        elif outcome == ScanOutcome.SYSTEM_ERROR:
            logger.error(message)
        else:
            logger.warning(message)
