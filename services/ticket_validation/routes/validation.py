"""Rutas de validación de tickets"""
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from math import ceil
from typing import Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from shared.auth.dependencies import get_current_admin, get_current_scanner
from shared.config import settings
from shared.database.connection import get_session_factory
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.ticket_validation.models.domain import (
    ExpireStatus, ScanOutcome, ScannerInfo, ValidationResult,
)
from services.ticket_validation.models.ticket import (
    EventInfoResponse,
    Pagination,
    ScanLogListResponse,
    ScanLogResponse,
    TicketExpireResponse,
    TicketInfoResponse,
    TicketValidationRequest,
    TicketValidationResponse,
)
from services.ticket_validation.services.audit_log import AuditLog, SqlAlchemyAuditLog
from services.ticket_validation.services.ticket_store import TicketStore, SqlAlchemyTicketStore
from services.ticket_validation.services.token_codec import TicketTokenCodec
from services.ticket_validation.services.validation_engine import ValidationEngine


router = APIRouter()

STATUS_BY_OUTCOME = {
    ScanOutcome.VALID: status.HTTP_200_OK,
    ScanOutcome.USED: status.HTTP_409_CONFLICT,
    ScanOutcome.INVALID: status.HTTP_400_BAD_REQUEST,
    ScanOutcome.WRONG_EVENT: status.HTTP_400_BAD_REQUEST,
    ScanOutcome.SYSTEM_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}

MESSAGES = {
    ScanOutcome.VALID: "Ticket válido y registrado",
    ScanOutcome.USED: "Este ticket ya fue escaneado",
    ScanOutcome.INVALID: "Token QR inválido, expirado o falsificado",
    ScanOutcome.WRONG_EVENT: "Este ticket no pertenece a este evento",
    ScanOutcome.SYSTEM_ERROR: "Error del sistema, vuelva a escanear",
}


@lru_cache
def get_token_codec() -> TicketTokenCodec:
    return TicketTokenCodec(
        secret=settings.QR_SECRET,
        algorithm=settings.QR_TOKEN_ALGORITHM,
        default_ttl=timedelta(days=settings.QR_TOKEN_TTL_DAYS),
    )


def get_ticket_store() -> TicketStore:
    return SqlAlchemyTicketStore(get_session_factory())


def get_audit_log() -> AuditLog:
    return SqlAlchemyAuditLog(get_session_factory())


def get_validation_engine(
    store: TicketStore = Depends(get_ticket_store),
    audit_log: AuditLog = Depends(get_audit_log),
    codec: TicketTokenCodec = Depends(get_token_codec),
) -> ValidationEngine:
    return ValidationEngine(
        codec,
        store,
        audit_log,
        store_timeout=settings.STORE_TIMEOUT_SECONDS,
        audit_timeout=settings.AUDIT_TIMEOUT_SECONDS,
        allow_finished_events=settings.ALLOW_FINISHED_EVENT_SCANS,
    )


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def display_message(result: ValidationResult) -> str:
    '''Mensaje que ve el operador en la pantalla del scanner'''
    info = result.ticket_info
    if result.outcome == ScanOutcome.VALID:
        kind = "VIP" if info.ticket_type.is_vip else "GENERAL"
        return f"✅ ENTRADA {kind} VÁLIDA - {info.event.name}"
    if result.outcome == ScanOutcome.USED:
        kind = "VIP" if info and info.ticket_type.is_vip else "GENERAL"
        event_name = f" - {info.event.name}" if info else ""
        return f"❌ ENTRADA {kind} YA UTILIZADA{event_name}"
    if result.outcome == ScanOutcome.WRONG_EVENT:
        return "🚫 QR NO VÁLIDO PARA ESTE EVENTO"
    if result.outcome == ScanOutcome.SYSTEM_ERROR:
        return "⚠️ ERROR DEL SISTEMA - VUELVA A ESCANEAR"
    if result.reason == "ticket_expired":
        return "❌ ENTRADA EXPIRADA"
    if result.reason == "event_finished":
        return "❌ EVENTO FINALIZADO"
    return "❌ CÓDIGO QR INVÁLIDO O FALSIFICADO"


@router.post("/validate", response_model=TicketValidationResponse)
@limiter.limit(RATE_LIMITS["validation"])
async def validate_ticket(
    request: Request,
    response: Response,
    body: TicketValidationRequest,
    engine: ValidationEngine = Depends(get_validation_engine),
    current_user: Dict = Depends(get_current_scanner)
):
    """
    Validar y canjear un ticket mediante el token leído del QR

    Requiere autenticación de scanner/admin/coordinator
    """
    scanner_info = ScannerInfo(
        user=body.scanner_info.user or current_user.get('email') or current_user.get('user_id'),
        device=body.scanner_info.device,
        location=body.scanner_info.location,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.client.host if request.client else None,
    )

    result = await engine.validate(body.qr_token, str(body.event_id), scanner_info)

    response.status_code = STATUS_BY_OUTCOME[result.outcome]
    return TicketValidationResponse(
        success=result.outcome == ScanOutcome.VALID,
        scan_result=result.outcome,
        reason=result.reason,
        message=MESSAGES[result.outcome],
        display_message=display_message(result),
        ticket_info=TicketInfoResponse.from_info(result.ticket_info) if result.ticket_info else None,
        current_event=EventInfoResponse.from_summary(result.claimed_event) if result.claimed_event else None,
        audit_recorded=result.audit_recorded,
    )


@router.get("/logs/{event_id}", response_model=ScanLogListResponse)
@limiter.limit(RATE_LIMITS["admin"])
async def get_scan_logs(
    request: Request,
    event_id: UUID,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    result: Optional[ScanOutcome] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    audit_log: AuditLog = Depends(get_audit_log),
    store: TicketStore = Depends(get_ticket_store),
    current_user: Dict = Depends(get_current_admin)
):
    """
    Obtener logs de escaneo de un evento (más recientes primero)

    startDate/endDate acotan el rango de timestamp; sin zona horaria se asume UTC.
    """
    start, end = _as_utc(start_date), _as_utc(end_date)
    if start and end and start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="startDate debe ser anterior a endDate"
        )

    if await store.find_event(str(event_id)) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Evento no encontrado"
        )

    records, total = await audit_log.recent(
        str(event_id), limit=limit, offset=offset, outcome=result, start=start, end=end,
    )

    return ScanLogListResponse(
        data=[ScanLogResponse.from_record(record) for record in records],
        pagination=Pagination(
            total=total,
            limit=limit,
            offset=offset,
            total_pages=ceil(total / limit) if total else 0,
        ),
    )


@router.get("/{ticket_id}", response_model=TicketInfoResponse)
@limiter.limit(RATE_LIMITS["lookup"])
async def get_ticket(
    request: Request,
    ticket_id: UUID,
    store: TicketStore = Depends(get_ticket_store),
    current_user: Dict = Depends(get_current_scanner)
):
    """
    Obtener información de un ticket por ID
    """
    ticket = await store.find(str(ticket_id))

    if not ticket:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ticket no encontrado"
        )

    return TicketInfoResponse.from_record(ticket)


@router.put("/{ticket_id}/expire", response_model=TicketExpireResponse)
@limiter.limit(RATE_LIMITS["admin"])
async def expire_ticket(
    request: Request,
    ticket_id: UUID,
    store: TicketStore = Depends(get_ticket_store),
    current_user: Dict = Depends(get_current_admin)
):
    """
    Expirar un ticket que todavía no fue escaneado
    """
    result = await store.expire(str(ticket_id))

    if result.status == ExpireStatus.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ticket no encontrado"
        )
    if result.status == ExpireStatus.ALREADY_SCANNED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No se puede expirar un ticket ya escaneado"
        )
    if result.status == ExpireStatus.ALREADY_EXPIRED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="El ticket ya está expirado"
        )

    return TicketExpireResponse(
        success=True,
        message="Ticket expirado exitosamente",
        ticket=TicketInfoResponse.from_record(result.ticket) if result.ticket else None,
    )
