"""Tipos de dominio de la validación de tickets en puerta"""
from dataclasses import dataclass, asdict, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any


class TicketState(str, Enum):
    GENERATED = "generated"
    SCANNED = "scanned"
    EXPIRED = "expired"


class EventStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    FINISHED = "finished"


class ScanOutcome(str, Enum):
    """Los cinco resultados que ve el scanner"""
    VALID = "valid"
    USED = "used"
    INVALID = "invalid"
    WRONG_EVENT = "wrong_event"
    SYSTEM_ERROR = "system_error"


class RedeemStatus(str, Enum):
    REDEEMED = "redeemed"
    ALREADY_REDEEMED = "already_redeemed"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


class ExpireStatus(str, Enum):
    EXPIRED = "expired"
    ALREADY_EXPIRED = "already_expired"
    ALREADY_SCANNED = "already_scanned"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class EventSummary:
    id: str
    name: str
    status: EventStatus
    date: Optional[datetime] = None
    location: Optional[str] = None


@dataclass(frozen=True)
class TicketTypeSummary:
    id: str
    name: str
    price: Optional[Decimal] = None

    @property
    def is_vip(self) -> bool:
        return "vip" in self.name.lower()


@dataclass(frozen=True)
class TicketRecord:
    """Proyección de un ticket tal como la devuelve el store"""

    id: str
    event: EventSummary
    ticket_type: TicketTypeSummary
    state: TicketState
    scanned_at: Optional[datetime] = None
    scanned_by: Optional[str] = None

    @property
    def event_id(self) -> str:
        return self.event.id

    def with_state(self, state: TicketState, at: Optional[datetime] = None, by: Optional[str] = None) -> "TicketRecord":
        return replace(self, **state_fields(state, at, by))


def state_fields(state: TicketState, at: Optional[datetime] = None, by: Optional[str] = None) -> Dict[str, Any]:
    """
    Única transición de estado de un ticket.

    Devuelve los campos state/scanned_at/scanned_by juntos, de forma que
    `scanned` siempre lleva scanned_at y cualquier otro estado los limpia.
    """
    if state == TicketState.SCANNED:
        if at is None:
            raise ValueError("Un ticket escaneado requiere scanned_at")
        return {"state": state, "scanned_at": at, "scanned_by": by}
    return {"state": state, "scanned_at": None, "scanned_by": None}


@dataclass(frozen=True)
class ScannerInfo:
    """Metadatos del dispositivo/operador que escanea"""

    user: Optional[str] = None
    device: Optional[str] = None
    location: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TokenClaims:
    ticket_id: str
    event_id: str
    ticket_type_id: str
    issued_at: datetime


@dataclass(frozen=True)
class RedeemResult:
    status: RedeemStatus
    # En ALREADY_REDEEMED trae scanned_at/scanned_by del ganador
    ticket: Optional[TicketRecord] = None

    @property
    def succeeded(self) -> bool:
        return self.status == RedeemStatus.REDEEMED


@dataclass(frozen=True)
class ExpireResult:
    status: ExpireStatus
    ticket: Optional[TicketRecord] = None


@dataclass(frozen=True)
class AuditRecord:
    """Hecho inmutable: un intento de validación"""

    event_id: str
    outcome: ScanOutcome
    scanner_info: ScannerInfo
    timestamp: datetime
    ticket_id: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class TicketInfo:
    """Información del ticket para mostrar al operador"""

    id: str
    event: EventSummary
    ticket_type: TicketTypeSummary
    scanned_at: Optional[datetime] = None
    scanned_by: Optional[str] = None

    @classmethod
    def from_record(cls, ticket: TicketRecord) -> "TicketInfo":
        return cls(
            id=ticket.id,
            event=ticket.event,
            ticket_type=ticket.ticket_type,
            scanned_at=ticket.scanned_at,
            scanned_by=ticket.scanned_by,
        )


@dataclass(frozen=True)
class ValidationResult:
    outcome: ScanOutcome
    reason: str
    ticket_info: Optional[TicketInfo] = None
    # Sólo en wrong_event: el evento del acceso donde se escaneó
    claimed_event: Optional[EventSummary] = None
    # False = modo degradado: el resultado es válido pero no quedó auditado
    audit_recorded: bool = True
