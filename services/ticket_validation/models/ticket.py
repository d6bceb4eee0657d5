"""Modelos Pydantic para validación de tickets"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from services.ticket_validation.models.domain import (
    AuditRecord, EventSummary, ScanOutcome, TicketInfo, TicketRecord,
)


class ScannerInfoRequest(BaseModel):
    user: Optional[str] = Field(default=None, max_length=255)
    device: Optional[str] = Field(default=None, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)


class TicketValidationRequest(BaseModel):
    qr_token: str = Field(..., min_length=1, max_length=4096)
    event_id: UUID
    scanner_info: ScannerInfoRequest = Field(default_factory=ScannerInfoRequest)


class EventInfoResponse(BaseModel):
    id: str
    name: str
    status: str
    date: Optional[datetime] = None
    location: Optional[str] = None

    @classmethod
    def from_summary(cls, event: EventSummary) -> "EventInfoResponse":
        return cls(
            id=event.id,
            name=event.name,
            status=event.status.value,
            date=event.date,
            location=event.location,
        )


class TicketTypeInfoResponse(BaseModel):
    id: str
    name: str
    price: Optional[Decimal] = None


class TicketInfoResponse(BaseModel):
    id: str
    event: EventInfoResponse
    ticket_type: TicketTypeInfoResponse
    status: Optional[str] = None
    scanned_at: Optional[datetime] = None
    scanned_by: Optional[str] = None

    @classmethod
    def from_info(cls, info: TicketInfo, status: Optional[str] = None) -> "TicketInfoResponse":
        return cls(
            id=info.id,
            event=EventInfoResponse.from_summary(info.event),
            ticket_type=TicketTypeInfoResponse(
                id=info.ticket_type.id,
                name=info.ticket_type.name,
                price=info.ticket_type.price,
            ),
            status=status,
            scanned_at=info.scanned_at,
            scanned_by=info.scanned_by,
        )

    @classmethod
    def from_record(cls, ticket: TicketRecord) -> "TicketInfoResponse":
        return cls.from_info(TicketInfo.from_record(ticket), status=ticket.state.value)


class TicketValidationResponse(BaseModel):
    success: bool
    scan_result: ScanOutcome
    reason: str
    message: str
    display_message: str
    ticket_info: Optional[TicketInfoResponse] = None
    # wrong_event: evento del acceso (ticket_info.event es el del ticket)
    current_event: Optional[EventInfoResponse] = None
    audit_recorded: bool = True


class TicketExpireResponse(BaseModel):
    success: bool
    message: str
    ticket: Optional[TicketInfoResponse] = None


class ScanLogResponse(BaseModel):
    id: Optional[str] = None
    ticket_id: Optional[str] = None
    event_id: str
    scan_result: ScanOutcome
    scanner_info: dict
    timestamp: datetime

    @classmethod
    def from_record(cls, record: AuditRecord) -> "ScanLogResponse":
        return cls(
            id=record.id,
            ticket_id=record.ticket_id,
            event_id=record.event_id,
            scan_result=record.outcome,
            scanner_info=record.scanner_info.to_dict(),
            timestamp=record.timestamp,
        )


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    total_pages: int


class ScanLogListResponse(BaseModel):
    success: bool = True
    data: List[ScanLogResponse]
    pagination: Pagination
