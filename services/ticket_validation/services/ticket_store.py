"""
Store de tickets consumido por el motor de validación.

La única escritura que usa la validación es try_redeem: un compare-and-set
generated -> scanned ejecutado como un solo UPDATE condicional. De N llamadas
concurrentes sobre el mismo ticket, exactamente una afecta la fila.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from shared.database.models import Ticket, Event, TicketType
from services.ticket_validation.models.domain import (
    TicketRecord, TicketState, EventSummary, EventStatus, TicketTypeSummary,
    RedeemResult, RedeemStatus, ExpireResult, ExpireStatus, state_fields,
)

logger = logging.getLogger(__name__)


class TicketStore(ABC):
    """Interfaz de acceso a tickets"""

    @abstractmethod
    async def find(self, ticket_id: str) -> Optional[TicketRecord]:
        """Devolver la proyección actual del ticket, o None si no existe."""
        ...

    @abstractmethod
    async def find_event(self, event_id: str) -> Optional[EventSummary]:
        """Resumen del evento, o None si no existe."""
        ...

    @abstractmethod
    async def try_redeem(self, ticket_id: str, redeemed_by: Optional[str], now: datetime) -> RedeemResult:
        """
        Transición atómica generated -> scanned.

        Sólo tiene éxito si el estado almacenado es generated; en cualquier
        otro caso no modifica nada y describe por qué.
        """
        ...

    @abstractmethod
    async def expire(self, ticket_id: str) -> ExpireResult:
        """Transición explícita generated -> expired."""
        ...


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        return None


def _column_values(state: TicketState, at: Optional[datetime] = None, by: Optional[str] = None) -> dict:
    fields = state_fields(state, at, by)
    return {
        "status": fields["state"].value,
        "scanned_at": fields["scanned_at"],
        "scanned_by": fields["scanned_by"],
    }


def _event_summary(event: Event) -> EventSummary:
    return EventSummary(
        id=str(event.id),
        name=event.name,
        status=EventStatus(event.status),
        date=event.date,
        location=event.location,
    )


def _to_record(ticket: Ticket, event: Event, ticket_type: TicketType) -> TicketRecord:
    return TicketRecord(
        id=str(ticket.id),
        event=_event_summary(event),
        ticket_type=TicketTypeSummary(
            id=str(ticket_type.id),
            name=ticket_type.name,
            price=ticket_type.price,
        ),
        state=TicketState(ticket.status),
        scanned_at=ticket.scanned_at,
        scanned_by=ticket.scanned_by,
    )


class SqlAlchemyTicketStore(TicketStore):
    """Store sobre PostgreSQL; cada operación usa su propia transacción corta"""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def _load(self, session, ticket_uuid: uuid.UUID) -> Optional[TicketRecord]:
        stmt = (
            select(Ticket, Event, TicketType)
            .join(Event, Ticket.event_id == Event.id)
            .join(TicketType, Ticket.ticket_type_id == TicketType.id)
            .where(Ticket.id == ticket_uuid)
        )
        row = (await session.execute(stmt)).first()
        if row is None:
            return None
        return _to_record(*row)

    async def find(self, ticket_id: str) -> Optional[TicketRecord]:
        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            return None
        async with self._session_factory() as session:
            return await self._load(session, ticket_uuid)

    async def find_event(self, event_id: str) -> Optional[EventSummary]:
        event_uuid = _parse_uuid(event_id)
        if event_uuid is None:
            return None
        async with self._session_factory() as session:
            event = await session.get(Event, event_uuid)
            return _event_summary(event) if event is not None else None

    async def try_redeem(self, ticket_id: str, redeemed_by: Optional[str], now: datetime) -> RedeemResult:
        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            return RedeemResult(status=RedeemStatus.NOT_FOUND)

        async with self._session_factory() as session:
            async with session.begin():
                # CAS: la condición sobre status decide el ganador
                stmt = (
                    update(Ticket)
                    .where(Ticket.id == ticket_uuid, Ticket.status == TicketState.GENERATED.value)
                    .values(**_column_values(TicketState.SCANNED, now, redeemed_by))
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(stmt)
                won = result.rowcount == 1

            # Releer sólo para describir el resultado
            current = await self._load(session, ticket_uuid)

        if won:
            logger.info(f"Ticket {ticket_id} redeemed by {redeemed_by}")
            return RedeemResult(status=RedeemStatus.REDEEMED, ticket=current)
        if current is None:
            return RedeemResult(status=RedeemStatus.NOT_FOUND)
        if current.state == TicketState.EXPIRED:
            return RedeemResult(status=RedeemStatus.EXPIRED, ticket=current)
        return RedeemResult(status=RedeemStatus.ALREADY_REDEEMED, ticket=current)

    async def expire(self, ticket_id: str) -> ExpireResult:
        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            return ExpireResult(status=ExpireStatus.NOT_FOUND)

        async with self._session_factory() as session:
            async with session.begin():
                stmt = (
                    update(Ticket)
                    .where(Ticket.id == ticket_uuid, Ticket.status == TicketState.GENERATED.value)
                    .values(**_column_values(TicketState.EXPIRED))
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(stmt)
                won = result.rowcount == 1

            current = await self._load(session, ticket_uuid)

        if won:
            logger.info(f"Ticket {ticket_id} expired")
            return ExpireResult(status=ExpireStatus.EXPIRED, ticket=current)
        if current is None:
            return ExpireResult(status=ExpireStatus.NOT_FOUND)
        if current.state == TicketState.SCANNED:
            return ExpireResult(status=ExpireStatus.ALREADY_SCANNED, ticket=current)
        return ExpireResult(status=ExpireStatus.ALREADY_EXPIRED, ticket=current)
