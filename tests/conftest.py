"""
Configuración de pytest.

Las variables de entorno se fijan antes de importar shared.config, que lee
la configuración al importarse.
"""
import os
import uuid
from datetime import datetime, timedelta, timezone

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("REDIS_URL", "memory://")
os.environ.setdefault("QR_SECRET", "test-qr-secret")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")

import pytest

from services.ticket_validation.models.domain import (
    EventStatus, EventSummary, TicketRecord, TicketState, TicketTypeSummary,
)
from services.ticket_validation.services.token_codec import TicketTokenCodec
from services.ticket_validation.services.validation_engine import ValidationEngine
from tests.fakes import InMemoryAuditLog, InMemoryTicketStore

NOW = datetime(2025, 3, 14, 20, 0, tzinfo=timezone.utc)


def make_ticket(
    event_id=None,
    state=TicketState.GENERATED,
    type_name="General",
    event_status=EventStatus.ACTIVE,
    event_name="Concierto de prueba",
) -> TicketRecord:
    return TicketRecord(
        id=str(uuid.uuid4()),
        event=EventSummary(
            id=event_id or str(uuid.uuid4()),
            name=event_name,
            status=event_status,
            date=NOW + timedelta(hours=2),
            location="Estadio Nacional",
        ),
        ticket_type=TicketTypeSummary(id=str(uuid.uuid4()), name=type_name),
        state=state,
        scanned_at=NOW - timedelta(minutes=5) if state == TicketState.SCANNED else None,
        scanned_by="puerta-1" if state == TicketState.SCANNED else None,
    )


@pytest.fixture
def codec():
    return TicketTokenCodec(secret="test-qr-secret")


@pytest.fixture
def store():
    return InMemoryTicketStore()


@pytest.fixture
def audit_log():
    return InMemoryAuditLog()


@pytest.fixture
def engine(codec, store, audit_log):
    return ValidationEngine(codec, store, audit_log, clock=lambda: NOW)


@pytest.fixture
def event_id():
    return str(uuid.uuid4())


@pytest.fixture
def issue(codec, store):
    """Registrar un ticket en el store y devolver (ticket, token)"""

    def _issue(event_id=None, issued_at=None, ttl=None, **kwargs):
        ticket = store.add(make_ticket(event_id=event_id, **kwargs))
        token = codec.encode(
            ticket.id,
            ticket.event_id,
            ticket.ticket_type.id,
            issued_at=issued_at,
            ttl=ttl,
        )
        return ticket, token

    return _issue
