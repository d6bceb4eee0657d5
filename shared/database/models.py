"""Modelos SQLAlchemy: eventos, tipos de ticket, tickets y logs de escaneo"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Numeric, Text, Index, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from shared.database.connection import Base


class Event(Base):
    __tablename__ = "events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)
    location = Column(String(255), nullable=True)
    status = Column(String, nullable=False, server_default="draft")  # draft, active, finished
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relaciones
    ticket_types = relationship("TicketType", back_populates="event", cascade="all, delete-orphan")
    tickets = relationship("Ticket", back_populates="event")


class TicketType(Base):
    __tablename__ = "ticket_types"
    __table_args__ = (
        CheckConstraint("available >= 0 AND available <= quantity", name="ck_ticket_type_available"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    available = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relaciones
    event = relationship("Event", back_populates="ticket_types")
    tickets = relationship("Ticket", back_populates="ticket_type")


class Ticket(Base):
    __tablename__ = "tickets"
    __table_args__ = (
        # scanned <=> scanned_at presente; otros estados sin datos de escaneo
        CheckConstraint(
            "(status = 'scanned' AND scanned_at IS NOT NULL) OR "
            "(status <> 'scanned' AND scanned_at IS NULL AND scanned_by IS NULL)",
            name="ck_ticket_scan_fields",
        ),
        Index("idx_ticket_status", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(UUID(as_uuid=True), ForeignKey("events.id"), nullable=False, index=True)
    ticket_type_id = Column(UUID(as_uuid=True), ForeignKey("ticket_types.id"), nullable=False, index=True)
    qr_token = Column(Text, unique=True, nullable=False)
    status = Column(String, nullable=False, server_default="generated")  # generated, scanned, expired
    scanned_at = Column(DateTime(timezone=True), nullable=True)
    scanned_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relaciones
    event = relationship("Event", back_populates="tickets")
    ticket_type = relationship("TicketType", back_populates="tickets")


class ScanLog(Base):
    """
    Registro append-only de cada intento de validación.
    ticket_id es NULL cuando el token no pudo resolverse a un ticket.
    """
    __tablename__ = "scan_logs"
    __table_args__ = (
        Index("idx_scan_log_event_timestamp", "event_id", "timestamp"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ticket_id = Column(UUID(as_uuid=True), ForeignKey("tickets.id"), nullable=True, index=True)
    event_id = Column(UUID(as_uuid=True), nullable=False, index=True)  # evento reclamado por el scanner
    scan_result = Column(String, nullable=False, index=True)  # valid, used, invalid, wrong_event, system_error
    scanner_info = Column(JSONB, nullable=False, server_default="{}")
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
