"""Log de auditoría append-only de intentos de validación (tabla scan_logs)"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple
import logging
import uuid

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import async_sessionmaker

from shared.database.models import ScanLog
from services.ticket_validation.models.domain import AuditRecord, ScanOutcome, ScannerInfo

logger = logging.getLogger(__name__)


class AuditLog(ABC):
    """Interfaz del log de auditoría. No existe API de modificación ni borrado."""

    @abstractmethod
    async def append(self, record: AuditRecord) -> None:
        """Registrar un intento de validación."""
        ...

    @abstractmethod
    async def recent(
        self,
        event_id: str,
        limit: int = 50,
        offset: int = 0,
        outcome: Optional[ScanOutcome] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Tuple[List[AuditRecord], int]:
        """
        Registros de un evento, más recientes primero, junto con el total.

        start/end acotan timestamp (ambos extremos inclusive).
        """
        ...


def _optional_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    if value is None:
        return None
    return uuid.UUID(str(value))


def _to_record(row: ScanLog) -> AuditRecord:
    info = row.scanner_info or {}
    return AuditRecord(
        id=str(row.id),
        ticket_id=str(row.ticket_id) if row.ticket_id else None,
        event_id=str(row.event_id),
        outcome=ScanOutcome(row.scan_result),
        scanner_info=ScannerInfo(**{k: info.get(k) for k in ScannerInfo.__dataclass_fields__}),
        timestamp=row.timestamp,
    )


class SqlAlchemyAuditLog(AuditLog):
    """Audit log sobre PostgreSQL, en transacción propia (nunca la del canje)"""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def append(self, record: AuditRecord) -> None:
        row = ScanLog(
            id=uuid.uuid4(),
            ticket_id=_optional_uuid(record.ticket_id),
            event_id=_optional_uuid(record.event_id),
            scan_result=record.outcome.value,
            scanner_info=record.scanner_info.to_dict(),
            timestamp=record.timestamp,
        )
        async with self._session_factory() as session:
            async with session.begin():
                session.add(row)

    async def recent(
        self,
        event_id: str,
        limit: int = 50,
        offset: int = 0,
        outcome: Optional[ScanOutcome] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Tuple[List[AuditRecord], int]:
        event_uuid = _optional_uuid(event_id)

        conditions = [ScanLog.event_id == event_uuid]
        if outcome is not None:
            conditions.append(ScanLog.scan_result == outcome.value)
        if start is not None and end is not None:
            conditions.append(ScanLog.timestamp.between(start, end))
        elif start is not None:
            conditions.append(ScanLog.timestamp >= start)
        elif end is not None:
            conditions.append(ScanLog.timestamp <= end)

        count_stmt = select(func.count(ScanLog.id)).where(*conditions)
        stmt = select(ScanLog).where(*conditions)
        stmt = stmt.order_by(ScanLog.timestamp.desc()).limit(limit).offset(offset)

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            total = (await session.execute(count_stmt)).scalar() or 0

        return [_to_record(row) for row in rows], total
