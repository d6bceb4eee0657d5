#!/usr/bin/env python3
"""Script para emitir tickets de prueba y obtener su token QR"""
import sys
import os
import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Agregar directorio raíz al path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import qrcode
from sqlalchemy import select

from shared.database import connection
from shared.database.models import Event, TicketType, Ticket
from services.ticket_validation.routes.validation import get_token_codec


def save_qr_png(token: str, path: str):
    """Guardar el token como imagen QR"""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(token)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    img.save(path)


async def issue(event_id: str, type_name: str, quantity: int, create_tables: bool):
    await connection.init_db()
    if create_tables:
        await connection.create_tables()

    codec = get_token_codec()
    issued = []

    async with connection.get_session_factory()() as session:
        async with session.begin():
            event = None
            if event_id:
                event = await session.get(Event, uuid.UUID(event_id))
            if event is None:
                event = Event(
                    id=uuid.UUID(event_id) if event_id else uuid.uuid4(),
                    name="Evento de prueba",
                    date=datetime.now(timezone.utc) + timedelta(days=7),
                    location="Local",
                    status="active",
                )
                session.add(event)

            ticket_type = (await session.execute(
                select(TicketType).where(TicketType.event_id == event.id, TicketType.name == type_name)
            )).scalar_one_or_none()
            if ticket_type is None:
                ticket_type = TicketType(
                    id=uuid.uuid4(),
                    event_id=event.id,
                    name=type_name,
                    price=Decimal("0"),
                    quantity=quantity,
                    available=quantity,
                )
                session.add(ticket_type)
                await session.flush()

            if ticket_type.available < quantity:
                raise SystemExit(f"Sólo quedan {ticket_type.available} tickets de tipo {type_name}")
            ticket_type.available -= quantity

            for _ in range(quantity):
                ticket_id = uuid.uuid4()
                token = codec.encode(str(ticket_id), str(event.id), str(ticket_type.id))
                session.add(Ticket(
                    id=ticket_id,
                    event_id=event.id,
                    ticket_type_id=ticket_type.id,
                    qr_token=token,
                    status="generated",
                ))
                issued.append((str(ticket_id), token))

    await connection.close_db()
    return str(event.id), issued


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Emitir tickets de prueba")
    parser.add_argument("--event-id", help="ID del evento (se crea si no existe)")
    parser.add_argument("--type", default="General", help="Nombre del tipo de ticket")
    parser.add_argument("--quantity", type=int, default=1)
    parser.add_argument("--create-tables", action="store_true", help="Crear tablas antes de emitir")
    parser.add_argument("--qr-dir", help="Directorio donde guardar las imágenes QR")

    args = parser.parse_args()

    event_id, issued = asyncio.run(issue(args.event_id, args.type, args.quantity, args.create_tables))

    print(f"\nEvento: {event_id}")
    for ticket_id, token in issued:
        print(f"\nTicket {ticket_id}:")
        print(token)
        if args.qr_dir:
            path = os.path.join(args.qr_dir, f"{ticket_id}.png")
            save_qr_png(token, path)
            print(f"QR guardado en {path}")
    print()
