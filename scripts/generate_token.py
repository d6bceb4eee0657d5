#!/usr/bin/env python3
"""Script para generar tokens JWT de operadores (scanner/admin) de prueba"""
import sys
import os
from datetime import timedelta

# Agregar directorio raíz al path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.auth.jwt_handler import create_operator_token, OPERATOR_ROLES


def generate_token(user_id: str, email: str = None, role: str = "scanner", minutes: int = 720) -> str:
    """Generar token JWT de operador"""
    return create_operator_token(
        user_id,
        role,
        email=email or f"{user_id}@example.com",
        expires_delta=timedelta(minutes=minutes),
    )


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Generar token JWT de operador")
    parser.add_argument("--user-id", required=True, help="ID del usuario")
    parser.add_argument("--email", help="Email del usuario")
    parser.add_argument("--role", default="scanner", choices=OPERATOR_ROLES, help="Rol del usuario")
    parser.add_argument("--minutes", type=int, default=720, help="Minutos de validez")

    args = parser.parse_args()

    token = generate_token(args.user_id, args.email, args.role, args.minutes)
    print(f"\nToken generado:")
    print(token)
    print(f"\nPara usar en curl:")
    print(f'curl -H "Authorization: Bearer {token}" http://localhost:8000/api/v1/tickets/<ticket_id>')
    print()
