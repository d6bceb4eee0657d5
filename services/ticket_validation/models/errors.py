"""Errores del codec de tokens QR"""
from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    TOKEN_INVALID = "TOKEN_INVALID"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"


@dataclass(frozen=True)
class TokenError(Exception):
    """Error base del codec con código y mensaje apto para el usuario"""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class TokenInvalidError(TokenError):
    """Token malformado, falsificado o con firma incorrecta"""

    def __init__(self, message: str = "Token QR inválido") -> None:
        super().__init__(code=ErrorCode.TOKEN_INVALID, message=message)


class TokenExpiredError(TokenError):
    """Token auténtico cuya fecha de expiración ya pasó"""

    def __init__(self, message: str = "Token QR expirado") -> None:
        super().__init__(code=ErrorCode.TOKEN_EXPIRED, message=message)
