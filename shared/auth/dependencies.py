"""Dependencies de autenticación de operadores para FastAPI"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Callable, Dict
from shared.auth.jwt_handler import decode_operator_token


security = HTTPBearer()


async def get_current_operator(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict:
    '''Operador autenticado: {user_id, email, role}'''
    payload = decode_operator_token(credentials.credentials)

    if payload is None or not payload.get('sub'):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token de operador inválido o expirado',
            headers={'WWW-Authenticate': 'Bearer'},
        )

    return {
        'user_id': payload['sub'],
        'email': payload.get('email'),
        'role': payload.get('role'),
    }


def require_roles(*roles: str, detail: str) -> Callable:
    '''Construir una dependency que exige alguno de los roles dados'''

    async def dependency(operator: Dict = Depends(get_current_operator)) -> Dict:
        if operator.get('role') not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return operator

    return dependency


get_current_scanner = require_roles(
    'scanner', 'coordinator', 'admin',
    detail='Se requieren permisos de scanner',
)
get_current_admin = require_roles('admin', detail='Se requieren permisos de administrador')
