"""
Dependencias de autenticación para FastAPI.

La emisión de tokens y la gestión de usuarios pertenecen a un servicio
externo; aquí solo se valida el JWT y se aplican los roles.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import ValidationError
import jwt

from app.modules.auth.schemas import AuthContext, MANAGER_ROLES, SALES_ROLES
from app.modules.auth.utils import decode_token

# Security scheme
security = HTTPBearer()


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        credentials: HTTPAuthorizationCredentials = Depends(security)
    ) -> AuthContext:
        """
        Obtener contexto de autenticación desde el token JWT.
        El token debe traer ``sub`` y ``role``; ``supervisor_name`` es opcional.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = decode_token(credentials.credentials)
            user_id = payload.get("sub")
            if user_id is None or payload.get("type", "access") != "access":
                raise credentials_exception
            return AuthContext(
                user_id=str(user_id),
                user_role=payload.get("role"),
                supervisor_name=(payload.get("supervisor_name") or "").strip() or None
            )
        except (jwt.PyJWTError, ValidationError):
            raise credentials_exception

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if auth_context.user_role.value not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(allowed_roles)}"
                )
            return auth_context
        return role_checker

    @staticmethod
    def require_supervisor_or_above():
        """Cualquier rol con acceso a ventas."""
        return AuthDependencies.require_role(SALES_ROLES)

    @staticmethod
    def require_admin_or_support():
        return AuthDependencies.require_role(MANAGER_ROLES)


# Instancias de dependencias
get_auth_context = AuthDependencies.get_auth_context
require_supervisor_or_above = AuthDependencies.require_supervisor_or_above
require_admin_or_support = AuthDependencies.require_admin_or_support
