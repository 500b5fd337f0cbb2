from pydantic import BaseModel
from typing import Optional
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    SUPPORT = "support"
    SUPERVISOR = "supervisor"


# Roles con acceso a ventas (crear, editar, anular)
SALES_ROLES = [Role.ADMIN.value, Role.SUPPORT.value, Role.SUPERVISOR.value]
# Roles con acceso a catálogo, resumen y limpieza de facturas anuladas
MANAGER_ROLES = [Role.ADMIN.value, Role.SUPPORT.value]


class AuthContext(BaseModel):
    user_id: str
    user_role: Role
    supervisor_name: Optional[str] = None

    @property
    def is_supervisor(self) -> bool:
        return self.user_role == Role.SUPERVISOR

    @property
    def supervisor_scope(self) -> Optional[str]:
        """Nombre de supervisor al que se restringen las ventas visibles (None = sin restricción)."""
        if self.is_supervisor and self.supervisor_name:
            return self.supervisor_name
        return None
