"""
Unidad de trabajo para las operaciones de venta.

Los servicios de ventas reciben una instancia de UnitOfWork en su constructor
y abren exactamente una transacción por operación (crear, anular, editar).
Todas las filas de ventas y todos los contadores de inventario cambian dentro
de esa transacción, o ninguno cambia.
"""
from contextlib import contextmanager
from typing import Annotated, Iterator, Optional
import logging

from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.database import get_db

logger = logging.getLogger(__name__)


class UnitOfWork:
    """Frontera transaccional explícita sobre una sesión de SQLAlchemy."""

    def __init__(self, session: Session, timeout_ms: Optional[int] = None):
        self.session = session
        self.timeout_ms = settings.TRANSACTION_TIMEOUT_MS if timeout_ms is None else timeout_ms
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Commit al salir sin errores; rollback completo ante cualquier excepción."""
        if self._active:
            raise RuntimeError("Ya existe una transacción abierta en esta unidad de trabajo")

        self._active = True
        try:
            self._apply_timeout()
            yield self.session
            self.session.commit()
        except Exception:
            logger.warning("Rollback de la transacción en curso")
            self.session.rollback()
            raise
        finally:
            self._active = False

    def require_active(self):
        if not self._active:
            raise RuntimeError("Los contadores de inventario solo se modifican dentro de una transacción")

    def _apply_timeout(self):
        bind = self.session.get_bind()
        if bind.dialect.name != "postgresql" or not self.timeout_ms:
            return
        # set_config(..., true) equivale a SET LOCAL: solo vive en esta transacción
        self.session.execute(
            text("SELECT set_config('statement_timeout', :timeout, true)"),
            {"timeout": str(self.timeout_ms)}
        )


def get_unit_of_work(db: Session = Depends(get_db)) -> UnitOfWork:
    return UnitOfWork(db)


uow_dependency = Annotated[UnitOfWork, Depends(get_unit_of_work)]
