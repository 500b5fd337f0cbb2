from fastapi import HTTPException
from sqlalchemy.orm import Session
from sqlalchemy import desc, func
from typing import Optional
from uuid import UUID
import logging

from app.common.errors import BusinessValidationError, ConflictError, InternalError, NotFoundError
from app.common.pagination import paginate
from app.core.config import settings
from app.modules.tours.models import Tour, IMPORT_ONLY_TOUR_NAME
from app.modules.tours.schemas import TourCreate, TourUpdate, TourList

logger = logging.getLogger(__name__)


class TourService:
    """Gestión del catálogo. Los contadores stock/sold no se tocan aquí salvo la reposición."""

    def __init__(self, db: Session):
        self.db = db

    def _ordered(self, query):
        return query.order_by(Tour.sequence.asc(), desc(Tour.created_at))

    def list_active(self, page: int = 1, limit: Optional[int] = None) -> TourList:
        """Catálogo público: activos, sin el ítem de importación."""
        limit = limit or settings.CATALOG_PAGE_SIZE
        query = self.db.query(Tour).filter(
            Tour.is_active.is_(True),
            func.lower(func.trim(Tour.name)) != IMPORT_ONLY_TOUR_NAME.lower()
        )
        tours, pagination = paginate(self._ordered(query), page, limit)
        return TourList(data=tours, pagination=pagination)

    def list_all(self, page: int = 1, limit: Optional[int] = None) -> TourList:
        limit = limit or settings.CATALOG_PAGE_SIZE
        tours, pagination = paginate(self._ordered(self.db.query(Tour)), page, limit)
        return TourList(data=tours, pagination=pagination)

    def get_tour(self, tour_id: UUID) -> Tour:
        tour = self.db.query(Tour).filter(Tour.id == tour_id).first()
        if not tour:
            raise NotFoundError("Tour no encontrado")
        return tour

    def create_tour(self, data: TourCreate) -> Tour:
        try:
            values = data.model_dump(exclude_none=True)
            tour = Tour(**values)
            self.db.add(tour)
            self.db.commit()
            self.db.refresh(tour)
            logger.info(f"Tour created: {tour.id} '{tour.name}' stock={tour.stock}")
            return tour
        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating tour: {e}", exc_info=True)
            raise InternalError("Error creando tour")

    def update_tour(self, tour_id: UUID, data: TourUpdate) -> Tour:
        try:
            tour = self.get_tour(tour_id)
            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(tour, field, value)
            self.db.commit()
            self.db.refresh(tour)
            return tour
        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating tour {tour_id}: {e}", exc_info=True)
            raise InternalError("Error actualizando tour")

    def set_stock(self, tour_id: UUID, stock: int) -> Tour:
        """Reposición de cupos. Bloquea la fila para no pisar una venta concurrente."""
        try:
            tour = self.db.query(Tour).filter(Tour.id == tour_id).with_for_update().first()
            if not tour:
                raise NotFoundError("Tour no encontrado")
            old_stock = tour.stock
            tour.stock = stock
            self.db.commit()
            self.db.refresh(tour)
            logger.info(f"Stock set for tour {tour_id}: {old_stock} -> {stock}")
            return tour
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error setting stock for tour {tour_id}: {e}", exc_info=True)
            raise InternalError("Error actualizando stock")

    def deactivate_tour(self, tour_id: UUID) -> Tour:
        return self.update_tour(tour_id, TourUpdate(is_active=False))

    def delete_tour(self, tour_id: UUID):
        """Eliminación definitiva; solo si el tour no tiene ventas registradas."""
        from app.modules.sales.models import Sale

        tour = self.get_tour(tour_id)
        if tour.is_import_only:
            raise BusinessValidationError("No se puede eliminar el producto de importación")

        sales_count = self.db.query(Sale).filter(Sale.tour_id == tour_id).count()
        if sales_count > 0:
            raise ConflictError("No se puede eliminar: tiene ventas registradas")

        try:
            self.db.delete(tour)
            self.db.commit()
            logger.info(f"Tour deleted: {tour_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deleting tour {tour_id}: {e}", exc_info=True)
            raise InternalError("Error eliminando tour")
