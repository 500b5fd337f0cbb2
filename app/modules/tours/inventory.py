"""
Primitivas de mutación del catálogo consumidas por el motor de ventas.

Solo los servicios de creación, anulación y edición de ventas usan esta
clase, y siempre dentro de ``UnitOfWork.transaction()``. Las invariantes
entre ventas e inventario son responsabilidad de esos servicios.
"""
from typing import Dict, Iterable, List
from uuid import UUID
import logging

from app.common.errors import NotFoundError
from app.database.unit_of_work import UnitOfWork
from app.modules.tours.models import Tour

logger = logging.getLogger(__name__)


class TourInventory:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow
        self.db = uow.session

    def get(self, tour_id: UUID) -> Tour:
        tour = self.db.query(Tour).filter(Tour.id == tour_id).first()
        if not tour:
            raise NotFoundError(f"Tour no encontrado: {tour_id}")
        return tour

    def lock(self, tour_ids: Iterable[UUID]) -> Dict[UUID, Tour]:
        """
        Bloquea (SELECT ... FOR UPDATE) los ítems indicados, siempre en orden de id
        para que dos transacciones concurrentes no se bloqueen mutuamente.
        Los valores se releen aunque los objetos ya estén en la sesión.
        """
        self.uow.require_active()
        ids = sorted(set(tour_ids), key=str)
        if not ids:
            return {}

        tours = (
            self.db.query(Tour)
            .filter(Tour.id.in_(ids))
            .order_by(Tour.id)
            .with_for_update()
            .populate_existing()
            .all()
        )
        found = {tour.id: tour for tour in tours}
        missing = [str(tour_id) for tour_id in ids if tour_id not in found]
        if missing:
            raise NotFoundError(f"Tour no encontrado: {', '.join(missing)}")
        return found

    def shortages(self, tours: Dict[UUID, Tour], demand: Dict[UUID, int]) -> List[dict]:
        """Ítems cuyo stock no cubre la cantidad pedida."""
        short = []
        for tour_id, quantity in demand.items():
            tour = tours[tour_id]
            if quantity > 0 and not tour.stock_level.covers(quantity):
                short.append({
                    "tour_id": str(tour.id),
                    "name": tour.name,
                    "available": tour.stock,
                    "requested": quantity,
                })
        return short

    def reserve(self, tour: Tour, quantity: int):
        """stock -= quantity (salvo ilimitado), sold += quantity."""
        self.uow.require_active()
        before = tour.stock
        tour.stock_level = tour.stock_level.take(quantity)
        tour.sold = tour.sold + quantity
        logger.info(f"Reserved {quantity} of tour {tour.id}: stock {before} -> {tour.stock}, sold {tour.sold}")

    def release(self, tour: Tour, quantity: int):
        """stock += quantity (salvo ilimitado), sold = max(sold - quantity, 0)."""
        self.uow.require_active()
        before = tour.stock
        tour.stock_level = tour.stock_level.give_back(quantity)
        tour.sold = max(tour.sold - quantity, 0)
        logger.info(f"Released {quantity} of tour {tour.id}: stock {before} -> {tour.stock}, sold {tour.sold}")
