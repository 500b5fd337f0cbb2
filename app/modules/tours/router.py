from fastapi import APIRouter, Depends, Query, status
from uuid import UUID
from typing import Optional

from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.tours.service import TourService
from app.modules.tours.schemas import TourCreate, TourUpdate, TourStockSet, TourOut, TourList

tours_router = APIRouter(prefix="/tours", tags=["Tours"])


@tours_router.get("/", response_model=TourList)
def list_active_tours(
    db: db_dependency,
    page: int = Query(1, ge=1, description="Número de página"),
    limit: Optional[int] = Query(None, ge=1, le=100, description="Ítems por página")
):
    """Catálogo público de tours activos, ordenado por secuencia."""
    return TourService(db).list_active(page, limit)


@tours_router.get("/admin", response_model=TourList)
def list_all_tours(
    db: db_dependency,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_support())
):
    """Todos los tours, incluidos los inactivos."""
    return TourService(db).list_all(page, limit)


@tours_router.get("/{tour_id}", response_model=TourOut)
def get_tour(tour_id: UUID, db: db_dependency):
    return TourService(db).get_tour(tour_id)


@tours_router.post("/", response_model=TourOut, status_code=status.HTTP_201_CREATED)
def create_tour(
    data: TourCreate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_support())
):
    """Crear tour. ``stock = -1`` lo marca como siempre disponible."""
    return TourService(db).create_tour(data)


@tours_router.patch("/{tour_id}", response_model=TourOut)
def update_tour(
    tour_id: UUID,
    data: TourUpdate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_support())
):
    return TourService(db).update_tour(tour_id, data)


@tours_router.patch("/{tour_id}/stock", response_model=TourOut)
def set_tour_stock(
    tour_id: UUID,
    data: TourStockSet,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_support())
):
    """Reponer cupos (valor absoluto). Nunca modifica ``sold``."""
    return TourService(db).set_stock(tour_id, data.stock)


@tours_router.delete("/{tour_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tour(
    tour_id: UUID,
    db: db_dependency,
    hard: bool = Query(False, description="Eliminar definitivamente en vez de desactivar"),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_support())
):
    service = TourService(db)
    if hard:
        service.delete_tour(tour_id)
    else:
        service.deactivate_tour(tour_id)
