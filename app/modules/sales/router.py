from fastapi import APIRouter, Depends, status, Query
from typing import Optional

from app.database.unit_of_work import uow_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.sales.service import SaleService
from app.modules.sales.schemas import (
    SaleCreate, SaleCreated, SaleList, BatchOut, BatchItemsUpdate,
    InvoiceUpdate, PaymentStatusUpdate, VoidSaleRequest, MessageOut
)

sales_router = APIRouter(prefix="/sales", tags=["Sales"])


@sales_router.post("/", response_model=SaleCreated, status_code=status.HTTP_201_CREATED)
def create_sale(
    sale_data: SaleCreate,
    uow: uow_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor_or_above())
):
    """
    Crear una factura de venta

    Reserva el inventario de todas las líneas en la misma transacción.
    Si algún ítem no tiene stock suficiente no se guarda nada (409).
    """
    return SaleService(uow).create_sale(sale_data, auth_context)


@sales_router.get("/", response_model=SaleList)
def list_sales(
    uow: uow_dependency,
    month: Optional[int] = Query(None, ge=1, le=12, description="Mes de creación (requiere year)"),
    year: Optional[int] = Query(None, ge=2000, le=2100, description="Año de creación"),
    page: Optional[int] = Query(None, ge=1, description="Número de página"),
    limit: Optional[int] = Query(None, ge=1, le=100, description="Líneas por página"),
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor_or_above())
):
    """
    Listar líneas de venta agrupables por batch_id

    Un supervisor solo ve las ventas atribuidas a su nombre.
    """
    return SaleService(uow).list_sales(auth_context, month, year, page, limit)


@sales_router.get("/{batch_id}", response_model=BatchOut)
def get_sale(
    batch_id: str,
    uow: uow_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor_or_above())
):
    return SaleService(uow).get_batch(batch_id, auth_context)


@sales_router.patch("/{batch_id}", response_model=BatchOut)
def update_sale_items(
    batch_id: str,
    data: BatchItemsUpdate,
    uow: uow_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor_or_above())
):
    """
    Editar las líneas de una factura activa

    Agrega, modifica o elimina líneas; las diferencias de cantidad ajustan el
    inventario en la misma transacción.
    """
    return SaleService(uow).update_batch_items(batch_id, data, auth_context)


@sales_router.patch("/{batch_id}/update-invoice", response_model=MessageOut)
def update_invoice(
    batch_id: str,
    data: InvoiceUpdate,
    uow: uow_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor_or_above())
):
    """Actualizar datos de cliente y atribución de la factura completa."""
    return SaleService(uow).update_customer(batch_id, data, auth_context)


@sales_router.patch("/{batch_id}/update-payment", response_model=MessageOut)
def update_payment(
    batch_id: str,
    data: PaymentStatusUpdate,
    uow: uow_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor_or_above())
):
    return SaleService(uow).update_payment_status(batch_id, data.is_paid, auth_context)


@sales_router.post("/{batch_id}/void", response_model=MessageOut)
def void_sale(
    batch_id: str,
    uow: uow_dependency,
    data: Optional[VoidSaleRequest] = None,
    auth_context: AuthContext = Depends(AuthDependencies.require_supervisor_or_above())
):
    """
    Anular una factura

    Devuelve al inventario las cantidades de todas sus líneas. La anulación es
    definitiva: un segundo intento responde 409.
    """
    reason = data.reason if data else None
    return SaleService(uow).void_sale(batch_id, reason, auth_context)


@sales_router.delete("/{batch_id}/delete", response_model=MessageOut)
def delete_voided_sale(
    batch_id: str,
    uow: uow_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_support())
):
    """Eliminar definitivamente una factura anulada. Solo admin/support."""
    return SaleService(uow).delete_voided(batch_id)
