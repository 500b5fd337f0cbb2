"""
Motor de ventas: creación, anulación y edición de facturas.

Cada operación abre una sola transacción de la UnitOfWork recibida en el
constructor. Dentro de ella se bloquean los ítems afectados, se valida el
stock, se ajustan los contadores stock/sold y se escriben las líneas; ante
cualquier error se hace rollback completo.
"""
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, NamedTuple, Optional, Tuple
from uuid import UUID
import logging

from fastapi import HTTPException
from sqlalchemy.orm.exc import StaleDataError

from app.common.errors import (
    BusinessValidationError, ConflictError, InsufficientStockError, InternalError
)
from app.common.pagination import paginate
from app.core.config import settings
from app.database.unit_of_work import UnitOfWork
from app.modules.auth.schemas import AuthContext
from app.modules.sales.batch import SaleBatch
from app.modules.sales.models import Sale
from app.modules.sales.schemas import (
    SaleCreate, SaleItemCreate, SaleItemEdit, BatchItemsUpdate, InvoiceUpdate,
    SaleCreated, BatchOut, MessageOut, SaleList, PriceTier
)
from app.modules.sales.split import recompute, recompute_on_change, settle, to_money
from app.modules.tours.inventory import TourInventory
from app.modules.tours.models import Tour
from app.modules.tours.stock import StockError

logger = logging.getLogger(__name__)


class PricedLine(NamedTuple):
    tour_id: UUID
    quantity: int
    unit_price: Decimal
    total: Decimal
    abono: Optional[Decimal]


def price_line(tour: Tour, quantity: int, unit_price: Optional[Decimal] = None,
               total: Optional[Decimal] = None,
               tier: PriceTier = PriceTier.REGULAR) -> Tuple[Decimal, Decimal]:
    """
    Precio unitario y total de una línea:
    - con unit_price: total = quantity × unit_price
    - solo total: se guarda el total acordado y unit_price = total / quantity
    - ninguno: precio de lista del tier pedido
    """
    if unit_price is not None:
        unit_price = to_money(unit_price)
        return unit_price, to_money(unit_price * quantity)
    if total is not None:
        total = to_money(total)
        return to_money(total / quantity), total

    if tier == PriceTier.CHILD:
        if tour.child_price is None:
            raise BusinessValidationError(f"{tour.name} no tiene precio secundario")
        list_price = tour.child_price
    else:
        list_price = tour.price
    unit_price = to_money(list_price)
    return unit_price, to_money(unit_price * quantity)


def merge_lines(lines: List[PricedLine]) -> List[PricedLine]:
    """Une las líneas con el mismo (tour, precio unitario); precios distintos quedan separados."""
    merged: Dict[Tuple[UUID, Decimal], PricedLine] = {}
    for line in lines:
        key = (line.tour_id, line.unit_price)
        current = merged.get(key)
        if current is None:
            merged[key] = line
            continue
        if current.abono is None and line.abono is None:
            abono = None
        else:
            abono = to_money(current.abono) + to_money(line.abono)
        merged[key] = PricedLine(
            tour_id=line.tour_id,
            quantity=current.quantity + line.quantity,
            unit_price=line.unit_price,
            total=current.total + line.total,
            abono=abono
        )
    return list(merged.values())


class SaleService:
    def __init__(self, uow: UnitOfWork):
        self.uow = uow
        self.db = uow.session
        self.inventory = TourInventory(uow)

    # ===== CREACIÓN =====

    def create_sale(self, sale_data: SaleCreate, auth: AuthContext) -> SaleCreated:
        """Crea la factura y reserva el inventario de todas sus líneas en una transacción."""
        try:
            with self.uow.transaction():
                tours = self.inventory.lock(item.tour_id for item in sale_data.items)
                for tour in tours.values():
                    self._ensure_sellable(tour)

                lines = merge_lines([self._price_new_item(tours[item.tour_id], item)
                                     for item in sale_data.items])

                self._reserve(tours, self._demand(lines))

                batch = SaleBatch.start(self.db)
                shared = self._shared_fields(sale_data, auth)
                for position, line in enumerate(lines):
                    split = settle(line.total) if sale_data.is_paid else recompute(line.total, line.abono)
                    batch.add_line(line.tour_id, line.quantity, line.unit_price, line.total,
                                   split, shared, position)

            logger.info(f"Sale {batch.batch_id} created with {len(batch.lines)} lines, subtotal {batch.subtotal}")
            return SaleCreated(id=batch.batch_id, sales_count=len(batch.lines))

        except HTTPException:
            raise
        except StaleDataError:
            raise ConflictError("El inventario cambió durante la venta; intente de nuevo")
        except Exception as e:
            logger.error(f"Error creating sale: {e}", exc_info=True)
            raise InternalError("Failed to process sale")

    def _price_new_item(self, tour: Tour, item: SaleItemCreate) -> PricedLine:
        unit_price, total = price_line(tour, item.quantity, item.unit_price, item.total, item.price_tier)
        return PricedLine(tour.id, item.quantity, unit_price, total, item.abono)

    def _shared_fields(self, sale_data: SaleCreate, auth: AuthContext) -> Dict:
        supervisor = sale_data.supervisor
        # Un supervisor solo puede registrar ventas a su nombre
        if auth.supervisor_scope:
            supervisor = auth.supervisor_scope
        return {
            "customer_name": sale_data.customer_name,
            "customer_phone": sale_data.customer_phone,
            "cedula": sale_data.cedula,
            "customer_address": sale_data.customer_address,
            "provincia": sale_data.provincia,
            "municipio": sale_data.municipio,
            "notes": sale_data.notes,
            "nombre_vendedor": sale_data.nombre_vendedor,
            "supervisor": supervisor,
            "fecha_entrega": datetime.now(timezone.utc),
            "fecha_visita": sale_data.fecha_visita,
            "is_paid": sale_data.is_paid,
        }

    # ===== ANULACIÓN =====

    def void_sale(self, batch_id: str, reason: Optional[str], auth: AuthContext) -> MessageOut:
        """ACTIVE -> VOIDED. Restaura exactamente lo reservado; un segundo intento es conflicto."""
        try:
            with self.uow.transaction():
                batch = SaleBatch.load(self.db, batch_id, auth.supervisor_scope, for_update=True)
                if batch.is_voided:
                    raise ConflictError("Invoice already voided")

                tours = self.inventory.lock(line.tour_id for line in batch.lines)
                for line in batch.lines:
                    self.inventory.release(tours[line.tour_id], line.quantity)
                batch.void(reason)

            logger.info(f"Sale {batch_id} voided ({len(batch.lines)} lines). Reason: {reason}")
            return MessageOut(message="Invoice voided and inventory restored")

        except HTTPException:
            raise
        except StaleDataError:
            raise ConflictError("El inventario cambió durante la anulación; intente de nuevo")
        except Exception as e:
            logger.error(f"Error voiding sale {batch_id}: {e}", exc_info=True)
            raise InternalError("Failed to void invoice")

    # ===== EDICIÓN DE LÍNEAS =====

    def update_batch_items(self, batch_id: str, data: BatchItemsUpdate, auth: AuthContext) -> BatchOut:
        """
        Reescribe las líneas de una factura activa:
        - item con id: actualiza la línea (cantidad, precio, abono, orden)
        - item sin id: agrega una línea con los datos de cliente de la factura
        - línea existente ausente del request: se elimina

        Las diferencias de cantidad mueven inventario igual que la creación y
        la anulación: stock consumido == suma de cantidades de líneas activas.
        """
        try:
            with self.uow.transaction():
                batch = SaleBatch.load(self.db, batch_id, auth.supervisor_scope, for_update=True)
                batch.ensure_active()

                current = {line.id: line for line in batch.lines}
                unknown = [str(item.id) for item in data.items if item.id is not None and item.id not in current]
                if unknown:
                    raise BusinessValidationError(f"Líneas que no pertenecen a la factura: {', '.join(unknown)}")

                kept_ids = {item.id for item in data.items if item.id is not None}
                removed = [line for line in batch.lines if line.id not in kept_ids]

                delta = self._edit_delta(data.items, current, removed)
                tours = self.inventory.lock(list(delta.keys()))
                for item in data.items:
                    existing = current.get(item.id) if item.id else None
                    if existing is None or existing.tour_id != item.tour_id:
                        self._ensure_sellable(tours[item.tour_id])

                self._move_inventory(tours, delta)

                shared = batch.shared_fields()
                for position, item in enumerate(data.items):
                    if item.id is not None:
                        self._apply_line_edit(batch, current[item.id], item, tours[item.tour_id], position)
                    else:
                        unit_price, total = price_line(tours[item.tour_id], item.quantity, item.unit_price, item.total)
                        batch.add_line(item.tour_id, item.quantity, unit_price, total,
                                       recompute(total, item.abono), shared, position)

                for line in removed:
                    batch.remove_line(line)

                if not batch.lines:
                    raise BusinessValidationError("At least one item is required")
                batch.reorder()
                batch.sync_paid_flag()

            logger.info(
                f"Sale {batch_id} edited: {len(batch.lines)} lines, removed {len(removed)}, "
                f"subtotal {batch.subtotal}"
            )
            return batch.to_out()

        except HTTPException:
            raise
        except StaleDataError:
            raise ConflictError("El inventario cambió durante la edición; intente de nuevo")
        except Exception as e:
            logger.error(f"Error updating sale {batch_id}: {e}", exc_info=True)
            raise InternalError("Failed to update batch")

    def _edit_delta(self, items: List[SaleItemEdit], current: Dict[UUID, Sale],
                    removed: List[Sale]) -> Dict[UUID, int]:
        """Cambio neto de cantidad por tour (positivo = reservar, negativo = liberar)."""
        delta: Dict[UUID, int] = defaultdict(int)
        for item in items:
            existing = current.get(item.id) if item.id else None
            if existing is None:
                delta[item.tour_id] += item.quantity
            elif existing.tour_id == item.tour_id:
                delta[item.tour_id] += item.quantity - existing.quantity
            else:
                delta[existing.tour_id] -= existing.quantity
                delta[item.tour_id] += item.quantity
        for line in removed:
            delta[line.tour_id] -= line.quantity
        return delta

    def _apply_line_edit(self, batch: SaleBatch, line: Sale, item: SaleItemEdit, tour: Tour, position: int):
        unchanged_line = line.tour_id == item.tour_id and line.quantity == item.quantity
        if item.unit_price is None and item.total is None and unchanged_line:
            # Reordenar o cambiar solo el abono no toca el importe acordado
            unit_price, total = to_money(line.unit_price), to_money(line.total)
        elif item.unit_price is None and item.total is None and line.tour_id == item.tour_id:
            # Sin precio nuevo se conserva el precio unitario cobrado
            unit_price, total = price_line(tour, item.quantity, unit_price=line.unit_price)
        else:
            unit_price, total = price_line(tour, item.quantity, item.unit_price, item.total)

        if item.abono is not None:
            split = recompute(total, item.abono)
        else:
            split = recompute_on_change(line.abono, line.total, total)
        batch.update_line(line, item.tour_id, item.quantity, unit_price, total, split, position)

    # ===== INVENTARIO =====

    def _ensure_sellable(self, tour: Tour):
        if tour.is_import_only:
            raise BusinessValidationError(f"{tour.name} is for import only and cannot be sold.")
        if not tour.is_active:
            raise BusinessValidationError(f"{tour.name} no está disponible para la venta")

    def _demand(self, lines: List[PricedLine]) -> Dict[UUID, int]:
        demand: Dict[UUID, int] = defaultdict(int)
        for line in lines:
            demand[line.tour_id] += line.quantity
        return demand

    def _reserve(self, tours: Dict[UUID, Tour], demand: Dict[UUID, int]):
        short = self.inventory.shortages(tours, demand)
        if short:
            names = ", ".join(f"{s['name']} (disponible: {s['available']}, solicitado: {s['requested']})" for s in short)
            raise InsufficientStockError(f"Insufficient stock for {names}", items=short)
        try:
            for tour_id, quantity in demand.items():
                self.inventory.reserve(tours[tour_id], quantity)
        except StockError as e:
            raise ConflictError(str(e))

    def _move_inventory(self, tours: Dict[UUID, Tour], delta: Dict[UUID, int]):
        self._reserve(tours, {tour_id: d for tour_id, d in delta.items() if d > 0})
        for tour_id, d in delta.items():
            if d < 0:
                self.inventory.release(tours[tour_id], -d)

    # ===== OTRAS OPERACIONES DE FACTURA =====

    def get_batch(self, batch_id: str, auth: AuthContext) -> BatchOut:
        return SaleBatch.load(self.db, batch_id, auth.supervisor_scope).to_out()

    def list_sales(self, auth: AuthContext, month: Optional[int] = None, year: Optional[int] = None,
                   page: Optional[int] = None, limit: Optional[int] = None) -> SaleList:
        """Líneas ordenadas por factura y posición, con filtro opcional por mes/año de creación."""
        query = self.db.query(Sale)
        if auth.supervisor_scope:
            query = query.filter(Sale.supervisor == auth.supervisor_scope)

        window = self._date_window(month, year)
        if window:
            query = query.filter(Sale.created_at >= window[0], Sale.created_at < window[1])
        query = query.order_by(Sale.batch_id.asc(), Sale.position.asc(), Sale.created_at.asc())

        if page is None and limit is None:
            return SaleList(data=query.all())

        limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        sales, pagination = paginate(query, page or 1, limit)
        return SaleList(data=sales, pagination=pagination)

    @staticmethod
    def _date_window(month: Optional[int], year: Optional[int]) -> Optional[Tuple[datetime, datetime]]:
        if year and month:
            start = datetime(year, month, 1)
            end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
            return start, end
        if year:
            return datetime(year, 1, 1), datetime(year + 1, 1, 1)
        return None

    def update_customer(self, batch_id: str, data: InvoiceUpdate, auth: AuthContext) -> MessageOut:
        """Actualiza los datos de cliente/atribución en todas las líneas de la factura."""
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            return MessageOut(message="Nothing to update")
        try:
            with self.uow.transaction():
                batch = SaleBatch.load(self.db, batch_id, auth.supervisor_scope, for_update=True)
                batch.ensure_active("Cannot update a voided invoice")
                batch.apply_shared(fields)
            logger.info(f"Sale {batch_id} customer data updated: {sorted(fields)}")
            return MessageOut(message="Invoice updated successfully")
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating invoice {batch_id}: {e}", exc_info=True)
            raise InternalError("Failed to update invoice")

    def update_payment_status(self, batch_id: str, is_paid: bool, auth: AuthContext) -> MessageOut:
        try:
            with self.uow.transaction():
                batch = SaleBatch.load(self.db, batch_id, auth.supervisor_scope, for_update=True)
                batch.ensure_active("Cannot update payment status of voided invoice")
                batch.set_paid(is_paid)
            logger.info(f"Sale {batch_id} payment status -> {is_paid}")
            return MessageOut(
                message="Factura marcada como pagada" if is_paid else "Factura marcada como pendiente"
            )
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating payment status of {batch_id}: {e}", exc_info=True)
            raise InternalError("Failed to update payment status")

    def delete_voided(self, batch_id: str) -> MessageOut:
        """Elimina definitivamente una factura anulada (revisión/limpieza)."""
        try:
            with self.uow.transaction():
                batch = SaleBatch.load(self.db, batch_id, for_update=True)
                if not batch.is_fully_voided:
                    raise BusinessValidationError("Only voided (anulada) invoices can be deleted")
                batch.delete()
            logger.info(f"Voided sale {batch_id} deleted")
            return MessageOut(message="Voided invoice deleted permanently")
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error deleting voided invoice {batch_id}: {e}", exc_info=True)
            raise InternalError("Failed to delete invoice")
