"""
Factura como agregado: el conjunto de líneas de venta con el mismo batch_id.

Los servicios de ventas solo modifican líneas a través de SaleBatch; los
totales de la factura se calculan siempre a partir de las líneas.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID
import secrets
import string
import time

from sqlalchemy.orm import Session

from app.common.errors import ConflictError, NotFoundError
from app.modules.sales.models import Sale, BATCH_SHARED_FIELDS
from app.modules.sales.schemas import BatchOut, SaleLineOut
from app.modules.sales.split import Split, settle, ZERO

_BATCH_ALPHABET = string.ascii_lowercase + string.digits


def new_batch_id() -> str:
    suffix = "".join(secrets.choice(_BATCH_ALPHABET) for _ in range(9))
    return f"sale_{int(time.time() * 1000)}_{suffix}"


class SaleBatch:
    def __init__(self, db: Session, batch_id: str, lines: Optional[List[Sale]] = None):
        self.db = db
        self.batch_id = batch_id
        self.lines: List[Sale] = list(lines or [])

    @classmethod
    def start(cls, db: Session) -> "SaleBatch":
        return cls(db, new_batch_id())

    @classmethod
    def load(cls, db: Session, batch_id: str, supervisor: Optional[str] = None,
             for_update: bool = False) -> "SaleBatch":
        """
        Carga todas las líneas del batch. Con ``supervisor`` solo se ven las
        líneas atribuidas a ese supervisor; sin líneas visibles es 404.
        """
        query = db.query(Sale).filter(Sale.batch_id == batch_id)
        if supervisor:
            query = query.filter(Sale.supervisor == supervisor)
        query = query.order_by(Sale.position.asc(), Sale.created_at.asc())
        if for_update:
            query = query.with_for_update(of=Sale)
        lines = query.all()
        if not lines:
            raise NotFoundError("Invoice not found")
        return cls(db, batch_id, lines)

    # Totales

    @property
    def subtotal(self) -> Decimal:
        return sum((Decimal(line.total) for line in self.lines), ZERO)

    @property
    def total_abono(self) -> Decimal:
        return sum((Decimal(line.abono) for line in self.lines), ZERO)

    @property
    def total_pendiente(self) -> Decimal:
        return sum((Decimal(line.pendiente) for line in self.lines), ZERO)

    @property
    def is_voided(self) -> bool:
        return any(line.voided_at is not None for line in self.lines)

    @property
    def is_fully_voided(self) -> bool:
        return bool(self.lines) and all(line.voided_at is not None for line in self.lines)

    @property
    def is_paid(self) -> bool:
        return bool(self.lines) and all(line.is_paid for line in self.lines)

    def ensure_active(self, message: str = "Cannot edit a voided invoice"):
        if self.is_voided:
            raise ConflictError(message)

    def shared_fields(self) -> Dict:
        """Datos de cliente/atribución tomados de la primera línea."""
        if not self.lines:
            return {}
        first = self.lines[0]
        return {field: getattr(first, field) for field in BATCH_SHARED_FIELDS}

    # Mutaciones

    def add_line(self, tour_id: UUID, quantity: int, unit_price: Decimal, total: Decimal,
                 split: Split, shared: Dict, position: Optional[int] = None) -> Sale:
        line = Sale(
            batch_id=self.batch_id,
            tour_id=tour_id,
            position=len(self.lines) if position is None else position,
            quantity=quantity,
            unit_price=unit_price,
            total=total,
            abono=split.abono,
            pendiente=split.pendiente,
            **shared
        )
        self.db.add(line)
        self.lines.append(line)
        return line

    def update_line(self, line: Sale, tour_id: UUID, quantity: int, unit_price: Decimal,
                    total: Decimal, split: Split, position: int):
        line.tour_id = tour_id
        line.quantity = quantity
        line.unit_price = unit_price
        line.total = total
        line.abono = split.abono
        line.pendiente = split.pendiente
        line.position = position

    def remove_line(self, line: Sale):
        self.lines.remove(line)
        self.db.delete(line)

    def reorder(self):
        self.lines.sort(key=lambda line: line.position)

    def apply_shared(self, fields: Dict):
        for line in self.lines:
            for field, value in fields.items():
                setattr(line, field, value)

    def set_paid(self, is_paid: bool):
        """Marcar como pagada liquida todas las líneas; desmarcar solo cambia el indicador."""
        for line in self.lines:
            line.is_paid = is_paid
            if is_paid:
                split = settle(line.total)
                line.abono = split.abono
                line.pendiente = split.pendiente

    def sync_paid_flag(self):
        """Una factura con saldo pendiente no puede quedar marcada como pagada."""
        if self.is_paid and self.total_pendiente > ZERO:
            for line in self.lines:
                line.is_paid = False

    def void(self, reason: Optional[str] = None, now: Optional[datetime] = None):
        now = now or datetime.now(timezone.utc)
        reason = (reason or "").strip() or None
        for line in self.lines:
            line.voided_at = now
            line.void_reason = reason

    def delete(self):
        for line in list(self.lines):
            self.remove_line(line)

    def to_out(self) -> BatchOut:
        voided = next((line for line in self.lines if line.voided_at is not None), None)
        return BatchOut(
            batch_id=self.batch_id,
            lines=[SaleLineOut.model_validate(line) for line in self.lines],
            subtotal=self.subtotal,
            total_abono=self.total_abono,
            total_pendiente=self.total_pendiente,
            is_paid=self.is_paid,
            is_voided=self.is_voided,
            voided_at=voided.voided_at if voided else None,
            void_reason=voided.void_reason if voided else None
        )
