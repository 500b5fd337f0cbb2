from app.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Numeric, Text, CheckConstraint, Index, Uuid
from sqlalchemy.orm import relationship
from uuid import uuid4
from app.common.mixins import TimestampMixin


class Sale(Base, TimestampMixin):
    """
    Línea de venta. Las líneas que comparten ``batch_id`` forman la factura;
    no existe una tabla de cabecera.
    """
    __tablename__ = "sales"

    id = Column(Uuid, primary_key=True, default=uuid4)
    batch_id = Column(String(64), nullable=False, index=True)
    tour_id = Column(Uuid, ForeignKey("tours.id", ondelete="RESTRICT"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)  # Orden de la línea en la factura

    # Importes capturados al momento de la venta
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    total = Column(Numeric(15, 2), nullable=False)
    abono = Column(Numeric(15, 2), nullable=False, default=0)
    pendiente = Column(Numeric(15, 2), nullable=False, default=0)
    is_paid = Column(Boolean, nullable=False, default=False)

    # Cliente
    customer_name = Column(String(200), nullable=False)
    customer_phone = Column(String(50), nullable=False)
    cedula = Column(String(20), nullable=True)
    customer_address = Column(String(300), nullable=True)
    provincia = Column(String(100), nullable=True)
    municipio = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    # Atribución
    nombre_vendedor = Column(String(200), nullable=True, index=True)
    supervisor = Column(String(200), nullable=True, index=True)

    # Fechas
    fecha_entrega = Column(DateTime(timezone=True), nullable=True)  # Momento de la reserva
    fecha_visita = Column(DateTime(timezone=True), nullable=True)   # Fecha del tour

    # Anulación (terminal)
    voided_at = Column(DateTime(timezone=True), nullable=True)
    void_reason = Column(String(500), nullable=True)

    tour = relationship("Tour", lazy="joined")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_sales_quantity_positive"),
        CheckConstraint("abono >= 0 AND abono <= total", name="ck_sales_abono_range"),
        Index("idx_sales_batch_position", "batch_id", "position"),
    )

    @property
    def is_voided(self) -> bool:
        return self.voided_at is not None


# Campos de cliente/atribución que comparten todas las líneas de una factura
BATCH_SHARED_FIELDS = (
    "customer_name",
    "customer_phone",
    "cedula",
    "customer_address",
    "provincia",
    "municipio",
    "notes",
    "nombre_vendedor",
    "supervisor",
    "fecha_entrega",
    "fecha_visita",
    "is_paid",
)
