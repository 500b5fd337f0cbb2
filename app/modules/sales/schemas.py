from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from enum import Enum

from app.common.pagination import Pagination

MAX_ITEMS = 100
MAX_QUANTITY = 1000


class PriceTier(str, Enum):
    REGULAR = "regular"   # Precio principal (adulto)
    CHILD = "child"       # Precio secundario (niño/oferta)


def _strip_or_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


def _check_price_total(item):
    if item.unit_price is not None and item.total is not None:
        if Decimal(item.unit_price) * item.quantity != Decimal(item.total):
            raise ValueError("total debe ser igual a quantity × unit_price")
    return item


# Line item schemas
class SaleItemCreate(BaseModel):
    tour_id: UUID
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY, description="Cantidad, mínimo 1")
    unit_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Precio unitario cobrado")
    total: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Total acordado de la línea")
    abono: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Monto pagado")
    pendiente: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="Ignorado: siempre se calcula")
    price_tier: PriceTier = PriceTier.REGULAR

    @model_validator(mode='after')
    def price_matches_total(self):
        return _check_price_total(self)


class SaleItemEdit(BaseModel):
    id: Optional[UUID] = Field(None, description="Línea existente; sin id se agrega una línea nueva")
    tour_id: UUID
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY)
    unit_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    total: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    abono: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    pendiente: Optional[Decimal] = Field(None, ge=0, decimal_places=2)

    @model_validator(mode='after')
    def price_matches_total(self):
        return _check_price_total(self)


# Invoice (batch) schemas
class SaleCreate(BaseModel):
    items: List[SaleItemCreate] = Field(..., min_length=1, max_length=MAX_ITEMS)
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_phone: str = Field(..., min_length=1, max_length=50)
    cedula: Optional[str] = Field(None, max_length=20)
    provincia: Optional[str] = Field(None, max_length=100)
    municipio: Optional[str] = Field(None, max_length=100)
    customer_address: Optional[str] = Field(None, max_length=300)
    notes: Optional[str] = Field(None, max_length=1000)
    fecha_visita: datetime = Field(..., description="Fecha del tour")
    supervisor: Optional[str] = Field(None, max_length=200)
    nombre_vendedor: Optional[str] = Field(None, max_length=200)
    is_paid: bool = False

    @field_validator('customer_name', 'customer_phone')
    @classmethod
    def required_not_blank(cls, v):
        if not v.strip():
            raise ValueError('Campo requerido')
        return v.strip()

    @field_validator('cedula', 'provincia', 'municipio', 'customer_address', 'notes',
                     'supervisor', 'nombre_vendedor')
    @classmethod
    def optional_strip(cls, v):
        return _strip_or_none(v)


class BatchItemsUpdate(BaseModel):
    items: List[SaleItemEdit] = Field(..., min_length=1, max_length=MAX_ITEMS)

    @model_validator(mode='after')
    def unique_line_ids(self):
        ids = [item.id for item in self.items if item.id is not None]
        if len(ids) != len(set(ids)):
            raise ValueError('Una línea no puede aparecer dos veces')
        return self


class VoidSaleRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class InvoiceUpdate(BaseModel):
    """Datos de cliente/atribución de toda la factura. Todos opcionales."""
    customer_name: Optional[str] = Field(None, min_length=1, max_length=200)
    customer_phone: Optional[str] = Field(None, max_length=50)
    cedula: Optional[str] = Field(None, max_length=20)
    provincia: Optional[str] = Field(None, max_length=100)
    municipio: Optional[str] = Field(None, max_length=100)
    customer_address: Optional[str] = Field(None, max_length=300)
    notes: Optional[str] = Field(None, max_length=1000)
    fecha_entrega: Optional[datetime] = None
    fecha_visita: Optional[datetime] = None
    supervisor: Optional[str] = Field(None, max_length=200)
    nombre_vendedor: Optional[str] = Field(None, max_length=200)

    @field_validator('customer_name', 'customer_phone')
    @classmethod
    def required_not_blank(cls, v):
        # Solo corre si el campo viene en el request: no se puede borrar
        if v is None or not v.strip():
            raise ValueError('Campo requerido')
        return v.strip()


class PaymentStatusUpdate(BaseModel):
    is_paid: bool


# Output schemas
class TourBrief(BaseModel):
    id: UUID
    name: str
    line: str
    currency: str

    class Config:
        from_attributes = True


class SaleLineOut(BaseModel):
    id: UUID
    batch_id: str
    tour_id: UUID
    position: int
    quantity: int
    unit_price: Decimal
    total: Decimal
    abono: Decimal
    pendiente: Decimal
    is_paid: bool
    customer_name: str
    customer_phone: str
    cedula: Optional[str]
    customer_address: Optional[str]
    provincia: Optional[str]
    municipio: Optional[str]
    notes: Optional[str]
    nombre_vendedor: Optional[str]
    supervisor: Optional[str]
    fecha_entrega: Optional[datetime]
    fecha_visita: Optional[datetime]
    voided_at: Optional[datetime]
    void_reason: Optional[str]
    created_at: datetime
    tour: Optional[TourBrief] = None

    class Config:
        from_attributes = True


class BatchOut(BaseModel):
    batch_id: str
    lines: List[SaleLineOut]
    subtotal: Decimal
    total_abono: Decimal
    total_pendiente: Decimal
    is_paid: bool
    is_voided: bool
    voided_at: Optional[datetime] = None
    void_reason: Optional[str] = None


class SaleCreated(BaseModel):
    id: str
    sales_count: int
    message: str = "Sale completed successfully"


class MessageOut(BaseModel):
    success: bool = True
    message: str


class SaleList(BaseModel):
    data: List[SaleLineOut]
    pagination: Optional[Pagination] = None
