from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.common.pagination import Pagination
from app.modules.tours.stock import UNLIMITED_STOCK

MAX_PRICE = Decimal("10000000")
MAX_STOCK = 100_000


class TourBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    line: Optional[str] = Field(None, max_length=100, description="Categoría")
    description: str = Field(..., min_length=1, max_length=2000)
    price: Decimal = Field(..., ge=0, le=MAX_PRICE)
    child_price: Optional[Decimal] = Field(None, ge=0, le=MAX_PRICE, description="Precio niño/oferta")
    currency: Optional[str] = Field(None, max_length=10)
    is_active: bool = True
    sequence: int = Field(0, ge=0)
    low_seats_threshold: Optional[int] = Field(None, ge=0)
    tour_date: Optional[date] = None

    @field_validator('name', 'description')
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError('No puede estar vacío')
        return v.strip()


class TourCreate(TourBase):
    stock: int = Field(
        0, ge=UNLIMITED_STOCK, le=MAX_STOCK,
        description="Stock inicial; -1 = siempre disponible"
    )


class TourUpdate(BaseModel):
    """Actualización parcial. stock y sold no se editan desde aquí."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    line: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    price: Optional[Decimal] = Field(None, ge=0, le=MAX_PRICE)
    child_price: Optional[Decimal] = Field(None, ge=0, le=MAX_PRICE)
    currency: Optional[str] = Field(None, max_length=10)
    is_active: Optional[bool] = None
    sequence: Optional[int] = Field(None, ge=0)
    low_seats_threshold: Optional[int] = Field(None, ge=0)
    tour_date: Optional[date] = None

    @field_validator('name', 'line', 'description', 'price', 'currency', 'is_active', 'sequence')
    @classmethod
    def not_null(cls, v):
        # Campos NOT NULL: se pueden omitir pero no enviar como null
        if v is None:
            raise ValueError('No puede ser null')
        if isinstance(v, str):
            if not v.strip():
                raise ValueError('No puede estar vacío')
            return v.strip()
        return v


class TourStockSet(BaseModel):
    """Reposición de cupos (valor absoluto)."""
    stock: int = Field(..., ge=UNLIMITED_STOCK, le=MAX_STOCK)


class TourOut(BaseModel):
    id: UUID
    name: str
    line: str
    description: str
    price: Decimal
    child_price: Optional[Decimal]
    currency: str
    stock: int
    sold: int
    is_active: bool
    sequence: int
    low_seats_threshold: Optional[int]
    tour_date: Optional[date]
    is_unlimited: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TourList(BaseModel):
    data: List[TourOut]
    pagination: Pagination
