from pydantic import BaseModel
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime


class MonthlySummaryOut(BaseModel):
    id: UUID
    year: int
    month: int
    total_revenue: Decimal
    total_sold: int
    total_tours: int
    top_tour_id: Optional[UUID]
    top_tour_sold: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SellerStats(BaseModel):
    nombre_vendedor: str
    total_revenue: Decimal
    invoice_count: int


class ProvinciaStats(BaseModel):
    provincia: str
    total: Decimal


class SalesStats(BaseModel):
    """Resumen de ventas: solo líneas pagadas y no anuladas cuentan como ingreso."""
    paid_revenue: Decimal
    paid_units: int
    top_sellers: List[SellerStats]
    provincia_stats: List[ProvinciaStats]
