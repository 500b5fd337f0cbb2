from app.database.database import Base
from sqlalchemy import Column, Integer, Numeric, UniqueConstraint, Uuid
from uuid import uuid4
from app.common.mixins import TimestampMixin


class MonthlySummary(Base, TimestampMixin):
    """Foto mensual del catálogo activo (ingresos estimados y unidades vendidas)."""
    __tablename__ = "monthly_summaries"

    id = Column(Uuid, primary_key=True, default=uuid4)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)

    total_revenue = Column(Numeric(15, 2), nullable=False, default=0)  # Σ price × sold
    total_sold = Column(Integer, nullable=False, default=0)
    total_tours = Column(Integer, nullable=False, default=0)
    top_tour_id = Column(Uuid, nullable=True)  # Sin FK: la foto sobrevive al borrado del tour
    top_tour_sold = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_monthly_summaries_year_month"),
    )
