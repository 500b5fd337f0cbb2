from app.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, Numeric, Date, Text, CheckConstraint, Uuid
from uuid import uuid4
from app.common.mixins import TimestampMixin
from app.core.config import settings
from app.modules.tours.stock import Stock, stock_from_raw, UNLIMITED_STOCK

# Ítem usado solo para importar reservas históricas; no se vende ni se elimina
IMPORT_ONLY_TOUR_NAME = "Importación de Reservas"


class Tour(Base, TimestampMixin):
    __tablename__ = "tours"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False)
    line = Column(String(100), nullable=False, default=settings.DEFAULT_LINE)  # Categoría
    description = Column(Text, nullable=False, default="")

    price = Column(Numeric(15, 2), nullable=False, default=0)
    child_price = Column(Numeric(15, 2), nullable=True)  # Precio secundario (niño/oferta)
    currency = Column(String(10), nullable=False, default=settings.DEFAULT_CURRENCY)

    # -1 = siempre disponible; solo se incrementa ``sold``
    stock = Column(Integer, nullable=False, default=0)
    sold = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    sequence = Column(Integer, nullable=False, default=0)  # Orden en el catálogo
    low_seats_threshold = Column(Integer, nullable=True)
    tour_date = Column(Date, nullable=True)  # Fecha sugerida para la reserva

    # Contador para compare-and-swap al confirmar la transacción
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint(f"stock >= {UNLIMITED_STOCK}", name="ck_tours_stock_valid"),
        CheckConstraint("sold >= 0", name="ck_tours_sold_non_negative"),
        CheckConstraint("price >= 0", name="ck_tours_price_non_negative"),
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def stock_level(self) -> Stock:
        return stock_from_raw(self.stock)

    @stock_level.setter
    def stock_level(self, value: Stock):
        self.stock = value.raw

    @property
    def is_unlimited(self) -> bool:
        return self.stock == UNLIMITED_STOCK

    @property
    def is_import_only(self) -> bool:
        return (self.name or "").strip().lower() == IMPORT_ONLY_TOUR_NAME.lower()
