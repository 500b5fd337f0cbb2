"""
Servicio de reportes: foto mensual del catálogo y resumen de ventas.

Ambos son de solo lectura sobre ventas e inventario; la foto mensual solo
escribe en ``monthly_summaries``.
"""
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Set
import logging

from fastapi import HTTPException
from sqlalchemy import desc, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.common.errors import InternalError
from app.modules.reports.models import MonthlySummary
from app.modules.reports.schemas import SalesStats, SellerStats, ProvinciaStats
from app.modules.sales.models import Sale
from app.modules.sales.split import to_money, ZERO
from app.modules.tours.models import Tour

logger = logging.getLogger(__name__)


class ReportService:
    def __init__(self, db: Session):
        self.db = db

    def create_monthly_snapshot(self, now: Optional[datetime] = None) -> MonthlySummary:
        """
        Crea o actualiza la foto del mes de ``now`` sobre los tours activos:
        ingresos = Σ price × sold, unidades = Σ sold, tour más vendido.
        """
        now = now or datetime.now(timezone.utc)
        tours = (
            self.db.query(Tour)
            .filter(Tour.is_active.is_(True))
            .order_by(Tour.sequence.asc(), Tour.created_at.asc())
            .all()
        )

        values = {
            "total_revenue": to_money(sum((Decimal(t.price) * t.sold for t in tours), ZERO)),
            "total_sold": sum(t.sold for t in tours),
            "total_tours": len(tours),
            "top_tour_id": None,
            "top_tour_sold": 0,
        }
        top = None
        for tour in tours:
            if top is None or tour.sold > top.sold:
                top = tour
        if top is not None:
            values["top_tour_id"] = top.id
            values["top_tour_sold"] = top.sold

        try:
            summary = self._upsert(now.year, now.month, values)
            logger.info(
                f"Monthly snapshot {now.year}-{now.month:02d}: revenue {values['total_revenue']}, "
                f"sold {values['total_sold']}, tours {values['total_tours']}"
            )
            return summary
        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating monthly snapshot: {e}", exc_info=True)
            raise InternalError("Failed to create snapshot")

    def _upsert(self, year: int, month: int, values: Dict) -> MonthlySummary:
        summary = self._find(year, month)
        if summary is None:
            summary = MonthlySummary(year=year, month=month, **values)
            self.db.add(summary)
            try:
                self.db.commit()
            except IntegrityError:
                # Otra ejecución creó el mes primero: se actualiza esa fila
                self.db.rollback()
                summary = self._find(year, month)
                self._apply(summary, values)
                self.db.commit()
        else:
            self._apply(summary, values)
            self.db.commit()
        self.db.refresh(summary)
        return summary

    def _find(self, year: int, month: int) -> Optional[MonthlySummary]:
        return self.db.query(MonthlySummary).filter(
            MonthlySummary.year == year,
            MonthlySummary.month == month
        ).first()

    @staticmethod
    def _apply(summary: MonthlySummary, values: Dict):
        for field, value in values.items():
            setattr(summary, field, value)

    def list_snapshots(self) -> List[MonthlySummary]:
        return (
            self.db.query(MonthlySummary)
            .order_by(desc(MonthlySummary.year), desc(MonthlySummary.month))
            .all()
        )

    def sales_stats(self) -> SalesStats:
        """Ingresos y unidades de líneas pagadas y no anuladas, vendedores y provincias."""
        revenue, units = (
            self.db.query(func.sum(Sale.total), func.sum(Sale.quantity))
            .filter(Sale.is_paid.is_(True), Sale.voided_at.is_(None))
            .one()
        )

        sellers: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        seller_batches: Dict[str, Set[str]] = defaultdict(set)
        rows = (
            self.db.query(Sale.nombre_vendedor, Sale.batch_id, Sale.total)
            .filter(Sale.voided_at.is_(None), Sale.nombre_vendedor.isnot(None))
            .all()
        )
        for name, batch_id, total in rows:
            name = (name or "").strip()
            if not name:
                continue
            sellers[name] += to_money(total)
            seller_batches[name].add(batch_id)

        provincias: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        rows = (
            self.db.query(Sale.provincia, Sale.total)
            .filter(Sale.voided_at.is_(None), Sale.provincia.isnot(None))
            .all()
        )
        for provincia, total in rows:
            provincia = (provincia or "").strip()
            if provincia:
                provincias[provincia] += to_money(total)

        top_sellers = sorted(
            (SellerStats(nombre_vendedor=name, total_revenue=amount, invoice_count=len(seller_batches[name]))
             for name, amount in sellers.items()),
            key=lambda s: s.total_revenue,
            reverse=True
        )
        provincia_stats = sorted(
            (ProvinciaStats(provincia=name, total=amount) for name, amount in provincias.items()),
            key=lambda p: p.total,
            reverse=True
        )
        return SalesStats(
            paid_revenue=to_money(revenue),
            paid_units=int(units or 0),
            top_sellers=top_sellers,
            provincia_stats=provincia_stats
        )
