"""
Tests para el módulo de Reportes

- Foto mensual: agregación sobre tours activos y upsert por (año, mes)
- Resumen de ventas: solo líneas pagadas y no anuladas cuentan como ingreso
- Acceso: supervisores sin acceso al resumen
"""

from datetime import datetime
from decimal import Decimal

from app.modules.reports.models import MonthlySummary
from app.modules.reports.service import ReportService
from app.modules.sales.schemas import SaleCreate
from app.modules.sales.service import SaleService


def _create_sale(uow, auth, tour, quantity, **fields):
    data = {
        "items": [{"tour_id": str(tour.id), "quantity": quantity}],
        "customer_name": "Cliente",
        "customer_phone": "809-000-0000",
        "fecha_visita": "2026-11-15T08:00:00",
    }
    data.update(fields)
    return SaleService(uow).create_sale(SaleCreate(**data), auth)


class TestMonthlySnapshot:

    def test_snapshot_aggregates_active_tours(self, db_session, make_tour):
        top = make_tour(name="Saona", price="10.00", sold=5)
        make_tour(name="Samaná", price="20.00", sold=2)
        make_tour(name="Inactivo", price="99.00", sold=50, is_active=False)

        summary = ReportService(db_session).create_monthly_snapshot(datetime(2026, 3, 31, 23, 55))

        assert (summary.year, summary.month) == (2026, 3)
        assert summary.total_revenue == Decimal("90.00")
        assert summary.total_sold == 7
        assert summary.total_tours == 2
        assert summary.top_tour_id == top.id
        assert summary.top_tour_sold == 5

    def test_snapshot_upserts_same_month(self, db_session, make_tour):
        tour = make_tour(price="10.00", sold=1)
        service = ReportService(db_session)
        service.create_monthly_snapshot(datetime(2026, 4, 1))

        tour.sold = 4
        db_session.commit()
        summary = service.create_monthly_snapshot(datetime(2026, 4, 30))

        assert db_session.query(MonthlySummary).count() == 1
        assert summary.total_sold == 4
        assert summary.total_revenue == Decimal("40.00")

    def test_snapshot_without_tours(self, db_session):
        summary = ReportService(db_session).create_monthly_snapshot(datetime(2026, 5, 1))

        assert summary.total_tours == 0
        assert summary.top_tour_id is None
        assert summary.top_tour_sold == 0


class TestSalesStats:

    def test_only_paid_active_lines_count_as_revenue(self, uow, db_session, make_tour, admin_auth):
        tour = make_tour(price="10.00", stock=50)
        _create_sale(uow, admin_auth, tour, 2, is_paid=True, nombre_vendedor="Pedro", provincia="Santo Domingo")
        _create_sale(uow, admin_auth, tour, 3, nombre_vendedor="Pedro", provincia="Santiago")
        voided = _create_sale(uow, admin_auth, tour, 4, is_paid=True, nombre_vendedor="Luis")
        SaleService(uow).void_sale(voided.id, None, admin_auth)

        stats = ReportService(db_session).sales_stats()

        assert stats.paid_revenue == Decimal("20.00")
        assert stats.paid_units == 2
        assert [(s.nombre_vendedor, s.total_revenue, s.invoice_count) for s in stats.top_sellers] == [
            ("Pedro", Decimal("50.00"), 2)
        ]
        assert [(p.provincia, p.total) for p in stats.provincia_stats] == [
            ("Santiago", Decimal("30.00")),
            ("Santo Domingo", Decimal("20.00")),
        ]

    def test_stats_endpoint_access(self, client, admin_headers, supervisor_headers):
        assert client.get("/api/reports/sales/stats", headers=supervisor_headers).status_code == 403

        response = client.get("/api/reports/sales/stats", headers=admin_headers)
        assert response.status_code == 200
        assert Decimal(response.json()["paid_revenue"]) == Decimal("0")

    def test_snapshot_endpoints(self, client, admin_headers, make_tour):
        make_tour(price="15.00", sold=2)

        created = client.post("/api/reports/monthly-snapshots", headers=admin_headers)
        listed = client.get("/api/reports/monthly-snapshots", headers=admin_headers)

        assert created.status_code == 201
        assert Decimal(created.json()["total_revenue"]) == Decimal("30")
        assert len(listed.json()) == 1
