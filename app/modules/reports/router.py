from fastapi import APIRouter, Depends, status
from typing import List

from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.reports.service import ReportService
from app.modules.reports.schemas import MonthlySummaryOut, SalesStats

reports_router = APIRouter(prefix="/reports", tags=["Reports"])


@reports_router.get("/sales/stats", response_model=SalesStats)
def get_sales_stats(
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_support())
):
    """
    Resumen de ventas

    Ingresos y unidades de facturas pagadas y no anuladas, ranking de
    vendedores y ventas por provincia. Los supervisores no tienen acceso.
    """
    return ReportService(db).sales_stats()


@reports_router.get("/monthly-snapshots", response_model=List[MonthlySummaryOut])
def list_monthly_snapshots(
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_support())
):
    return ReportService(db).list_snapshots()


@reports_router.post("/monthly-snapshots", response_model=MonthlySummaryOut, status_code=status.HTTP_201_CREATED)
def create_monthly_snapshot(
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_support())
):
    """Generar (o regenerar) la foto del mes en curso."""
    return ReportService(db).create_monthly_snapshot()
