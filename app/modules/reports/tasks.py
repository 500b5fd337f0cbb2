"""
Tareas periódicas de Celery para reportes.
"""
import logging

from app.core.celery import celery_app
from app.database.database import SessionLocal
from app.modules.reports.service import ReportService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def create_monthly_snapshot_task(self):
    """
    Foto mensual del catálogo. Programada en el beat schedule; también se
    puede encolar manualmente.
    """
    db = SessionLocal()
    try:
        summary = ReportService(db).create_monthly_snapshot()
        return {"status": "success", "year": summary.year, "month": summary.month}

    except Exception as exc:
        logger.error(f"Monthly snapshot task failed: {str(exc)}")

        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        return {"status": "failed", "error": str(exc)}
    finally:
        db.close()
