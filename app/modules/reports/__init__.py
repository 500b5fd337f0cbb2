"""
Reports Module

Consultas de solo lectura sobre ventas e inventario:
- Foto mensual del catálogo activo (MonthlySummary), programada con Celery beat
- Resumen de ventas pagadas, ranking de vendedores y ventas por provincia

Architecture Pattern: Service Layer
- router.py -> Endpoints FastAPI (admin/support)
- service.py -> Consultas y agregaciones
- tasks.py -> Tareas periódicas de Celery
"""
