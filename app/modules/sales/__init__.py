"""
Motor de ventas e inventario.

- Sale: línea de venta; las líneas con el mismo batch_id forman una factura
- SaleBatch: agregado de factura (totales, anulación, datos compartidos)
- SaleService: creación, anulación y edición atómicas sobre una UnitOfWork
- split: reparto abono/pendiente de cada línea
"""
