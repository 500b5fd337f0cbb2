"""
Catálogo de ítems vendibles (tours o productos).

- Tour: precio, precio secundario opcional, stock (-1 = siempre disponible), vendidos
- TourInventory: primitivas de inventario usadas solo por el motor de ventas
- TourService: gestión del catálogo (admin/support)
"""
