"""
Frontera de autorización: validación de JWT y control por roles
(admin, support, supervisor).
"""
