"""
Paginación estándar para listados
"""
from math import ceil
from typing import List, Tuple

from pydantic import BaseModel
from sqlalchemy.orm import Query


class Pagination(BaseModel):
    """Metadatos de paginación devueltos junto a ``data``"""
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


def paginate(query: Query, page: int, limit: int) -> Tuple[List, Pagination]:
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    total_pages = ceil(total / limit) if limit else 0
    return rows, Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1
    )
