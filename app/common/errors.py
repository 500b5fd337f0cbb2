"""
Taxonomía de errores del motor de ventas.

Cada error es un HTTPException con una categoría legible por máquina, de modo
que los servicios pueden seguir el patrón ``except HTTPException: raise`` y
el cliente recibe siempre ``{"error": <categoría>, "message": <texto>}``.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class ErrorCategory(str, Enum):
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INTERNAL = "internal_error"


class SalesError(HTTPException):
    category: ErrorCategory = ErrorCategory.INTERNAL
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, items: Optional[List[Dict[str, Any]]] = None):
        self.message = message
        self.items = items or []
        detail: Dict[str, Any] = {"error": self.category.value, "message": message}
        if self.items:
            detail["items"] = self.items
        super().__init__(status_code=self.http_status, detail=detail)


class BusinessValidationError(SalesError):
    category = ErrorCategory.VALIDATION
    http_status = status.HTTP_400_BAD_REQUEST


class NotFoundError(SalesError):
    category = ErrorCategory.NOT_FOUND
    http_status = status.HTTP_404_NOT_FOUND


class ConflictError(SalesError):
    category = ErrorCategory.CONFLICT
    http_status = status.HTTP_409_CONFLICT


class InsufficientStockError(ConflictError):
    """Uno o más ítems no tienen stock suficiente; ``items`` detalla cada faltante."""


class InternalError(SalesError):
    category = ErrorCategory.INTERNAL
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR


def format_validation_errors(errors) -> str:
    """Resume errores de pydantic como ``ruta: mensaje; ruta: mensaje``."""
    parts = []
    for error in errors:
        path = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        parts.append(f"{path}: {error.get('msg')}" if path else str(error.get("msg")))
    return "; ".join(parts)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "error": ErrorCategory.VALIDATION.value,
                "message": format_validation_errors(exc.errors()),
            }
        },
    )
