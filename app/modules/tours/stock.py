"""
Nivel de stock de un ítem vendible.

En base de datos el stock es un entero donde -1 significa "siempre
disponible" (solo se registran las ventas). En el código se trabaja con un
tipo etiquetado: ``Unlimited`` o ``Tracked(count)``. Toda la aritmética de
inventario pasa por estos objetos.
"""
from dataclasses import dataclass
from typing import Union

UNLIMITED_STOCK = -1


class StockError(ValueError):
    pass


class NotEnoughStock(StockError):
    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(f"Stock insuficiente: disponible {available}, solicitado {requested}")


def _check_quantity(quantity: int):
    if quantity < 0:
        raise StockError(f"Cantidad inválida: {quantity}")


@dataclass(frozen=True)
class Unlimited:
    """Ítem que nunca se descuenta (reservas de tour sin cupo fijo)."""

    @property
    def raw(self) -> int:
        return UNLIMITED_STOCK

    @property
    def is_unlimited(self) -> bool:
        return True

    def covers(self, quantity: int) -> bool:
        return True

    def take(self, quantity: int) -> "Unlimited":
        _check_quantity(quantity)
        return self

    def give_back(self, quantity: int) -> "Unlimited":
        _check_quantity(quantity)
        return self


@dataclass(frozen=True)
class Tracked:
    count: int

    def __post_init__(self):
        if self.count < 0:
            raise StockError(f"El stock no puede ser negativo: {self.count}")

    @property
    def raw(self) -> int:
        return self.count

    @property
    def is_unlimited(self) -> bool:
        return False

    def covers(self, quantity: int) -> bool:
        return self.count >= quantity

    def take(self, quantity: int) -> "Tracked":
        _check_quantity(quantity)
        if not self.covers(quantity):
            raise NotEnoughStock(self.count, quantity)
        return Tracked(self.count - quantity)

    def give_back(self, quantity: int) -> "Tracked":
        _check_quantity(quantity)
        return Tracked(self.count + quantity)


Stock = Union[Unlimited, Tracked]


def stock_from_raw(value: int) -> Stock:
    if value == UNLIMITED_STOCK:
        return Unlimited()
    return Tracked(value)
