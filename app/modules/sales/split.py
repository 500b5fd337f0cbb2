"""
Reparto abono/pendiente de una línea de venta.

Funciones puras usadas por la creación y la edición de facturas. Después de
cualquier llamada se cumple ``abono + pendiente == total`` con ambos valores
dentro de ``[0, total]``.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple, Optional

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


class Split(NamedTuple):
    abono: Decimal
    pendiente: Decimal


def to_money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def recompute(total, requested_abono: Optional[Decimal] = None) -> Split:
    """Ajusta el abono pedido al rango [0, total]; pendiente = total - abono."""
    total = max(to_money(total), ZERO)
    abono = min(max(to_money(requested_abono), ZERO), total)
    return Split(abono=abono, pendiente=total - abono)


def recompute_on_change(old_abono, old_total, new_total) -> Split:
    """
    Conserva lo ya pagado frente a un nuevo total; si el total baja por
    debajo del abono, el abono queda en el nuevo total.
    """
    # old_total no interviene en el cálculo: solo se re-acota lo ya pagado
    return recompute(new_total, min(to_money(old_abono), max(to_money(new_total), ZERO)))


def settle(total) -> Split:
    """Línea pagada por completo."""
    return recompute(total, total)
