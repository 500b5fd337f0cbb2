"""
Tests para el motor de ventas

Cubren:
- Creación atómica con reserva de inventario (stock limitado e ilimitado)
- Reparto abono/pendiente en cada línea
- Anulación terminal con devolución exacta del inventario
- Edición de líneas con ajuste simétrico del inventario
- Alcance de supervisores y endpoints auxiliares de la factura
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from app.common.errors import (
    BusinessValidationError, ConflictError, InsufficientStockError, InternalError, NotFoundError
)
from app.modules.sales.batch import SaleBatch, new_batch_id
from app.modules.sales.models import Sale
from app.modules.sales.schemas import SaleCreate, SaleItemCreate, BatchItemsUpdate, SaleItemEdit, InvoiceUpdate
from app.modules.sales.service import SaleService, merge_lines, PricedLine
from app.modules.sales.split import recompute, recompute_on_change, settle, to_money
from app.modules.tours.inventory import TourInventory
from app.modules.tours.models import Tour, IMPORT_ONLY_TOUR_NAME
from app.modules.tours.stock import UNLIMITED_STOCK


def _sale(*items, **fields):
    data = {
        "items": list(items),
        "customer_name": "Juan Pérez",
        "customer_phone": "809-555-1234",
        "fecha_visita": "2026-12-01T09:00:00",
    }
    data.update(fields)
    return SaleCreate(**data)


def _lines(db, batch_id):
    return db.query(Sale).filter(Sale.batch_id == batch_id).order_by(Sale.position).all()


# ===== REPARTO ABONO / PENDIENTE =====

class TestSplit:
    """Invariante: abono + pendiente == total, ambos dentro de [0, total]"""

    def test_recompute_clamps_abono(self):
        assert recompute(Decimal("100"), Decimal("150")) == (Decimal("100.00"), Decimal("0.00"))
        assert recompute(Decimal("100"), Decimal("-5")) == (Decimal("0.00"), Decimal("100.00"))
        assert recompute(Decimal("100")) == (Decimal("0.00"), Decimal("100.00"))

    def test_recompute_partial(self):
        split = recompute(Decimal("300"), Decimal("100"))
        assert split.abono == Decimal("100.00")
        assert split.pendiente == Decimal("200.00")

    def test_recompute_on_change_keeps_paid_amount(self):
        assert recompute_on_change(Decimal("50"), Decimal("100"), Decimal("200")) == (
            Decimal("50.00"), Decimal("150.00")
        )

    def test_recompute_on_change_lower_total_caps_abono(self):
        assert recompute_on_change(Decimal("80"), Decimal("100"), Decimal("60")) == (
            Decimal("60.00"), Decimal("0.00")
        )

    def test_settle(self):
        assert settle(Decimal("45.5")) == (Decimal("45.50"), Decimal("0.00"))

    def test_to_money_rounds_half_up(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(None) == Decimal("0.00")


class TestMergeLines:

    def test_identical_tour_and_price_are_merged(self):
        tour_id = uuid4()
        merged = merge_lines([
            PricedLine(tour_id, 2, Decimal("10.00"), Decimal("20.00"), Decimal("5.00")),
            PricedLine(tour_id, 1, Decimal("10.00"), Decimal("10.00"), None),
        ])
        assert len(merged) == 1
        assert merged[0].quantity == 3
        assert merged[0].total == Decimal("30.00")
        assert merged[0].abono == Decimal("5.00")

    def test_different_prices_stay_separate(self):
        tour_id = uuid4()
        merged = merge_lines([
            PricedLine(tour_id, 2, Decimal("10.00"), Decimal("20.00"), None),
            PricedLine(tour_id, 1, Decimal("6.00"), Decimal("6.00"), None),
        ])
        assert len(merged) == 2


def test_batch_id_format():
    batch_id = new_batch_id()
    prefix, millis, suffix = batch_id.split("_")
    assert prefix == "sale"
    assert millis.isdigit()
    assert len(suffix) == 9


# ===== CREACIÓN =====

class TestCreateSale:

    def test_scenario_a_partial_payment(self, uow, db_session, make_tour, admin_auth):
        """stock 10 -> venta de 3 con total 300 y abono 100"""
        tour = make_tour(price="100.00", stock=10)

        result = SaleService(uow).create_sale(
            _sale({"tour_id": str(tour.id), "quantity": 3, "total": "300", "abono": "100"}),
            admin_auth
        )

        db_session.refresh(tour)
        assert tour.stock == 7
        assert tour.sold == 3
        lines = _lines(db_session, result.id)
        assert len(lines) == 1
        assert lines[0].total == Decimal("300.00")
        assert lines[0].unit_price == Decimal("100.00")
        assert lines[0].abono == Decimal("100.00")
        assert lines[0].pendiente == Decimal("200.00")
        assert lines[0].fecha_entrega is not None

    def test_scenario_c_unlimited_stock(self, uow, db_session, make_tour, admin_auth):
        tour = make_tour(stock=UNLIMITED_STOCK, sold=2)

        result = SaleService(uow).create_sale(
            _sale({"tour_id": str(tour.id), "quantity": 5}), admin_auth
        )
        db_session.refresh(tour)
        assert tour.stock == UNLIMITED_STOCK
        assert tour.sold == 7

        SaleService(uow).void_sale(result.id, None, admin_auth)
        db_session.refresh(tour)
        assert tour.stock == UNLIMITED_STOCK
        assert tour.sold == 2

    def test_scenario_d_two_prices_not_merged(self, uow, db_session, make_tour, admin_auth):
        tour = make_tour(price="50.00", stock=10, child_price=Decimal("30.00"))

        result = SaleService(uow).create_sale(
            _sale(
                {"tour_id": str(tour.id), "quantity": 2, "abono": "20"},
                {"tour_id": str(tour.id), "quantity": 1, "price_tier": "child", "abono": "500"},
            ),
            admin_auth
        )

        lines = _lines(db_session, result.id)
        assert result.sales_count == 2
        assert [line.unit_price for line in lines] == [Decimal("50.00"), Decimal("30.00")]
        for line in lines:
            assert line.abono + line.pendiente == line.total
            assert Decimal("0") <= line.abono <= line.total
        assert lines[1].abono == Decimal("30.00")
        db_session.refresh(tour)
        assert tour.stock == 7
        assert tour.sold == 3

    def test_identical_lines_are_merged(self, uow, db_session, make_tour, admin_auth):
        tour = make_tour(price="10.00", stock=10)

        result = SaleService(uow).create_sale(
            _sale(
                {"tour_id": str(tour.id), "quantity": 2},
                {"tour_id": str(tour.id), "quantity": 3},
            ),
            admin_auth
        )

        lines = _lines(db_session, result.id)
        assert len(lines) == 1
        assert lines[0].quantity == 5
        assert lines[0].total == Decimal("50.00")

    def test_insufficient_stock_is_atomic(self, uow, db_session, make_tour, admin_auth):
        """Una línea sin stock: no se guarda ninguna línea ni cambia ningún stock"""
        plenty = make_tour(name="Saona", stock=10)
        scarce = make_tour(name="Samaná", stock=1)

        with pytest.raises(InsufficientStockError) as exc_info:
            SaleService(uow).create_sale(
                _sale(
                    {"tour_id": str(plenty.id), "quantity": 2},
                    {"tour_id": str(scarce.id), "quantity": 3},
                ),
                admin_auth
            )

        assert exc_info.value.status_code == 409
        assert exc_info.value.items == [{
            "tour_id": str(scarce.id), "name": "Samaná", "available": 1, "requested": 3
        }]
        db_session.refresh(plenty)
        db_session.refresh(scarce)
        assert (plenty.stock, plenty.sold) == (10, 0)
        assert (scarce.stock, scarce.sold) == (1, 0)
        assert db_session.query(Sale).count() == 0

    def test_merged_demand_is_checked_against_stock(self, uow, db_session, make_tour, admin_auth):
        tour = make_tour(price="10.00", stock=4)

        with pytest.raises(InsufficientStockError):
            SaleService(uow).create_sale(
                _sale(
                    {"tour_id": str(tour.id), "quantity": 3},
                    {"tour_id": str(tour.id), "quantity": 2, "unit_price": "8"},
                ),
                admin_auth
            )
        db_session.refresh(tour)
        assert tour.stock == 4

    def test_unknown_tour_is_not_found(self, uow, admin_auth, db_session):
        with pytest.raises(NotFoundError):
            SaleService(uow).create_sale(_sale({"tour_id": str(uuid4()), "quantity": 1}), admin_auth)

    def test_import_only_tour_cannot_be_sold(self, uow, make_tour, admin_auth):
        tour = make_tour(name=IMPORT_ONLY_TOUR_NAME, stock=UNLIMITED_STOCK)

        with pytest.raises(BusinessValidationError):
            SaleService(uow).create_sale(_sale({"tour_id": str(tour.id), "quantity": 1}), admin_auth)

    def test_inactive_tour_cannot_be_sold(self, uow, make_tour, admin_auth):
        tour = make_tour(is_active=False)

        with pytest.raises(BusinessValidationError):
            SaleService(uow).create_sale(_sale({"tour_id": str(tour.id), "quantity": 1}), admin_auth)

    def test_child_price_required_for_child_tier(self, uow, make_tour, admin_auth):
        tour = make_tour()

        with pytest.raises(BusinessValidationError):
            SaleService(uow).create_sale(
                _sale({"tour_id": str(tour.id), "quantity": 1, "price_tier": "child"}), admin_auth
            )

    def test_paid_sale_settles_every_line(self, uow, db_session, make_tour, admin_auth):
        tour = make_tour(price="25.00")

        result = SaleService(uow).create_sale(
            _sale({"tour_id": str(tour.id), "quantity": 2, "abono": "10"}, is_paid=True), admin_auth
        )

        line = _lines(db_session, result.id)[0]
        assert line.is_paid is True
        assert line.abono == Decimal("50.00")
        assert line.pendiente == Decimal("0.00")

    def test_supervisor_sale_is_attributed_to_supervisor(self, uow, db_session, make_tour, supervisor_auth):
        tour = make_tour()

        result = SaleService(uow).create_sale(
            _sale({"tour_id": str(tour.id), "quantity": 1}, supervisor="Otro Nombre"), supervisor_auth
        )

        assert _lines(db_session, result.id)[0].supervisor == supervisor_auth.supervisor_name

    def test_unit_price_and_total_must_agree(self):
        with pytest.raises(ValueError):
            SaleItemCreate(tour_id=uuid4(), quantity=2, unit_price=Decimal("10"), total=Decimal("25"))

    def test_money_with_more_than_two_decimals_is_rejected(self):
        """0.125 × 8 = 1.00 solo sin redondear: se rechaza antes de guardar"""
        with pytest.raises(ValueError):
            SaleItemCreate(tour_id=uuid4(), quantity=8, unit_price=Decimal("0.125"), total=Decimal("1"))
        with pytest.raises(ValueError):
            SaleItemEdit(tour_id=uuid4(), quantity=1, abono=Decimal("5.001"))

    def test_money_decimals_api_returns_400(self, client, make_tour, admin_headers, sale_payload, db_session):
        tour = make_tour(stock=10)

        response = client.post("/api/sales/", json=sale_payload(
            {"tour_id": str(tour.id), "quantity": 8, "unit_price": "0.125", "total": "1"}
        ), headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation_error"
        assert db_session.query(Sale).count() == 0


# ===== ANULACIÓN =====

class TestVoidSale:

    def test_scenario_b_void_restores_inventory(self, uow, db_session, make_tour, admin_auth):
        tour = make_tour(price="100.00", stock=10)
        service = SaleService(uow)
        result = service.create_sale(
            _sale({"tour_id": str(tour.id), "quantity": 3, "total": "300", "abono": "100"}), admin_auth
        )

        message = service.void_sale(result.id, "  customer cancelled ", admin_auth)

        assert message.message == "Invoice voided and inventory restored"
        db_session.refresh(tour)
        assert tour.stock == 10
        assert tour.sold == 0
        line = _lines(db_session, result.id)[0]
        assert line.voided_at is not None
        assert line.void_reason == "customer cancelled"

    def test_second_void_is_conflict_without_changes(self, uow, db_session, make_tour, admin_auth):
        tour = make_tour(stock=10)
        service = SaleService(uow)
        result = service.create_sale(_sale({"tour_id": str(tour.id), "quantity": 4}), admin_auth)
        service.void_sale(result.id, None, admin_auth)
        db_session.refresh(tour)
        before = (tour.stock, tour.sold)
        voided_at = _lines(db_session, result.id)[0].voided_at

        with pytest.raises(ConflictError):
            service.void_sale(result.id, "otra vez", admin_auth)

        db_session.refresh(tour)
        assert (tour.stock, tour.sold) == before
        line = _lines(db_session, result.id)[0]
        assert line.voided_at == voided_at
        assert line.void_reason is None

    def test_void_clamps_sold_at_zero(self, uow, db_session, make_tour, admin_auth):
        tour = make_tour(stock=10)
        service = SaleService(uow)
        result = service.create_sale(_sale({"tour_id": str(tour.id), "quantity": 3}), admin_auth)
        # Ajuste manual de vendidos fuera del motor
        tour.sold = 1
        db_session.commit()

        service.void_sale(result.id, None, admin_auth)

        db_session.refresh(tour)
        assert tour.sold == 0
        assert tour.stock == 10

    def test_void_unknown_batch(self, uow, admin_auth, db_session):
        with pytest.raises(NotFoundError):
            SaleService(uow).void_sale("sale_0_missing00", None, admin_auth)


# ===== EDICIÓN =====

class TestUpdateBatchItems:

    @pytest.fixture
    def created(self, uow, db_session, make_tour, admin_auth):
        saona = make_tour(name="Saona", price="10.00", stock=10)
        samana = make_tour(name="Samaná", price="20.00", stock=5)
        result = SaleService(uow).create_sale(
            _sale(
                {"tour_id": str(saona.id), "quantity": 2, "abono": "5"},
                {"tour_id": str(samana.id), "quantity": 1},
            ),
            admin_auth
        )
        return result.id, saona, samana

    def test_quantity_increase_reserves_difference(self, uow, db_session, created, admin_auth):
        batch_id, saona, samana = created
        lines = _lines(db_session, batch_id)

        batch = SaleService(uow).update_batch_items(batch_id, BatchItemsUpdate(items=[
            SaleItemEdit(id=lines[0].id, tour_id=saona.id, quantity=5),
            SaleItemEdit(id=lines[1].id, tour_id=samana.id, quantity=1),
        ]), admin_auth)

        db_session.refresh(saona)
        assert (saona.stock, saona.sold) == (5, 5)
        edited = batch.lines[0]
        assert edited.quantity == 5
        assert edited.total == Decimal("50.00")
        assert edited.abono == Decimal("5.00")
        assert edited.pendiente == Decimal("45.00")
        assert batch.subtotal == Decimal("70.00")

    def test_removed_line_releases_inventory(self, uow, db_session, created, admin_auth):
        batch_id, saona, samana = created
        lines = _lines(db_session, batch_id)

        batch = SaleService(uow).update_batch_items(batch_id, BatchItemsUpdate(items=[
            SaleItemEdit(id=lines[0].id, tour_id=saona.id, quantity=2),
        ]), admin_auth)

        assert len(batch.lines) == 1
        db_session.refresh(samana)
        assert (samana.stock, samana.sold) == (5, 0)

    def test_new_line_copies_customer_data(self, uow, db_session, created, admin_auth, make_tour):
        batch_id, saona, samana = created
        lines = _lines(db_session, batch_id)
        extra = make_tour(name="Bávaro", price="15.00", stock=3)

        batch = SaleService(uow).update_batch_items(batch_id, BatchItemsUpdate(items=[
            SaleItemEdit(id=lines[0].id, tour_id=saona.id, quantity=2),
            SaleItemEdit(id=lines[1].id, tour_id=samana.id, quantity=1),
            SaleItemEdit(tour_id=extra.id, quantity=2, abono=Decimal("10")),
        ]), admin_auth)

        added = batch.lines[2]
        assert added.customer_name == "Juan Pérez"
        assert added.total == Decimal("30.00")
        assert added.pendiente == Decimal("20.00")
        db_session.refresh(extra)
        assert (extra.stock, extra.sold) == (1, 2)

    def test_changing_tour_moves_inventory(self, uow, db_session, created, admin_auth):
        batch_id, saona, samana = created
        lines = _lines(db_session, batch_id)

        SaleService(uow).update_batch_items(batch_id, BatchItemsUpdate(items=[
            SaleItemEdit(id=lines[0].id, tour_id=samana.id, quantity=2),
            SaleItemEdit(id=lines[1].id, tour_id=samana.id, quantity=1),
        ]), admin_auth)

        db_session.refresh(saona)
        db_session.refresh(samana)
        assert (saona.stock, saona.sold) == (10, 0)
        assert (samana.stock, samana.sold) == (2, 3)
        assert _lines(db_session, batch_id)[0].unit_price == Decimal("20.00")

    def test_increase_beyond_stock_is_rejected(self, uow, db_session, created, admin_auth):
        batch_id, saona, samana = created
        lines = _lines(db_session, batch_id)

        with pytest.raises(InsufficientStockError):
            SaleService(uow).update_batch_items(batch_id, BatchItemsUpdate(items=[
                SaleItemEdit(id=lines[0].id, tour_id=saona.id, quantity=2),
                SaleItemEdit(id=lines[1].id, tour_id=samana.id, quantity=9),
            ]), admin_auth)

        db_session.refresh(samana)
        assert (samana.stock, samana.sold) == (4, 1)
        assert _lines(db_session, batch_id)[1].quantity == 1

    def test_edit_then_void_restores_original_stock(self, uow, db_session, created, admin_auth):
        batch_id, saona, samana = created
        lines = _lines(db_session, batch_id)
        service = SaleService(uow)

        service.update_batch_items(batch_id, BatchItemsUpdate(items=[
            SaleItemEdit(id=lines[0].id, tour_id=saona.id, quantity=7),
        ]), admin_auth)
        service.void_sale(batch_id, None, admin_auth)

        db_session.refresh(saona)
        db_session.refresh(samana)
        assert (saona.stock, saona.sold) == (10, 0)
        assert (samana.stock, samana.sold) == (5, 0)

    def test_foreign_line_id_is_rejected(self, uow, created, admin_auth):
        batch_id, saona, _ = created

        with pytest.raises(BusinessValidationError):
            SaleService(uow).update_batch_items(batch_id, BatchItemsUpdate(items=[
                SaleItemEdit(id=uuid4(), tour_id=saona.id, quantity=1),
            ]), admin_auth)

    def test_voided_batch_cannot_be_edited(self, uow, db_session, created, admin_auth):
        batch_id, saona, _ = created
        service = SaleService(uow)
        service.void_sale(batch_id, None, admin_auth)
        lines = _lines(db_session, batch_id)

        with pytest.raises(ConflictError):
            service.update_batch_items(batch_id, BatchItemsUpdate(items=[
                SaleItemEdit(id=lines[0].id, tour_id=saona.id, quantity=1),
            ]), admin_auth)

    def test_paid_flag_cleared_when_balance_appears(self, uow, db_session, created, admin_auth):
        batch_id, saona, samana = created
        service = SaleService(uow)
        service.update_payment_status(batch_id, True, admin_auth)
        lines = _lines(db_session, batch_id)

        batch = service.update_batch_items(batch_id, BatchItemsUpdate(items=[
            SaleItemEdit(id=lines[0].id, tour_id=saona.id, quantity=4),
            SaleItemEdit(id=lines[1].id, tour_id=samana.id, quantity=1),
        ]), admin_auth)

        assert batch.is_paid is False
        assert batch.total_pendiente == Decimal("20.00")

    def test_reorder_only_keeps_agreed_amounts(self, uow, db_session, make_tour, admin_auth):
        """Un total acordado de 100 por 3 unidades no pasa a 3 × 33.33 al reordenar"""
        saona = make_tour(name="Saona", price="40.00", stock=10)
        samana = make_tour(name="Samaná", price="20.00", stock=5)
        service = SaleService(uow)
        result = service.create_sale(_sale(
            {"tour_id": str(saona.id), "quantity": 3, "total": "100", "abono": "100"},
            {"tour_id": str(samana.id), "quantity": 1, "abono": "5"},
        ), admin_auth)
        first, second = _lines(db_session, result.id)

        batch = service.update_batch_items(result.id, BatchItemsUpdate(items=[
            SaleItemEdit(id=second.id, tour_id=samana.id, quantity=1),
            SaleItemEdit(id=first.id, tour_id=saona.id, quantity=3),
        ]), admin_auth)

        assert [line.tour_id for line in batch.lines] == [samana.id, saona.id]
        moved = batch.lines[1]
        assert moved.total == Decimal("100.00")
        assert moved.unit_price == Decimal("33.33")
        assert moved.abono == Decimal("100.00")
        assert moved.pendiente == Decimal("0.00")
        assert batch.lines[0].abono == Decimal("5.00")
        assert batch.subtotal == Decimal("120.00")
        db_session.refresh(saona)
        assert (saona.stock, saona.sold) == (7, 3)


# ===== ROLLBACK DE TRANSACCIONES =====

class TestTransactionRollback:
    """Cualquier fallo dentro de la transacción deja ventas e inventario intactos"""

    def test_concurrent_stock_change_is_conflict(self, uow, db_session, make_tour, admin_auth, monkeypatch):
        """El contador version detecta que otra transacción tocó el tour"""
        tour = make_tour(stock=10)
        table = Tour.__table__
        reserve = TourInventory.reserve

        def reserve_then_bump_version(inventory, locked, quantity):
            reserve(inventory, locked, quantity)
            inventory.db.execute(
                update(table).where(table.c.id == locked.id).values(version=table.c.version + 1)
            )

        monkeypatch.setattr(TourInventory, "reserve", reserve_then_bump_version)

        with pytest.raises(ConflictError) as exc_info:
            SaleService(uow).create_sale(_sale({"tour_id": str(tour.id), "quantity": 2}), admin_auth)

        assert exc_info.value.status_code == 409
        monkeypatch.undo()
        db_session.refresh(tour)
        assert (tour.stock, tour.sold, tour.version) == (10, 0, 1)
        assert db_session.query(Sale).count() == 0

    def test_storage_failure_rolls_back_everything(self, uow, db_session, make_tour, admin_auth, monkeypatch):
        a = make_tour(name="A", stock=10)
        b = make_tour(name="B", stock=UNLIMITED_STOCK, sold=4)

        def failing_flush(*args, **kwargs):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(db_session, "flush", failing_flush)

        with pytest.raises(InternalError) as exc_info:
            SaleService(uow).create_sale(_sale(
                {"tour_id": str(a.id), "quantity": 2}, {"tour_id": str(b.id), "quantity": 3}
            ), admin_auth)

        assert exc_info.value.status_code == 500
        assert exc_info.value.detail["error"] == "internal_error"
        monkeypatch.undo()
        db_session.refresh(a)
        db_session.refresh(b)
        assert (a.stock, a.sold) == (10, 0)
        assert (b.stock, b.sold) == (UNLIMITED_STOCK, 4)
        assert db_session.query(Sale).count() == 0

    def test_void_storage_failure_keeps_batch_active(self, uow, db_session, make_tour, admin_auth, monkeypatch):
        tour = make_tour(stock=10)
        service = SaleService(uow)
        result = service.create_sale(_sale({"tour_id": str(tour.id), "quantity": 4}), admin_auth)

        def failing_flush(*args, **kwargs):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(db_session, "flush", failing_flush)
        with pytest.raises(InternalError):
            service.void_sale(result.id, None, admin_auth)
        monkeypatch.undo()

        db_session.refresh(tour)
        assert (tour.stock, tour.sold) == (6, 4)
        assert _lines(db_session, result.id)[0].voided_at is None


# ===== OTRAS OPERACIONES =====

class TestInvoiceOperations:

    def test_update_customer_applies_to_all_lines(self, uow, db_session, make_tour, admin_auth):
        a = make_tour(name="A")
        b = make_tour(name="B")
        service = SaleService(uow)
        result = service.create_sale(_sale(
            {"tour_id": str(a.id), "quantity": 1}, {"tour_id": str(b.id), "quantity": 1}
        ), admin_auth)

        service.update_customer(result.id, InvoiceUpdate(customer_name="María Gómez", provincia="La Altagracia"),
                                admin_auth)

        for line in _lines(db_session, result.id):
            assert line.customer_name == "María Gómez"
            assert line.provincia == "La Altagracia"

    def test_update_customer_nothing_to_update(self, uow, admin_auth):
        message = SaleService(uow).update_customer("sale_x", InvoiceUpdate(), admin_auth)
        assert message.message == "Nothing to update"

    def test_payment_status_settles_lines(self, uow, db_session, make_tour, admin_auth):
        tour = make_tour(price="40.00")
        service = SaleService(uow)
        result = service.create_sale(_sale({"tour_id": str(tour.id), "quantity": 1, "abono": "10"}), admin_auth)

        service.update_payment_status(result.id, True, admin_auth)

        line = _lines(db_session, result.id)[0]
        assert line.is_paid is True
        assert line.pendiente == Decimal("0.00")

    def test_delete_requires_voided_batch(self, uow, db_session, make_tour, admin_auth):
        tour = make_tour(stock=5)
        service = SaleService(uow)
        result = service.create_sale(_sale({"tour_id": str(tour.id), "quantity": 1}), admin_auth)

        with pytest.raises(BusinessValidationError):
            service.delete_voided(result.id)

        service.void_sale(result.id, None, admin_auth)
        service.delete_voided(result.id)
        assert _lines(db_session, result.id) == []
        db_session.refresh(tour)
        assert tour.stock == 5

    def test_batch_aggregate_totals(self, uow, db_session, make_tour, admin_auth):
        tour = make_tour(price="10.00", stock=10, child_price=Decimal("5.00"))
        result = SaleService(uow).create_sale(_sale(
            {"tour_id": str(tour.id), "quantity": 2, "abono": "4"},
            {"tour_id": str(tour.id), "quantity": 2, "price_tier": "child"},
        ), admin_auth)

        batch = SaleBatch.load(db_session, result.id)
        assert batch.subtotal == Decimal("30.00")
        assert batch.total_abono == Decimal("4.00")
        assert batch.total_pendiente == Decimal("26.00")
        assert batch.is_voided is False


# ===== API =====

class TestSalesApi:

    def test_create_and_get_sale(self, client, make_tour, admin_headers, sale_payload):
        tour = make_tour(price="100.00", stock=10)

        response = client.post("/api/sales/", json=sale_payload(
            {"tour_id": str(tour.id), "quantity": 3, "total": 300, "abono": 100}
        ), headers=admin_headers)

        assert response.status_code == 201
        batch_id = response.json()["id"]
        assert batch_id.startswith("sale_")

        response = client.get(f"/api/sales/{batch_id}", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["subtotal"]) == Decimal("300")
        assert Decimal(data["lines"][0]["pendiente"]) == Decimal("200")
        assert data["lines"][0]["tour"]["name"] == tour.name

    def test_insufficient_stock_response(self, client, make_tour, admin_headers, sale_payload):
        tour = make_tour(stock=1)

        response = client.post("/api/sales/", json=sale_payload(
            {"tour_id": str(tour.id), "quantity": 2}
        ), headers=admin_headers)

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["error"] == "conflict"
        assert detail["items"][0]["requested"] == 2

    def test_validation_error_is_400(self, client, admin_headers, sale_payload):
        response = client.post("/api/sales/", json=sale_payload(), headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation_error"

    def test_requires_authentication(self, client, sale_payload):
        response = client.get("/api/sales/")
        assert response.status_code in (401, 403)

    def test_void_twice_returns_409(self, client, make_tour, admin_headers, sale_payload):
        tour = make_tour(stock=3)
        batch_id = client.post("/api/sales/", json=sale_payload(
            {"tour_id": str(tour.id), "quantity": 1}
        ), headers=admin_headers).json()["id"]

        first = client.post(f"/api/sales/{batch_id}/void", json={"reason": "cliente canceló"},
                            headers=admin_headers)
        second = client.post(f"/api/sales/{batch_id}/void", headers=admin_headers)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["detail"]["message"] == "Invoice already voided"

    def test_supervisor_scope(self, client, make_tour, admin_headers, supervisor_headers, sale_payload):
        tour = make_tour(stock=10)
        own = client.post("/api/sales/", json=sale_payload(
            {"tour_id": str(tour.id), "quantity": 1}
        ), headers=supervisor_headers).json()["id"]
        other = client.post("/api/sales/", json=sale_payload(
            {"tour_id": str(tour.id), "quantity": 1}, supervisor="Otro Supervisor"
        ), headers=admin_headers).json()["id"]

        assert client.get(f"/api/sales/{own}", headers=supervisor_headers).status_code == 200
        assert client.get(f"/api/sales/{other}", headers=supervisor_headers).status_code == 404
        assert client.post(f"/api/sales/{other}/void", headers=supervisor_headers).status_code == 404

        listed = client.get("/api/sales/", headers=supervisor_headers).json()["data"]
        assert {line["batch_id"] for line in listed} == {own}
        listed = client.get("/api/sales/", headers=admin_headers).json()["data"]
        assert {line["batch_id"] for line in listed} == {own, other}

    def test_list_sales_paginated(self, client, make_tour, admin_headers, sale_payload):
        tour = make_tour(stock=10)
        for _ in range(3):
            client.post("/api/sales/", json=sale_payload({"tour_id": str(tour.id), "quantity": 1}),
                        headers=admin_headers)

        response = client.get("/api/sales/?page=1&limit=2", headers=admin_headers)

        data = response.json()
        assert len(data["data"]) == 2
        assert data["pagination"]["total"] == 3
        assert data["pagination"]["has_next"] is True

    def test_delete_voided_requires_manager(self, client, make_tour, admin_headers, supervisor_headers,
                                            sale_payload):
        tour = make_tour(stock=3)
        batch_id = client.post("/api/sales/", json=sale_payload(
            {"tour_id": str(tour.id), "quantity": 1}
        ), headers=supervisor_headers).json()["id"]
        client.post(f"/api/sales/{batch_id}/void", headers=supervisor_headers)

        assert client.delete(f"/api/sales/{batch_id}/delete", headers=supervisor_headers).status_code == 403
        assert client.delete(f"/api/sales/{batch_id}/delete", headers=admin_headers).status_code == 200

    def test_edit_items_endpoint(self, client, make_tour, admin_headers, sale_payload):
        tour = make_tour(price="10.00", stock=10)
        batch_id = client.post("/api/sales/", json=sale_payload(
            {"tour_id": str(tour.id), "quantity": 2}
        ), headers=admin_headers).json()["id"]
        line_id = client.get(f"/api/sales/{batch_id}", headers=admin_headers).json()["lines"][0]["id"]

        response = client.patch(f"/api/sales/{batch_id}", json={"items": [
            {"id": line_id, "tour_id": str(tour.id), "quantity": 4, "abono": 15}
        ]}, headers=admin_headers)

        assert response.status_code == 200
        line = response.json()["lines"][0]
        assert line["quantity"] == 4
        assert Decimal(line["pendiente"]) == Decimal("25")
