"""
Tests para el catálogo de tours

Cubren el tipo Stock (ilimitado / contado), las primitivas de inventario
usadas por el motor de ventas y los endpoints de gestión del catálogo.
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from app.common.errors import ConflictError, NotFoundError
from app.modules.tours.inventory import TourInventory
from app.modules.tours.models import IMPORT_ONLY_TOUR_NAME
from app.modules.tours.stock import (
    Unlimited, Tracked, NotEnoughStock, StockError, stock_from_raw, UNLIMITED_STOCK
)


# ===== TIPO STOCK =====

class TestStock:

    def test_from_raw(self):
        assert stock_from_raw(UNLIMITED_STOCK) == Unlimited()
        assert stock_from_raw(4) == Tracked(4)

    def test_unlimited_never_changes(self):
        stock = Unlimited()
        assert stock.covers(10_000)
        assert stock.take(5).raw == UNLIMITED_STOCK
        assert stock.give_back(5).raw == UNLIMITED_STOCK

    def test_tracked_take_and_give_back(self):
        stock = Tracked(5)
        assert stock.take(3) == Tracked(2)
        assert stock.give_back(3) == Tracked(8)

    def test_tracked_cannot_go_negative(self):
        with pytest.raises(NotEnoughStock) as exc_info:
            Tracked(2).take(3)
        assert exc_info.value.available == 2
        assert exc_info.value.requested == 3

        with pytest.raises(StockError):
            Tracked(-2)

    def test_negative_quantity_rejected(self):
        with pytest.raises(StockError):
            Tracked(5).take(-1)


# ===== INVENTARIO =====

class TestTourInventory:

    def test_mutations_require_transaction(self, uow, make_tour):
        tour = make_tour(stock=5)

        with pytest.raises(RuntimeError):
            TourInventory(uow).reserve(tour, 1)

    def test_reserve_and_release(self, uow, db_session, make_tour):
        tour = make_tour(stock=5, sold=1)
        inventory = TourInventory(uow)

        with uow.transaction():
            locked = inventory.lock([tour.id])[tour.id]
            inventory.reserve(locked, 3)
        db_session.refresh(tour)
        assert (tour.stock, tour.sold) == (2, 4)

        with uow.transaction():
            locked = inventory.lock([tour.id])[tour.id]
            inventory.release(locked, 10)
        db_session.refresh(tour)
        assert (tour.stock, tour.sold) == (12, 0)

    def test_lock_missing_tour(self, uow, make_tour):
        tour = make_tour()

        with pytest.raises(NotFoundError):
            with uow.transaction():
                TourInventory(uow).lock([tour.id, uuid4()])

    def test_shortages_lists_every_short_item(self, uow, make_tour):
        a = make_tour(name="A", stock=1)
        b = make_tour(name="B", stock=0)
        c = make_tour(name="C", stock=UNLIMITED_STOCK)
        inventory = TourInventory(uow)

        with uow.transaction():
            tours = inventory.lock([a.id, b.id, c.id])
            short = inventory.shortages(tours, {a.id: 2, b.id: 1, c.id: 500})

        assert [item["name"] for item in short] == ["A", "B"]

    def test_nested_transaction_rejected(self, uow):
        with pytest.raises(RuntimeError):
            with uow.transaction():
                with uow.transaction():
                    pass


# ===== CATÁLOGO (API) =====

class TestToursApi:

    @pytest.fixture
    def tour_data(self):
        return {
            "name": "Isla Catalina",
            "description": "Día completo con almuerzo",
            "price": "85.00",
            "child_price": "60.00",
            "stock": 20,
        }

    def test_create_tour(self, client, admin_headers, tour_data):
        response = client.post("/api/tours/", json=tour_data, headers=admin_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["stock"] == 20
        assert data["sold"] == 0
        assert data["currency"] == "RD$"
        assert data["is_unlimited"] is False

    def test_create_unlimited_tour(self, client, admin_headers, tour_data):
        tour_data["stock"] = UNLIMITED_STOCK

        response = client.post("/api/tours/", json=tour_data, headers=admin_headers)

        assert response.json()["is_unlimited"] is True

    def test_supervisor_cannot_manage_catalog(self, client, supervisor_headers, tour_data):
        response = client.post("/api/tours/", json=tour_data, headers=supervisor_headers)
        assert response.status_code == 403

    def test_public_list_hides_inactive_and_import_item(self, client, make_tour):
        make_tour(name="Visible", sequence=1)
        make_tour(name="Oculto", is_active=False)
        make_tour(name=IMPORT_ONLY_TOUR_NAME, stock=UNLIMITED_STOCK)

        response = client.get("/api/tours/")

        assert response.status_code == 200
        assert [t["name"] for t in response.json()["data"]] == ["Visible"]

    def test_set_stock_keeps_sold(self, client, make_tour, support_headers):
        tour = make_tour(stock=1, sold=7)

        response = client.patch(f"/api/tours/{tour.id}/stock", json={"stock": 15}, headers=support_headers)

        assert response.status_code == 200
        assert response.json()["stock"] == 15
        assert response.json()["sold"] == 7

    def test_update_ignores_counters(self, client, make_tour, admin_headers):
        tour = make_tour(stock=4, sold=2)

        response = client.patch(f"/api/tours/{tour.id}", json={"price": "12.50", "stock": 100},
                                headers=admin_headers)

        data = response.json()
        assert Decimal(data["price"]) == Decimal("12.50")
        assert data["stock"] == 4

    def test_update_rejects_null_required_fields(self, client, make_tour, admin_headers, db_session):
        tour = make_tour(name="Saona", price="10.00")

        for field in ("name", "line", "description", "price"):
            response = client.patch(f"/api/tours/{tour.id}", json={field: None}, headers=admin_headers)
            assert response.status_code == 400
            assert response.json()["detail"]["error"] == "validation_error"

        db_session.refresh(tour)
        assert tour.name == "Saona"
        assert tour.price == Decimal("10.00")

    def test_public_list_hides_import_item_regardless_of_case(self, client, make_tour):
        make_tour(name="Visible")
        make_tour(name="  importación DE RESERVAS  ", stock=UNLIMITED_STOCK)

        response = client.get("/api/tours/")

        assert [t["name"] for t in response.json()["data"]] == ["Visible"]

    def test_delete_deactivates_by_default(self, client, make_tour, admin_headers, db_session):
        tour = make_tour()

        response = client.delete(f"/api/tours/{tour.id}", headers=admin_headers)

        assert response.status_code == 204
        db_session.refresh(tour)
        assert tour.is_active is False

    def test_hard_delete_with_sales_is_conflict(self, client, make_tour, admin_headers, sale_payload):
        tour = make_tour(stock=5)
        client.post("/api/sales/", json=sale_payload({"tour_id": str(tour.id), "quantity": 1}),
                    headers=admin_headers)

        response = client.delete(f"/api/tours/{tour.id}?hard=true", headers=admin_headers)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == ConflictError.category.value

    def test_get_missing_tour(self, client):
        response = client.get(f"/api/tours/{uuid4()}")
        assert response.status_code == 404
