"""
Fixtures compartidas por los tests de los módulos.

La aplicación se configura contra SQLite en memoria antes de importarla; todas
las conexiones comparten la misma base (StaticPool) y las tablas se recrean en
cada test.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database.database import Base, get_db
from app.database.unit_of_work import UnitOfWork
from app.main import app
from app.modules.auth.schemas import AuthContext, Role
from app.modules.auth.utils import create_access_token
from app.modules.tours.models import Tour

test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

SUPERVISOR_NAME = "Ana Supervisora"


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=test_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def uow(db_session):
    return UnitOfWork(db_session)


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ===== AUTENTICACIÓN =====

@pytest.fixture
def admin_auth():
    return AuthContext(user_id="admin-1", user_role=Role.ADMIN)


@pytest.fixture
def supervisor_auth():
    return AuthContext(user_id="sup-1", user_role=Role.SUPERVISOR, supervisor_name=SUPERVISOR_NAME)


def bearer(role: str, supervisor_name: str = None) -> dict:
    data = {"sub": f"{role}-1", "role": role}
    if supervisor_name:
        data["supervisor_name"] = supervisor_name
    return {"Authorization": f"Bearer {create_access_token(data)}"}


@pytest.fixture
def admin_headers():
    return bearer("admin")


@pytest.fixture
def support_headers():
    return bearer("support")


@pytest.fixture
def supervisor_headers():
    return bearer("supervisor", SUPERVISOR_NAME)


# ===== CATÁLOGO =====

@pytest.fixture
def make_tour(db_session):
    """Crea un tour directamente en la base de datos."""
    def _make_tour(name="Isla Saona", price="10.00", stock=5, sold=0, **extra):
        tour = Tour(
            name=name,
            description=f"Excursión {name}",
            price=Decimal(price),
            stock=stock,
            sold=sold,
            **extra
        )
        db_session.add(tour)
        db_session.commit()
        db_session.refresh(tour)
        return tour
    return _make_tour


@pytest.fixture
def sale_payload():
    """Cuerpo mínimo de una venta; ``items`` se completa en cada test."""
    def _payload(*items, **fields):
        data = {
            "items": list(items),
            "customer_name": "Juan Pérez",
            "customer_phone": "809-555-1234",
            "fecha_visita": (datetime.now() + timedelta(days=7)).isoformat(),
        }
        data.update(fields)
        return data
    return _payload
