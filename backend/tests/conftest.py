"""Pytest configuration and fixtures."""

import os

# Must be set before forno.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")

import pytest
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from forno.core.rbac import TokenData, UserRole
from forno.core.security import create_access_token
from forno.db.base import Base
from forno.db.session import get_db
from forno.main import app
# Import all models to ensure they're registered with Base.metadata
from forno.models import *
from forno.services.print_queue import get_print_queue

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"



@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def print_queue():
    """The process-wide print queue, emptied around every test."""
    queue = get_print_queue()
    queue.reset()
    yield queue
    queue.reset()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiters during tests to avoid flaky failures
    from forno.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    global_limiter.enabled = True
    app.dependency_overrides.clear()


def _headers(user_id: int, name: str, role: UserRole) -> dict:
    token = create_access_token(data={"sub": str(user_id), "name": name, "role": role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> dict:
    return _headers(1, "Ana", UserRole.ADMIN)


@pytest.fixture
def cashier_headers() -> dict:
    return _headers(2, "Carla", UserRole.CASHIER)


@pytest.fixture
def waiter_headers() -> dict:
    return _headers(3, "Walter", UserRole.WAITER)


@pytest.fixture
def cashier() -> TokenData:
    return TokenData(user_id=2, name="Carla", role=UserRole.CASHIER)


@pytest.fixture
def waiter() -> TokenData:
    return TokenData(user_id=3, name="Walter", role=UserRole.WAITER)


@pytest.fixture
def pizzeria(db_session: Session) -> dict:
    """Two branches with a small pizza menu.

    Centro holds 5000 g of Mozzarella; Norte spells it " mozzarella "
    and holds 2000 g, so cross-branch lookups have to normalize names.
    """
    centro = Branch(name="Centro")
    norte = Branch(name="Norte")
    db_session.add_all([centro, norte])
    db_session.flush()

    mozzarella = Ingredient(
        branch_id=centro.id, name="Mozzarella", unit="g", purchase_unit="kg",
        conversion_ratio=Decimal("1000"), cost=Decimal("0.01"),
        stock=Decimal("5000"), min_stock=Decimal("1000"),
    )
    sauce = Ingredient(
        branch_id=centro.id, name="Tomato Sauce", unit="ml", purchase_unit="l",
        conversion_ratio=Decimal("1000"), cost=Decimal("0.005"),
        stock=Decimal("3000"), min_stock=Decimal("500"),
    )
    box = Ingredient(
        branch_id=centro.id, name="Pizza Box", unit="unit", purchase_unit="pack",
        conversion_ratio=Decimal("50"), cost=Decimal("0.30"),
        stock=Decimal("100"), min_stock=Decimal("20"),
    )
    bag = Ingredient(
        branch_id=centro.id, name="Paper Bag", unit="unit", purchase_unit="unit",
        conversion_ratio=Decimal("1"), cost=Decimal("0.10"),
        stock=Decimal("40"), min_stock=Decimal("10"),
    )
    norte_mozzarella = Ingredient(
        branch_id=norte.id, name=" mozzarella ", unit="g", purchase_unit="kg",
        conversion_ratio=Decimal("1000"), cost=Decimal("0.012"),
        stock=Decimal("2000"), min_stock=Decimal("500"),
    )
    db_session.add_all([mozzarella, sauce, box, bag, norte_mozzarella])
    db_session.flush()

    margherita = Product(
        name="Margherita", category="Pizzas",
        prices={"DINE_IN": "12.00", "TAKEOUT": "11.00", "DELIVERY_UBER": "14.00"},
        ingredients=[
            {"ingredient_id": mozzarella.id, "quantity": "200"},
            {"ingredient_id": sauce.id, "quantity": "100"},
        ],
    )
    soda = Product(
        name="Soda", category="Drinks",
        prices={"DINE_IN": "3.00", "TAKEOUT": "3.00"},
        ingredients=[],
    )
    db_session.add_all([margherita, soda])
    db_session.flush()

    extras = ModifierGroup(name="Extras", categories=["Pizzas"], max_selection=2)
    db_session.add(extras)
    db_session.flush()
    extra_cheese = ModifierOption(
        group_id=extras.id, name="Extra cheese", price=Decimal("1.50"),
        recipe=[{"ingredient_id": mozzarella.id, "quantity": "50"}],
    )
    db_session.add(extra_cheese)

    table_1 = DiningTable(branch_id=centro.id, name="T1", current_order_ids=[])
    table_2 = DiningTable(branch_id=centro.id, name="T2", current_order_ids=[])
    table_norte = DiningTable(branch_id=norte.id, name="N1", current_order_ids=[])
    db_session.add_all([table_1, table_2, table_norte])

    db_session.add_all([
        Printer(branch_id=centro.id, name="Caja", description="Front desk", is_cashier=True, categories=[]),
        Printer(branch_id=centro.id, name="Cocina", description="Pizza oven", categories=["Pizzas"]),
        Printer(branch_id=centro.id, name="Barra", description="Bar", categories=["Drinks"]),
    ])

    customer = Customer(name="Lucia", phone="+5491100000000", points=0, visit_count=0)
    db_session.add(customer)
    db_session.commit()

    return {
        "centro": centro,
        "norte": norte,
        "mozzarella": mozzarella,
        "sauce": sauce,
        "box": box,
        "bag": bag,
        "norte_mozzarella": norte_mozzarella,
        "margherita": margherita,
        "soda": soda,
        "extras": extras,
        "extra_cheese": extra_cheese,
        "table_1": table_1,
        "table_2": table_2,
        "table_norte": table_norte,
        "customer": customer,
        "db": db_session,
    }
