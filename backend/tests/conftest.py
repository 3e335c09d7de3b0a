"""
Pytest fixtures for Bistro backend tests.

Provides test database setup, staff per role, a small catalog, an open shift
and authenticated client headers.
"""

import pytest

from bistro import create_app
from bistro.extensions import db
from bistro.permissions import Actor
from bistro.services import catalog_service, shift_service
from bistro.services.auth_service import create_user


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'TRANSACTION_RETRY_BACKOFF': 0.01,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# STAFF
# =============================================================================

@pytest.fixture(scope='function')
def staff(db_session):
    """One user per role, plus a second waiter and an inactive waiter."""
    users = {
        "admin": create_user("admin", "Ada Admin", PASSWORD, "ADMIN"),
        "manager": create_user("manager", "Mia Manager", PASSWORD, "MANAGER"),
        "manager2": create_user("manager2", "Max Manager", PASSWORD, "MANAGER"),
        "cashier": create_user("cashier", "Cal Cashier", PASSWORD, "CASHIER"),
        "cashier2": create_user("cashier2", "Cleo Cashier", PASSWORD, "CASHIER"),
        "waiter": create_user("waiter", "Wes Waiter", PASSWORD, "WAITER"),
        "waiter2": create_user("waiter2", "Wren Waiter", PASSWORD, "WAITER"),
        "retired": create_user("retired", "Rae Retired", PASSWORD, "WAITER"),
    }
    users["retired"].is_active = False
    db_session.commit()
    return users


@pytest.fixture(scope='function')
def actors(staff):
    """Actor (user id + role) for every staff fixture user."""
    return {name: Actor(user_id=u.id, role=u.role) for name, u in staff.items()}


# =============================================================================
# CATALOG
# =============================================================================

@pytest.fixture(scope='function')
def catalog(db_session, staff):
    """Supplier, three ingredients with opening stock, and two menu items."""
    supplier = catalog_service.create_supplier("Main Food Supplier", "+1-555-0100")
    tomatoes = catalog_service.create_ingredient("Tomatoes", "kg", current_price="2.00", in_stock="100")
    chicken = catalog_service.create_ingredient("Chicken", "kg", current_price="8.00", in_stock="50")
    rice = catalog_service.create_ingredient("Rice", "kg", current_price="1.20", in_stock="200")

    soup = catalog_service.create_menu_item(
        "Tomato Soup", "6.50", category="Soups",
        recipe=[{"ingredient_id": tomatoes.id, "quantity": "0.300"}],
    )
    chicken_rice = catalog_service.create_menu_item(
        "Chicken with Rice", "12.90", category="Mains",
        recipe=[
            {"ingredient_id": chicken.id, "quantity": "0.250"},
            {"ingredient_id": rice.id, "quantity": "0.150"},
        ],
    )
    return {
        "supplier": supplier,
        "tomatoes": tomatoes,
        "chicken": chicken,
        "rice": rice,
        "soup": soup,
        "chicken_rice": chicken_rice,
    }


# =============================================================================
# SHIFT
# =============================================================================

@pytest.fixture(scope='function')
def active_shift(staff, actors):
    """Shift opened by manager with cashier and waiter on the roster."""
    return shift_service.open_shift(
        actors["manager"],
        staff["cashier"].id,
        [staff["waiter"].id],
    )


# =============================================================================
# HTTP AUTH
# =============================================================================

def login(client, username: str, password: str = PASSWORD) -> dict:
    resp = client.post("/api/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return {"Authorization": f"Bearer {resp.get_json()['token']}"}


@pytest.fixture(scope='function')
def manager_headers(client, staff):
    return login(client, "manager")


@pytest.fixture(scope='function')
def cashier_headers(client, staff):
    return login(client, "cashier")


@pytest.fixture(scope='function')
def waiter_headers(client, staff):
    return login(client, "waiter")


@pytest.fixture(scope='function')
def admin_headers(client, staff):
    return login(client, "admin")
