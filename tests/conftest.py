"""pytest configuration: app/client fixtures and a small salon world."""
from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Ensure the project root is available on sys.path so tests can import the package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salonqueue import create_app  # noqa: E402
from salonqueue.auth import build_token  # noqa: E402
from salonqueue.extensions import db  # noqa: E402
from salonqueue.models import Salon, Service, User  # noqa: E402


@pytest.fixture
def app(tmp_path):
    # A file database so worker threads in the concurrency tests share it.
    flask_app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'salonqueue-test.db'}",
        "QUEUE_REPACK_POSITIONS": True,
    })
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def auth_header(user_id: int, is_admin: bool = False) -> dict[str, str]:
    return {"Authorization": f"Bearer {build_token(user_id, is_admin)}"}


@pytest.fixture
def world(app):
    """An owner, two customers and a salon with two services.

    Service X costs $25.00 and takes 20 minutes; it is the salon's first service.
    """
    owner = User(user_id=1, email="owner@example.com", first_name="Olive", phone="555-0100")
    user_a = User(user_id=2, email="a@example.com", first_name="Alice", phone="555-0102", loyalty_points=0)
    user_b = User(user_id=3, email="b@example.com", first_name="Bob", phone="555-0103", loyalty_points=5)
    salon = Salon(salon_id=10, owner_id=1, name="Elegance Beauty Salon", location="Downtown")
    service_x = Service(service_id=100, salon_id=10, name="Haircut", price_cents=2500, duration_minutes=20)
    service_y = Service(service_id=101, salon_id=10, name="Color", price_cents=12000, duration_minutes=120)

    db.session.add_all([owner, user_a, user_b, salon, service_x, service_y])
    db.session.commit()

    return SimpleNamespace(
        owner_id=1,
        user_a=2,
        user_b=3,
        salon_id=10,
        service_x=100,
        service_y=101,
    )
