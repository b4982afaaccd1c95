import pytest

from salonqueue.extensions import db
from salonqueue.models import Offer, Salon, Service

from conftest import auth_header


@pytest.fixture
def catalogue(world):
    db.session.add_all([
        Service(service_id=102, salon_id=world.salon_id, name="Manicure", price_cents=3000, duration_minutes=30),
        Service(service_id=103, salon_id=world.salon_id, name="Facial", price_cents=5000, duration_minutes=45),
        Offer(offer_id=1, salon_id=world.salon_id, title="20% Off Color", discount=20, is_active=True),
        Offer(offer_id=2, salon_id=world.salon_id, title="Old Deal", discount=5, is_active=False),
        Salon(salon_id=20, owner_id=world.owner_id, name="Urban Cuts", location="Uptown"),
    ])
    db.session.commit()
    return world


def test_list_salons_summarises_each_salon(client, catalogue):
    client.post("/queue/join", json={"salon_id": catalogue.salon_id}, headers=auth_header(catalogue.user_a))

    response = client.get("/salons")
    data = response.get_json()

    assert response.status_code == 200
    assert [salon["name"] for salon in data["salons"]] == ["Elegance Beauty Salon", "Urban Cuts"]
    first = data["salons"][0]
    assert first["services"] == ["Haircut", "Color", "Manicure"]
    assert first["current_offer"] == "20% Off Color"
    assert first["current_offer_discount"] == 20
    assert first["queue_count"] == 1
    bare = data["salons"][1]
    assert bare["services"] == []
    assert bare["current_offer"] is None
    assert bare["queue_count"] == 0


def test_get_salon_detail_200(client, catalogue):
    response = client.get(f"/salons/{catalogue.salon_id}")
    salon = response.get_json()["salon"]

    assert response.status_code == 200
    assert salon["name"] == "Elegance Beauty Salon"
    assert [service["name"] for service in salon["services"]] == ["Haircut", "Color", "Manicure", "Facial"]
    assert [offer["title"] for offer in salon["offers"]] == ["20% Off Color"]
    assert salon["queue_count"] == 0


def test_get_salon_not_found_404(client):
    response = client.get("/salons/999")

    assert response.status_code == 404
    assert response.get_json()["error"] == "not_found"


def test_create_salon_success_201(client, world):
    payload = {"name": "Style Studio", "location": "Midtown", "phone": "555-0199"}

    response = client.post("/salons", json=payload, headers=auth_header(world.user_b))
    data = response.get_json()

    assert response.status_code == 201
    assert data["message"] == "Salon created successfully"
    assert data["salon"]["owner_id"] == world.user_b
    assert db.session.query(Salon).filter_by(name="Style Studio").first().phone == "555-0199"


def test_create_salon_requires_name_and_location_400(client, world):
    response = client.post("/salons", json={"name": "No Address"}, headers=auth_header(world.user_b))

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"


def test_create_salon_requires_login_401(client):
    response = client.post("/salons", json={"name": "Style Studio", "location": "Midtown"})

    assert response.status_code == 401


def test_update_salon_by_owner_200(client, world):
    response = client.put(
        f"/salons/{world.salon_id}",
        json={"description": "Full-service salon", "operating_hours": "9-7"},
        headers=auth_header(world.owner_id),
    )

    assert response.status_code == 200
    assert response.get_json()["salon"]["description"] == "Full-service salon"
    db.session.expire_all()
    assert db.session.get(Salon, world.salon_id).operating_hours == "9-7"


def test_update_salon_forbidden_for_other_users_403(client, world):
    response = client.put(f"/salons/{world.salon_id}", json={"name": "Hijacked"}, headers=auth_header(world.user_a))

    assert response.status_code == 403
    db.session.expire_all()
    assert db.session.get(Salon, world.salon_id).name == "Elegance Beauty Salon"


def test_update_salon_rejects_blank_name_400(client, world):
    response = client.put(f"/salons/{world.salon_id}", json={"name": "  "}, headers=auth_header(world.owner_id))

    assert response.status_code == 400


def test_my_salons_lists_owned_salons(client, catalogue):
    owned = client.get("/my-salons", headers=auth_header(catalogue.owner_id)).get_json()
    none = client.get("/my-salons", headers=auth_header(catalogue.user_a)).get_json()

    assert [salon["id"] for salon in owned["salons"]] == [catalogue.salon_id, 20]
    assert none["salons"] == []


@pytest.mark.parametrize("payload", [{"name": 5, "location": "Midtown"}, {"name": "Style", "location": ["x"]}])
def test_create_salon_non_string_fields_400(client, world, payload):
    response = client.post("/salons", json=payload, headers=auth_header(world.user_b))

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"


def test_update_salon_non_string_field_400(client, world):
    response = client.put(
        f"/salons/{world.salon_id}", json={"name": 5, "phone": "555-0000"}, headers=auth_header(world.owner_id)
    )

    assert response.status_code == 400
    db.session.expire_all()
    assert db.session.get(Salon, world.salon_id).name == "Elegance Beauty Salon"
