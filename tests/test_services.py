from salonqueue.extensions import db
from salonqueue.models import Service

from conftest import auth_header


def test_list_services_200(client, world):
    response = client.get(f"/salons/{world.salon_id}/services")
    data = response.get_json()

    assert response.status_code == 200
    assert [service["name"] for service in data["services"]] == ["Haircut", "Color"]
    assert data["services"][0]["price_cents"] == 2500
    assert data["services"][0]["duration_minutes"] == 20


def test_list_services_salon_not_found_404(client):
    response = client.get("/salons/999/services")

    assert response.status_code == 404


def test_create_service_success_201(client, world):
    service_data = {
        "name": "Quick Trim",
        "description": "A quick 15-minute haircut.",
        "price_cents": 1500,
        "duration_minutes": 15,
    }

    response = client.post(
        f"/salons/{world.salon_id}/services", json=service_data, headers=auth_header(world.owner_id)
    )
    data = response.get_json()

    assert response.status_code == 201
    assert data["message"] == "Service created successfully"
    assert db.session.query(Service).filter_by(name="Quick Trim").first().price_cents == 1500


def test_create_service_salon_not_found_404(client, world):
    service_data = {"name": "Invalid Service", "price_cents": 1000, "duration_minutes": 60}

    response = client.post("/salons/999/services", json=service_data, headers=auth_header(world.owner_id))

    assert response.status_code == 404
    assert response.get_json()["error"] == "not_found"


def test_create_service_missing_required_field_400(client, world):
    service_data = {"description": "Missing Name", "price_cents": 1000, "duration_minutes": 60}

    response = client.post(
        f"/salons/{world.salon_id}/services", json=service_data, headers=auth_header(world.owner_id)
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"


def test_create_service_invalid_numbers_400(client, world):
    negative_price = {"name": "Invalid Price", "price_cents": -500, "duration_minutes": 60}
    zero_duration = {"name": "Zero Duration", "price_cents": 500, "duration_minutes": 0}

    for payload in (negative_price, zero_duration):
        response = client.post(
            f"/salons/{world.salon_id}/services", json=payload, headers=auth_header(world.owner_id)
        )
        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid_payload"

    assert db.session.query(Service).count() == 2


def test_create_service_forbidden_for_customers_403(client, world):
    service_data = {"name": "Sneaky", "price_cents": 100, "duration_minutes": 5}

    response = client.post(
        f"/salons/{world.salon_id}/services", json=service_data, headers=auth_header(world.user_a)
    )

    assert response.status_code == 403


def test_create_service_non_string_name_400(client, world):
    service_data = {"name": 42, "price_cents": 1000, "duration_minutes": 30}

    response = client.post(
        f"/salons/{world.salon_id}/services", json=service_data, headers=auth_header(world.owner_id)
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"
