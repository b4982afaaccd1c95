"""Visit history, rating and owner analytics over HTTP."""
from salonqueue.extensions import db
from salonqueue.models import Offer
from salonqueue.queue_store import queue_store

from conftest import auth_header


def _complete(world, user_id, service_id):
    entry = queue_store.join(world.salon_id, user_id, service_id)
    return queue_store.complete(entry.queue_id).visit


def test_user_visits_newest_first_with_names(client, world):
    _complete(world, world.user_a, world.service_x)
    _complete(world, world.user_a, world.service_y)
    _complete(world, world.user_b, world.service_x)

    response = client.get("/user/visits", headers=auth_header(world.user_a))
    visits = response.get_json()["visits"]

    assert response.status_code == 200
    assert [visit["service_name"] for visit in visits] == ["Color", "Haircut"]
    assert {visit["salon_name"] for visit in visits} == {"Elegance Beauty Salon"}


def test_user_visits_requires_login(client):
    assert client.get("/user/visits").status_code == 401


def test_rate_visit_200(client, world):
    visit = _complete(world, world.user_a, world.service_x)

    response = client.put(
        f"/visits/{visit.visit_id}/rating", json={"rating": 5}, headers=auth_header(world.user_a)
    )

    assert response.status_code == 200
    assert response.get_json()["visit"]["rating"] == 5


def test_rate_visit_errors(client, world):
    visit = _complete(world, world.user_a, world.service_x)
    url = f"/visits/{visit.visit_id}/rating"

    missing = client.put(url, json={}, headers=auth_header(world.user_a))
    out_of_range = client.put(url, json={"rating": 0}, headers=auth_header(world.user_a))
    not_mine = client.put(url, json={"rating": 4}, headers=auth_header(world.user_b))

    assert missing.status_code == 400
    assert out_of_range.status_code == 400
    assert out_of_range.get_json()["error"] == "invalid_input"
    assert not_mine.status_code == 404


def test_analytics_totals_are_real_and_series_mocked(client, world):
    _complete(world, world.user_a, world.service_x)
    _complete(world, world.user_b, world.service_y)
    db.session.add(Offer(salon_id=world.salon_id, title="Deal", discount=10, click_count=7, is_active=True))
    db.session.commit()

    response = client.get(f"/salons/{world.salon_id}/analytics", headers=auth_header(world.owner_id))
    data = response.get_json()

    assert response.status_code == 200
    assert data["total_customers"] == 2
    assert data["revenue"] == 14500
    assert data["offer_clicks"] == 7
    assert data["avg_wait_time"] == 22
    assert len(data["customer_flow"]) == 7
    assert len(data["peak_hours"]) == 10
    assert data["service_popularity"][0] == {"name": "Haircut", "count": 35}


def test_analytics_owner_only(client, world):
    forbidden = client.get(f"/salons/{world.salon_id}/analytics", headers=auth_header(world.user_a))
    missing = client.get("/salons/999/analytics", headers=auth_header(world.owner_id))

    assert forbidden.status_code == 403
    assert missing.status_code == 404
