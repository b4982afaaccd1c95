"""Completion cascade: visits and loyalty points."""
from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from salonqueue import loyalty
from salonqueue.errors import InvalidInput, NotFound
from salonqueue.extensions import db
from salonqueue.models import QueueEntry, QueueStatus, User, Visit
from salonqueue.queue_store import queue_store


def _points(user_id: int) -> int:
    db.session.expire_all()
    return db.session.get(User, user_id).loyalty_points


def test_call_then_complete_records_visit_and_points(world):
    entry_a = queue_store.join(world.salon_id, world.user_a, world.service_x)
    queue_store.join(world.salon_id, world.user_b, world.service_x)

    called = queue_store.call(entry_a.queue_id)
    assert called.entry.called_at is not None
    assert called.notification["phone"] == "555-0102"
    assert called.notification["message"] == (
        "Hi Alice, it's your turn at Elegance Beauty Salon. Please come in!"
    )
    assert called.notification["timestamp"]

    done = queue_store.complete(entry_a.queue_id)

    assert done.entry.status is QueueStatus.COMPLETED
    assert done.entry.completed_at is not None
    visit = done.visit
    assert visit is not None
    assert visit.total_amount_cents == 2500
    assert visit.points_earned == 10
    assert visit.rating is None
    assert (visit.user_id, visit.salon_id, visit.service_id, visit.queue_id) == (
        world.user_a,
        world.salon_id,
        world.service_x,
        entry_a.queue_id,
    )
    assert _points(world.user_a) == 10
    assert _points(world.user_b) == 5


def test_complete_straight_from_waiting_is_tolerated(world):
    entry = queue_store.join(world.salon_id, world.user_b, world.service_y)

    done = queue_store.complete(entry.queue_id)

    assert done.visit.total_amount_cents == 12000
    assert _points(world.user_b) == 15


def test_each_completion_creates_exactly_one_visit(world):
    first = queue_store.join(world.salon_id, world.user_a, world.service_x)
    queue_store.complete(first.queue_id)
    second = queue_store.join(world.salon_id, world.user_a, world.service_y)
    queue_store.complete(second.queue_id)

    visits = Visit.query.filter_by(user_id=world.user_a).all()

    assert sorted(visit.queue_id for visit in visits) == sorted([first.queue_id, second.queue_id])
    assert _points(world.user_a) == 20


def test_no_show_creates_no_visit_and_no_points(world):
    entry = queue_store.join(world.salon_id, world.user_a, world.service_x)
    queue_store.call(entry.queue_id)

    result = queue_store.mark_no_show(entry.queue_id)

    assert result.visit is None
    assert Visit.query.count() == 0
    assert _points(world.user_a) == 0


def test_deleted_user_still_gets_a_visit(world):
    entry = queue_store.join(world.salon_id, world.user_a, world.service_x)
    db.session.delete(db.session.get(User, world.user_a))
    db.session.commit()

    result = queue_store.complete(entry.queue_id)

    # the entry lost its user when the account went away
    assert result.entry.user_id is None
    assert result.visit is not None
    assert result.visit.user_id is None
    assert result.visit.total_amount_cents == 2500
    assert Visit.query.count() == 1
    assert _points(world.user_b) == 5


def test_deleting_a_user_keeps_their_visits(world):
    entry = queue_store.join(world.salon_id, world.user_a, world.service_x)
    visit = queue_store.complete(entry.queue_id).visit
    visit_id = visit.visit_id

    db.session.delete(db.session.get(User, world.user_a))
    db.session.commit()

    db.session.expire_all()
    kept = db.session.get(Visit, visit_id)
    assert kept is not None
    assert kept.user_id is None


def test_serviceless_entry_visit_is_free(world):
    entry = QueueEntry(salon_id=world.salon_id, user_id=world.user_a, service_id=None,
                       status=QueueStatus.WAITING, position=1)
    db.session.add(entry)
    db.session.commit()

    result = queue_store.complete(entry.queue_id)

    assert result.visit.total_amount_cents == 0
    assert _points(world.user_a) == 10


def test_points_per_visit_follow_config(app, world):
    app.config["LOYALTY_POINTS_PER_VISIT"] = 25
    entry = queue_store.join(world.salon_id, world.user_a, world.service_x)

    result = queue_store.complete(entry.queue_id)

    assert result.visit.points_earned == 25
    assert _points(world.user_a) == 25


def test_visit_failure_does_not_undo_completion(world, monkeypatch):
    def broken_record_visit(entry, service, points=None):
        raise OperationalError("INSERT INTO visits", {}, Exception("disk I/O error"))

    monkeypatch.setattr(loyalty, "record_visit", broken_record_visit)
    entry = queue_store.join(world.salon_id, world.user_a, world.service_x)

    result = queue_store.complete(entry.queue_id)

    assert result.visit is None
    db.session.expire_all()
    assert db.session.get(QueueEntry, entry.queue_id).status is QueueStatus.COMPLETED
    assert Visit.query.count() == 0
    assert _points(world.user_a) == 0


def test_rate_visit_by_its_owner(world):
    entry = queue_store.join(world.salon_id, world.user_a, world.service_x)
    visit = queue_store.complete(entry.queue_id).visit

    rated = loyalty.rate_visit(visit.visit_id, world.user_a, 5)
    assert rated.rating == 5

    rerated = loyalty.rate_visit(visit.visit_id, world.user_a, 4)
    assert rerated.rating == 4


def test_rate_visit_rejects_other_users_and_bad_values(world):
    entry = queue_store.join(world.salon_id, world.user_a, world.service_x)
    visit = queue_store.complete(entry.queue_id).visit

    with pytest.raises(NotFound):
        loyalty.rate_visit(visit.visit_id, world.user_b, 5)
    with pytest.raises(InvalidInput):
        loyalty.rate_visit(visit.visit_id, world.user_a, 6)


def test_visits_for_user_newest_first(world):
    first = queue_store.join(world.salon_id, world.user_a, world.service_x)
    queue_store.complete(first.queue_id)
    second = queue_store.join(world.salon_id, world.user_a, world.service_y)
    queue_store.complete(second.queue_id)

    visits = loyalty.visits_for_user(world.user_a)

    assert [visit.queue_id for visit in visits] == [second.queue_id, first.queue_id]
