"""Visit and loyalty bookkeeping triggered by completed queue entries."""
from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from .errors import NotFound
from .extensions import db
from .models import QueueEntry, Service, User, Visit

DEFAULT_POINTS_PER_VISIT = 10


def record_visit(entry: QueueEntry, service: Service | None, points: int | None = None) -> Visit:
    """Persist a visit for a completed entry and credit the user's points.

    The visit row and the points increment share one transaction. The
    increment is a single UPDATE so concurrent completions never lose points.
    A user that no longer exists gets no points but the visit is still kept.
    """
    if points is None:
        points = current_app.config.get("LOYALTY_POINTS_PER_VISIT", DEFAULT_POINTS_PER_VISIT)

    visit = Visit(
        user_id=entry.user_id,
        salon_id=entry.salon_id,
        service_id=entry.service_id,
        queue_id=entry.queue_id,
        total_amount_cents=service.price_cents if service else 0,
        points_earned=points,
        rating=None,
    )
    db.session.add(visit)

    if entry.user_id is not None:
        result = db.session.execute(
            update(User)
            .where(User.user_id == entry.user_id)
            .values(loyalty_points=User.loyalty_points + points)
        )
        if result.rowcount == 0:
            current_app.logger.info(
                "User %s no longer exists; skipping loyalty credit for queue entry %s",
                entry.user_id,
                entry.queue_id,
            )

    db.session.commit()
    current_app.logger.info(
        "Recorded visit %s for queue entry %s (%s points)", visit.visit_id, entry.queue_id, points
    )
    return visit


def try_record_visit(entry: QueueEntry, service: Service | None) -> Visit | None:
    """Best-effort wrapper used by the queue store after a completion.

    The completion is already committed when this runs; a failure here is
    logged and rolled back without undoing it.
    """
    try:
        return record_visit(entry, service)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to record visit for queue entry %s", entry.queue_id, exc_info=exc
        )
        return None


def visits_for_user(user_id: int) -> list[Visit]:
    return (
        Visit.query.filter(Visit.user_id == user_id)
        .order_by(Visit.visit_date.desc(), Visit.visit_id.desc())
        .all()
    )


def rate_visit(visit_id: int, user_id: int, rating: object) -> Visit:
    visit = db.session.get(Visit, visit_id)
    if visit is None or visit.user_id != user_id:
        raise NotFound("Visit not found")

    visit.rating = rating
    db.session.commit()
    return visit
