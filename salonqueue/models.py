"""Database models for the SalonQueue backend."""
from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import text
from sqlalchemy.orm import validates

from .errors import InvalidInput
from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    # SQLite hands stored datetimes back without tzinfo; they were written as UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class QueueStatus(str, enum.Enum):
    WAITING = "waiting"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    NO_SHOW = "no-show"

    @property
    def is_terminal(self) -> bool:
        return self in (QueueStatus.COMPLETED, QueueStatus.NO_SHOW)


# Allowed moves between queue states. Completing straight from waiting is
# tolerated so an owner can close out a walk-in without calling it first.
QUEUE_TRANSITIONS: dict[QueueStatus, frozenset[QueueStatus]] = {
    QueueStatus.WAITING: frozenset(
        {QueueStatus.IN_PROGRESS, QueueStatus.COMPLETED, QueueStatus.NO_SHOW}
    ),
    QueueStatus.IN_PROGRESS: frozenset({QueueStatus.COMPLETED, QueueStatus.NO_SHOW}),
    QueueStatus.COMPLETED: frozenset(),
    QueueStatus.NO_SHOW: frozenset(),
}


class User(db.Model):
    __tablename__ = "users"

    user_id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    phone = db.Column(db.String(30))
    profile_image_url = db.Column(db.String(500))
    password_hash = db.Column(db.String(255))
    loyalty_points = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    is_admin = db.Column(db.Boolean, nullable=False, default=False, server_default="0")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or "Anonymous"

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "profile_image_url": self.profile_image_url,
            "loyalty_points": self.loyalty_points or 0,
            "is_admin": bool(self.is_admin),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Salon(db.Model):
    __tablename__ = "salons"

    salon_id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    location = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(30))
    image_url = db.Column(db.String(500))
    # stored as 0-50 for 0.0-5.0 stars
    rating = db.Column(db.Integer, nullable=False, default=0)
    review_count = db.Column(db.Integer, nullable=False, default=0)
    operating_hours = db.Column(db.String(100), default="9 AM - 7 PM")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    owner = db.relationship("User")
    services = db.relationship(
        "Service", back_populates="salon", order_by="Service.service_id"
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.salon_id,
            "owner_id": self.owner_id,
            "name": self.name,
            "description": self.description,
            "location": self.location,
            "phone": self.phone,
            "image_url": self.image_url,
            "rating": (self.rating or 0) / 10.0,
            "review_count": self.review_count or 0,
            "operating_hours": self.operating_hours,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Service(db.Model):
    """Services offered by a salon."""

    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    price_cents = db.Column(db.Integer, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    salon = db.relationship("Salon", back_populates="services")

    @validates("price_cents")
    def _validate_price(self, key, value):
        if value is None or int(value) < 0:
            raise InvalidInput("price_cents must be >= 0")
        return int(value)

    @validates("duration_minutes")
    def _validate_duration(self, key, value):
        if value is None or int(value) <= 0:
            raise InvalidInput("duration_minutes must be > 0")
        return int(value)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "salon_id": self.salon_id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "price_dollars": self.price_cents / 100.0,
            "duration_minutes": self.duration_minutes,
            "created_at": _iso(self.created_at),
        }


class QueueEntry(db.Model):
    """One customer's claim on a place in a salon's waiting line."""

    __tablename__ = "queue_entries"
    __table_args__ = (
        # At most one waiting entry per (salon, user); NULL users never collide.
        db.Index(
            "uq_queue_entries_waiting_user",
            "salon_id",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'waiting'"),
            postgresql_where=text("status = 'waiting'"),
        ),
        db.Index("ix_queue_entries_salon_status", "salon_id", "status"),
        # visits.queue_id is unique; freed ids must not come back.
        {"sqlite_autoincrement": True},
    )

    queue_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=True)
    status = db.Column(
        db.Enum(
            QueueStatus,
            name="queue_status",
            native_enum=False,
            validate_strings=True,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=QueueStatus.WAITING,
    )
    position = db.Column(db.Integer, nullable=False)
    joined_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    called_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    salon = db.relationship("Salon")
    user = db.relationship("User")
    service = db.relationship("Service")

    @validates("position")
    def _validate_position(self, key, value):
        if value is None or int(value) < 1:
            raise InvalidInput("position must be a positive integer")
        return int(value)

    @validates("status")
    def _validate_status(self, key, value):
        try:
            return QueueStatus(value)
        except ValueError as exc:
            raise InvalidInput(f"unknown queue status: {value}") from exc

    def can_move_to(self, target: QueueStatus) -> bool:
        return target in QUEUE_TRANSITIONS[QueueStatus(self.status)]

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.queue_id,
            "salon_id": self.salon_id,
            "user_id": self.user_id,
            "service_id": self.service_id,
            "status": QueueStatus(self.status).value,
            "position": self.position,
            "joined_at": _iso(self.joined_at),
            "called_at": _iso(self.called_at),
            "completed_at": _iso(self.completed_at),
        }


class Visit(db.Model):
    """Billing and history record written when a queue entry completes."""

    __tablename__ = "visits"

    visit_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=True)
    queue_id = db.Column(
        db.Integer,
        db.ForeignKey("queue_entries.queue_id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    points_earned = db.Column(db.Integer, nullable=False, default=10)
    rating = db.Column(db.Integer, nullable=True)  # 1-5 stars
    visit_date = db.Column(db.DateTime, nullable=False, default=utc_now)

    salon = db.relationship("Salon")
    service = db.relationship("Service")

    @validates("rating")
    def _validate_rating(self, key, value):
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
            raise InvalidInput("rating must be an integer between 1 and 5")
        return value

    @validates("total_amount_cents", "points_earned")
    def _validate_non_negative(self, key, value):
        if value is None or int(value) < 0:
            raise InvalidInput(f"{key} must be >= 0")
        return int(value)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.visit_id,
            "user_id": self.user_id,
            "salon_id": self.salon_id,
            "salon_name": self.salon.name if self.salon else "Unknown Salon",
            "service_id": self.service_id,
            "service_name": self.service.name if self.service else "Unknown Service",
            "queue_id": self.queue_id,
            "total_amount_cents": self.total_amount_cents,
            "points_earned": self.points_earned,
            "rating": self.rating,
            "visit_date": _iso(self.visit_date),
        }


class Offer(db.Model):
    """Promotional offers created by salon owners."""

    __tablename__ = "offers"

    offer_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    discount = db.Column(db.Integer)  # percentage
    valid_until = db.Column(db.DateTime)
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default="1")
    click_count = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    salon = db.relationship("Salon")

    @validates("discount")
    def _validate_discount(self, key, value):
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
            raise InvalidInput("discount must be a percentage between 0 and 100")
        return value

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.offer_id,
            "salon_id": self.salon_id,
            "title": self.title,
            "description": self.description,
            "discount": self.discount,
            "valid_until": _iso(self.valid_until),
            "is_active": bool(self.is_active),
            "click_count": self.click_count or 0,
            "created_at": _iso(self.created_at),
        }
