"""Per-salon waiting line: position assignment, lifecycle transitions and their side effects.

Every write to ``queue_entries`` goes through :class:`QueueStore`. Mutations for
one salon are serialized by a lock keyed on ``salon_id`` that is held across
"count waiting, insert, commit", so two joins can never read the same count.
Different salons never contend.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator

from flask import Flask, current_app
from sqlalchemy import func
from sqlalchemy.exc import DisconnectionError, IntegrityError, OperationalError, SQLAlchemyError

from .errors import (DuplicateEntry, InvalidInput, InvalidTransition, NotFound,
                     QueueError, StoreUnavailable)
from .extensions import db
from .loyalty import try_record_visit
from .models import QueueEntry, QueueStatus, Salon, Service, Visit, utc_now

# Clients that do not pick a service send this placeholder.
DEFAULT_SERVICE_SENTINEL = "default-service-id"
DEFAULT_SERVICE_MINUTES = 15


@dataclass
class AdvanceResult:
    entry: QueueEntry
    notification: dict[str, object] | None = None
    visit: Visit | None = None


def estimated_wait_minutes(
    entry: QueueEntry,
    service: Service | None = None,
    default_minutes: int = DEFAULT_SERVICE_MINUTES,
) -> int:
    """Minutes until ``entry`` is served; 0 means the customer is next."""
    if entry.position <= 1:
        return 0
    duration = service.duration_minutes if service is not None else default_minutes
    return (entry.position - 1) * duration


def build_call_notification(entry: QueueEntry) -> dict[str, object]:
    """Message payload for the customer being called in.

    Delivery (SMS, WhatsApp, ...) belongs to whoever consumes the payload.
    """
    user = entry.user
    salon = entry.salon
    first_name = user.first_name if user and user.first_name else "Customer"
    salon_name = salon.name if salon else "the salon"
    return {
        "message": f"Hi {first_name}, it's your turn at {salon_name}. Please come in!",
        "phone": user.phone if user else None,
        "timestamp": utc_now().isoformat(),
    }


class SalonLocks:
    """Lazily created ``threading.Lock`` per salon id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def for_salon(self, salon_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(salon_id)
            if lock is None:
                lock = self._locks[salon_id] = threading.Lock()
            return lock


class QueueStore:
    def __init__(self, app: Flask | None = None) -> None:
        self._locks = SalonLocks()
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        app.config.setdefault("QUEUE_REPACK_POSITIONS", True)
        app.config.setdefault("QUEUE_DEFAULT_SERVICE_MINUTES", DEFAULT_SERVICE_MINUTES)
        app.config.setdefault("QUEUE_WAITING_TTL_MINUTES", 240)
        app.extensions["queue_store"] = self

    @property
    def repack_positions(self) -> bool:
        return bool(current_app.config.get("QUEUE_REPACK_POSITIONS", True))

    @property
    def default_service_minutes(self) -> int:
        return int(current_app.config.get("QUEUE_DEFAULT_SERVICE_MINUTES", DEFAULT_SERVICE_MINUTES))

    # ------------------------------------------------------------------
    # error and lock plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _store_errors(self) -> Iterator[None]:
        try:
            yield
        except (OperationalError, DisconnectionError) as exc:
            db.session.rollback()
            current_app.logger.exception("Queue store unavailable", exc_info=exc)
            raise StoreUnavailable("Queue store is unavailable, please retry") from exc
        except (SQLAlchemyError, QueueError):
            db.session.rollback()
            raise

    @contextmanager
    def _salon_guard(self, salon_id: int) -> Iterator[None]:
        with self._locks.for_salon(salon_id):
            with self._store_errors():
                yield

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: int) -> QueueEntry:
        with self._store_errors():
            entry = db.session.get(QueueEntry, entry_id)
        if entry is None:
            raise NotFound("Queue entry not found")
        return entry

    def entries_for_salon(self, salon_id: int) -> list[QueueEntry]:
        with self._store_errors():
            return (
                QueueEntry.query.filter(QueueEntry.salon_id == salon_id)
                .order_by(QueueEntry.position, QueueEntry.joined_at, QueueEntry.queue_id)
                .all()
            )

    def waiting_count(self, salon_id: int) -> int:
        with self._store_errors():
            return (
                db.session.query(func.count(QueueEntry.queue_id))
                .filter(
                    QueueEntry.salon_id == salon_id,
                    QueueEntry.status == QueueStatus.WAITING,
                )
                .scalar()
                or 0
            )

    def position_of(self, user_id: int, salon_id: int) -> QueueEntry | None:
        """The caller's waiting entry at ``salon_id``, if any."""
        with self._store_errors():
            return QueueEntry.query.filter(
                QueueEntry.user_id == user_id,
                QueueEntry.salon_id == salon_id,
                QueueEntry.status == QueueStatus.WAITING,
            ).first()

    def estimate_for(self, entry: QueueEntry) -> int:
        return estimated_wait_minutes(entry, entry.service, self.default_service_minutes)

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------

    def join(
        self,
        salon_id: int | None,
        user_id: int | None = None,
        service_id: int | str | None = None,
    ) -> QueueEntry:
        """Append a waiting entry for ``user_id`` to the salon's line.

        ``user_id`` may be ``None`` for anonymous walk-ins; those are never
        treated as duplicates of one another.
        """
        if salon_id is None:
            raise InvalidInput("salon_id is required")

        with self._salon_guard(salon_id):
            salon = db.session.get(Salon, salon_id)
            if salon is None:
                raise InvalidInput(f"Salon {salon_id} does not exist")

            service = self._resolve_service(salon, service_id)

            if user_id is not None and self.position_of(user_id, salon_id) is not None:
                raise DuplicateEntry("You are already in the queue for this salon")

            entry = QueueEntry(
                salon_id=salon.salon_id,
                user_id=user_id,
                service_id=service.service_id if service else None,
                status=QueueStatus.WAITING,
                position=self.waiting_count(salon_id) + 1,
                joined_at=utc_now(),
                called_at=None,
                completed_at=None,
            )
            db.session.add(entry)
            try:
                db.session.commit()
            except IntegrityError as exc:
                db.session.rollback()
                if user_id is not None and self.position_of(user_id, salon_id) is not None:
                    raise DuplicateEntry("You are already in the queue for this salon") from exc
                raise InvalidInput("Queue entry references an unknown user or service") from exc

        current_app.logger.info(
            "User %s joined salon %s queue at position %s", user_id, salon_id, entry.position
        )
        return entry

    def advance(self, entry_id: int, target: QueueStatus | str) -> AdvanceResult:
        """Move an entry to ``target`` and run the side effects of that move."""
        target = self._coerce_status(target)
        entry = self.get_entry(entry_id)

        notification = None
        with self._salon_guard(entry.salon_id):
            entry = db.session.get(QueueEntry, entry_id, populate_existing=True)
            if entry is None:
                raise NotFound("Queue entry not found")

            current = QueueStatus(entry.status)
            if not entry.can_move_to(target):
                raise InvalidTransition(
                    f"Cannot move a {current.value} queue entry to {target.value}"
                )

            now = utc_now()
            entry.status = target
            if target is QueueStatus.IN_PROGRESS:
                entry.called_at = now
            else:
                entry.completed_at = now

            if current is QueueStatus.WAITING and self.repack_positions:
                self._repack(entry.salon_id)
            db.session.commit()

            if target is QueueStatus.IN_PROGRESS:
                notification = build_call_notification(entry)

        current_app.logger.info(
            "Queue entry %s at salon %s moved %s -> %s",
            entry.queue_id,
            entry.salon_id,
            current.value,
            target.value,
        )

        visit = None
        if target is QueueStatus.COMPLETED:
            visit = try_record_visit(entry, entry.service)
        return AdvanceResult(entry=entry, notification=notification, visit=visit)

    def call(self, entry_id: int) -> AdvanceResult:
        return self.advance(entry_id, QueueStatus.IN_PROGRESS)

    def complete(self, entry_id: int) -> AdvanceResult:
        return self.advance(entry_id, QueueStatus.COMPLETED)

    def mark_no_show(self, entry_id: int) -> AdvanceResult:
        return self.advance(entry_id, QueueStatus.NO_SHOW)

    def remove(self, entry_id: int) -> bool:
        """Delete an entry whatever its status; False if it was already gone."""
        with self._store_errors():
            entry = db.session.get(QueueEntry, entry_id)
        if entry is None:
            return False

        salon_id = entry.salon_id
        with self._salon_guard(salon_id):
            entry = db.session.get(QueueEntry, entry_id, populate_existing=True)
            if entry is None:
                return False

            was_waiting = QueueStatus(entry.status) is QueueStatus.WAITING
            db.session.delete(entry)
            if was_waiting and self.repack_positions:
                db.session.flush()
                self._repack(salon_id)
            db.session.commit()

        current_app.logger.info("Removed queue entry %s from salon %s", entry_id, salon_id)
        return True

    def expire_stale(self, max_age_minutes: int | None = None, now: datetime | None = None) -> int:
        """Mark waiting entries older than the TTL as no-shows.

        Returns the number of entries expired.
        """
        if max_age_minutes is None:
            max_age_minutes = int(current_app.config.get("QUEUE_WAITING_TTL_MINUTES", 240))
        now = now or utc_now()
        cutoff = now - timedelta(minutes=max_age_minutes)

        def stale_query(salon_id=None):
            query = QueueEntry.query.filter(
                QueueEntry.status == QueueStatus.WAITING,
                QueueEntry.joined_at < cutoff,
            )
            if salon_id is not None:
                query = query.filter(QueueEntry.salon_id == salon_id)
            return query

        with self._store_errors():
            salon_ids = sorted({entry.salon_id for entry in stale_query().all()})

        expired = 0
        for salon_id in salon_ids:
            with self._salon_guard(salon_id):
                stale = stale_query(salon_id).all()
                for entry in stale:
                    entry.status = QueueStatus.NO_SHOW
                    entry.completed_at = now
                if self.repack_positions:
                    self._repack(salon_id)
                db.session.commit()
            expired += len(stale)

        if expired:
            current_app.logger.info(
                "Expired %s stale queue entries older than %s minutes", expired, max_age_minutes
            )
        return expired

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _repack(self, salon_id: int) -> None:
        """Renumber the salon's waiting entries 1..N keeping join order."""
        waiting = (
            QueueEntry.query.filter(
                QueueEntry.salon_id == salon_id,
                QueueEntry.status == QueueStatus.WAITING,
            )
            .order_by(QueueEntry.position, QueueEntry.joined_at, QueueEntry.queue_id)
            .all()
        )
        for position, entry in enumerate(waiting, start=1):
            if entry.position != position:
                entry.position = position

    @staticmethod
    def _coerce_status(value: QueueStatus | str) -> QueueStatus:
        try:
            return QueueStatus(value)
        except ValueError as exc:
            raise InvalidInput(f"Unknown queue status: {value}") from exc

    @staticmethod
    def _resolve_service(salon: Salon, service_id: int | str | None) -> Service | None:
        if service_id in (None, "", DEFAULT_SERVICE_SENTINEL):
            return (
                Service.query.filter(Service.salon_id == salon.salon_id)
                .order_by(Service.service_id)
                .first()
            )

        try:
            service_id = int(service_id)
        except (TypeError, ValueError) as exc:
            raise InvalidInput("service_id must be an integer") from exc

        service = db.session.get(Service, service_id)
        if service is None or service.salon_id != salon.salon_id:
            raise InvalidInput(f"Service {service_id} is not offered by this salon")
        return service


queue_store = QueueStore()
