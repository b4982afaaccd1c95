"""Queue endpoints: joining, owner actions and position lookups."""
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from .auth import can_manage_salon, login_required, optional_auth
from .errors import InvalidInput, QueueError
from .extensions import db
from .models import QueueStatus
from .queue_store import queue_store

bp_queue = Blueprint("queue", __name__)


def _queue_error(exc: QueueError):
    return jsonify(exc.to_dict()), exc.status_code


def _entry_payload(entry) -> dict[str, object]:
    data = entry.to_dict()
    data["user_name"] = entry.user.display_name if entry.user else "Unknown User"
    data["service_name"] = entry.service.name if entry.service else "General Service"
    if QueueStatus(entry.status) is QueueStatus.WAITING:
        data["estimated_wait_minutes"] = queue_store.estimate_for(entry)
    return data


def _forbidden_unless_manager(entry_id: int):
    entry = queue_store.get_entry(entry_id)
    if not can_manage_salon(entry.salon):
        return jsonify({"error": "forbidden", "message": "You do not manage this salon"}), 403
    return None


@bp_queue.get("/queue/<int:salon_id>")
def get_salon_queue(salon_id: int) -> tuple[dict[str, object], int]:
    """List every queue entry of a salon, ordered by position.
    ---
    tags:
      - Queue
    responses:
      200:
        description: Queue entries with customer and service names
      503:
        description: Store unavailable
    """
    try:
        entries = queue_store.entries_for_salon(salon_id)
        payload = [_entry_payload(entry) for entry in entries]
    except QueueError as exc:
        return _queue_error(exc)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch queue", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({
        "salon_id": salon_id,
        "waiting_count": sum(1 for item in payload if item["status"] == QueueStatus.WAITING.value),
        "queue": payload,
    }), 200


@bp_queue.post("/queue/join")
@optional_auth
def join_queue() -> tuple[dict[str, object], int]:
    """Join a salon's waiting line.
    ---
    tags:
      - Queue
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            salon_id:
              type: integer
            service_id:
              type: integer
              description: Omit or send "default-service-id" for the salon's first service
    responses:
      201:
        description: Joined, returns id, position and status
      400:
        description: Unknown salon or service
      409:
        description: Already waiting at this salon
      503:
        description: Store unavailable
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}

    try:
        salon_id = payload.get("salon_id")
        if salon_id is None or isinstance(salon_id, bool):
            raise InvalidInput("salon_id is required")
        try:
            salon_id = int(salon_id)
        except (TypeError, ValueError) as exc:
            raise InvalidInput("salon_id must be an integer") from exc

        entry = queue_store.join(salon_id, g.current_user_id, payload.get("service_id"))
    except QueueError as exc:
        current_app.logger.warning("Join rejected for salon %s: %s", payload.get("salon_id"), exc.message)
        return _queue_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to join queue", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({
        "id": entry.queue_id,
        "position": entry.position,
        "status": QueueStatus(entry.status).value,
        "service_id": entry.service_id,
        "estimated_wait_minutes": queue_store.estimate_for(entry),
    }), 201


@bp_queue.post("/queue/<int:entry_id>/call")
@login_required
def call_customer(entry_id: int) -> tuple[dict[str, object], int]:
    """Call the customer in (waiting -> in-progress) and build the notification.
    ---
    tags:
      - Queue
    responses:
      200:
        description: Updated entry and notification payload
      400:
        description: Invalid transition
      403:
        description: Caller does not own the salon
      404:
        description: Queue entry not found
    """
    try:
        denied = _forbidden_unless_manager(entry_id)
        if denied:
            return denied
        result = queue_store.call(entry_id)
    except QueueError as exc:
        return _queue_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to call customer", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"queue": result.entry.to_dict(), "notification": result.notification}), 200


@bp_queue.post("/queue/<int:entry_id>/complete")
@login_required
def complete_entry(entry_id: int) -> tuple[dict[str, object], int]:
    """Mark an entry completed; records the visit and loyalty points.
    ---
    tags:
      - Queue
    responses:
      200:
        description: Updated entry and the visit (null if recording it failed)
      400:
        description: Invalid transition
      403:
        description: Caller does not own the salon
      404:
        description: Queue entry not found
    """
    try:
        denied = _forbidden_unless_manager(entry_id)
        if denied:
            return denied
        result = queue_store.complete(entry_id)
    except QueueError as exc:
        return _queue_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to complete queue entry", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({
        "queue": result.entry.to_dict(),
        "visit": result.visit.to_dict() if result.visit else None,
    }), 200


@bp_queue.post("/queue/<int:entry_id>/no-show")
@login_required
def mark_no_show(entry_id: int) -> tuple[dict[str, object], int]:
    """Mark an entry as a no-show.
    ---
    tags:
      - Queue
    responses:
      200:
        description: Updated entry
      400:
        description: Invalid transition
      404:
        description: Queue entry not found
    """
    try:
        denied = _forbidden_unless_manager(entry_id)
        if denied:
            return denied
        result = queue_store.mark_no_show(entry_id)
    except QueueError as exc:
        return _queue_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to mark no-show", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"queue": result.entry.to_dict()}), 200


@bp_queue.delete("/queue/<int:entry_id>")
@login_required
def remove_entry(entry_id: int) -> tuple[dict[str, object], int]:
    """Remove an entry; allowed for the salon owner and the entry's customer.
    ---
    tags:
      - Queue
    responses:
      200:
        description: Removed
      403:
        description: Caller may not remove this entry
      404:
        description: Queue entry not found
    """
    try:
        entry = queue_store.get_entry(entry_id)
        if entry.user_id != g.current_user_id and not can_manage_salon(entry.salon):
            return jsonify({"error": "forbidden", "message": "You cannot remove this entry"}), 403

        if not queue_store.remove(entry_id):
            return jsonify({"error": "not_found", "message": "Queue entry not found"}), 404
    except QueueError as exc:
        return _queue_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to remove from queue", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Removed from queue"}), 200


@bp_queue.get("/user/queue-status")
@login_required
def queue_status() -> tuple[dict[str, object], int]:
    """The caller's waiting entry at a salon with the estimated wait.
    ---
    tags:
      - Queue
    parameters:
      - name: salon_id
        in: query
        type: integer
        required: true
    responses:
      200:
        description: Entry (null when not waiting)
      400:
        description: salon_id missing
    """
    salon_id = request.args.get("salon_id", type=int)
    if salon_id is None:
        return jsonify({"error": "invalid_query", "message": "salon_id query parameter is required"}), 400

    try:
        entry = queue_store.position_of(g.current_user_id, salon_id)
    except QueueError as exc:
        return _queue_error(exc)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch queue status", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    if entry is None:
        return jsonify({"queue": None}), 200

    wait = queue_store.estimate_for(entry)
    return jsonify({
        "queue": entry.to_dict(),
        "estimated_wait_minutes": wait,
        "is_next": wait == 0,
    }), 200
