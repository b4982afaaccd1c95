"""HTTP routes for the SalonQueue backend."""
from __future__ import annotations

from datetime import datetime

from flask import Blueprint, Flask, current_app, g, jsonify, request
from sqlalchemy import func, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from .auth import (build_token, can_manage_salon, clear_auth_cookie,
                   login_required, set_auth_cookie)
from .errors import InvalidInput, NotFound, QueueError
from .extensions import db
from .loyalty import rate_visit, visits_for_user
from .models import Offer, QueueEntry, QueueStatus, Salon, Service, User, Visit

bp = Blueprint("api", __name__)

# Mocked analytics series shown on the owner dashboard.
MOCK_AVG_WAIT_MINUTES = 22
MOCK_CUSTOMER_FLOW = [12, 19, 15, 25, 22, 30, 18]
MOCK_SERVICE_POPULARITY = [
    {"name": "Haircut", "count": 35},
    {"name": "Color", "count": 25},
    {"name": "Manicure", "count": 20},
    {"name": "Facial", "count": 15},
    {"name": "Other", "count": 5},
]
MOCK_PEAK_HOURS = [3, 5, 8, 12, 15, 18, 22, 20, 15, 8]


def register_routes(app: Flask) -> None:
    from .queue_routes import bp_queue

    app.register_blueprint(bp)
    app.register_blueprint(bp_queue)


def _error(code: str, message: str, status: int):
    return jsonify({"error": code, "message": message}), status


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _text(payload: dict, field: str) -> str:
    """Stripped string value of ``field``; missing or null gives ``""``."""
    value = payload.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidInput(f"{field} must be a string")
    return value.strip()


def _credentials(payload: dict) -> tuple[str, str]:
    email = _text(payload, "email").lower()
    password = payload.get("password") or ""
    if not isinstance(password, str):
        raise InvalidInput("password must be a string")
    if not email or not password:
        raise InvalidInput("email and password are required")
    return email, password


def _parse_datetime(value: object, field: str) -> datetime | None:
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise InvalidInput(f"{field} must be an ISO 8601 date")
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidInput(f"{field} must be an ISO 8601 date") from exc


def _optional_int(value: object, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"{field} must be an integer") from exc


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


# ============================================================================
# Authentication
# ============================================================================

@bp.post("/auth/register")
def register() -> tuple[dict[str, object], int]:
    """Register a customer or salon owner account.
    ---
    tags:
      - Authentication
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            email:
              type: string
            password:
              type: string
            first_name:
              type: string
            last_name:
              type: string
            phone:
              type: string
    responses:
      201:
        description: User registered
      400:
        description: Invalid payload
      409:
        description: Email already registered
    """
    payload = _json_body()

    try:
        email, password = _credentials(payload)
        first_name = _text(payload, "first_name") or None
        last_name = _text(payload, "last_name") or None
        phone = _text(payload, "phone") or None
    except InvalidInput as exc:
        return _error("invalid_payload", exc.message, 400)

    try:
        if User.query.filter_by(email=email).first():
            return _error("conflict", "User with this email already exists", 409)

        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            password_hash=generate_password_hash(password),
            loyalty_points=0,
            is_admin=False,
        )
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return _error("conflict", "User with this email already exists", 409)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to register new user", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    current_app.logger.info("Registered user %s", user.user_id)
    return jsonify({"message": "User registered successfully", "user": user.to_dict()}), 201


@bp.post("/auth/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate by email/password and set the auth cookie.
    ---
    tags:
      - Authentication
    responses:
      200:
        description: Login successful, returns the user and a token cookie
      400:
        description: Missing email or password
      401:
        description: Invalid credentials
    """
    payload = _json_body()

    try:
        email, password = _credentials(payload)
    except InvalidInput as exc:
        return _error("invalid_payload", exc.message, 400)

    try:
        user = User.query.filter_by(email=email).first()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to look up user for login", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    if user is None or not user.password_hash or not check_password_hash(user.password_hash, password):
        current_app.logger.warning("Rejected login attempt for %s", email)
        return _error("unauthorized", "Invalid email or password", 401)

    if payload.get("is_admin") and not user.is_admin:
        return _error("unauthorized", "Admin access required", 401)

    token = build_token(user.user_id, bool(user.is_admin))
    response = jsonify({"token": token, "user": user.to_dict()})
    set_auth_cookie(response, token)
    return response, 200


@bp.post("/auth/logout")
def logout() -> tuple[dict[str, str], int]:
    """Clear the auth cookie.
    ---
    tags:
      - Authentication
    responses:
      200:
        description: Logged out
    """
    response = jsonify({"message": "Logged out successfully"})
    clear_auth_cookie(response)
    return response, 200


@bp.get("/auth/user")
@login_required
def current_user() -> tuple[dict[str, object], int]:
    """Return the authenticated user.
    ---
    tags:
      - Authentication
    responses:
      200:
        description: Current user
      401:
        description: Not authenticated
    """
    user = db.session.get(User, g.current_user_id)
    if user is None:
        return _error("unauthorized", "User not found", 401)
    return jsonify({"user": user.to_dict()}), 200


# ============================================================================
# Salons
# ============================================================================

def _waiting_count(salon_id: int) -> int:
    return (
        db.session.query(func.count(QueueEntry.queue_id))
        .filter(QueueEntry.salon_id == salon_id, QueueEntry.status == QueueStatus.WAITING)
        .scalar()
        or 0
    )


def _active_offers(salon_id: int) -> list[Offer]:
    return (
        Offer.query.filter(Offer.salon_id == salon_id, Offer.is_active.is_(True))
        .order_by(Offer.offer_id)
        .all()
    )


@bp.get("/salons")
def list_salons() -> tuple[dict[str, object], int]:
    """Return all salons with a service preview, current offer and queue length.
    ---
    tags:
      - Salons
    responses:
      200:
        description: List of salons
      500:
        description: Database error
    """
    try:
        results = []
        for salon in Salon.query.order_by(Salon.salon_id).all():
            offers = _active_offers(salon.salon_id)
            data = salon.to_dict()
            data["services"] = [service.name for service in salon.services[:3]]
            data["current_offer"] = offers[0].title if offers else None
            data["current_offer_discount"] = offers[0].discount if offers else None
            data["queue_count"] = _waiting_count(salon.salon_id)
            results.append(data)
        return jsonify({"salons": results}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch salons", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/salons/<int:salon_id>")
def get_salon(salon_id: int) -> tuple[dict[str, object], int]:
    """Return a salon with its services, active offers and queue length.
    ---
    tags:
      - Salons
    responses:
      200:
        description: Salon details
      404:
        description: Salon not found
    """
    try:
        salon = db.session.get(Salon, salon_id)
        if not salon:
            return _error("not_found", "Salon not found", 404)

        data = salon.to_dict()
        data["services"] = [service.to_dict() for service in salon.services]
        data["offers"] = [offer.to_dict() for offer in _active_offers(salon_id)]
        data["queue_count"] = _waiting_count(salon_id)
        return jsonify({"salon": data}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch salon details", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


_SALON_FIELDS = ("name", "description", "location", "phone", "image_url", "operating_hours")


def _salon_fields(payload: dict) -> dict[str, str]:
    return {field: _text(payload, field) for field in _SALON_FIELDS if field in payload}


@bp.post("/salons")
@login_required
def create_salon() -> tuple[dict[str, object], int]:
    """Create a salon owned by the caller.
    ---
    tags:
      - Salons
    responses:
      201:
        description: Salon created
      400:
        description: Invalid payload
    """
    payload = _json_body()

    try:
        fields = _salon_fields(payload)
    except InvalidInput as exc:
        return _error("invalid_payload", exc.message, 400)
    if not fields.get("name") or not fields.get("location"):
        return _error("invalid_payload", "name and location are required", 400)

    try:
        salon = Salon(owner_id=g.current_user_id, rating=0, review_count=0)
        for field, value in fields.items():
            setattr(salon, field, value or None)
        db.session.add(salon)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create new salon", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Salon created successfully", "salon": salon.to_dict()}), 201


@bp.put("/salons/<int:salon_id>")
@login_required
def update_salon(salon_id: int) -> tuple[dict[str, object], int]:
    """Update salon details (owner only).
    ---
    tags:
      - Salons
    responses:
      200:
        description: Salon updated
      403:
        description: Caller does not own the salon
      404:
        description: Salon not found
    """
    payload = _json_body()

    try:
        fields = _salon_fields(payload)
    except InvalidInput as exc:
        return _error("invalid_payload", exc.message, 400)
    for field in ("name", "location"):
        if field in fields and not fields[field]:
            return _error("invalid_payload", f"{field} cannot be empty", 400)

    try:
        salon = db.session.get(Salon, salon_id)
        if not salon:
            return _error("not_found", "Salon not found", 404)
        if not can_manage_salon(salon):
            return _error("forbidden", "You do not manage this salon", 403)

        for field, value in fields.items():
            setattr(salon, field, value or None)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update salon details", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"salon": salon.to_dict()}), 200


@bp.get("/my-salons")
@login_required
def my_salons() -> tuple[dict[str, object], int]:
    """Salons owned by the caller.
    ---
    tags:
      - Salons
    responses:
      200:
        description: Owned salons
    """
    try:
        salons = Salon.query.filter_by(owner_id=g.current_user_id).order_by(Salon.salon_id).all()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch owned salons", exc_info=exc)
        return jsonify({"error": "database_error"}), 500
    return jsonify({"salons": [salon.to_dict() for salon in salons]}), 200


# ============================================================================
# Services
# ============================================================================

@bp.get("/salons/<int:salon_id>/services")
def list_services(salon_id: int) -> tuple[dict[str, object], int]:
    """Get all services for a salon.
    ---
    tags:
      - Services
    responses:
      200:
        description: List of services for the salon
      404:
        description: Salon not found
    """
    try:
        salon = db.session.get(Salon, salon_id)
        if not salon:
            return _error("not_found", "Salon not found", 404)
        return jsonify({"services": [service.to_dict() for service in salon.services]}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch services", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/salons/<int:salon_id>/services")
@login_required
def create_service(salon_id: int) -> tuple[dict[str, object], int]:
    """Create a new service for a salon (owner only).
    ---
    tags:
      - Services
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            name:
              type: string
            description:
              type: string
            price_cents:
              type: integer
            duration_minutes:
              type: integer
    responses:
      201:
        description: Service created successfully
      400:
        description: Invalid input
      403:
        description: Caller does not own the salon
      404:
        description: Salon not found
    """
    payload = _json_body()

    try:
        salon = db.session.get(Salon, salon_id)
        if not salon:
            return _error("not_found", "Salon not found", 404)
        if not can_manage_salon(salon):
            return _error("forbidden", "You do not manage this salon", 403)

        name = _text(payload, "name")
        if not name or payload.get("price_cents") is None or payload.get("duration_minutes") is None:
            return _error(
                "invalid_payload", "name, price_cents, and duration_minutes are required", 400
            )

        service = Service(
            salon_id=salon_id,
            name=name,
            description=_text(payload, "description") or None,
            price_cents=_optional_int(payload.get("price_cents"), "price_cents"),
            duration_minutes=_optional_int(payload.get("duration_minutes"), "duration_minutes"),
        )
        db.session.add(service)
        db.session.commit()

    except InvalidInput as exc:
        db.session.rollback()
        return _error("invalid_payload", exc.message, 400)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create service", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Service created successfully", "service": service.to_dict()}), 201


# ============================================================================
# Offers
# ============================================================================

@bp.get("/salons/<int:salon_id>/offers")
def list_offers(salon_id: int) -> tuple[dict[str, object], int]:
    """List a salon's offers; inactive ones only with ``include_inactive=true``.
    ---
    tags:
      - Offers
    parameters:
      - name: include_inactive
        in: query
        type: boolean
        default: false
    responses:
      200:
        description: Offers for the salon
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    try:
        query = Offer.query.filter(Offer.salon_id == salon_id)
        if not include_inactive:
            query = query.filter(Offer.is_active.is_(True))
        offers = query.order_by(Offer.offer_id).all()
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch offers", exc_info=exc)
        return jsonify({"error": "database_error"}), 500
    return jsonify({"offers": [offer.to_dict() for offer in offers]}), 200


def _apply_offer_fields(offer: Offer, payload: dict) -> None:
    if "title" in payload:
        title = _text(payload, "title")
        if not title:
            raise InvalidInput("title cannot be empty")
        offer.title = title
    if "description" in payload:
        offer.description = _text(payload, "description") or None
    if "discount" in payload:
        offer.discount = _optional_int(payload.get("discount"), "discount")
    if "valid_until" in payload:
        offer.valid_until = _parse_datetime(payload.get("valid_until"), "valid_until")
    if "is_active" in payload:
        if not isinstance(payload["is_active"], bool):
            raise InvalidInput("is_active must be a boolean")
        offer.is_active = payload["is_active"]


@bp.post("/salons/<int:salon_id>/offers")
@login_required
def create_offer(salon_id: int) -> tuple[dict[str, object], int]:
    """Create a promotional offer (owner only).
    ---
    tags:
      - Offers
    responses:
      201:
        description: Offer created
      400:
        description: Invalid payload
      403:
        description: Caller does not own the salon
      404:
        description: Salon not found
    """
    payload = _json_body()

    try:
        salon = db.session.get(Salon, salon_id)
        if not salon:
            return _error("not_found", "Salon not found", 404)
        if not can_manage_salon(salon):
            return _error("forbidden", "You do not manage this salon", 403)
        if not _text(payload, "title"):
            return _error("invalid_payload", "title is required", 400)

        offer = Offer(salon_id=salon_id, is_active=True, click_count=0)
        _apply_offer_fields(offer, payload)
        db.session.add(offer)
        db.session.commit()

    except InvalidInput as exc:
        db.session.rollback()
        return _error("invalid_payload", exc.message, 400)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create offer", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"offer": offer.to_dict()}), 201


def _owned_offer(salon_id: int, offer_id: int):
    salon = db.session.get(Salon, salon_id)
    offer = db.session.get(Offer, offer_id)
    if not salon or not offer or offer.salon_id != salon_id:
        raise NotFound("Offer not found")
    return salon, offer


@bp.patch("/salons/<int:salon_id>/offers/<int:offer_id>")
@login_required
def update_offer(salon_id: int, offer_id: int) -> tuple[dict[str, object], int]:
    """Update an offer (owner only).
    ---
    tags:
      - Offers
    responses:
      200:
        description: Offer updated
      404:
        description: Offer not found
    """
    payload = _json_body()

    try:
        salon, offer = _owned_offer(salon_id, offer_id)
        if not can_manage_salon(salon):
            return _error("forbidden", "You do not manage this salon", 403)
        _apply_offer_fields(offer, payload)
        db.session.commit()

    except NotFound as exc:
        return jsonify(exc.to_dict()), 404
    except InvalidInput as exc:
        db.session.rollback()
        return _error("invalid_payload", exc.message, 400)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update offer", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"offer": offer.to_dict()}), 200


@bp.delete("/salons/<int:salon_id>/offers/<int:offer_id>")
@login_required
def delete_offer(salon_id: int, offer_id: int) -> tuple[dict[str, object], int]:
    """Delete an offer (owner only).
    ---
    tags:
      - Offers
    responses:
      200:
        description: Offer deleted
      404:
        description: Offer not found
    """
    try:
        salon, offer = _owned_offer(salon_id, offer_id)
        if not can_manage_salon(salon):
            return _error("forbidden", "You do not manage this salon", 403)
        db.session.delete(offer)
        db.session.commit()

    except NotFound as exc:
        return jsonify(exc.to_dict()), 404
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete offer", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Offer deleted successfully"}), 200


def record_click(offer_id: int) -> int:
    """Count one click on an offer and return the new total."""
    result = db.session.execute(
        update(Offer)
        .where(Offer.offer_id == offer_id)
        .values(click_count=Offer.click_count + 1)
    )
    if result.rowcount == 0:
        db.session.rollback()
        raise NotFound("Offer not found")
    db.session.commit()
    return db.session.get(Offer, offer_id, populate_existing=True).click_count


@bp.post("/offers/<int:offer_id>/click")
def click_offer(offer_id: int) -> tuple[dict[str, object], int]:
    """Record a click on an offer.
    ---
    tags:
      - Offers
    responses:
      200:
        description: Click recorded
      404:
        description: Offer not found
    """
    try:
        click_count = record_click(offer_id)
    except QueueError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to record offer click", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Offer click recorded", "click_count": click_count}), 200


# ============================================================================
# Analytics (owner dashboard)
# ============================================================================

@bp.get("/salons/<int:salon_id>/analytics")
@login_required
def salon_analytics(salon_id: int) -> tuple[dict[str, object], int]:
    """Dashboard numbers; only the totals are real, the series are fixed.
    ---
    tags:
      - Analytics
    responses:
      200:
        description: Analytics payload
      403:
        description: Caller does not own the salon
      404:
        description: Salon not found
    """
    try:
        salon = db.session.get(Salon, salon_id)
        if not salon:
            return _error("not_found", "Salon not found", 404)
        if not can_manage_salon(salon):
            return _error("forbidden", "You do not manage this salon", 403)

        total_customers, revenue = (
            db.session.query(
                func.count(Visit.visit_id), func.coalesce(func.sum(Visit.total_amount_cents), 0)
            )
            .filter(Visit.salon_id == salon_id)
            .one()
        )
        offer_clicks = (
            db.session.query(func.coalesce(func.sum(Offer.click_count), 0))
            .filter(Offer.salon_id == salon_id)
            .scalar()
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to compute analytics", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({
        "total_customers": int(total_customers),
        "avg_wait_time": MOCK_AVG_WAIT_MINUTES,
        "offer_clicks": int(offer_clicks or 0),
        "revenue": int(revenue or 0),
        "customer_flow": MOCK_CUSTOMER_FLOW,
        "service_popularity": MOCK_SERVICE_POPULARITY,
        "peak_hours": MOCK_PEAK_HOURS,
    }), 200


# ============================================================================
# Visits
# ============================================================================

@bp.get("/user/visits")
@login_required
def list_user_visits() -> tuple[dict[str, object], int]:
    """Visit history of the caller, newest first.
    ---
    tags:
      - Visits
    responses:
      200:
        description: Visits with salon and service names
    """
    try:
        visits = visits_for_user(g.current_user_id)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch visits", exc_info=exc)
        return jsonify({"error": "database_error"}), 500
    return jsonify({"visits": [visit.to_dict() for visit in visits]}), 200


@bp.put("/visits/<int:visit_id>/rating")
@login_required
def rate_user_visit(visit_id: int) -> tuple[dict[str, object], int]:
    """Rate one of the caller's visits (1-5 stars).
    ---
    tags:
      - Visits
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            rating:
              type: integer
              minimum: 1
              maximum: 5
    responses:
      200:
        description: Rating saved
      400:
        description: Invalid rating
      404:
        description: Visit not found
    """
    payload = _json_body()
    if "rating" not in payload:
        return _error("invalid_payload", "rating is required", 400)

    try:
        visit = rate_visit(visit_id, g.current_user_id, payload["rating"])
    except QueueError as exc:
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.status_code
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to rate visit", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"visit": visit.to_dict()}), 200
