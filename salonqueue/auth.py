"""Signed-token authentication helpers.

Tokens are produced with itsdangerous and travel either in an HTTP-only
cookie or in an ``Authorization: Bearer`` header.
"""
from __future__ import annotations

from functools import wraps

from flask import current_app, g, jsonify, request
from itsdangerous import BadSignature, URLSafeTimedSerializer

TOKEN_SALT = "auth-token"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def build_token(user_id: int, is_admin: bool = False) -> str:
    return _serializer().dumps({"user_id": user_id, "is_admin": bool(is_admin)})


def set_auth_cookie(response, token: str):
    secure = not current_app.debug and not current_app.testing
    response.set_cookie(
        current_app.config.get("AUTH_COOKIE_NAME", "sq_auth"),
        token,
        max_age=current_app.config.get("AUTH_TOKEN_MAX_AGE", 7 * 24 * 60 * 60),
        httponly=True,
        secure=secure,
        samesite="None" if secure else "Lax",
        path="/",
    )
    return response


def clear_auth_cookie(response):
    response.delete_cookie(current_app.config.get("AUTH_COOKIE_NAME", "sq_auth"), path="/")
    return response


def get_token_identity() -> dict[str, object] | None:
    """Return the verified token payload of the current request, if any."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:]
    else:
        token = request.cookies.get(current_app.config.get("AUTH_COOKIE_NAME", "sq_auth"))

    if not token:
        return None

    try:
        payload = _serializer().loads(
            token, max_age=current_app.config.get("AUTH_TOKEN_MAX_AGE", 7 * 24 * 60 * 60)
        )
    except BadSignature:
        # Invalid or expired token
        return None

    if not isinstance(payload, dict) or payload.get("user_id") is None:
        return None
    return payload


def _load_identity() -> None:
    identity = get_token_identity()
    g.current_user_id = identity["user_id"] if identity else None
    g.is_admin = bool(identity.get("is_admin")) if identity else False


def login_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        _load_identity()
        if g.current_user_id is None:
            return jsonify({"error": "unauthorized", "message": "Authentication required"}), 401
        return view(*args, **kwargs)

    return wrapper


def optional_auth(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        _load_identity()
        return view(*args, **kwargs)

    return wrapper


def can_manage_salon(salon) -> bool:
    return bool(g.get("is_admin")) or (
        salon is not None and salon.owner_id is not None and salon.owner_id == g.get("current_user_id")
    )
