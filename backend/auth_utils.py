# auth_utils.py
# Authentication utilities: password hashing, JWT creation/verification, role decorators.

from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Optional

import bcrypt
import jwt
from flask import jsonify, request
from flask_login import current_user, login_required

import config

ROLE_ADMIN = 'admin'
ROLE_REPORTER = 'reporter'
ROLE_USER = 'user'


def hash_password(plain: str) -> str:
    if not plain:
        raise ValueError("Password cannot be empty")
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(user) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=config.ACCESS_TTL_SECONDS)).timestamp()),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm="HS256")


def decode_token(token: str) -> Dict[str, Any]:
    """
    Raises:
        jwt.ExpiredSignatureError: token is past `exp`
        jwt.InvalidTokenError: anything else wrong with the token
    """
    payload = jwt.decode(token, config.JWT_SECRET, algorithms=["HS256"])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError("Not an access token")
    return payload


def token_from_request() -> Optional[str]:
    """Bearer header first, then the token cookie"""
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        token = header[len("Bearer "):].strip()
        if token:
            return token
    return request.cookies.get(config.TOKEN_COOKIE_NAME) or None


def set_token_cookie(response, token: str):
    response.set_cookie(
        config.TOKEN_COOKIE_NAME,
        token,
        max_age=config.ACCESS_TTL_SECONDS,
        httponly=True,
        secure=config.TOKEN_COOKIE_SECURE,
        samesite="Lax",
    )
    return response


def clear_token_cookie(response):
    response.delete_cookie(config.TOKEN_COOKIE_NAME, httponly=True, samesite="Lax")
    return response


def mask_email(email: str) -> str:
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    if len(local) <= 2:
        return "*" * len(local) + "@" + domain
    return local[0] + "*" * (len(local) - 2) + local[-1] + "@" + domain


def current_user_id() -> Optional[int]:
    """Authenticated user's id, or None for anonymous requests"""
    if current_user and current_user.is_authenticated:
        return current_user.id
    return None


def roles_required(*roles):
    """Decorator that requires the current user to have one of `roles`."""
    def decorator(fn):
        @wraps(fn)
        @login_required
        def wrapper(*args, **kwargs):
            if getattr(current_user, "role", ROLE_USER) not in roles:
                return jsonify({"error": f"Role '{getattr(current_user, 'role', None)}' is not authorized to access this route"}), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def admin_required(fn):
    """Decorator that requires the current user to be an admin."""
    return roles_required(ROLE_ADMIN)(fn)


def reporter_or_admin(fn):
    """Decorator that requires the current user to be a reporter or admin."""
    return roles_required(ROLE_REPORTER, ROLE_ADMIN)(fn)
