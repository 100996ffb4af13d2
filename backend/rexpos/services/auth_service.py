# Overview: Password hashing, login and self-service profile changes.

"""
Authentication Service

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- There are no session tokens: login hands the user record back to the
  desktop client, which passes user ids explicitly on later requests
- password_hash never leaves this layer (User.to_dict omits it)
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..validation import NotFoundError, ValidationError
from rexpos.time_utils import utcnow
from .activity_service import log_activity
from .concurrency import run_with_retry


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


class AuthError(ValidationError):
    """Raised when credentials are rejected."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str):
        raise PasswordValidationError("Password is required")

    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns False for anything that is not a well-formed bcrypt hash.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def login(email: str, password: str, *, ip_address: str | None = None) -> User:
    """
    Check credentials and stamp last_login_at.

    The same message is used for an unknown email and a wrong password.
    """
    if not email or not password:
        raise AuthError("Email and password are required")

    def _op():
        user = db.session.query(User).filter(User.email == email.strip().lower()).first()
        if user is None or not verify_password(password, user.password_hash):
            current_app.logger.info("Failed login for %s", email)
            raise AuthError("Invalid email or password")
        if not user.is_active:
            raise AuthError("Account is deactivated")

        user.last_login_at = utcnow()
        log_activity(action="LOGIN", module="auth", user_id=user.id, record_id=user.id, ip_address=ip_address)
        db.session.commit()
        current_app.logger.info("User %s logged in", user.email)
        return user

    return run_with_retry(_op)


def logout(user_id: int, *, ip_address: str | None = None) -> None:
    def _op():
        if db.session.get(User, user_id) is None:
            raise NotFoundError("User not found")
        log_activity(action="LOGOUT", module="auth", user_id=user_id, record_id=user_id, ip_address=ip_address)
        db.session.commit()

    run_with_retry(_op)


def update_profile(user_id: int, payload: dict) -> User:
    """Users may change their own display name and avatar, nothing else."""
    payload = payload or {}
    full_name = payload.get("full_name")
    if full_name is not None and not str(full_name).strip():
        raise ValidationError("full_name cannot be blank")

    def _op():
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        if full_name is not None:
            user.full_name = str(full_name).strip()
        if "avatar_url" in payload:
            user.avatar_url = payload["avatar_url"] or None
        log_activity(action="UPDATE", module="profile", user_id=user.id, record_id=user.id,
                     changes={"fields": sorted(k for k in payload if k in ("full_name", "avatar_url"))})
        db.session.commit()
        return user

    return run_with_retry(_op)


def change_password(user_id: int, current_password: str, new_password: str) -> None:
    if not current_password or not new_password:
        raise ValidationError("Current and new password are required")
    new_hash = hash_password(new_password)

    def _op():
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not verify_password(current_password, user.password_hash):
            raise AuthError("Current password is incorrect")
        user.password_hash = new_hash
        log_activity(action="UPDATE", module="profile", user_id=user.id, record_id=user.id,
                     changes={"password": "changed"})
        db.session.commit()
        current_app.logger.info("Password changed for user %s", user.email)

    run_with_retry(_op)
