# Overview: User accounts and their per-store access grants.

"""
User Service

- Emails are stored lower-cased and are globally unique.
- Passwords go through auth_service.hash_password (strength rules + bcrypt).
- Store access is a UserStore row per (user, store) with a store-level role:
  OWNER, MANAGER or CASHIER. Assigning an existing pair updates it in place.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Role, Store, User, UserStore
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    blank_to_none,
    require_choice,
    validate_payload,
)
from .activity_service import log_activity
from .auth_service import hash_password
from .concurrency import run_with_retry
from .query_utils import paginate, search_filter


GLOBAL_ROLES = ("ADMIN", "USER")
STORE_ROLES = ("OWNER", "MANAGER", "CASHIER")

USER_POLICY = ModelValidationPolicy(
    writable_fields={"email", "full_name", "avatar_url", "role_id", "global_role", "is_active"},
    required_on_create={"email", "full_name", "role_id"},
)


def _normalize(patch: dict) -> dict:
    if patch.get("email"):
        email = patch["email"].lower()
        if "@" not in email:
            raise ValidationError("email is invalid")
        patch["email"] = email
    if "global_role" in patch:
        require_choice(patch["global_role"], GLOBAL_ROLES, "global_role")
    return patch


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_users(*, search=None, include_inactive: bool = True, role_id=None, page=None, page_size=None) -> dict:
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    if role_id is not None:
        query = query.filter(User.role_id == role_id)
    condition = search_filter(search, User.full_name, User.email)
    if condition is not None:
        query = query.filter(condition)
    query = query.order_by(User.full_name.asc(), User.id.asc())
    return paginate(query, page=page, page_size=page_size)


def create_user(payload: dict, *, actor_id: int | None = None) -> User:
    payload = blank_to_none(payload)
    patch = _normalize(validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False))
    password_hash = hash_password(payload.get("password"))

    def _op():
        if db.session.query(User.id).filter(User.email == patch["email"]).first():
            raise ConflictError("Email already exists")
        if db.session.get(Role, patch["role_id"]) is None:
            raise NotFoundError("Role not found")

        user = User(password_hash=password_hash, **patch)
        db.session.add(user)
        db.session.flush()
        log_activity(action="CREATE", module="users", user_id=actor_id, record_id=user.id,
                     changes={"email": user.email})
        db.session.commit()
        return user

    return run_with_retry(_op)


def update_user(user_id: int, payload: dict, *, actor_id: int | None = None) -> User:
    """Rehashes only when a non-empty password is supplied."""
    payload = blank_to_none(payload)
    patch = _normalize(validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True))
    password_hash = hash_password(payload["password"]) if payload.get("password") else None

    def _op():
        user = get_user(user_id)
        if "email" in patch and patch["email"] != user.email:
            if db.session.query(User.id).filter(User.email == patch["email"], User.id != user.id).first():
                raise ConflictError("Email already exists")
        if "role_id" in patch and db.session.get(Role, patch["role_id"]) is None:
            raise NotFoundError("Role not found")

        for key, value in patch.items():
            setattr(user, key, value)
        if password_hash:
            user.password_hash = password_hash

        changed = sorted(patch.keys()) + (["password"] if password_hash else [])
        log_activity(action="UPDATE", module="users", user_id=actor_id, record_id=user.id,
                     changes={"fields": changed})
        db.session.commit()
        return user

    return run_with_retry(_op)


def delete_user(user_id: int, *, actor_id: int | None = None) -> None:
    """Removes the user together with every store assignment."""
    if actor_id is not None and actor_id == user_id:
        raise ValidationError("You cannot delete your own account")

    def _op():
        user = get_user(user_id)
        db.session.query(UserStore).filter(UserStore.user_id == user.id).delete(synchronize_session=False)
        log_activity(action="DELETE", module="users", user_id=actor_id, record_id=user.id,
                     changes={"email": user.email})
        db.session.delete(user)
        db.session.commit()

    run_with_retry(_op)


def list_user_stores(user_id: int, *, include_inactive: bool = False) -> list[UserStore]:
    get_user(user_id)
    query = db.session.query(UserStore).filter(UserStore.user_id == user_id)
    if not include_inactive:
        query = query.filter(UserStore.is_active.is_(True))
    return query.order_by(UserStore.assigned_at.asc(), UserStore.id.asc()).all()


def assign_store(user_id: int, store_id: int, role: str = "CASHIER", *, permissions=None,
                 actor_id: int | None = None) -> UserStore:
    require_choice(role, STORE_ROLES, "role")
    if permissions is not None and not isinstance(permissions, list):
        raise ValidationError("permissions must be a list")

    def _op():
        get_user(user_id)
        if db.session.get(Store, store_id) is None:
            raise NotFoundError("Store not found")

        assignment = db.session.query(UserStore).filter_by(user_id=user_id, store_id=store_id).first()
        if assignment is None:
            assignment = UserStore(user_id=user_id, store_id=store_id)
            db.session.add(assignment)
        assignment.role = role
        assignment.is_active = True
        if permissions is not None:
            assignment.permissions = list(permissions)

        db.session.flush()
        log_activity(action="UPDATE", module="user_stores", store_id=store_id, user_id=actor_id,
                     record_id=assignment.id, changes={"user_id": user_id, "role": role})
        db.session.commit()
        return assignment

    return run_with_retry(_op)


def remove_store(user_id: int, store_id: int, *, actor_id: int | None = None) -> None:
    def _op():
        assignment = db.session.query(UserStore).filter_by(user_id=user_id, store_id=store_id).first()
        if assignment is None:
            raise NotFoundError("Store assignment not found")
        log_activity(action="DELETE", module="user_stores", store_id=store_id, user_id=actor_id,
                     record_id=assignment.id, changes={"user_id": user_id})
        db.session.delete(assignment)
        db.session.commit()

    run_with_retry(_op)


def update_store_role(user_id: int, store_id: int, role: str, *, actor_id: int | None = None) -> UserStore:
    require_choice(role, STORE_ROLES, "role")

    def _op():
        assignment = db.session.query(UserStore).filter_by(user_id=user_id, store_id=store_id).first()
        if assignment is None:
            raise NotFoundError("Store assignment not found")
        previous = assignment.role
        assignment.role = role
        log_activity(action="UPDATE", module="user_stores", store_id=store_id, user_id=actor_id,
                     record_id=assignment.id, changes={"role": {"from": previous, "to": role}})
        db.session.commit()
        return assignment

    return run_with_retry(_op)
