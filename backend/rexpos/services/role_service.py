# Overview: Roles: named bundles of permission strings referenced by users.

from __future__ import annotations

from ..extensions import db
from ..models import Role, User
from ..validation import (
    ConflictError,
    GuardError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)
from .activity_service import log_activity
from .concurrency import run_with_retry


ROLE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "permissions"},
    required_on_create={"name"},
)

DEFAULT_ROLES = {
    "admin": ("Full access to every store", ["*"]),
    "manager": ("Manage catalog, purchasing and reports", [
        "products.manage", "purchaseOrders.manage", "sales.manage", "reports.view", "accounts.manage",
    ]),
    "cashier": ("Point of sale only", ["sales.create", "products.view"]),
}


def _check_permissions(patch: dict) -> None:
    perms = patch.get("permissions")
    if perms is not None:
        if not isinstance(perms, list) or not all(isinstance(p, str) and p for p in perms):
            raise ValidationError("permissions must be a list of strings")


def get_role(role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if role is None:
        raise NotFoundError("Role not found")
    return role


def list_roles() -> list[Role]:
    return db.session.query(Role).order_by(Role.name.asc()).all()


def create_role(payload: dict, *, user_id: int | None = None) -> Role:
    patch = validate_payload(model=Role, payload=payload, policy=ROLE_POLICY, partial=False)
    _check_permissions(patch)

    def _op():
        if db.session.query(Role.id).filter(Role.name == patch["name"]).first():
            raise ConflictError(f"Role {patch['name']} already exists")
        role = Role(**patch)
        db.session.add(role)
        db.session.flush()
        log_activity(action="CREATE", module="roles", user_id=user_id, record_id=role.id,
                     changes={"name": role.name})
        db.session.commit()
        return role

    return run_with_retry(_op)


def update_role(role_id: int, payload: dict, *, user_id: int | None = None) -> Role:
    patch = validate_payload(model=Role, payload=payload, policy=ROLE_POLICY, partial=True)
    _check_permissions(patch)

    def _op():
        role = get_role(role_id)
        if "name" in patch and patch["name"] != role.name:
            if db.session.query(Role.id).filter(Role.name == patch["name"], Role.id != role.id).first():
                raise ConflictError(f"Role {patch['name']} already exists")
        for key, value in patch.items():
            setattr(role, key, value)
        log_activity(action="UPDATE", module="roles", user_id=user_id, record_id=role.id,
                     changes={"fields": sorted(patch.keys())})
        db.session.commit()
        return role

    return run_with_retry(_op)


def delete_role(role_id: int, *, user_id: int | None = None) -> None:
    def _op():
        role = get_role(role_id)
        if db.session.query(User).filter(User.role_id == role.id).count() > 0:
            raise GuardError("Cannot delete role assigned to users")
        log_activity(action="DELETE", module="roles", user_id=user_id, record_id=role.id,
                     changes={"name": role.name})
        db.session.delete(role)
        db.session.commit()

    run_with_retry(_op)


def create_default_roles() -> list[Role]:
    """Idempotent: creates admin/manager/cashier when missing. Does not commit."""
    roles = []
    for name, (description, permissions) in DEFAULT_ROLES.items():
        role = db.session.query(Role).filter_by(name=name).first()
        if role is None:
            role = Role(name=name, description=description, permissions=list(permissions))
            db.session.add(role)
        roles.append(role)
    db.session.flush()
    return roles
