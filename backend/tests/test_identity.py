"""
Stores, users, roles, login and profile tests.
"""

import pytest

from rexpos.extensions import db
from rexpos.models import ActivityLog, User
from rexpos.services import auth_service, role_service, store_service, user_service
from rexpos.services.auth_service import AuthError, PasswordValidationError
from rexpos.validation import ConflictError, GuardError, NotFoundError, ValidationError

TEST_PASSWORD = "Password123!"


class TestPasswordStrength:

    @pytest.mark.parametrize("password", [
        "Short1!",
        "alllowercase1!",
        "ALLUPPERCASE1!",
        "NoDigitsHere!",
        "NoSpecial123",
    ])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_round_trip(self, app):
        hashed = auth_service.hash_password(TEST_PASSWORD)
        assert hashed != TEST_PASSWORD
        assert auth_service.verify_password(TEST_PASSWORD, hashed)
        assert not auth_service.verify_password("Wrong123!", hashed)
        assert not auth_service.verify_password(TEST_PASSWORD, "not-a-hash")


class TestLogin:

    def test_login_stamps_last_login_and_logs(self, admin_user):
        user = auth_service.login("ADMIN@rexpos.test", TEST_PASSWORD, ip_address="127.0.0.1")
        assert user.id == admin_user.id
        assert user.last_login_at is not None
        entry = db.session.query(ActivityLog).filter_by(action="LOGIN").one()
        assert entry.ip_address == "127.0.0.1"

    def test_wrong_password_and_unknown_email_share_message(self, admin_user):
        with pytest.raises(AuthError, match="Invalid email or password"):
            auth_service.login("admin@rexpos.test", "Wrong123!")
        with pytest.raises(AuthError, match="Invalid email or password"):
            auth_service.login("nobody@rexpos.test", TEST_PASSWORD)

    def test_deactivated_account_cannot_login(self, admin_user):
        user_service.update_user(admin_user.id, {"is_active": False})
        with pytest.raises(AuthError, match="deactivated"):
            auth_service.login("admin@rexpos.test", TEST_PASSWORD)

    def test_logout_is_logged(self, admin_user):
        auth_service.logout(admin_user.id)
        assert db.session.query(ActivityLog).filter_by(action="LOGOUT", user_id=admin_user.id).count() == 1


class TestProfile:

    def test_update_profile_only_touches_name_and_avatar(self, admin_user):
        user = auth_service.update_profile(admin_user.id, {
            "full_name": "  New Name ", "avatar_url": "https://cdn/x.png", "email": "hijack@x.com",
        })
        assert user.full_name == "New Name"
        assert user.avatar_url == "https://cdn/x.png"
        assert user.email == "admin@rexpos.test"

    def test_change_password_requires_current(self, admin_user):
        with pytest.raises(AuthError, match="Current password is incorrect"):
            auth_service.change_password(admin_user.id, "Wrong123!", "Another123!")

        auth_service.change_password(admin_user.id, TEST_PASSWORD, "Another123!")
        assert auth_service.login("admin@rexpos.test", "Another123!").id == admin_user.id


class TestUsers:

    def test_email_is_lowercased_and_unique(self, roles):
        user = user_service.create_user({
            "email": "Cashier@Rexpos.Test", "full_name": "Cash", "password": TEST_PASSWORD,
            "role_id": roles["cashier"].id,
        })
        assert user.email == "cashier@rexpos.test"
        with pytest.raises(ConflictError):
            user_service.create_user({
                "email": "cashier@rexpos.test", "full_name": "Dup", "password": TEST_PASSWORD,
                "role_id": roles["cashier"].id,
            })

    def test_weak_password_rejected_on_create(self, roles):
        with pytest.raises(PasswordValidationError):
            user_service.create_user({
                "email": "weak@rexpos.test", "full_name": "Weak", "password": "weak",
                "role_id": roles["cashier"].id,
            })

    def test_serialized_user_has_no_password_hash(self, admin_user):
        assert "password_hash" not in admin_user.to_dict()

    def test_store_assignment_upsert_and_removal(self, admin_user, store):
        user_service.assign_store(admin_user.id, store.id, "CASHIER")
        assignment = user_service.assign_store(admin_user.id, store.id, "MANAGER", permissions=["reports.view"])
        assert assignment.role == "MANAGER"
        assert assignment.permissions == ["reports.view"]
        assert len(user_service.list_user_stores(admin_user.id)) == 1

        updated = user_service.update_store_role(admin_user.id, store.id, "OWNER")
        assert updated.role == "OWNER"

        user_service.remove_store(admin_user.id, store.id)
        assert user_service.list_user_stores(admin_user.id) == []
        with pytest.raises(NotFoundError):
            user_service.remove_store(admin_user.id, store.id)

    def test_invalid_store_role_rejected(self, admin_user, store):
        with pytest.raises(ValidationError, match="Invalid role"):
            user_service.assign_store(admin_user.id, store.id, "JANITOR")

    def test_delete_user_removes_assignments(self, admin_user, roles, store):
        other = user_service.create_user({
            "email": "temp@rexpos.test", "full_name": "Temp", "password": TEST_PASSWORD,
            "role_id": roles["cashier"].id,
        })
        other_id = other.id
        user_service.assign_store(other_id, store.id)
        user_service.delete_user(other_id, actor_id=admin_user.id)
        assert db.session.get(User, other_id) is None

    def test_cannot_delete_self(self, admin_user):
        with pytest.raises(ValidationError, match="your own account"):
            user_service.delete_user(admin_user.id, actor_id=admin_user.id)

    def test_list_filters_by_role(self, admin_user, roles):
        user_service.create_user({
            "email": "c1@rexpos.test", "full_name": "C1", "password": TEST_PASSWORD,
            "role_id": roles["cashier"].id,
        })
        result = user_service.list_users(role_id=roles["cashier"].id)
        assert [u["email"] for u in result["data"]] == ["c1@rexpos.test"]


class TestRoles:

    def test_default_roles_are_idempotent(self, roles):
        role_service.create_default_roles()
        db.session.commit()
        assert sorted(r.name for r in role_service.list_roles()) == ["admin", "cashier", "manager"]

    def test_role_in_use_cannot_be_deleted(self, admin_user, roles):
        with pytest.raises(GuardError, match="Cannot delete role assigned to users"):
            role_service.delete_role(roles["admin"].id)

    def test_create_update_delete_role(self, roles):
        role = role_service.create_role({"name": "auditor", "permissions": ["reports.view"]})
        role = role_service.update_role(role.id, {"description": "Read-only"})
        assert role.description == "Read-only"
        role_id = role.id
        role_service.delete_role(role_id)
        with pytest.raises(NotFoundError):
            role_service.get_role(role_id)

    def test_permissions_must_be_strings(self, roles):
        with pytest.raises(ValidationError, match="permissions"):
            role_service.create_role({"name": "broken", "permissions": [1, 2]})


class TestStores:

    def test_code_uppercased_and_settings_nested(self, store):
        data = store.to_dict()
        assert data["code"] == "MAIN"
        assert data["settings"]["currency"] == "PKR"
        assert data["settings"]["tax_rate_bps"] == 0

    def test_duplicate_code_conflicts(self, store):
        with pytest.raises(ConflictError):
            store_service.create_store({
                "name": "Again", "code": "MAIN", "address": "x", "phone": "x", "email": "x@x.com",
            })

    def test_tax_rate_bounds(self, store):
        with pytest.raises(ValidationError, match="tax_rate_bps"):
            store_service.update_store(store.id, {"settings": {"tax_rate_bps": 10001}})

    def test_toggle_status(self, store, other_store):
        toggled = store_service.toggle_store_status(store.id)
        assert toggled.is_active is False
        active = store_service.list_stores()
        assert [s["code"] for s in active["data"]] == ["BR1"]
        assert store_service.list_stores(include_inactive=True)["total"] == 2

    def test_missing_store(self, db_session):
        with pytest.raises(NotFoundError):
            store_service.get_store(404)
        with pytest.raises(ValidationError, match="storeId is required"):
            store_service.require_store(None)
