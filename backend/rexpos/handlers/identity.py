# Overview: Bridge handlers for login, stores, users, roles and the caller's profile.

from __future__ import annotations

from ..bridge import bool_param, bridge, dict_param, int_param, param, require_param
from ..services import auth_service, role_service, store_service, user_service


@bridge.register("auth.login")
def login(payload: dict):
    return auth_service.login(
        require_param(payload, "email"),
        require_param(payload, "password"),
        ip_address=param(payload, "ipAddress"),
    )


@bridge.register("auth.logout")
def logout(payload: dict):
    auth_service.logout(int_param(payload, "userId", required=True), ip_address=param(payload, "ipAddress"))
    return {"logged_out": True}


# --- stores -------------------------------------------------------------------

@bridge.register("stores.getAll", paged=True)
def list_stores(payload: dict):
    return store_service.list_stores(
        search=param(payload, "search"),
        include_inactive=bool_param(payload, "includeInactive"),
        page=param(payload, "page"),
        page_size=param(payload, "pageSize"),
    )


@bridge.register("stores.getById")
def get_store(payload: dict):
    return store_service.get_store(int_param(payload, "id", required=True))


@bridge.register("stores.create")
def create_store(payload: dict):
    return store_service.create_store(dict_param(payload), user_id=int_param(payload, "userId"))


@bridge.register("stores.update")
def update_store(payload: dict):
    return store_service.update_store(
        int_param(payload, "id", required=True), dict_param(payload), user_id=int_param(payload, "userId")
    )


@bridge.register("stores.toggleStatus")
def toggle_store_status(payload: dict):
    return store_service.toggle_store_status(int_param(payload, "id", required=True),
                                             user_id=int_param(payload, "userId"))


# --- users --------------------------------------------------------------------

@bridge.register("users.getAll", paged=True)
def list_users(payload: dict):
    return user_service.list_users(
        search=param(payload, "search"),
        include_inactive=bool_param(payload, "includeInactive", default=True),
        role_id=int_param(payload, "roleId"),
        page=param(payload, "page"),
        page_size=param(payload, "pageSize"),
    )


@bridge.register("users.create")
def create_user(payload: dict):
    return user_service.create_user(dict_param(payload), actor_id=int_param(payload, "userId"))


@bridge.register("users.update")
def update_user(payload: dict):
    return user_service.update_user(
        int_param(payload, "id", required=True), dict_param(payload), actor_id=int_param(payload, "userId")
    )


@bridge.register("users.delete")
def delete_user(payload: dict):
    user_id = int_param(payload, "id", required=True)
    user_service.delete_user(user_id, actor_id=int_param(payload, "userId"))
    return {"id": user_id}


@bridge.register("users.getStores")
def get_user_stores(payload: dict):
    return user_service.list_user_stores(
        int_param(payload, "id", required=True),
        include_inactive=bool_param(payload, "includeInactive"),
    )


@bridge.register("users.assignStore")
def assign_store(payload: dict):
    return user_service.assign_store(
        int_param(payload, "id", required=True),
        int_param(payload, "storeId", required=True),
        param(payload, "role", "CASHIER"),
        permissions=payload.get("permissions"),
        actor_id=int_param(payload, "userId"),
    )


@bridge.register("users.removeStore")
def remove_store(payload: dict):
    user_service.remove_store(
        int_param(payload, "id", required=True),
        int_param(payload, "storeId", required=True),
        actor_id=int_param(payload, "userId"),
    )
    return {"removed": True}


@bridge.register("users.updateStoreRole")
def update_store_role(payload: dict):
    return user_service.update_store_role(
        int_param(payload, "id", required=True),
        int_param(payload, "storeId", required=True),
        require_param(payload, "role"),
        actor_id=int_param(payload, "userId"),
    )


# --- roles --------------------------------------------------------------------

@bridge.register("roles.getAll")
def list_roles(payload: dict):
    return role_service.list_roles()


@bridge.register("roles.getById")
def get_role(payload: dict):
    return role_service.get_role(int_param(payload, "id", required=True))


@bridge.register("roles.create")
def create_role(payload: dict):
    return role_service.create_role(dict_param(payload), user_id=int_param(payload, "userId"))


@bridge.register("roles.update")
def update_role(payload: dict):
    return role_service.update_role(
        int_param(payload, "id", required=True), dict_param(payload), user_id=int_param(payload, "userId")
    )


@bridge.register("roles.delete")
def delete_role(payload: dict):
    role_id = int_param(payload, "id", required=True)
    role_service.delete_role(role_id, user_id=int_param(payload, "userId"))
    return {"id": role_id}


# --- profile ------------------------------------------------------------------

@bridge.register("profile.update")
def update_profile(payload: dict):
    return auth_service.update_profile(int_param(payload, "userId", required=True), dict_param(payload))


@bridge.register("profile.changePassword")
def change_password(payload: dict):
    auth_service.change_password(
        int_param(payload, "userId", required=True),
        require_param(payload, "currentPassword"),
        require_param(payload, "newPassword"),
    )
    return {"changed": True}
