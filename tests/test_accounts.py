import pytest

from core import permissions as perms
from core.errors import AuthError, ConflictError, NotFoundError, ValidationError
from services import auth_service


@pytest.fixture
def admin():
    return auth_service.create_account(
        {"username": "boss", "password": "secret1", "full_name": "The Boss", "is_admin": True}
    )


@pytest.fixture
def receptionist():
    return auth_service.create_account(
        {"username": "desk", "password": "frontdesk", "full_name": "Front Desk", "role": "receptionist"}
    )


# --- PERMISSION CATALOGUE ---

@pytest.mark.parametrize("role", ["admin", "manager", "coach", "receptionist"])
def test_presets_are_detected(role):
    assert perms.detect_role(perms.permissions_for_role(role)) == role


def test_role_presets_respect_dependencies():
    for role in perms.ROLES:
        preset = perms.permissions_for_role(role)
        assert perms.normalize(preset) == {p: bool(preset.get(p)) for p in perms.ALL_PERMISSIONS}


def test_custom_role():
    permissions = perms.permissions_for_role("receptionist")
    permissions["plans.create"] = True
    assert perms.detect_role(permissions) == "custom"
    assert perms.detect_role({}) == "custom"


def test_resolve_dependencies():
    enabled = perms.resolve_dependencies(perms.empty_permissions(), "memberships.add_payment", True)
    assert enabled["memberships.view"]
    assert enabled["memberships.view_details"]
    assert enabled["memberships.view_payments"]

    disabled = perms.resolve_dependencies(enabled, "memberships.view", False)
    assert not disabled["memberships.add_payment"]
    assert not disabled["memberships.view_payments"]

    assert perms.is_required("memberships.view", enabled)
    assert not perms.is_required("plans.view", enabled)


# --- ACCOUNTS ---

def test_create_account_hashes_password(admin):
    from core.database import get_conn

    with get_conn() as conn:
        stored = conn.execute("SELECT password_hash FROM users WHERE id = ?", (admin["id"],)).fetchone()[0]
    assert stored != "secret1"
    assert stored.startswith("$2")
    assert admin["role"] == "admin"
    assert all(admin["permissions"].values())


def test_role_account(receptionist):
    assert receptionist["role"] == "receptionist"
    assert receptionist["is_admin"] is False
    assert auth_service.has_permission(receptionist["id"], "checkins.create")
    assert not auth_service.has_permission(receptionist["id"], "plans.create")


def test_username_must_be_unique(admin):
    with pytest.raises(ConflictError) as exc:
        auth_service.create_account({"username": "boss", "password": "x", "full_name": "Other"})
    assert exc.value.code == "USERNAME_EXISTS"


def test_create_account_validation():
    with pytest.raises(ValidationError):
        auth_service.create_account({"username": "", "password": "x", "full_name": "Nobody"})
    with pytest.raises(ValidationError):
        auth_service.create_account({"username": "nopass", "password": "", "full_name": "Nobody"})


def test_login(admin):
    account = auth_service.login("boss", "secret1")
    assert account["id"] == admin["id"]
    assert account["last_login"] is not None
    assert "password_hash" not in account

    with pytest.raises(AuthError) as exc:
        auth_service.login("boss", "wrong")
    assert exc.value.code == "INVALID_CREDENTIALS"

    with pytest.raises(AuthError):
        auth_service.login("nobody", "secret1")


def test_inactive_account_cannot_login(admin, receptionist):
    auth_service.update_account(receptionist["id"], {"is_active": False})

    with pytest.raises(AuthError) as exc:
        auth_service.login("desk", "frontdesk")
    assert exc.value.code == "ACCOUNT_INACTIVE"
    assert not auth_service.has_permission(receptionist["id"], "checkins.create")


def test_update_account_permissions(receptionist):
    updated = auth_service.update_account(
        receptionist["id"], {"full_name": "Desk Lead", "permissions": {"reports.save": True}}
    )
    assert updated["full_name"] == "Desk Lead"
    assert updated["permissions"]["reports.save"] is True
    # required permission added automatically
    assert updated["permissions"]["reports.view"] is True
    assert updated["role"] == "custom"


def test_last_admin_is_protected(admin, receptionist):
    with pytest.raises(ConflictError) as exc:
        auth_service.delete_account(admin["id"])
    assert exc.value.code == "CANNOT_DELETE_LAST_ADMIN"

    with pytest.raises(ConflictError):
        auth_service.update_account(admin["id"], {"is_admin": False})

    assert auth_service.delete_account(receptionist["id"]) is True
    with pytest.raises(NotFoundError):
        auth_service.delete_account(receptionist["id"])


def test_change_and_reset_password(receptionist):
    with pytest.raises(AuthError) as exc:
        auth_service.change_password(receptionist["id"], "wrong", "newpass")
    assert exc.value.code == "INVALID_PASSWORD"

    assert auth_service.change_password(receptionist["id"], "frontdesk", "newpass")
    assert auth_service.login("desk", "newpass")["id"] == receptionist["id"]

    auth_service.reset_password(receptionist["id"], "reset123")
    assert auth_service.login("desk", "reset123")["id"] == receptionist["id"]

    with pytest.raises(NotFoundError):
        auth_service.reset_password("missing", "whatever")


def test_account_filters(admin, receptionist):
    assert auth_service.get_accounts()["total"] == 2
    assert [a["username"] for a in auth_service.get_accounts(filters={"role": "admin"})["accounts"]] == ["boss"]
    assert [a["username"] for a in auth_service.get_accounts(filters={"role": "receptionist"})["accounts"]] == ["desk"]
    assert auth_service.get_accounts(filters={"role": "coach"})["total"] == 0
    assert auth_service.get_accounts(filters={"query": "front"})["total"] == 1


def test_ensure_default_admin_runs_once():
    assert auth_service.admin_exists() is False
    assert auth_service.ensure_default_admin() is True
    assert auth_service.ensure_default_admin() is False
    assert auth_service.login("admin", "admin123")["is_admin"] is True


def test_disabled_admin_does_not_count_as_the_last_admin(admin):
    disabled = auth_service.create_account(
        {"username": "old_boss", "password": "retired", "full_name": "Old Boss", "is_admin": True, "is_active": False}
    )

    with pytest.raises(ConflictError) as exc:
        auth_service.delete_account(admin["id"])
    assert exc.value.code == "CANNOT_DELETE_LAST_ADMIN"

    # the disabled admin can go while an active one remains
    assert auth_service.delete_account(disabled["id"]) is True
    assert auth_service.login("boss", "secret1")["is_admin"] is True


def test_default_admin_created_when_only_disabled_admins_exist():
    auth_service.create_account(
        {"username": "old_boss", "password": "retired", "full_name": "Old Boss", "is_admin": True, "is_active": False}
    )

    assert auth_service.admin_exists() is False
    assert auth_service.ensure_default_admin() is True
    assert auth_service.admin_exists() is True


def test_unknown_role_is_rejected(receptionist):
    with pytest.raises(ValidationError) as exc:
        auth_service.create_account({"username": "mop", "password": "x", "full_name": "Mop", "role": "janitor"})
    assert exc.value.code == "INVALID_ROLE"

    with pytest.raises(ValidationError):
        auth_service.update_account(receptionist["id"], {"role": "janitor"})
