"""
Staff permission catalogue.

Permissions are '<page>.<action>' keys stored per account as a JSON object of
booleans. Roles are named presets; an account whose permissions match no
preset is 'custom'.
"""
from typing import Dict, List
from core.errors import ValidationError

PERMISSIONS: Dict[str, List[str]] = {
    "dashboard": ["view_financial"],
    "members": ["view", "create", "edit", "delete", "view_details"],
    "memberships": [
        "view", "create", "edit", "delete", "view_details", "extend",
        "view_payments", "add_payment", "complete_payment", "modify_price",
    ],
    "plans": ["view", "create", "edit", "delete"],
    "checkins": ["view", "create", "delete"],
    "reports": ["generate", "view", "save", "delete", "export"],
    "settings": ["view", "edit", "manage_backups", "manage_license", "manage_whatsapp"],
    "accounts": [
        "view", "create", "edit", "delete", "manage_permissions",
        "change_password", "manage_admin",
    ],
}

ALL_PERMISSIONS = [f"{page}.{action}" for page, actions in PERMISSIONS.items() for action in actions]

# permission -> permissions it requires
PERMISSION_DEPENDENCIES: Dict[str, List[str]] = {
    "members.edit": ["members.view"],
    "members.delete": ["members.view"],
    "members.view_details": ["members.view"],
    "memberships.create": ["memberships.view"],
    "memberships.edit": ["memberships.view"],
    "memberships.delete": ["memberships.view"],
    "memberships.view_details": ["memberships.view"],
    "memberships.extend": ["memberships.view", "memberships.view_details"],
    "memberships.view_payments": ["memberships.view", "memberships.view_details"],
    "memberships.add_payment": ["memberships.view", "memberships.view_details", "memberships.view_payments"],
    "memberships.complete_payment": [
        "memberships.view", "memberships.view_details", "memberships.view_payments",
    ],
    "memberships.modify_price": ["memberships.view", "memberships.edit"],
    "plans.create": ["plans.view"],
    "plans.edit": ["plans.view"],
    "plans.delete": ["plans.view"],
    "checkins.create": ["checkins.view"],
    "checkins.delete": ["checkins.view"],
    "reports.save": ["reports.view"],
    "reports.delete": ["reports.view"],
    "reports.export": ["reports.view"],
    "settings.edit": ["settings.view"],
    "settings.manage_backups": ["settings.view"],
    "settings.manage_license": ["settings.view"],
    "settings.manage_whatsapp": ["settings.view"],
    "accounts.create": ["accounts.view"],
    "accounts.edit": ["accounts.view"],
    "accounts.delete": ["accounts.view"],
    "accounts.manage_permissions": ["accounts.view", "accounts.edit"],
    "accounts.change_password": ["accounts.view", "accounts.edit"],
    "accounts.manage_admin": ["accounts.view", "accounts.edit"],
}

ROLES = ("admin", "manager", "coach", "receptionist", "custom")


def _page(page: str, enabled: bool) -> Dict[str, bool]:
    return {f"{page}.{action}": enabled for action in PERMISSIONS[page]}


def empty_permissions() -> Dict[str, bool]:
    return {permission: False for permission in ALL_PERMISSIONS}


def all_permissions() -> Dict[str, bool]:
    return {permission: True for permission in ALL_PERMISSIONS}


ROLE_PERMISSIONS: Dict[str, Dict[str, bool]] = {
    "admin": all_permissions(),
    "manager": {
        "dashboard.view_financial": True,
        **_page("members", True),
        **_page("memberships", True),
        **_page("plans", True),
        **_page("checkins", True),
        **_page("reports", True),
        **_page("settings", False),
        "settings.view": True,
        **_page("accounts", False),
        "accounts.view": True,
        "accounts.create": True,
    },
    "coach": {
        "dashboard.view_financial": False,
        **_page("members", True),
        **_page("memberships", True),
        "memberships.delete": False,
        "memberships.modify_price": False,
        **_page("plans", True),
        **_page("checkins", True),
        **_page("reports", True),
        "reports.delete": False,
        **_page("settings", False),
        **_page("accounts", False),
    },
    "receptionist": {
        "dashboard.view_financial": False,
        **_page("members", False),
        "members.view": True,
        "members.create": True,
        "members.view_details": True,
        **_page("memberships", False),
        "memberships.view": True,
        "memberships.create": True,
        "memberships.view_details": True,
        "memberships.extend": True,
        "memberships.view_payments": True,
        **_page("plans", False),
        "plans.view": True,
        **_page("checkins", True),
        **_page("reports", False),
        **_page("settings", False),
        **_page("accounts", False),
    },
    "custom": empty_permissions(),
}


def permissions_for_role(role: str) -> Dict[str, bool]:
    if role not in ROLE_PERMISSIONS:
        raise ValidationError("INVALID_ROLE", f"Unknown role: {role!r}")
    return dict(ROLE_PERMISSIONS[role])


def detect_role(permissions: Dict[str, bool]) -> str:
    """Returns the first preset whose permissions match exactly, else 'custom'."""
    for role in ("admin", "manager", "coach", "receptionist"):
        preset = ROLE_PERMISSIONS[role]
        if all(bool(permissions.get(p, False)) == preset.get(p, False) for p in ALL_PERMISSIONS):
            return role
    return "custom"


def resolve_dependencies(permissions: Dict[str, bool], changed: str, enabled: bool) -> Dict[str, bool]:
    """
    Applies a single toggle. Enabling a permission enables what it requires;
    disabling one disables everything that requires it.
    """
    result = dict(permissions)
    result[changed] = enabled
    if enabled:
        for dependency in PERMISSION_DEPENDENCIES.get(changed, []):
            result[dependency] = True
    else:
        for permission, dependencies in PERMISSION_DEPENDENCIES.items():
            if changed in dependencies:
                result[permission] = False
    return result


def normalize(permissions: Dict[str, bool]) -> Dict[str, bool]:
    """Full catalogue with unknown keys dropped and every enabled permission's requirements enabled."""
    result = empty_permissions()
    for permission, enabled in (permissions or {}).items():
        if permission in result and enabled:
            result = resolve_dependencies(result, permission, True)
    return result


def is_required(permission: str, permissions: Dict[str, bool]) -> bool:
    """True if some enabled permission depends on `permission`."""
    return any(
        permissions.get(other) and permission in dependencies
        for other, dependencies in PERMISSION_DEPENDENCIES.items()
    )
