import json
import logging
import sqlite3
from typing import Any, Dict, Optional
import bcrypt
import config
from core import permissions as perms
from core.database import get_conn
from core.errors import AuthError, ConflictError, NotFoundError, ValidationError
from core.utils import new_id, page_bounds, timestamp, total_pages
from models.account import Account

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = (
    "id, username, full_name, email, is_admin, is_active, permissions, last_login, created_at, updated_at"
)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash
        return False


def _account_dict(row: sqlite3.Row) -> Dict[str, Any]:
    data = Account.from_row(row).to_dict()
    data["role"] = "admin" if data["is_admin"] else perms.detect_role(data["permissions"])
    return data


def _require_password(password: Optional[str]) -> str:
    if not password:
        raise ValidationError("PASSWORD_REQUIRED", "Password is required")
    return password


def _stored_permissions(is_admin: bool, permissions: Optional[Dict[str, bool]]) -> str:
    granted = perms.all_permissions() if is_admin else perms.normalize(permissions or {})
    return json.dumps(granted)


def _active_admin_count(conn: sqlite3.Connection, excluding: Optional[str] = None) -> int:
    return conn.execute(
        "SELECT COUNT(*) FROM users WHERE is_admin = 1 AND is_active = 1 AND id != ?", (excluding or "",)
    ).fetchone()[0]


# --- QUERIES ---

def get_accounts(page: int = 1, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Lists staff accounts, newest first.

    Args:
        filters (dict): query (username, full name or email),
                        role ('all' or a role name) and status ('all', 'active', 'inactive').
    """
    filters = filters or {}
    limit = config.PAGE_SIZES["accounts"]
    page, offset = page_bounds(page, limit)

    where = []
    params = []
    query = (filters.get("query") or "").strip()
    if query:
        where.append("(username LIKE ? OR full_name LIKE ? OR email LIKE ?)")
        params.extend([f"%{query}%"] * 3)

    account_status = filters.get("status") or "all"
    if account_status == "active":
        where.append("is_active = 1")
    elif account_status == "inactive":
        where.append("is_active = 0")

    role = filters.get("role") or "all"
    if role not in perms.ROLES and role != "all":
        raise ValidationError("INVALID_FILTER", f"Unknown role: {role!r}")
    if role == "admin":
        where.append("is_admin = 1")
    elif role != "all":
        where.append("is_admin = 0")

    where_clause = f"WHERE {' AND '.join(where)}" if where else ""
    with get_conn() as conn:
        rows = conn.execute(
            f"SELECT {_ACCOUNT_COLUMNS} FROM users {where_clause} ORDER BY created_at DESC, rowid DESC",
            params,
        ).fetchall()

    # Roles other than admin are derived from the permission set
    accounts = [_account_dict(row) for row in rows]
    if role not in ("all", "admin"):
        accounts = [account for account in accounts if account["role"] == role]

    total = len(accounts)
    return {
        "accounts": accounts[offset:offset + limit],
        "total": total,
        "page": page,
        "total_pages": total_pages(total, limit),
    }


def get_account_by_id(user_id: str) -> Optional[Dict[str, Any]]:
    with get_conn() as conn:
        row = conn.execute(f"SELECT {_ACCOUNT_COLUMNS} FROM users WHERE id = ?", (user_id,)).fetchone()
    return _account_dict(row) if row else None


def admin_exists() -> bool:
    """
    Checks if an active admin account exists.
    The setup flow creates the default admin only when this is False.
    """
    with get_conn() as conn:
        return _active_admin_count(conn) > 0


def has_permission(user_id: str, permission: str) -> bool:
    """Admins hold every permission; inactive or unknown accounts hold none."""
    with get_conn() as conn:
        row = conn.execute(
            "SELECT is_admin, is_active, permissions FROM users WHERE id = ?", (user_id,)
        ).fetchone()
    if not row or not row["is_active"]:
        return False
    if row["is_admin"]:
        return True
    return bool(json.loads(row["permissions"] or "{}").get(permission, False))


# --- WRITES ---

def create_account(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Creates a staff account with a bcrypt-hashed password.

    Args:
        data (dict): username, password, full_name, email, is_admin, is_active,
                     and either permissions (dict) or role (preset name).

    Raises:
        ValidationError: Missing username, full name or password.
        ConflictError: USERNAME_EXISTS.
    """
    username = (data.get("username") or "").strip()
    full_name = (data.get("full_name") or "").strip()
    if not username:
        raise ValidationError("USERNAME_REQUIRED", "Username is required")
    if not full_name:
        raise ValidationError("NAME_REQUIRED", "Full name is required")
    password = _require_password(data.get("password"))

    is_admin = bool(data.get("is_admin")) or data.get("role") == "admin"
    granted = data.get("permissions")
    if granted is None and data.get("role"):
        granted = perms.permissions_for_role(data["role"])

    user_id = new_id()
    try:
        with get_conn() as conn:
            conn.execute(
                """
                INSERT INTO users (id, username, password_hash, full_name, email, is_admin, is_active, permissions)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id, username, hash_password(password), full_name,
                    (data.get("email") or "").strip() or None,
                    1 if is_admin else 0,
                    0 if data.get("is_active") is False else 1,
                    _stored_permissions(is_admin, granted),
                ),
            )
    except sqlite3.IntegrityError:
        raise ConflictError("USERNAME_EXISTS", "Username already exists")

    logger.info("Account %s created (%s)", user_id, username)
    return get_account_by_id(user_id)


def update_account(user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Partially updates an account. Only updates the password if a new one is provided.

    Raises:
        NotFoundError: USER_NOT_FOUND.
        ConflictError: USERNAME_EXISTS, or CANNOT_DEMOTE_LAST_ADMIN when the
                       change would leave no active admin.
    """
    with get_conn() as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            raise NotFoundError("USER_NOT_FOUND", f"Account {user_id} not found")
        current = Account.from_row(row)

        is_admin = bool(data.get("is_admin", current.is_admin))
        if "role" in data and "is_admin" not in data:
            is_admin = data["role"] == "admin"
        is_active = bool(data.get("is_active", current.is_active))

        if current.is_admin and (not is_admin or not is_active):
            if _active_admin_count(conn, excluding=user_id) == 0:
                logger.warning("Refused to demote or deactivate the last admin %s", user_id)
                raise ConflictError("CANNOT_DEMOTE_LAST_ADMIN", "At least one active admin account is required")

        granted = data.get("permissions")
        if granted is None and data.get("role"):
            granted = perms.permissions_for_role(data["role"])
        if granted is None:
            granted = current.permissions

        username = (data.get("username") or current.username).strip()
        full_name = (data.get("full_name") or current.full_name).strip()
        email = data.get("email", current.email)

        assignments = [
            "username = ?", "full_name = ?", "email = ?", "is_admin = ?",
            "is_active = ?", "permissions = ?", "updated_at = ?",
        ]
        params = [
            username, full_name, (email or "").strip() or None, 1 if is_admin else 0,
            1 if is_active else 0, _stored_permissions(is_admin, granted), timestamp(),
        ]
        if data.get("password"):
            assignments.append("password_hash = ?")
            params.append(hash_password(data["password"]))

        try:
            conn.execute(f"UPDATE users SET {', '.join(assignments)} WHERE id = ?", (*params, user_id))
        except sqlite3.IntegrityError:
            raise ConflictError("USERNAME_EXISTS", "Username already exists")

    logger.info("Account %s updated", user_id)
    return get_account_by_id(user_id)


def delete_account(user_id: str) -> bool:
    """
    Permanently deletes an account.

    Raises:
        ConflictError: CANNOT_DELETE_LAST_ADMIN.
    """
    with get_conn() as conn:
        row = conn.execute("SELECT is_admin FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            raise NotFoundError("USER_NOT_FOUND", f"Account {user_id} not found")
        if row["is_admin"] and _active_admin_count(conn, excluding=user_id) == 0:
            logger.warning("Refused to delete the last admin %s", user_id)
            raise ConflictError("CANNOT_DELETE_LAST_ADMIN", "Cannot delete the last admin account")
        conn.execute("DELETE FROM users WHERE id = ?", (user_id,))

    logger.info("Account %s deleted", user_id)
    return True


def change_password(user_id: str, current_password: str, new_password: str) -> bool:
    """
    Changes a password after checking the current one.

    Raises:
        NotFoundError: USER_NOT_FOUND.
        AuthError: INVALID_PASSWORD if the current password is wrong.
    """
    new_password = _require_password(new_password)
    with get_conn() as conn:
        row = conn.execute("SELECT password_hash FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            raise NotFoundError("USER_NOT_FOUND", f"Account {user_id} not found")
        if not verify_password(current_password or "", row["password_hash"]):
            logger.warning("Password change refused for %s: wrong current password", user_id)
            raise AuthError("INVALID_PASSWORD", "Current password is incorrect")
        conn.execute(
            "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
            (hash_password(new_password), timestamp(), user_id),
        )
    return True


def reset_password(user_id: str, new_password: str) -> bool:
    """Sets a new password without the current one (admin action)."""
    new_password = _require_password(new_password)
    with get_conn() as conn:
        updated = conn.execute(
            "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
            (hash_password(new_password), timestamp(), user_id),
        ).rowcount
    if not updated:
        raise NotFoundError("USER_NOT_FOUND", f"Account {user_id} not found")
    logger.info("Password reset for account %s", user_id)
    return True


def login(username: str, password: str) -> Dict[str, Any]:
    """
    Verifies login credentials and records the login time.

    Returns:
        dict: The account (without its password hash) including its role.

    Raises:
        AuthError: INVALID_CREDENTIALS or ACCOUNT_INACTIVE.
    """
    with get_conn() as conn:
        row = conn.execute(
            "SELECT id, password_hash, is_active FROM users WHERE username = ?", ((username or "").strip(),)
        ).fetchone()
        if not row or not verify_password(password or "", row["password_hash"]):
            logger.warning("Failed login for %r", username)
            raise AuthError("INVALID_CREDENTIALS", "Invalid username or password")
        if not row["is_active"]:
            logger.warning("Login refused for inactive account %r", username)
            raise AuthError("ACCOUNT_INACTIVE", "This account is disabled")
        conn.execute("UPDATE users SET last_login = ? WHERE id = ?", (timestamp(), row["id"]))

    logger.info("User %s logged in", username)
    return get_account_by_id(row["id"])


def ensure_default_admin() -> bool:
    """
    Creates the first-run admin account if no admin exists yet.

    Returns:
        bool: True if the account was created.
    """
    if admin_exists():
        return False
    create_account({
        "username": config.DEFAULT_ADMIN_USERNAME,
        "password": config.DEFAULT_ADMIN_PASSWORD,
        "full_name": config.DEFAULT_ADMIN_FULL_NAME,
        "is_admin": True,
    })
    logger.warning("Default admin account %r created; change its password", config.DEFAULT_ADMIN_USERNAME)
    return True
