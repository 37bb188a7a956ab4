import logging
import re
import sqlite3
from typing import Any, Dict, List, Optional
import config
from core import status
from core.database import get_conn
from core.errors import ConflictError, NotFoundError, ValidationError
from core.utils import DateLike, new_id, page_bounds, resolve_today, to_iso, total_pages
from models.member import Member
from services.settings_service import get_settings

logger = logging.getLogger(__name__)

MEMBER_FIELDS = ("name", "email", "country_code", "phone", "gender", "address", "join_date", "notes")

_MEMBER_SELECT = f"""
    SELECT
        m.*,
        ms.id AS membership_id,
        ms.start_date AS membership_start_date,
        ms.end_date AS membership_end_date,
        ms.remaining_check_ins AS membership_remaining_check_ins,
        ms.payment_status AS membership_payment_status,
        ms.remaining_balance AS membership_remaining_balance,
        mp.name AS plan_name,
        mp.price AS plan_price,
        (SELECT COUNT(*) FROM memberships WHERE member_id = m.id) AS membership_count
    FROM members m
    LEFT JOIN memberships ms ON ms.id = {status.sql_latest_membership_id("m.id")}
    LEFT JOIN membership_plans mp ON mp.id = ms.plan_id
"""


def _clean_phone(phone: Any) -> str:
    return re.sub(r"[\s\-()]", "", str(phone or ""))


def _member_dict(row: sqlite3.Row, today) -> Dict[str, Any]:
    """Builds the member payload with the derived status and current membership."""
    data = Member.from_row(row).to_dict()
    current = None
    if row["membership_id"]:
        current = {
            "id": row["membership_id"],
            "plan_name": row["plan_name"],
            "plan_price": row["plan_price"],
            "start_date": row["membership_start_date"],
            "end_date": row["membership_end_date"],
            "status": status.membership_status(
                row["membership_end_date"], row["membership_remaining_check_ins"], today
            ),
            "remaining_check_ins": row["membership_remaining_check_ins"],
            "payment_status": row["membership_payment_status"],
            "remaining_balance": row["membership_remaining_balance"],
        }
    data["status"] = status.member_status(
        row["membership_end_date"], row["membership_remaining_check_ins"], today
    )
    data["current_membership"] = current
    data["membership_count"] = row["membership_count"]
    return data


# --- QUERIES ---

def get_members(page: int = 1, filters: Optional[Dict[str, Any]] = None,
                today: Optional[DateLike] = None) -> Dict[str, Any]:
    """
    Lists members, newest first, with their derived status.

    Args:
        page (int): 1-based page number.
        filters (dict): query, gender, status ('all', 'active', 'expired', 'inactive'),
                        date_from / date_to (join date).
    """
    filters = filters or {}
    day = resolve_today(today)
    limit = config.PAGE_SIZES["members"]
    page, offset = page_bounds(page, limit)

    where: List[str] = []
    params: Dict[str, Any] = {"today": day.isoformat()}

    query = (filters.get("query") or "").strip()
    if query:
        where.append("(m.name LIKE :search OR m.phone LIKE :search OR m.email LIKE :search)")
        params["search"] = f"%{query}%"

    gender = filters.get("gender") or "all"
    if gender != "all":
        where.append("m.gender = :gender")
        params["gender"] = gender

    member_status = filters.get("status") or "all"
    if member_status not in ("all", status.MEMBER_ACTIVE, status.MEMBER_EXPIRED, status.MEMBER_INACTIVE):
        raise ValidationError("INVALID_FILTER", f"Unknown member status: {member_status!r}")
    if member_status == status.MEMBER_ACTIVE:
        where.append(f"ms.id IS NOT NULL AND {status.sql_is_current('ms')}")
    elif member_status == status.MEMBER_EXPIRED:
        where.append(f"ms.id IS NOT NULL AND {status.sql_is_expired('ms')}")
    elif member_status == status.MEMBER_INACTIVE:
        where.append("ms.id IS NULL")

    if filters.get("date_from"):
        where.append("m.join_date >= :date_from")
        params["date_from"] = to_iso(filters["date_from"])
    if filters.get("date_to"):
        where.append("m.join_date <= :date_to")
        params["date_to"] = to_iso(filters["date_to"])

    where_clause = f"WHERE {' AND '.join(where)}" if where else ""

    with get_conn() as conn:
        total = conn.execute(
            f"SELECT COUNT(*) FROM ({_MEMBER_SELECT} {where_clause})", params
        ).fetchone()[0]
        rows = conn.execute(
            f"{_MEMBER_SELECT} {where_clause} ORDER BY m.created_at DESC, m.rowid DESC "
            "LIMIT :limit OFFSET :offset",
            {**params, "limit": limit, "offset": offset},
        ).fetchall()

    return {
        "members": [_member_dict(row, day) for row in rows],
        "total": total,
        "page": page,
        "total_pages": total_pages(total, limit),
    }


def get_all_members(today: Optional[DateLike] = None) -> List[Dict[str, Any]]:
    day = resolve_today(today)
    with get_conn() as conn:
        rows = conn.execute(
            f"{_MEMBER_SELECT} ORDER BY m.created_at DESC, m.rowid DESC", {"today": day.isoformat()}
        ).fetchall()
    return [_member_dict(row, day) for row in rows]


def _get_one(where: str, params: Dict[str, Any], today) -> Optional[Dict[str, Any]]:
    day = resolve_today(today)
    params = {**params, "today": day.isoformat()}
    with get_conn() as conn:
        row = conn.execute(f"{_MEMBER_SELECT} WHERE {where}", params).fetchone()
        if not row:
            return None
        check_in = conn.execute(
            "SELECT check_in_time FROM check_ins WHERE member_id = ? AND check_in_date = ?",
            (row["id"], day.isoformat()),
        ).fetchone()

    data = _member_dict(row, day)
    data["already_checked_in"] = check_in is not None
    data["check_in_time"] = check_in["check_in_time"] if check_in else None
    return data


def get_member_by_id(member_id: str, today: Optional[DateLike] = None) -> Optional[Dict[str, Any]]:
    """
    Retrieves a member with their current membership and today's check-in state.
    Used for Check-In lookups (barcode scan) and the member detail view.
    """
    return _get_one("m.id = :id", {"id": member_id}, today)


def get_member_by_phone(phone: str, today: Optional[DateLike] = None) -> Optional[Dict[str, Any]]:
    """
    Looks a member up by phone, with or without the country code.
    A leading '+' is optional, and the local trunk zero may be dropped after the code.
    """
    cleaned = _clean_phone(phone).lstrip("+")
    if not cleaned:
        return None
    return _get_one(
        "(ltrim(m.phone, '+') = :phone"
        " OR (ltrim(m.country_code, '+') || m.phone) = :phone"
        " OR (ltrim(m.country_code, '+') || ltrim(m.phone, '0')) = :phone)",
        {"phone": cleaned},
        today,
    )


# --- WRITES ---

def _validate(data: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {key: data.get(key) for key in MEMBER_FIELDS}

    cleaned["name"] = (cleaned["name"] or "").strip()
    if not cleaned["name"]:
        raise ValidationError("NAME_REQUIRED", "Member name is required")

    cleaned["phone"] = _clean_phone(cleaned["phone"])
    if not cleaned["phone"]:
        raise ValidationError("PHONE_REQUIRED", "Phone number is required")

    gender = (cleaned["gender"] or "").strip().lower()
    if gender not in config.GENDERS:
        raise ValidationError("INVALID_GENDER", f"Invalid gender: {cleaned['gender']!r}")
    allowed = get_settings().allowed_genders
    if allowed != "both" and gender != allowed:
        raise ValidationError("GENDER_NOT_ALLOWED", f"This gym only accepts {allowed} members")
    cleaned["gender"] = gender

    try:
        cleaned["join_date"] = to_iso(cleaned["join_date"]) or resolve_today().isoformat()
    except ValueError:
        raise ValidationError("INVALID_DATE", f"Invalid join date: {cleaned['join_date']!r}")

    cleaned["country_code"] = (cleaned["country_code"] or "+20").strip()
    for key in ("email", "address", "notes"):
        cleaned[key] = (cleaned[key] or "").strip() or None
    return cleaned


def create_member(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Registers a new member.

    Raises:
        ValidationError: Missing name/phone, bad gender or a gender the gym does not accept.
        ConflictError: PHONE_EXISTS if another member already uses the phone number.
    """
    member = _validate(data)
    member_id = new_id()

    try:
        with get_conn() as conn:
            conn.execute(
                """
                INSERT INTO members (id, name, email, country_code, phone, gender, address, join_date, notes)
                VALUES (:id, :name, :email, :country_code, :phone, :gender, :address, :join_date, :notes)
                """,
                {"id": member_id, **member},
            )
    except sqlite3.IntegrityError:
        raise ConflictError("PHONE_EXISTS", "Phone number already registered")

    logger.info("Member %s created (%s)", member_id, member["name"])
    return {"id": member_id, **member}


def update_member(member_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Updates a member; fields not present in `data` keep their current value."""
    with get_conn() as conn:
        row = conn.execute("SELECT * FROM members WHERE id = ?", (member_id,)).fetchone()
    if not row:
        raise NotFoundError("MEMBER_NOT_FOUND", f"Member {member_id} not found")

    merged = {key: row[key] for key in MEMBER_FIELDS}
    merged.update({key: value for key, value in (data or {}).items() if key in MEMBER_FIELDS})
    member = _validate(merged)

    try:
        with get_conn() as conn:
            conn.execute(
                """
                UPDATE members
                SET name = :name, email = :email, country_code = :country_code, phone = :phone,
                    gender = :gender, address = :address, join_date = :join_date, notes = :notes
                WHERE id = :id
                """,
                {"id": member_id, **member},
            )
    except sqlite3.IntegrityError:
        raise ConflictError("PHONE_EXISTS", "Phone number already registered")

    return {"id": member_id, **member}


def delete_member(member_id: str) -> bool:
    """
    Permanently deletes a member.
    Memberships, payments and check-ins are removed by the foreign key cascade.
    """
    with get_conn() as conn:
        deleted = conn.execute("DELETE FROM members WHERE id = ?", (member_id,)).rowcount
    if not deleted:
        raise NotFoundError("MEMBER_NOT_FOUND", f"Member {member_id} not found")

    logger.info("Member %s deleted", member_id)
    return True
