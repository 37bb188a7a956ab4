import datetime
import logging
import sqlite3
from typing import Any, Dict, List, Optional
import config
from core import status
from core.database import get_conn
from core.errors import ConflictError, NotFoundError, ValidationError
from core.utils import DateLike, money, new_id, page_bounds, parse_date, resolve_today, to_iso, total_pages
from models.membership import Membership
from models.plan import Plan
from services import payment_service

logger = logging.getLogger(__name__)

PAYMENT_TYPES = ("full", "partial")

_MEMBERSHIP_SELECT = f"""
    SELECT
        ms.*,
        m.name AS member_name,
        m.phone AS member_phone,
        m.country_code AS member_country_code,
        mp.name AS plan_name,
        mp.plan_type AS plan_type,
        mp.duration_days AS plan_duration_days,
        mp.check_in_limit AS plan_check_in_limit,
        {status.sql_status("ms")} AS status
    FROM memberships ms
    INNER JOIN members m ON m.id = ms.member_id
    INNER JOIN membership_plans mp ON mp.id = ms.plan_id
"""


def _membership_dict(row: sqlite3.Row, today) -> Dict[str, Any]:
    data = Membership.from_row(row).to_dict()
    data.update({
        "member_name": row["member_name"],
        "member_phone": row["member_phone"],
        "member_country_code": row["member_country_code"],
        "plan_name": row["plan_name"],
        "plan_type": row["plan_type"],
        "plan_duration_days": row["plan_duration_days"],
        "plan_check_in_limit": row["plan_check_in_limit"],
        "status": row["status"],
        "days_remaining": status.days_remaining(row["end_date"], today),
    })
    return data


# --- QUERIES ---

def get_memberships(page: int = 1, filters: Optional[Dict[str, Any]] = None,
                    today: Optional[DateLike] = None) -> Dict[str, Any]:
    """
    Lists memberships, most recent start first.

    Args:
        page (int): 1-based page number.
        filters (dict): query (member name/phone), member_id, payment_method,
                        payment_status, date_from / date_to (start date) and
                        status ('all', 'active', 'expiring', 'expired').
                        'active' includes memberships that are expiring.
    """
    filters = filters or {}
    day = resolve_today(today)
    limit = config.PAGE_SIZES["memberships"]
    page, offset = page_bounds(page, limit)

    where: List[str] = []
    params: Dict[str, Any] = {"today": day.isoformat()}

    query = (filters.get("query") or "").strip()
    if query:
        where.append("(m.name LIKE :search OR m.phone LIKE :search)")
        params["search"] = f"%{query}%"

    if filters.get("member_id"):
        where.append("ms.member_id = :member_id")
        params["member_id"] = filters["member_id"]

    for key in ("payment_method", "payment_status"):
        value = filters.get(key) or "all"
        if value != "all":
            where.append(f"ms.{key} = :{key}")
            params[key] = value

    if filters.get("date_from"):
        where.append("ms.start_date >= :date_from")
        params["date_from"] = to_iso(filters["date_from"])
    if filters.get("date_to"):
        where.append("ms.start_date <= :date_to")
        params["date_to"] = to_iso(filters["date_to"])

    lifecycle = filters.get("status") or "all"
    if lifecycle == status.STATUS_ACTIVE:
        where.append(status.sql_is_current("ms"))
    elif lifecycle == status.STATUS_EXPIRING:
        where.append(status.sql_is_expiring("ms"))
    elif lifecycle == status.STATUS_EXPIRED:
        where.append(status.sql_is_expired("ms"))
    elif lifecycle != "all":
        raise ValidationError("INVALID_FILTER", f"Unknown membership status: {lifecycle!r}")

    where_clause = f"WHERE {' AND '.join(where)}" if where else ""

    with get_conn() as conn:
        total = conn.execute(
            f"SELECT COUNT(*) FROM ({_MEMBERSHIP_SELECT} {where_clause})", params
        ).fetchone()[0]
        rows = conn.execute(
            f"{_MEMBERSHIP_SELECT} {where_clause} "
            "ORDER BY ms.start_date DESC, ms.created_at DESC, ms.rowid DESC LIMIT :limit OFFSET :offset",
            {**params, "limit": limit, "offset": offset},
        ).fetchall()

    return {
        "memberships": [_membership_dict(row, day) for row in rows],
        "total": total,
        "page": page,
        "total_pages": total_pages(total, limit),
    }


def get_membership_by_id(membership_id: str, today: Optional[DateLike] = None) -> Optional[Dict[str, Any]]:
    day = resolve_today(today)
    with get_conn() as conn:
        row = conn.execute(
            f"{_MEMBERSHIP_SELECT} WHERE ms.id = :id", {"id": membership_id, "today": day.isoformat()}
        ).fetchone()
    return _membership_dict(row, day) if row else None


def get_member_options() -> List[Dict[str, Any]]:
    """Compact member list for the membership form."""
    with get_conn() as conn:
        rows = conn.execute(
            "SELECT id, name, phone, country_code FROM members ORDER BY name"
        ).fetchall()
    return [dict(row) for row in rows]


# --- VALIDATION HELPERS ---

def _load_plan(conn: sqlite3.Connection, plan_id: Optional[str]) -> Plan:
    if not plan_id:
        raise ValidationError("PLAN_REQUIRED", "A plan is required")
    row = conn.execute("SELECT * FROM membership_plans WHERE id = ?", (plan_id,)).fetchone()
    if not row:
        raise NotFoundError("PLAN_NOT_FOUND", f"Plan {plan_id} not found")
    return Plan.from_row(row)


def _require_member(conn: sqlite3.Connection, member_id: Optional[str]) -> None:
    if not member_id:
        raise ValidationError("MEMBER_REQUIRED", "A member is required")
    if not conn.execute("SELECT 1 FROM members WHERE id = ?", (member_id,)).fetchone():
        raise NotFoundError("MEMBER_NOT_FOUND", f"Member {member_id} not found")


def _dates(plan: Plan, start_value: Optional[DateLike], end_value: Optional[DateLike], today) -> tuple:
    try:
        start = parse_date(start_value) if start_value else resolve_today(today)
        end = parse_date(end_value) if end_value else status.compute_end_date(start, plan.duration_days)
    except ValueError:
        raise ValidationError("INVALID_DATE", "Start and end dates must be ISO dates (YYYY-MM-DD)")
    if end < start:
        raise ValidationError("INVALID_DATE_RANGE", "End date cannot be before the start date")
    return start.isoformat(), end.isoformat()


def _pricing(plan: Plan, data: Dict[str, Any]) -> Dict[str, Any]:
    modifier_type = data.get("price_modifier_type") or None
    modifier_value = data.get("price_modifier_value")
    if modifier_type and modifier_type not in status.PRICE_MODIFIERS:
        raise ValidationError("INVALID_PRICE_MODIFIER", f"Unknown price modifier: {modifier_type!r}")

    if modifier_type:
        try:
            modifier_value = float(modifier_value)
        except (TypeError, ValueError):
            raise ValidationError("INVALID_PRICE_MODIFIER", "Price modifier value must be a number")
        if modifier_value < 0:
            raise ValidationError("INVALID_PRICE_MODIFIER", "Price modifier value cannot be negative")
    else:
        modifier_value = None

    return {
        "total_price": status.apply_price_modifier(plan.price, modifier_type, modifier_value),
        "is_custom": 1 if modifier_type else 0,
        "price_modifier_type": modifier_type,
        "price_modifier_value": modifier_value,
        "custom_price_name": (data.get("custom_price_name") or "").strip() or None,
    }


def _check_overlap(conn: sqlite3.Connection, member_id: str, start: str, end: str,
                   exclude_id: Optional[str] = None) -> None:
    row = conn.execute(
        """
        SELECT id, start_date, end_date FROM memberships
        WHERE member_id = ? AND id != ? AND start_date <= ? AND end_date >= ?
        LIMIT 1
        """,
        (member_id, exclude_id or "", end, start),
    ).fetchone()
    if row:
        raise ConflictError(
            "MEMBERSHIP_OVERLAP",
            f"Dates overlap an existing membership ({row['start_date']} to {row['end_date']})",
        )


# --- WRITES ---

def create_membership(data: Dict[str, Any], today: Optional[DateLike] = None) -> Dict[str, Any]:
    """
    Sells a membership to a member.

    Args:
        data (dict): member_id, plan_id, optional start_date / end_date,
                     price_modifier_type / price_modifier_value / custom_price_name,
                     payment_type ('full' or 'partial'), amount_paid, payment_method,
                     payment_date, scheduled_payments (list of dicts) and notes.

    Returns:
        dict: The stored membership with its derived status.

    Raises:
        ValidationError: Missing member/plan, invalid dates or amounts.
        NotFoundError: Unknown member or plan.
        ConflictError: MEMBERSHIP_OVERLAP when the dates collide with another membership.
    """
    day = resolve_today(today)
    payment_type = data.get("payment_type") or "full"
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError("INVALID_PAYMENT_TYPE", f"Unknown payment type: {payment_type!r}")
    method = payment_service.resolve_method(data.get("payment_method"))

    membership_id = new_id()
    with get_conn() as conn:
        _require_member(conn, data.get("member_id"))
        plan = _load_plan(conn, data.get("plan_id"))
        start, end = _dates(plan, data.get("start_date"), data.get("end_date"), day)
        pricing = _pricing(plan, data)
        total = pricing["total_price"]

        if payment_type == "full":
            paid = total
        else:
            try:
                paid = money(data.get("amount_paid"))
            except (TypeError, ValueError):
                raise ValidationError("INVALID_AMOUNT", "Amount paid must be a number")
        if paid < 0 or paid > total:
            raise ValidationError("INVALID_AMOUNT", f"Amount paid must be between 0 and {total}")

        try:
            payment_date = to_iso(data.get("payment_date")) or day.isoformat()
        except ValueError:
            raise ValidationError("INVALID_DATE", "Invalid payment date")

        _check_overlap(conn, data["member_id"], start, end)

        conn.execute(
            """
            INSERT INTO memberships (id, member_id, plan_id, start_date, end_date, total_price,
                                     amount_paid, remaining_balance, payment_status, payment_method,
                                     payment_date, remaining_check_ins, is_custom, price_modifier_type,
                                     price_modifier_value, custom_price_name, notes)
            VALUES (:id, :member_id, :plan_id, :start_date, :end_date, :total_price,
                    0, :total_price, :payment_status, :payment_method,
                    NULL, :remaining_check_ins, :is_custom, :price_modifier_type,
                    :price_modifier_value, :custom_price_name, :notes)
            """,
            {
                "id": membership_id,
                "member_id": data["member_id"],
                "plan_id": plan.id,
                "start_date": start,
                "end_date": end,
                "payment_status": status.payment_status(total, 0),
                "payment_method": method,
                "remaining_check_ins": plan.check_in_limit if plan.is_checkin else None,
                "notes": (data.get("notes") or "").strip() or None,
                **pricing,
            },
        )

        if paid > 0:
            payment_service.record_payment(conn, membership_id, paid, method, payment_date, "completed")
        payment_service.schedule_payments(
            conn, membership_id, data.get("scheduled_payments"), status.remaining_balance(total, paid), method
        )
        payment_service.reconcile(conn, membership_id)

    logger.info("Membership %s created for member %s (%s to %s)", membership_id, data["member_id"], start, end)
    return get_membership_by_id(membership_id, day)


def update_membership(membership_id: str, data: Dict[str, Any],
                      today: Optional[DateLike] = None) -> Dict[str, Any]:
    """
    Edits a membership's plan, dates, pricing, payment method or notes.
    Payment totals are re-derived from the ledger and cannot be edited here.

    Raises:
        NotFoundError: MEMBERSHIP_NOT_FOUND / PLAN_NOT_FOUND.
        ValidationError: INVALID_AMOUNT when the new price is below what was already paid.
        ConflictError: MEMBERSHIP_OVERLAP.
    """
    day = resolve_today(today)
    with get_conn() as conn:
        row = conn.execute("SELECT * FROM memberships WHERE id = ?", (membership_id,)).fetchone()
        if not row:
            raise NotFoundError("MEMBERSHIP_NOT_FOUND", f"Membership {membership_id} not found")
        current = Membership.from_row(row)

        plan_changed = bool(data.get("plan_id")) and data["plan_id"] != current.plan_id
        plan = _load_plan(conn, data.get("plan_id") or current.plan_id)

        # A new plan recomputes the end date unless one is given explicitly
        start_value = data.get("start_date") or current.start_date
        end_value = data.get("end_date") or (None if plan_changed or data.get("start_date") else current.end_date)
        start, end = _dates(plan, start_value, end_value, day)

        if plan_changed or "price_modifier_type" in data or "price_modifier_value" in data:
            pricing = _pricing(plan, {
                "price_modifier_type": data.get("price_modifier_type", current.price_modifier_type),
                "price_modifier_value": data.get("price_modifier_value", current.price_modifier_value),
                "custom_price_name": data.get("custom_price_name", current.custom_price_name),
            })
        else:
            pricing = {
                "total_price": current.total_price,
                "is_custom": 1 if current.is_custom else 0,
                "price_modifier_type": current.price_modifier_type,
                "price_modifier_value": current.price_modifier_value,
                "custom_price_name": data.get("custom_price_name", current.custom_price_name),
            }
        if pricing["total_price"] < money(current.amount_paid):
            raise ValidationError(
                "INVALID_AMOUNT", f"New price cannot be below the amount already paid ({current.amount_paid})"
            )

        if plan_changed:
            remaining = plan.check_in_limit if plan.is_checkin else None
        else:
            remaining = current.remaining_check_ins

        method = payment_service.resolve_method(data.get("payment_method") or current.payment_method)
        notes = data.get("notes", current.notes)

        _check_overlap(conn, current.member_id, start, end, exclude_id=membership_id)

        conn.execute(
            """
            UPDATE memberships
            SET plan_id = :plan_id, start_date = :start_date, end_date = :end_date,
                total_price = :total_price, is_custom = :is_custom,
                price_modifier_type = :price_modifier_type, price_modifier_value = :price_modifier_value,
                custom_price_name = :custom_price_name, payment_method = :payment_method,
                remaining_check_ins = :remaining_check_ins, notes = :notes
            WHERE id = :id
            """,
            {
                "id": membership_id,
                "plan_id": plan.id,
                "start_date": start,
                "end_date": end,
                "payment_method": method,
                "remaining_check_ins": remaining,
                "notes": (notes or "").strip() or None,
                **pricing,
            },
        )
        payment_service.reconcile(conn, membership_id)

    logger.info("Membership %s updated", membership_id)
    return get_membership_by_id(membership_id, day)


def delete_membership(membership_id: str) -> bool:
    """
    Deletes a membership and its payment records.
    Check-ins made under it stay in the history without a membership link.
    """
    with get_conn() as conn:
        deleted = conn.execute("DELETE FROM memberships WHERE id = ?", (membership_id,)).rowcount
    if not deleted:
        raise NotFoundError("MEMBERSHIP_NOT_FOUND", f"Membership {membership_id} not found")

    logger.info("Membership %s deleted", membership_id)
    return True


def renew_membership(membership_id: str, data: Optional[Dict[str, Any]] = None,
                     today: Optional[DateLike] = None) -> Dict[str, Any]:
    """
    Creates the next period for the member of an existing membership.

    The new period starts the day after the member's latest end date, or
    today if that date already passed. The plan defaults to the one being
    renewed; any create_membership field in `data` overrides the defaults.
    """
    day = resolve_today(today)
    data = dict(data or {})

    with get_conn() as conn:
        row = conn.execute(
            "SELECT member_id, plan_id, payment_method FROM memberships WHERE id = ?", (membership_id,)
        ).fetchone()
        if not row:
            raise NotFoundError("MEMBERSHIP_NOT_FOUND", f"Membership {membership_id} not found")
        latest_end = conn.execute(
            "SELECT MAX(end_date) FROM memberships WHERE member_id = ?", (row["member_id"],)
        ).fetchone()[0]

    next_day = parse_date(latest_end) + datetime.timedelta(days=1)
    data["member_id"] = row["member_id"]
    data.setdefault("plan_id", row["plan_id"])
    data.setdefault("payment_method", row["payment_method"])
    data.setdefault("start_date", max(next_day, day).isoformat())

    renewed = create_membership(data, day)
    logger.info("Membership %s renewed as %s", membership_id, renewed["id"])
    return renewed
