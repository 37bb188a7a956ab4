import datetime
import logging
import sqlite3
from typing import Any, Dict, List, Optional
import config
from core import status
from core.database import get_conn
from core.errors import CheckInRefusedError, ConflictError, NotFoundError, ValidationError
from core.utils import DateLike, new_id, page_bounds, resolve_today, start_of_week, timestamp, to_iso, total_pages

logger = logging.getLogger(__name__)

WARNING_NO_ACTIVE_MEMBERSHIP = "NO_ACTIVE_MEMBERSHIP"
WARNING_PAYMENT_UNPAID = "PAYMENT_UNPAID"
WARNING_PAYMENT_PARTIAL = "PAYMENT_PARTIAL"
WARNING_LOW_CHECK_INS = "LOW_CHECK_INS"

_CHECK_IN_SELECT = f"""
    SELECT
        c.*,
        m.name AS member_name,
        m.phone AS member_phone,
        m.gender AS member_gender,
        ms.end_date AS membership_end_date,
        ms.remaining_check_ins AS membership_remaining_check_ins,
        mp.name AS plan_name
    FROM check_ins c
    INNER JOIN members m ON m.id = c.member_id
    LEFT JOIN memberships ms ON ms.id = {status.sql_latest_membership_id("c.member_id")}
    LEFT JOIN membership_plans mp ON mp.id = ms.plan_id
"""


def _check_in_dict(row: sqlite3.Row, today) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "member_id": row["member_id"],
        "membership_id": row["membership_id"],
        "check_in_time": row["check_in_time"],
        "check_in_date": row["check_in_date"],
        "member_name": row["member_name"],
        "member_phone": row["member_phone"],
        "member_gender": row["member_gender"],
        "plan_name": row["plan_name"],
        "member_status": status.member_status(
            row["membership_end_date"], row["membership_remaining_check_ins"], today
        ),
    }


def _covering_membership(conn: sqlite3.Connection, member_id: str, day: str) -> Optional[sqlite3.Row]:
    """The membership whose date range contains `day`, if any."""
    return conn.execute(
        """
        SELECT ms.*, mp.plan_type
        FROM memberships ms
        INNER JOIN membership_plans mp ON mp.id = ms.plan_id
        WHERE ms.member_id = ? AND ms.start_date <= ? AND ms.end_date >= ?
        ORDER BY ms.end_date DESC, ms.created_at DESC
        LIMIT 1
        """,
        (member_id, day, day),
    ).fetchone()


# --- CHECK-IN ---

def create_check_in(member_id: str, now: Optional[datetime.datetime] = None) -> Dict[str, Any]:
    """
    Records today's check-in for a member.

    The membership covering today is linked to the record. For check-in plans
    one check-in is taken from the quota in the same transaction.

    Returns:
        dict: The stored check-in plus `warnings`, a list of codes the
              front desk should show (NO_ACTIVE_MEMBERSHIP, PAYMENT_UNPAID,
              PAYMENT_PARTIAL:<balance>, LOW_CHECK_INS:<remaining>).

    Raises:
        NotFoundError: MEMBER_NOT_FOUND.
        ConflictError: ALREADY_CHECKED_IN for a second check-in on the same day.
        CheckInRefusedError: NO_CHECK_INS_REMAINING when the quota is used up.
    """
    now = now or datetime.datetime.now()
    day = now.date().isoformat()
    warnings: List[str] = []

    with get_conn() as conn:
        if not conn.execute("SELECT 1 FROM members WHERE id = ?", (member_id,)).fetchone():
            raise NotFoundError("MEMBER_NOT_FOUND", f"Member {member_id} not found")

        if conn.execute(
            "SELECT 1 FROM check_ins WHERE member_id = ? AND check_in_date = ?", (member_id, day)
        ).fetchone():
            logger.warning("Member %s already checked in on %s", member_id, day)
            raise ConflictError("ALREADY_CHECKED_IN", "Member already checked in today")

        membership = _covering_membership(conn, member_id, day)
        remaining = None
        if membership is None:
            warnings.append(WARNING_NO_ACTIVE_MEMBERSHIP)
        else:
            if membership["remaining_check_ins"] is not None:
                if membership["remaining_check_ins"] <= 0:
                    logger.warning("Check-in refused for member %s: quota used up", member_id)
                    raise CheckInRefusedError(message="No check-ins remaining on this membership")
                remaining = membership["remaining_check_ins"] - 1
                conn.execute(
                    "UPDATE memberships SET remaining_check_ins = ? WHERE id = ?",
                    (remaining, membership["id"]),
                )

            if membership["payment_status"] == status.PAYMENT_UNPAID:
                warnings.append(WARNING_PAYMENT_UNPAID)
            elif membership["payment_status"] == status.PAYMENT_PARTIAL:
                warnings.append(f"{WARNING_PAYMENT_PARTIAL}:{membership['remaining_balance']:g}")
            if remaining is not None and remaining <= config.LOW_CHECK_INS_THRESHOLD:
                warnings.append(f"{WARNING_LOW_CHECK_INS}:{remaining}")

        check_in_id = new_id()
        record = {
            "id": check_in_id,
            "member_id": member_id,
            "membership_id": membership["id"] if membership else None,
            "check_in_time": timestamp(now),
            "check_in_date": day,
        }
        try:
            conn.execute(
                """
                INSERT INTO check_ins (id, member_id, membership_id, check_in_time, check_in_date)
                VALUES (:id, :member_id, :membership_id, :check_in_time, :check_in_date)
                """,
                record,
            )
        except sqlite3.IntegrityError:
            raise ConflictError("ALREADY_CHECKED_IN", "Member already checked in today")

    logger.info("Member %s checked in at %s", member_id, record["check_in_time"])
    return {**record, "remaining_check_ins": remaining, "warnings": warnings}


def get_today_check_in(member_id: str, today: Optional[DateLike] = None) -> Optional[Dict[str, Any]]:
    day = resolve_today(today).isoformat()
    with get_conn() as conn:
        row = conn.execute(
            "SELECT * FROM check_ins WHERE member_id = ? AND check_in_date = ?", (member_id, day)
        ).fetchone()
    return dict(row) if row else None


# --- HISTORY ---

def get_check_ins(page: int = 1, filters: Optional[Dict[str, Any]] = None,
                  today: Optional[DateLike] = None) -> Dict[str, Any]:
    """
    Lists check-ins, newest first.

    Args:
        filters (dict): query (member name/phone), date_from / date_to and
                        status of the member's latest membership
                        ('all', 'active', 'expired', 'none').
    """
    filters = filters or {}
    day = resolve_today(today)
    limit = config.PAGE_SIZES["check_ins"]
    page, offset = page_bounds(page, limit)

    where: List[str] = []
    params: Dict[str, Any] = {"today": day.isoformat()}

    query = (filters.get("query") or "").strip()
    if query:
        where.append("(m.name LIKE :search OR m.phone LIKE :search)")
        params["search"] = f"%{query}%"
    if filters.get("date_from"):
        where.append("c.check_in_date >= :date_from")
        params["date_from"] = to_iso(filters["date_from"])
    if filters.get("date_to"):
        where.append("c.check_in_date <= :date_to")
        params["date_to"] = to_iso(filters["date_to"])

    member_status = filters.get("status") or "all"
    if member_status == status.MEMBER_ACTIVE:
        where.append(f"ms.id IS NOT NULL AND {status.sql_is_current('ms')}")
    elif member_status == status.MEMBER_EXPIRED:
        where.append(f"ms.id IS NOT NULL AND {status.sql_is_expired('ms')}")
    elif member_status == "none":
        where.append("ms.id IS NULL")
    elif member_status != "all":
        raise ValidationError("INVALID_FILTER", f"Unknown status filter: {member_status!r}")

    where_clause = f"WHERE {' AND '.join(where)}" if where else ""

    with get_conn() as conn:
        total = conn.execute(
            f"SELECT COUNT(*) FROM ({_CHECK_IN_SELECT} {where_clause})", params
        ).fetchone()[0]
        rows = conn.execute(
            f"{_CHECK_IN_SELECT} {where_clause} ORDER BY c.check_in_time DESC, c.rowid DESC "
            "LIMIT :limit OFFSET :offset",
            {**params, "limit": limit, "offset": offset},
        ).fetchall()

    return {
        "check_ins": [_check_in_dict(row, day) for row in rows],
        "total": total,
        "page": page,
        "total_pages": total_pages(total, limit),
    }


def get_recent_check_ins(page: int = 1, today: Optional[DateLike] = None) -> Dict[str, Any]:
    """Latest check-ins for the dashboard feed."""
    day = resolve_today(today)
    limit = config.PAGE_SIZES["dashboard"]
    page, offset = page_bounds(page, limit)

    with get_conn() as conn:
        total = conn.execute("SELECT COUNT(*) FROM check_ins").fetchone()[0]
        rows = conn.execute(
            f"{_CHECK_IN_SELECT} ORDER BY c.check_in_time DESC, c.rowid DESC LIMIT :limit OFFSET :offset",
            {"today": day.isoformat(), "limit": limit, "offset": offset},
        ).fetchall()

    return {
        "check_ins": [_check_in_dict(row, day) for row in rows],
        "total": total,
        "page": page,
        "total_pages": total_pages(total, limit),
    }


def get_check_in_stats(today: Optional[DateLike] = None) -> Dict[str, int]:
    """Counts for today, this week (from Monday), this month and distinct active members."""
    day = resolve_today(today)
    week_start = start_of_week(day)
    month_start = day.replace(day=1)

    with get_conn() as conn:
        row = conn.execute(
            """
            SELECT
                SUM(CASE WHEN check_in_date = :today THEN 1 ELSE 0 END) AS today,
                SUM(CASE WHEN check_in_date >= :week_start AND check_in_date <= :today THEN 1 ELSE 0 END) AS week,
                SUM(CASE WHEN check_in_date >= :month_start AND check_in_date <= :today THEN 1 ELSE 0 END) AS month
            FROM check_ins
            """,
            {"today": day.isoformat(), "week_start": week_start.isoformat(), "month_start": month_start.isoformat()},
        ).fetchone()
        active_members = conn.execute(status.sql_active_member_count(), {"today": day.isoformat()}).fetchone()[0]

    return {
        "today": row["today"] or 0,
        "this_week": row["week"] or 0,
        "this_month": row["month"] or 0,
        "active_members": active_members,
    }


def get_member_check_ins(member_id: str, limit: int = 30) -> List[Dict[str, Any]]:
    with get_conn() as conn:
        rows = conn.execute(
            "SELECT * FROM check_ins WHERE member_id = ? ORDER BY check_in_time DESC LIMIT ?",
            (member_id, limit),
        ).fetchall()
    return [dict(row) for row in rows]


def delete_check_in(check_in_id: str) -> bool:
    """
    Removes a check-in. If it was taken from a check-in quota, the
    check-in is given back to that membership.
    """
    with get_conn() as conn:
        row = conn.execute("SELECT membership_id FROM check_ins WHERE id = ?", (check_in_id,)).fetchone()
        if not row:
            raise NotFoundError("CHECK_IN_NOT_FOUND", f"Check-in {check_in_id} not found")

        conn.execute("DELETE FROM check_ins WHERE id = ?", (check_in_id,))
        if row["membership_id"]:
            conn.execute(
                """
                UPDATE memberships SET remaining_check_ins = remaining_check_ins + 1
                WHERE id = ? AND remaining_check_ins IS NOT NULL
                """,
                (row["membership_id"],),
            )

    logger.info("Check-in %s deleted", check_in_id)
    return True
