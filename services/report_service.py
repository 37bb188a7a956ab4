import datetime
import logging
from typing import Any, Dict, Optional
import config
from core import status
from core.database import get_conn
from core.errors import NotFoundError, ValidationError
from core.utils import DateLike, money, new_id, page_bounds, parse_date, total_pages

logger = logging.getLogger(__name__)

REPORT_TYPES = ("week", "month", "year", "custom")


def _change(current: float, previous: float) -> Dict[str, float]:
    return {
        "current": current,
        "previous": previous,
        "change": round((current - previous) / previous * 100, 1) if previous > 0 else 0.0,
        "difference": money(current - previous) if isinstance(current, float) else current - previous,
    }


def _period_figures(conn, start: str, end: str) -> Dict[str, Any]:
    revenue = conn.execute(
        """
        SELECT COALESCE(SUM(amount), 0) FROM membership_payments
        WHERE payment_status = 'completed' AND payment_date BETWEEN ? AND ?
        """,
        (start, end),
    ).fetchone()[0]
    new_members = conn.execute(
        "SELECT COUNT(*) FROM members WHERE join_date BETWEEN ? AND ?", (start, end)
    ).fetchone()[0]
    new_memberships = conn.execute(
        "SELECT COUNT(*) FROM memberships WHERE start_date BETWEEN ? AND ?", (start, end)
    ).fetchone()[0]
    check_ins = conn.execute(
        "SELECT COUNT(*) FROM check_ins WHERE check_in_date BETWEEN ? AND ?", (start, end)
    ).fetchone()[0]
    return {
        "revenue": money(revenue),
        "new_members": new_members,
        "new_memberships": new_memberships,
        "check_ins": check_ins,
    }


def generate_report(start_date: DateLike, end_date: DateLike) -> Dict[str, Any]:
    """
    Builds the activity report for an inclusive date range and compares it
    with the immediately preceding period of the same length.

    Raises:
        ValidationError: INVALID_DATE / INVALID_DATE_RANGE.
    """
    try:
        start = parse_date(start_date)
        end = parse_date(end_date)
    except ValueError:
        raise ValidationError("INVALID_DATE", "Report dates must be ISO dates (YYYY-MM-DD)")
    if start > end:
        raise ValidationError("INVALID_DATE_RANGE", "Start date must not be after the end date")

    period_days = (end - start).days + 1
    prev_end = start - datetime.timedelta(days=1)
    prev_start = prev_end - datetime.timedelta(days=period_days - 1)
    start_iso, end_iso = start.isoformat(), end.isoformat()

    with get_conn() as conn:
        current = _period_figures(conn, start_iso, end_iso)
        previous = _period_figures(conn, prev_start.isoformat(), prev_end.isoformat())

        total_members = conn.execute("SELECT COUNT(*) FROM members").fetchone()[0]
        total_memberships = conn.execute("SELECT COUNT(*) FROM memberships").fetchone()[0]
        # A renewal is a membership starting in the period for a member who had one before
        renewed = conn.execute(
            """
            SELECT COUNT(*) FROM memberships ms
            WHERE ms.start_date BETWEEN ? AND ?
              AND EXISTS (SELECT 1 FROM memberships earlier
                          WHERE earlier.member_id = ms.member_id AND earlier.start_date < ?)
            """,
            (start_iso, end_iso, start_iso),
        ).fetchone()[0]
        active_members = conn.execute(status.sql_active_member_count(), {"today": end_iso}).fetchone()[0]

        revenue_by_day = conn.execute(
            """
            SELECT payment_date AS date, SUM(amount) AS revenue, COUNT(DISTINCT membership_id) AS memberships
            FROM membership_payments
            WHERE payment_status = 'completed' AND payment_date BETWEEN ? AND ?
            GROUP BY payment_date
            ORDER BY payment_date ASC
            """,
            (start_iso, end_iso),
        ).fetchall()
        check_ins_by_day = conn.execute(
            """
            SELECT check_in_date AS date, COUNT(*) AS count
            FROM check_ins
            WHERE check_in_date BETWEEN ? AND ?
            GROUP BY check_in_date
            ORDER BY check_in_date ASC
            """,
            (start_iso, end_iso),
        ).fetchall()

    summary = {
        "total_revenue": current["revenue"],
        "total_members": total_members,
        "new_members": current["new_members"],
        "total_memberships": total_memberships,
        "new_memberships": current["new_memberships"],
        "renewed_memberships": renewed,
        "total_check_ins": current["check_ins"],
        "active_members": active_members,
        "average_daily_revenue": money(current["revenue"] / period_days),
        "average_daily_check_ins": round(current["check_ins"] / period_days, 1),
    }

    return {
        "start_date": start_iso,
        "end_date": end_iso,
        "summary": summary,
        "comparison": {
            "revenue": _change(current["revenue"], previous["revenue"]),
            "members": _change(current["new_members"], previous["new_members"]),
            "memberships": _change(current["new_memberships"], previous["new_memberships"]),
            "check_ins": _change(current["check_ins"], previous["check_ins"]),
        },
        "revenue_by_day": [
            {"date": row["date"], "revenue": money(row["revenue"]), "memberships": row["memberships"]}
            for row in revenue_by_day
        ],
        "check_ins_by_day": [dict(row) for row in check_ins_by_day],
        "period_days": period_days,
        "previous_period": {"start_date": prev_start.isoformat(), "end_date": prev_end.isoformat()},
    }


def save_report(report: Dict[str, Any]) -> Dict[str, str]:
    """
    Stores a snapshot of a generated report's headline numbers.

    Args:
        report (dict): report_type, start_date, end_date, the summary figures
                       (flat or under 'summary') and optionally generated_by.
    """
    report_type = report.get("report_type") or "custom"
    if report_type not in REPORT_TYPES:
        raise ValidationError("INVALID_REPORT_TYPE", f"Unknown report type: {report_type!r}")
    try:
        start = parse_date(report.get("start_date")).isoformat()
        end = parse_date(report.get("end_date")).isoformat()
    except ValueError:
        raise ValidationError("INVALID_DATE", "Report dates must be ISO dates (YYYY-MM-DD)")

    figures = {**report, **(report.get("summary") or {})}
    report_id = new_id()
    with get_conn() as conn:
        conn.execute(
            """
            INSERT INTO reports (id, report_type, start_date, end_date, total_revenue, total_members,
                                 new_members, total_memberships, new_memberships, total_check_ins,
                                 generated_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                report_id, report_type, start, end,
                money(figures.get("total_revenue")),
                int(figures.get("total_members") or 0),
                int(figures.get("new_members") or 0),
                int(figures.get("total_memberships") or 0),
                int(figures.get("new_memberships") or 0),
                int(figures.get("total_check_ins") or 0),
                report.get("generated_by") or "System",
            ),
        )

    logger.info("Report %s saved (%s, %s to %s)", report_id, report_type, start, end)
    return {"id": report_id}


def get_report_history(page: int = 1) -> Dict[str, Any]:
    limit = config.PAGE_SIZES["reports"]
    page, offset = page_bounds(page, limit)
    with get_conn() as conn:
        total = conn.execute("SELECT COUNT(*) FROM reports").fetchone()[0]
        rows = conn.execute(
            "SELECT * FROM reports ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?", (limit, offset)
        ).fetchall()
    return {"data": [dict(row) for row in rows], "total": total, "page": page,
            "total_pages": total_pages(total, limit)}


def delete_report(report_id: str) -> bool:
    with get_conn() as conn:
        deleted = conn.execute("DELETE FROM reports WHERE id = ?", (report_id,)).rowcount
    if not deleted:
        raise NotFoundError("REPORT_NOT_FOUND", f"Report {report_id} not found")
    return True
