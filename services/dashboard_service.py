import datetime
import logging
from typing import Any, Dict, Optional
import config
from core import status
from core.database import get_conn
from core.utils import DateLike, money, page_bounds, resolve_today, total_pages

logger = logging.getLogger(__name__)

_EXPIRING_WHERE = f"{status.sql_is_expiring('ms')} AND {status.sql_not_renewed('ms')}"


def _percent_change(current: float, previous: float) -> float:
    """Change from previous to current in percent, 1 decimal. 0 when there is no baseline."""
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def get_revenue_data(today: Optional[DateLike] = None) -> Dict[str, Any]:
    """
    Revenue from completed payments for the dashboard chart.

    Returns:
        dict: daily_revenue (last REVENUE_WINDOW_DAYS days, oldest first, days
              without payments included as 0) and a summary comparing this
              month with the previous one.
    """
    day = resolve_today(today)
    window_start = day - datetime.timedelta(days=config.REVENUE_WINDOW_DAYS - 1)
    month_start = day.replace(day=1)
    last_month_end = month_start - datetime.timedelta(days=1)
    last_month_start = last_month_end.replace(day=1)

    with get_conn() as conn:
        rows = conn.execute(
            """
            SELECT payment_date AS date, SUM(amount) AS revenue
            FROM membership_payments
            WHERE payment_status = 'completed' AND payment_date BETWEEN ? AND ?
            GROUP BY payment_date
            """,
            (window_start.isoformat(), day.isoformat()),
        ).fetchall()

        def period_total(start: datetime.date, end: datetime.date) -> float:
            value = conn.execute(
                """
                SELECT COALESCE(SUM(amount), 0) FROM membership_payments
                WHERE payment_status = 'completed' AND payment_date BETWEEN ? AND ?
                """,
                (start.isoformat(), end.isoformat()),
            ).fetchone()[0]
            return money(value)

        this_month = period_total(month_start, day)
        last_month = period_total(last_month_start, last_month_end)

    by_date = {row["date"]: money(row["revenue"]) for row in rows}
    daily = []
    for offset in range(config.REVENUE_WINDOW_DAYS):
        date = (window_start + datetime.timedelta(days=offset)).isoformat()
        daily.append({"date": date, "revenue": by_date.get(date, 0.0)})

    highest = max(daily, key=lambda item: item["revenue"]) if daily else {"date": "", "revenue": 0.0}

    return {
        "daily_revenue": daily,
        "summary": {
            "total_this_month": this_month,
            "total_last_month": last_month,
            "percentage_change": _percent_change(this_month, last_month),
            "average_daily": round(this_month / day.day, 1),
            "highest_day": highest,
        },
    }


def get_expiring_memberships(page: int = 1, today: Optional[DateLike] = None) -> Dict[str, Any]:
    """
    Memberships ending within the expiring window, soonest first.
    Members who already bought a membership ending later are left out.
    """
    day = resolve_today(today)
    limit = config.PAGE_SIZES["dashboard"]
    page, offset = page_bounds(page, limit)
    params = {"today": day.isoformat()}

    with get_conn() as conn:
        total = conn.execute(
            f"SELECT COUNT(*) FROM memberships ms WHERE {_EXPIRING_WHERE}", params
        ).fetchone()[0]
        rows = conn.execute(
            f"""
            SELECT
                ms.id, ms.member_id, ms.plan_id, ms.start_date, ms.end_date,
                ms.total_price, ms.amount_paid, ms.remaining_balance, ms.payment_status,
                ms.remaining_check_ins,
                m.name AS member_name, m.phone AS member_phone, m.country_code AS member_country_code,
                mp.name AS plan_name, mp.price AS plan_price
            FROM memberships ms
            INNER JOIN members m ON m.id = ms.member_id
            INNER JOIN membership_plans mp ON mp.id = ms.plan_id
            WHERE {_EXPIRING_WHERE}
            ORDER BY ms.end_date ASC, m.name ASC
            LIMIT :limit OFFSET :offset
            """,
            {**params, "limit": limit, "offset": offset},
        ).fetchall()

    data = []
    for row in rows:
        item = dict(row)
        item["days_remaining"] = status.days_remaining(row["end_date"], day)
        data.append(item)

    return {"data": data, "total": total, "page": page, "total_pages": total_pages(total, limit)}


def get_summary(today: Optional[DateLike] = None) -> Dict[str, Any]:
    """Headline numbers for the dashboard cards."""
    day = resolve_today(today)
    params = {"today": day.isoformat()}

    with get_conn() as conn:
        total_members = conn.execute("SELECT COUNT(*) FROM members").fetchone()[0]
        active_members = conn.execute(status.sql_active_member_count(), params).fetchone()[0]
        expiring = conn.execute(
            f"SELECT COUNT(*) FROM memberships ms WHERE {_EXPIRING_WHERE}", params
        ).fetchone()[0]
        outstanding = conn.execute(
            "SELECT COALESCE(SUM(remaining_balance), 0) FROM memberships"
        ).fetchone()[0]
        overdue = conn.execute(
            """
            SELECT COUNT(*) FROM membership_payments
            WHERE payment_status IN ('scheduled', 'pending') AND payment_date < :today
            """,
            params,
        ).fetchone()[0]

    return {
        "total_members": total_members,
        "active_members": active_members,
        "expiring_memberships": expiring,
        "outstanding_balance": money(outstanding),
        "overdue_payments": overdue,
    }
