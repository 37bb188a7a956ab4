import datetime
import logging
from typing import Any, Dict, List, Optional
import config
from core import status
from core.database import get_conn
from core.errors import NotFoundError, ValidationError
from core.utils import DateLike, new_id, resolve_today, timestamp

logger = logging.getLogger(__name__)

NOTIFICATION_STATUSES = ("sent", "failed")


def get_due_notifications(days_before: int = 3, today: Optional[DateLike] = None,
                          now: Optional[datetime.datetime] = None) -> List[Dict[str, Any]]:
    """
    Memberships whose members should get an expiry reminder.

    A membership is due when it is fully paid, still current, ends within
    `days_before` days, has not been renewed past, and no reminder was sent
    for it in the last NOTIFICATION_COOLDOWN_HOURS.
    """
    if int(days_before) < 0:
        raise ValidationError("INVALID_INPUT", "days_before cannot be negative")

    day = resolve_today(today)
    moment = now or datetime.datetime.combine(day, datetime.datetime.now().time())
    cooldown_start = timestamp(moment - datetime.timedelta(hours=config.NOTIFICATION_COOLDOWN_HOURS))

    with get_conn() as conn:
        rows = conn.execute(
            f"""
            SELECT
                ms.id AS membership_id, ms.member_id, ms.end_date, ms.start_date,
                m.name AS member_name, m.phone AS member_phone, m.country_code AS member_country_code,
                mp.name AS plan_name
            FROM memberships ms
            INNER JOIN members m ON m.id = ms.member_id
            INNER JOIN membership_plans mp ON mp.id = ms.plan_id
            WHERE ms.payment_status = '{status.PAYMENT_PAID}'
              AND {status.sql_is_current('ms')}
              AND ms.end_date <= date(:today, '+' || :days || ' days')
              AND {status.sql_not_renewed('ms')}
              AND NOT EXISTS (
                  SELECT 1 FROM notification_log n
                  WHERE n.membership_id = ms.id AND n.status = 'sent' AND n.sent_at >= :cooldown_start
              )
            ORDER BY ms.end_date ASC
            """,
            {"today": day.isoformat(), "days": int(days_before), "cooldown_start": cooldown_start},
        ).fetchall()

    due = []
    for row in rows:
        item = dict(row)
        item["days_remaining"] = status.days_remaining(row["end_date"], day)
        due.append(item)
    return due


def record_notification(membership_id: str, notification_status: str, error: Optional[str] = None,
                        today: Optional[DateLike] = None,
                        now: Optional[datetime.datetime] = None) -> Dict[str, Any]:
    """Logs a reminder attempt so the cooldown can skip it next time."""
    if notification_status not in NOTIFICATION_STATUSES:
        raise ValidationError("INVALID_INPUT", f"Unknown notification status: {notification_status!r}")

    day = resolve_today(today)
    moment = now or datetime.datetime.now()
    with get_conn() as conn:
        row = conn.execute(
            "SELECT member_id, end_date FROM memberships WHERE id = ?", (membership_id,)
        ).fetchone()
        if not row:
            raise NotFoundError("MEMBERSHIP_NOT_FOUND", f"Membership {membership_id} not found")

        entry = {
            "id": new_id(),
            "membership_id": membership_id,
            "member_id": row["member_id"],
            "expiry_date": row["end_date"],
            "days_before_expiry": status.days_remaining(row["end_date"], day),
            "status": notification_status,
            "error_message": error,
            "sent_at": timestamp(moment),
        }
        conn.execute(
            """
            INSERT INTO notification_log (id, membership_id, member_id, expiry_date, days_before_expiry,
                                          status, error_message, sent_at)
            VALUES (:id, :membership_id, :member_id, :expiry_date, :days_before_expiry,
                    :status, :error_message, :sent_at)
            """,
            entry,
        )

    if notification_status == "failed":
        logger.warning("Reminder for membership %s failed: %s", membership_id, error)
    else:
        logger.info("Reminder for membership %s recorded", membership_id)
    return entry
