import logging
from typing import Any, Dict, List, Optional
import config
from core.database import get_conn
from core.errors import ConflictError, NotFoundError, ValidationError
from core.utils import new_id, page_bounds, total_pages
from models.plan import PLAN_TYPES, Plan

logger = logging.getLogger(__name__)

_DAILY = "(duration_days >= 1 AND duration_days < 7)"
_WEEKLY = "(duration_days % 7 = 0 AND duration_days < 30)"
_MONTHLY = "(duration_days BETWEEN 28 AND 31 OR duration_days % 30 = 0)"
_ANNUAL = "(duration_days % 365 = 0 OR duration_days >= 365)"

# Buckets overlap on purpose (e.g. 28 days is weekly and monthly)
PLAN_FILTERS = {
    "daily": _DAILY,
    "weekly": _WEEKLY,
    "monthly": _MONTHLY,
    "annually": _ANNUAL,
    "custom": f"(duration_days IS NOT NULL AND NOT ({_DAILY} OR {_WEEKLY} OR {_MONTHLY} OR {_ANNUAL}))",
    "offer": "is_offer = 1",
    "checkin": "plan_type = 'checkin'",
}


def get_plans(page: int = 1, plan_filter: str = "all") -> Dict[str, Any]:
    """
    Lists plans newest first, optionally restricted to one duration bucket.

    Raises:
        ValidationError: INVALID_FILTER for an unknown bucket.
    """
    if plan_filter not in PLAN_FILTERS and plan_filter != "all":
        raise ValidationError("INVALID_FILTER", f"Unknown plan filter: {plan_filter!r}")

    limit = config.PAGE_SIZES["plans"]
    page, offset = page_bounds(page, limit)
    where_clause = f"WHERE {PLAN_FILTERS[plan_filter]}" if plan_filter != "all" else ""

    with get_conn() as conn:
        total = conn.execute(f"SELECT COUNT(*) FROM membership_plans {where_clause}").fetchone()[0]
        rows = conn.execute(
            f"SELECT * FROM membership_plans {where_clause} "
            "ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()

    return {
        "plans": [Plan.from_row(row).to_dict() for row in rows],
        "total": total,
        "page": page,
        "total_pages": total_pages(total, limit),
    }


def get_plan(plan_id: str) -> Optional[Plan]:
    with get_conn() as conn:
        row = conn.execute("SELECT * FROM membership_plans WHERE id = ?", (plan_id,)).fetchone()
    return Plan.from_row(row) if row else None


def get_plan_by_id(plan_id: str) -> Optional[Dict[str, Any]]:
    plan = get_plan(plan_id)
    return plan.to_dict() if plan else None


def get_plan_options() -> List[Dict[str, Any]]:
    """Compact plan list for the membership form."""
    with get_conn() as conn:
        rows = conn.execute("SELECT * FROM membership_plans ORDER BY name").fetchall()
    return [
        {
            "id": row["id"],
            "name": row["name"],
            "price": row["price"],
            "duration_days": row["duration_days"],
            "plan_type": row["plan_type"],
            "check_in_limit": row["check_in_limit"],
        }
        for row in rows
    ]


def _validate(data: Dict[str, Any]) -> Dict[str, Any]:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("NAME_REQUIRED", "Plan name is required")

    try:
        price = round(float(data.get("price")), 2)
    except (TypeError, ValueError):
        raise ValidationError("INVALID_PRICE", "Plan price must be a number")
    if price < 0:
        raise ValidationError("INVALID_PRICE", "Plan price cannot be negative")

    plan_type = data.get("plan_type") or "duration"
    if plan_type not in PLAN_TYPES:
        raise ValidationError("INVALID_PLAN_TYPE", f"Unknown plan type: {plan_type!r}")

    def positive_int(key: str) -> Optional[int]:
        value = data.get(key)
        if value in (None, "", 0):
            return None
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ValidationError("INVALID_PLAN", f"{key} must be a whole number")
        if number < 1:
            raise ValidationError("INVALID_PLAN", f"{key} must be at least 1")
        return number

    duration_days = positive_int("duration_days")
    check_in_limit = positive_int("check_in_limit")

    if plan_type == "duration":
        if duration_days is None:
            raise ValidationError("DURATION_REQUIRED", "Duration plans need a duration in days")
        check_in_limit = None
    elif check_in_limit is None:
        raise ValidationError("CHECK_IN_LIMIT_REQUIRED", "Check-in plans need a check-in limit")

    return {
        "name": name,
        "description": (data.get("description") or "").strip() or None,
        "price": price,
        "duration_days": duration_days,
        "is_offer": 1 if data.get("is_offer") else 0,
        "plan_type": plan_type,
        "check_in_limit": check_in_limit,
    }


def create_plan(data: Dict[str, Any]) -> Dict[str, Any]:
    plan = _validate(data)
    plan_id = new_id()
    with get_conn() as conn:
        conn.execute(
            """
            INSERT INTO membership_plans (id, name, description, price, duration_days, is_offer,
                                          plan_type, check_in_limit)
            VALUES (:id, :name, :description, :price, :duration_days, :is_offer, :plan_type, :check_in_limit)
            """,
            {"id": plan_id, **plan},
        )
    logger.info("Plan %s created (%s)", plan_id, plan["name"])
    return {"id": plan_id, **plan, "is_offer": bool(plan["is_offer"])}


def update_plan(plan_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Updates a plan. Existing memberships keep the price and dates they were
    sold with; only new memberships see the change.
    """
    plan = _validate(data)
    with get_conn() as conn:
        updated = conn.execute(
            """
            UPDATE membership_plans
            SET name = :name, description = :description, price = :price, duration_days = :duration_days,
                is_offer = :is_offer, plan_type = :plan_type, check_in_limit = :check_in_limit
            WHERE id = :id
            """,
            {"id": plan_id, **plan},
        ).rowcount
    if not updated:
        raise NotFoundError("PLAN_NOT_FOUND", f"Plan {plan_id} not found")
    logger.info("Plan %s updated", plan_id)
    return {"id": plan_id, **plan, "is_offer": bool(plan["is_offer"])}


def delete_plan(plan_id: str) -> bool:
    """
    Deletes a plan that no membership references.

    Raises:
        ConflictError: PLAN_IN_USE when memberships were sold on this plan.
    """
    with get_conn() as conn:
        in_use = conn.execute(
            "SELECT COUNT(*) FROM memberships WHERE plan_id = ?", (plan_id,)
        ).fetchone()[0]
        if in_use:
            raise ConflictError("PLAN_IN_USE", f"Plan is used by {in_use} membership(s)")
        deleted = conn.execute("DELETE FROM membership_plans WHERE id = ?", (plan_id,)).rowcount

    if not deleted:
        raise NotFoundError("PLAN_NOT_FOUND", f"Plan {plan_id} not found")
    logger.info("Plan %s deleted", plan_id)
    return True
