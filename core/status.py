"""
Membership lifecycle and payment-state rules.

Every read path (member listing, membership listing, check-ins, dashboard,
reports, notifications) derives status through this module, either with the
Python functions or with the SQL fragments below, which are built from the
same constants.
"""
import datetime
from typing import Optional
import config
from core.utils import DateLike, money, parse_date, resolve_today

PAYMENT_UNPAID = "unpaid"
PAYMENT_PARTIAL = "partial"
PAYMENT_PAID = "paid"

STATUS_ACTIVE = "active"
STATUS_EXPIRING = "expiring"
STATUS_EXPIRED = "expired"

MEMBER_ACTIVE = "active"
MEMBER_EXPIRED = "expired"
MEMBER_INACTIVE = "inactive"

PRICE_MODIFIERS = ("multiplier", "discount", "custom")


# --- PAYMENTS ---

def payment_status(total_price, amount_paid) -> str:
    """
    Derives the payment state of a membership.
    A zero-price membership counts as paid.
    """
    total = money(total_price)
    paid = money(amount_paid)
    if paid >= total:
        return PAYMENT_PAID
    if paid > 0:
        return PAYMENT_PARTIAL
    return PAYMENT_UNPAID


def remaining_balance(total_price, amount_paid) -> float:
    return max(money(money(total_price) - money(amount_paid)), 0.0)


def apply_price_modifier(base_price, modifier_type: Optional[str], modifier_value) -> float:
    """
    Adjusts a plan price.

    multiplier: base * value (e.g. 3 months of a monthly plan)
    discount:   base minus value percent
    custom:     value replaces the price
    """
    base = money(base_price)
    if not modifier_type or modifier_value in (None, ""):
        return base

    value = float(modifier_value)
    if modifier_type == "multiplier":
        price = base * value
    elif modifier_type == "discount":
        price = base - (base * value) / 100
    elif modifier_type == "custom":
        price = value
    else:
        return base
    return max(money(price), 0.0)


# --- DATES ---

def compute_end_date(start_date: DateLike, duration_days: Optional[int]) -> datetime.date:
    """
    End date of a membership starting on start_date.
    Plans without a duration (check-in packs) get the default validity window.
    """
    days = duration_days if duration_days else config.CHECKIN_PLAN_DEFAULT_VALIDITY_DAYS
    return parse_date(start_date) + datetime.timedelta(days=int(days))


def ranges_overlap(a_start: DateLike, a_end: DateLike, b_start: DateLike, b_end: DateLike) -> bool:
    """Inclusive on both ends: a period ending on the 10th overlaps one starting on the 10th."""
    return parse_date(a_start) <= parse_date(b_end) and parse_date(a_end) >= parse_date(b_start)


def days_remaining(end_date: DateLike, today: Optional[DateLike] = None) -> int:
    """
    Calculates the number of days remaining until end_date.
    Negative once the date has passed.
    """
    return (parse_date(end_date) - resolve_today(today)).days


# --- LIFECYCLE ---

def membership_status(end_date: DateLike, remaining_check_ins: Optional[int] = None,
                      today: Optional[DateLike] = None) -> str:
    day = resolve_today(today)
    end = parse_date(end_date)

    if end < day:
        return STATUS_EXPIRED
    if remaining_check_ins is not None and remaining_check_ins <= 0:
        return STATUS_EXPIRED
    if end <= day + datetime.timedelta(days=config.EXPIRING_WINDOW_DAYS):
        return STATUS_EXPIRING
    return STATUS_ACTIVE


def is_current(status: str) -> bool:
    return status in (STATUS_ACTIVE, STATUS_EXPIRING)


def member_status(latest_end_date: Optional[DateLike], remaining_check_ins: Optional[int] = None,
                  today: Optional[DateLike] = None) -> str:
    """
    Status of a member from their latest membership (by end date).
    An expiring membership still makes the member active.
    """
    if not latest_end_date:
        return MEMBER_INACTIVE
    if is_current(membership_status(latest_end_date, remaining_check_ins, today)):
        return MEMBER_ACTIVE
    return MEMBER_EXPIRED


# --- SQL FRAGMENTS ---
# `alias` is the memberships table alias; the fragments expect a named
# parameter :today (ISO date) in the statement.

def sql_is_expired(alias: str = "ms") -> str:
    return (
        f"({alias}.end_date < :today OR "
        f"({alias}.remaining_check_ins IS NOT NULL AND {alias}.remaining_check_ins <= 0))"
    )


def sql_is_current(alias: str = "ms") -> str:
    return f"(NOT {sql_is_expired(alias)})"


def sql_is_expiring(alias: str = "ms") -> str:
    return (
        f"({sql_is_current(alias)} AND "
        f"{alias}.end_date <= date(:today, '+{int(config.EXPIRING_WINDOW_DAYS)} days'))"
    )


def sql_status(alias: str = "ms") -> str:
    return (
        f"CASE WHEN {sql_is_expired(alias)} THEN '{STATUS_EXPIRED}' "
        f"WHEN {sql_is_expiring(alias)} THEN '{STATUS_EXPIRING}' "
        f"ELSE '{STATUS_ACTIVE}' END"
    )


def sql_not_renewed(alias: str = "ms") -> str:
    """True when the member has no other membership ending after this one."""
    return (
        f"NOT EXISTS (SELECT 1 FROM memberships later "
        f"WHERE later.member_id = {alias}.member_id AND later.id != {alias}.id "
        f"AND later.end_date > {alias}.end_date)"
    )


def sql_latest_membership_id(member_ref: str = "m.id") -> str:
    """Subquery selecting the member's latest membership (by end date, then creation)."""
    return (
        f"(SELECT id FROM memberships WHERE member_id = {member_ref} "
        f"ORDER BY end_date DESC, created_at DESC LIMIT 1)"
    )


def sql_active_member_count() -> str:
    """Counts members whose latest membership is current (expects :today)."""
    return (
        f"SELECT COUNT(*) FROM members m "
        f"INNER JOIN memberships ms ON ms.id = {sql_latest_membership_id('m.id')} "
        f"WHERE {sql_is_current('ms')}"
    )
