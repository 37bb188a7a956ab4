import logging
import sqlite3
from typing import Any, Dict, Iterable, List, Optional
import config
from core import status
from core.database import get_conn
from core.errors import ConflictError, NotFoundError, ValidationError
from core.utils import DateLike, money, new_id, page_bounds, resolve_today, to_iso, total_pages
from models.membership import MembershipPayment
from services.settings_service import get_settings

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("scheduled", "pending")


def resolve_method(value: Optional[str]) -> str:
    method = value or get_settings().default_payment_method
    if method not in config.PAYMENT_METHODS:
        raise ValidationError("INVALID_PAYMENT_METHOD", f"Unknown payment method: {method!r}")
    return method


def _date(value: Optional[DateLike], today: Optional[DateLike] = None) -> str:
    try:
        return to_iso(value) or resolve_today(today).isoformat()
    except ValueError:
        raise ValidationError("INVALID_DATE", f"Invalid payment date: {value!r}")


def _amount(value: Any) -> float:
    try:
        amount = money(value)
    except (TypeError, ValueError):
        raise ValidationError("INVALID_AMOUNT", "Payment amount must be a number")
    if amount <= 0:
        raise ValidationError("INVALID_AMOUNT", "Payment amount must be greater than zero")
    return amount


# --- LEDGER PRIMITIVES (run inside the caller's transaction) ---

def record_payment(conn: sqlite3.Connection, membership_id: str, amount: float, payment_method: str,
                   payment_date: str, payment_status: str = "completed", notes: Optional[str] = None) -> str:
    payment_id = new_id()
    conn.execute(
        """
        INSERT INTO membership_payments (id, membership_id, amount, payment_method, payment_date,
                                         payment_status, notes)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (payment_id, membership_id, amount, payment_method, payment_date, payment_status, notes),
    )
    return payment_id


def schedule_payments(conn: sqlite3.Connection, membership_id: str, scheduled: Iterable[Dict[str, Any]],
                      balance: float, default_method: str) -> List[str]:
    """
    Adds future installments to a membership.

    Raises:
        ValidationError: INVALID_AMOUNT for a non-positive installment, or
                         SCHEDULE_EXCEEDS_BALANCE when the installments add up
                         to more than the outstanding balance.
    """
    entries = []
    for item in scheduled or []:
        entries.append((
            _amount(item.get("amount")),
            resolve_method(item.get("payment_method") or default_method),
            _date(item.get("payment_date")),
            item.get("notes"),
        ))

    if money(sum(entry[0] for entry in entries)) > money(balance):
        raise ValidationError("SCHEDULE_EXCEEDS_BALANCE", "Scheduled payments exceed the remaining balance")

    return [
        record_payment(conn, membership_id, amount, method, day, "scheduled", notes)
        for amount, method, day, notes in entries
    ]


def trim_scheduled(conn: sqlite3.Connection, membership_id: str, balance: float) -> None:
    """
    Shrinks open installments so they never add up to more than the balance.
    The latest installments give way first; an installment reduced to zero is dropped.
    """
    rows = conn.execute(
        f"""
        SELECT id, amount FROM membership_payments
        WHERE membership_id = ? AND payment_status IN {OPEN_STATUSES}
        ORDER BY payment_date DESC, created_at DESC, rowid DESC
        """,
        (membership_id,),
    ).fetchall()

    excess = money(sum(row["amount"] for row in rows) - balance)
    for row in rows:
        if excess <= 0:
            break
        if row["amount"] <= excess:
            conn.execute("DELETE FROM membership_payments WHERE id = ?", (row["id"],))
            excess = money(excess - row["amount"])
        else:
            conn.execute(
                "UPDATE membership_payments SET amount = ? WHERE id = ?",
                (money(row["amount"] - excess), row["id"]),
            )
            excess = 0


def reconcile(conn: sqlite3.Connection, membership_id: str) -> Dict[str, Any]:
    """
    Re-derives a membership's payment totals from its ledger.

    amount_paid is the sum of completed payments, the balance and status follow
    from the total price, and payment_date is the latest completed payment.
    """
    row = conn.execute(
        "SELECT total_price, payment_date FROM memberships WHERE id = ?", (membership_id,)
    ).fetchone()
    if not row:
        raise NotFoundError("MEMBERSHIP_NOT_FOUND", f"Membership {membership_id} not found")

    totals = conn.execute(
        """
        SELECT COALESCE(SUM(amount), 0) AS paid, MAX(payment_date) AS last_date
        FROM membership_payments
        WHERE membership_id = ? AND payment_status = 'completed'
        """,
        (membership_id,),
    ).fetchone()

    paid = money(totals["paid"])
    result = {
        "amount_paid": paid,
        "remaining_balance": status.remaining_balance(row["total_price"], paid),
        "payment_status": status.payment_status(row["total_price"], paid),
        "payment_date": totals["last_date"] or row["payment_date"],
    }
    conn.execute(
        """
        UPDATE memberships
        SET amount_paid = :amount_paid, remaining_balance = :remaining_balance,
            payment_status = :payment_status, payment_date = :payment_date
        WHERE id = :id
        """,
        {**result, "id": membership_id},
    )
    trim_scheduled(conn, membership_id, result["remaining_balance"])
    return result


# --- OPERATIONS ---

def get_payments(membership_id: str) -> List[Dict[str, Any]]:
    """Returns the payment history of a membership, oldest first."""
    with get_conn() as conn:
        rows = conn.execute(
            """
            SELECT * FROM membership_payments
            WHERE membership_id = ?
            ORDER BY payment_date ASC, created_at ASC, rowid ASC
            """,
            (membership_id,),
        ).fetchall()
    return [MembershipPayment.from_row(row).to_dict() for row in rows]


def add_payment(membership_id: str, amount: Any, payment_method: Optional[str] = None,
                payment_date: Optional[DateLike] = None, notes: Optional[str] = None,
                today: Optional[DateLike] = None) -> Dict[str, Any]:
    """
    Records money received against a membership's outstanding balance.

    Raises:
        NotFoundError: MEMBERSHIP_NOT_FOUND.
        ValidationError: INVALID_AMOUNT when the amount is not positive or exceeds the balance.
    """
    amount = _amount(amount)
    method = resolve_method(payment_method)
    day = _date(payment_date, today)

    with get_conn() as conn:
        row = conn.execute(
            "SELECT remaining_balance FROM memberships WHERE id = ?", (membership_id,)
        ).fetchone()
        if not row:
            raise NotFoundError("MEMBERSHIP_NOT_FOUND", f"Membership {membership_id} not found")
        if amount > money(row["remaining_balance"]):
            raise ValidationError(
                "INVALID_AMOUNT", f"Amount {amount} exceeds the remaining balance {row['remaining_balance']}"
            )

        payment_id = record_payment(conn, membership_id, amount, method, day, "completed", notes)
        result = reconcile(conn, membership_id)

    logger.info("Payment of %s recorded for membership %s", amount, membership_id)
    return {"payment_id": payment_id, "membership_id": membership_id, **result}


def complete_scheduled_payment(payment_id: str, membership_id: str, payment_date: Optional[DateLike] = None,
                               today: Optional[DateLike] = None) -> Dict[str, Any]:
    """
    Marks a scheduled (or pending) installment as received.

    Raises:
        NotFoundError: PAYMENT_NOT_FOUND if the payment does not belong to the membership.
        ConflictError: PAYMENT_NOT_SCHEDULED if it was already completed.
    """
    day = _date(payment_date, today)

    with get_conn() as conn:
        payment = conn.execute(
            "SELECT * FROM membership_payments WHERE id = ? AND membership_id = ?",
            (payment_id, membership_id),
        ).fetchone()
        if not payment:
            raise NotFoundError("PAYMENT_NOT_FOUND", f"Payment {payment_id} not found")
        if payment["payment_status"] not in OPEN_STATUSES:
            raise ConflictError("PAYMENT_NOT_SCHEDULED", "Payment is already completed")

        balance = conn.execute(
            "SELECT remaining_balance FROM memberships WHERE id = ?", (membership_id,)
        ).fetchone()["remaining_balance"]
        if payment["amount"] > money(balance):
            raise ValidationError("INVALID_AMOUNT", "Installment exceeds the remaining balance")

        conn.execute(
            "UPDATE membership_payments SET payment_status = 'completed', payment_date = ? WHERE id = ?",
            (day, payment_id),
        )
        result = reconcile(conn, membership_id)

    logger.info("Scheduled payment %s completed for membership %s", payment_id, membership_id)
    return {"payment_id": payment_id, "membership_id": membership_id, **result}


def get_overdue_payments(page: int = 1, today: Optional[DateLike] = None) -> Dict[str, Any]:
    """Open installments whose date has passed, oldest first."""
    day = resolve_today(today).isoformat()
    limit = config.PAGE_SIZES["payments"]
    page, offset = page_bounds(page, limit)

    base = f"""
        FROM membership_payments p
        INNER JOIN memberships ms ON ms.id = p.membership_id
        INNER JOIN members m ON m.id = ms.member_id
        WHERE p.payment_status IN {OPEN_STATUSES} AND p.payment_date < ?
    """
    with get_conn() as conn:
        total = conn.execute(f"SELECT COUNT(*) {base}", (day,)).fetchone()[0]
        rows = conn.execute(
            f"""
            SELECT p.*, m.id AS member_id, m.name AS member_name, m.phone AS member_phone
            {base}
            ORDER BY p.payment_date ASC
            LIMIT ? OFFSET ?
            """,
            (day, limit, offset),
        ).fetchall()

    data = []
    for row in rows:
        item = MembershipPayment.from_row(row).to_dict()
        item.update({
            "member_id": row["member_id"],
            "member_name": row["member_name"],
            "member_phone": row["member_phone"],
            "days_overdue": -status.days_remaining(row["payment_date"], day),
        })
        data.append(item)

    return {"data": data, "total": total, "page": page, "total_pages": total_pages(total, limit)}
