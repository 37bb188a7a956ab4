import sqlite3
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

PAYMENT_RECORD_STATUSES = ("completed", "scheduled", "pending")


@dataclass
class Membership:
    """
    A time-bounded subscription of a member to a plan, with its payment totals.
    amount_paid, remaining_balance and payment_status mirror the payment ledger.
    """
    id: str
    member_id: str
    plan_id: str
    start_date: str
    end_date: str
    total_price: float
    amount_paid: float
    remaining_balance: float
    payment_status: str
    payment_method: str
    payment_date: Optional[str] = None
    remaining_check_ins: Optional[int] = None
    is_custom: bool = False
    price_modifier_type: Optional[str] = None
    price_modifier_value: Optional[float] = None
    custom_price_name: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Membership":
        return cls(
            id=row["id"],
            member_id=row["member_id"],
            plan_id=row["plan_id"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            total_price=row["total_price"],
            amount_paid=row["amount_paid"],
            remaining_balance=row["remaining_balance"],
            payment_status=row["payment_status"],
            payment_method=row["payment_method"],
            payment_date=row["payment_date"],
            remaining_check_ins=row["remaining_check_ins"],
            is_custom=bool(row["is_custom"]),
            price_modifier_type=row["price_modifier_type"],
            price_modifier_value=row["price_modifier_value"],
            custom_price_name=row["custom_price_name"],
            notes=row["notes"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MembershipPayment:
    """One entry of a membership's payment ledger."""
    id: str
    membership_id: str
    amount: float
    payment_method: str
    payment_date: str
    payment_status: str  # 'completed', 'scheduled' or 'pending'
    notes: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "MembershipPayment":
        return cls(
            id=row["id"],
            membership_id=row["membership_id"],
            amount=row["amount"],
            payment_method=row["payment_method"],
            payment_date=row["payment_date"],
            payment_status=row["payment_status"],
            notes=row["notes"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
