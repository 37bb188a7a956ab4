import datetime

import pytest

from core.errors import ConflictError, NotFoundError, ValidationError
from services import attendance_service, membership_service, payment_service


def test_full_payment_membership(make_membership):
    membership = make_membership()

    assert membership["start_date"] == "2024-03-15"
    assert membership["end_date"] == "2024-04-14"
    assert membership["total_price"] == 300
    assert membership["amount_paid"] == 300
    assert membership["remaining_balance"] == 0
    assert membership["payment_status"] == "paid"
    assert membership["payment_date"] == "2024-03-15"
    assert membership["status"] == "active"
    assert membership["days_remaining"] == 30

    payments = payment_service.get_payments(membership["id"])
    assert [(p["amount"], p["payment_status"]) for p in payments] == [(300, "completed")]


def test_partial_payment_with_schedule(make_membership):
    membership = make_membership(
        payment_type="partial",
        amount_paid=100,
        scheduled_payments=[{"amount": 100, "payment_date": "2024-04-01"}],
    )

    assert membership["payment_status"] == "partial"
    assert membership["amount_paid"] == 100
    assert membership["remaining_balance"] == 200
    statuses = sorted(p["payment_status"] for p in payment_service.get_payments(membership["id"]))
    assert statuses == ["completed", "scheduled"]


def test_unpaid_membership_has_no_payment_record(make_membership):
    membership = make_membership(payment_type="partial", amount_paid=0)

    assert membership["payment_status"] == "unpaid"
    assert membership["payment_date"] is None
    assert payment_service.get_payments(membership["id"]) == []


@pytest.mark.parametrize("overrides, code", [
    ({"payment_type": "partial", "amount_paid": 400}, "INVALID_AMOUNT"),
    ({"payment_type": "partial", "amount_paid": -1}, "INVALID_AMOUNT"),
    ({"payment_type": "partial", "amount_paid": 100,
      "scheduled_payments": [{"amount": 250, "payment_date": "2024-04-01"}]}, "SCHEDULE_EXCEEDS_BALANCE"),
    ({"start_date": "2024-03-15", "end_date": "2024-03-01"}, "INVALID_DATE_RANGE"),
    ({"payment_type": "installments"}, "INVALID_PAYMENT_TYPE"),
    ({"price_modifier_type": "bonus", "price_modifier_value": 2}, "INVALID_PRICE_MODIFIER"),
])
def test_create_membership_validation(make_membership, overrides, code):
    with pytest.raises(ValidationError) as exc:
        make_membership(**overrides)
    assert exc.value.code == code


def test_missing_member_or_plan(make_plan, make_member, today):
    plan = make_plan()
    with pytest.raises(NotFoundError):
        membership_service.create_membership({"member_id": "nope", "plan_id": plan["id"]}, today=today)
    with pytest.raises(ValidationError) as exc:
        membership_service.create_membership({"member_id": make_member()["id"]}, today=today)
    assert exc.value.code == "PLAN_REQUIRED"


def test_price_modifiers(make_membership):
    tripled = make_membership(price_modifier_type="multiplier", price_modifier_value=3)
    assert tripled["total_price"] == 900
    assert tripled["is_custom"] is True

    discounted = make_membership(price_modifier_type="discount", price_modifier_value=10)
    assert discounted["total_price"] == 270
    assert discounted["amount_paid"] == 270


def test_checkin_plan_seeds_quota(make_membership, make_plan):
    plan = make_plan(name="Visits", plan_type="checkin", duration_days=None, check_in_limit=12)
    membership = make_membership(plan=plan)

    assert membership["remaining_check_ins"] == 12
    assert membership["end_date"] == "2025-03-15"


def test_overlapping_dates_are_rejected(make_member, make_membership):
    member = make_member()
    make_membership(member=member)

    with pytest.raises(ConflictError) as exc:
        make_membership(member=member, start_date="2024-04-14")
    assert exc.value.code == "MEMBERSHIP_OVERLAP"

    follow_up = make_membership(member=member, start_date="2024-04-15")
    assert follow_up["start_date"] == "2024-04-15"


def test_update_membership(make_membership, make_plan, today):
    membership = make_membership(payment_type="partial", amount_paid=100)

    updated = membership_service.update_membership(
        membership["id"], {"price_modifier_type": "discount", "price_modifier_value": 50}, today=today
    )
    assert updated["total_price"] == 150
    assert updated["remaining_balance"] == 50
    assert updated["payment_status"] == "partial"

    with pytest.raises(ValidationError) as exc:
        membership_service.update_membership(
            membership["id"], {"price_modifier_type": "custom", "price_modifier_value": 50}, today=today
        )
    assert exc.value.code == "INVALID_AMOUNT"

    longer = make_plan(name="Two months", price=500, duration_days=60)
    moved = membership_service.update_membership(membership["id"], {"plan_id": longer["id"]}, today=today)
    # the 50% discount carries over to the new plan
    assert moved["end_date"] == "2024-05-14"
    assert moved["total_price"] == 250
    assert moved["remaining_balance"] == 150


def test_update_overlap_ignores_itself(make_member, make_membership, today):
    member = make_member()
    first = make_membership(member=member)
    make_membership(member=member, start_date="2024-05-01")

    shifted = membership_service.update_membership(first["id"], {"notes": "VIP"}, today=today)
    assert shifted["notes"] == "VIP"

    with pytest.raises(ConflictError):
        membership_service.update_membership(first["id"], {"end_date": "2024-05-10"}, today=today)


def test_switching_check_in_pack_resets_quota(make_membership, make_plan, today):
    five = make_plan(name="Five visits", price=150, plan_type="checkin", duration_days=None, check_in_limit=5)
    ten = make_plan(name="Ten visits", price=250, plan_type="checkin", duration_days=None, check_in_limit=10)
    membership = make_membership(plan=five)
    for day in (15, 16):
        attendance_service.create_check_in(membership["member_id"], now=datetime.datetime(2024, 3, day, 9, 0))
    assert membership_service.get_membership_by_id(membership["id"], today)["remaining_check_ins"] == 3

    upgraded = membership_service.update_membership(membership["id"], {"plan_id": ten["id"]}, today=today)

    assert upgraded["remaining_check_ins"] == 10
    assert upgraded["end_date"] == "2025-03-15"
    assert upgraded["total_price"] == 250
    assert upgraded["amount_paid"] == 150
    assert upgraded["remaining_balance"] == 100
    assert upgraded["payment_status"] == "partial"


def test_status_filters_are_exact(make_membership, today):
    make_membership()
    make_membership(start_date="2024-02-20", end_date="2024-03-20")
    make_membership(start_date="2024-01-01", end_date="2024-01-31")

    def total(lifecycle):
        return membership_service.get_memberships(filters={"status": lifecycle}, today=today)["total"]

    assert total("all") == 3
    assert total("active") == 2
    assert total("expiring") == 1
    assert total("expired") == 1

    with pytest.raises(ValidationError):
        total("frozen")


def test_renew_starts_after_latest_end(make_membership, today):
    current = make_membership(start_date="2024-03-01")
    renewed = membership_service.renew_membership(current["id"], today=today)

    assert renewed["member_id"] == current["member_id"]
    assert renewed["plan_id"] == current["plan_id"]
    assert renewed["start_date"] == "2024-04-01"
    assert renewed["end_date"] == "2024-05-01"


def test_renew_after_expiry_starts_today(make_membership, today):
    old = make_membership(start_date="2024-01-01")
    renewed = membership_service.renew_membership(old["id"], {"payment_type": "partial", "amount_paid": 0},
                                                  today=today)

    assert renewed["start_date"] == today.isoformat()
    assert renewed["payment_status"] == "unpaid"


def test_delete_membership_keeps_check_ins(make_membership):
    membership = make_membership()
    check_in = attendance_service.create_check_in(
        membership["member_id"], now=datetime.datetime(2024, 3, 15, 9, 0)
    )
    assert check_in["membership_id"] == membership["id"]

    assert membership_service.delete_membership(membership["id"]) is True
    history = attendance_service.get_member_check_ins(membership["member_id"])
    assert [c["membership_id"] for c in history] == [None]
    with pytest.raises(NotFoundError):
        membership_service.delete_membership(membership["id"])


def test_member_options(make_member):
    make_member(name="Zed")
    make_member(name="Amr")
    assert [m["name"] for m in membership_service.get_member_options()] == ["Amr", "Zed"]
