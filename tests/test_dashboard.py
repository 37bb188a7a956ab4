from services import attendance_service, dashboard_service, member_service, membership_service, report_service


def test_revenue_data(make_membership, make_plan, today):
    make_membership()
    make_membership(plan=make_plan(price=200), start_date="2024-02-20", payment_date="2024-02-20")
    # Scheduled money is not revenue yet
    make_membership(
        start_date="2024-03-01", payment_type="partial", amount_paid=50,
        scheduled_payments=[{"amount": 100, "payment_date": "2024-03-10"}],
    )

    data = dashboard_service.get_revenue_data(today)
    daily = data["daily_revenue"]

    assert len(daily) == 30
    assert daily[0]["date"] == "2024-02-15"
    assert daily[-1] == {"date": "2024-03-15", "revenue": 350.0}
    assert {"date": "2024-02-20", "revenue": 200.0} in daily
    assert {"date": "2024-03-10", "revenue": 0.0} in daily

    summary = data["summary"]
    assert summary["total_this_month"] == 350
    assert summary["total_last_month"] == 200
    assert summary["percentage_change"] == 75.0
    assert summary["average_daily"] == round(350 / 15, 1)
    assert summary["highest_day"] == {"date": "2024-03-15", "revenue": 350.0}


def test_revenue_change_without_last_month(make_membership, today):
    make_membership()
    assert dashboard_service.get_revenue_data(today)["summary"]["percentage_change"] == 0.0


def test_expiring_memberships_skip_renewed_members(make_member, make_membership, today):
    expiring = make_membership(start_date="2024-02-20", end_date="2024-03-20")
    renewed_member = make_member()
    make_membership(member=renewed_member, start_date="2024-02-21", end_date="2024-03-21")
    make_membership(member=renewed_member, start_date="2024-03-22")
    make_membership(payment_type="partial", amount_paid=100)
    make_membership(start_date="2024-01-01", end_date="2024-01-31")

    result = dashboard_service.get_expiring_memberships(today=today)
    assert result["total"] == 1
    assert [m["id"] for m in result["data"]] == [expiring["id"]]
    assert result["data"][0]["days_remaining"] == 5

    summary = dashboard_service.get_summary(today)
    assert summary == {
        "total_members": 4,
        "active_members": 3,
        "expiring_memberships": 1,
        "outstanding_balance": 200.0,
        "overdue_payments": 0,
    }


def test_prepaid_membership_is_active_everywhere(make_member, make_membership, today):
    member = make_member()
    make_membership(member=member, start_date="2024-03-20")
    make_member()

    assert dashboard_service.get_summary(today)["active_members"] == 1
    assert attendance_service.get_check_in_stats(today)["active_members"] == 1
    assert member_service.get_members(filters={"status": "active"}, today=today)["total"] == 1
    assert membership_service.get_memberships(filters={"status": "active"}, today=today)["total"] == 1
    assert report_service.generate_report("2024-03-01", "2024-03-15")["summary"]["active_members"] == 1
    assert member_service.get_member_by_id(member["id"], today)["status"] == "active"
