"""
Request/response surface for the UI layer.

Every operation is reachable by a channel name ("<area>:<action>"). A channel
maps to a service function and the permission the calling account needs.
Business-rule failures come back as {"ok": False, "error": <code>, ...};
anything else is a bug and propagates to the caller.
"""
import dataclasses
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple
from core.errors import GymError
from services import (
    attendance_service,
    auth_service,
    dashboard_service,
    member_service,
    membership_service,
    notification_service,
    payment_service,
    plan_service,
    report_service,
    settings_service,
)

logger = logging.getLogger(__name__)

# channel -> (handler, required permission or None)
CHANNELS: Dict[str, Tuple[Callable[..., Any], Optional[str]]] = {
    # Members
    "members:get": (member_service.get_members, "members.view"),
    "members:get_all": (member_service.get_all_members, "members.view"),
    "members:get_by_id": (member_service.get_member_by_id, "members.view_details"),
    "members:get_by_phone": (member_service.get_member_by_phone, "checkins.view"),
    "members:create": (member_service.create_member, "members.create"),
    "members:update": (member_service.update_member, "members.edit"),
    "members:delete": (member_service.delete_member, "members.delete"),
    # Plans
    "plans:get": (plan_service.get_plans, "plans.view"),
    "plans:get_by_id": (plan_service.get_plan_by_id, "plans.view"),
    "plans:create": (plan_service.create_plan, "plans.create"),
    "plans:update": (plan_service.update_plan, "plans.edit"),
    "plans:delete": (plan_service.delete_plan, "plans.delete"),
    # Memberships
    "memberships:get": (membership_service.get_memberships, "memberships.view"),
    "memberships:get_by_id": (membership_service.get_membership_by_id, "memberships.view_details"),
    "memberships:create": (membership_service.create_membership, "memberships.create"),
    "memberships:update": (membership_service.update_membership, "memberships.edit"),
    "memberships:delete": (membership_service.delete_membership, "memberships.delete"),
    "memberships:renew": (membership_service.renew_membership, "memberships.extend"),
    "memberships:get_member_options": (membership_service.get_member_options, "memberships.create"),
    "memberships:get_plan_options": (plan_service.get_plan_options, "memberships.create"),
    # Payments
    "memberships:get_payments": (payment_service.get_payments, "memberships.view_payments"),
    "memberships:add_payment": (payment_service.add_payment, "memberships.add_payment"),
    "memberships:complete_payment": (payment_service.complete_scheduled_payment, "memberships.complete_payment"),
    "memberships:get_overdue_payments": (payment_service.get_overdue_payments, "memberships.view_payments"),
    # Check-ins
    "checkins:create": (attendance_service.create_check_in, "checkins.create"),
    "checkins:get_today": (attendance_service.get_today_check_in, "checkins.view"),
    "checkins:get": (attendance_service.get_check_ins, "checkins.view"),
    "checkins:get_stats": (attendance_service.get_check_in_stats, "checkins.view"),
    "checkins:get_member": (attendance_service.get_member_check_ins, "checkins.view"),
    "checkins:delete": (attendance_service.delete_check_in, "checkins.delete"),
    # Dashboard
    "dashboard:get_revenue_data": (dashboard_service.get_revenue_data, "dashboard.view_financial"),
    "dashboard:get_recent_check_ins": (attendance_service.get_recent_check_ins, None),
    "dashboard:get_expiring_memberships": (dashboard_service.get_expiring_memberships, None),
    "dashboard:get_summary": (dashboard_service.get_summary, None),
    # Reports
    "reports:generate": (report_service.generate_report, "reports.generate"),
    "reports:save": (report_service.save_report, "reports.save"),
    "reports:get_history": (report_service.get_report_history, "reports.view"),
    "reports:delete": (report_service.delete_report, "reports.delete"),
    # Accounts
    "accounts:get": (auth_service.get_accounts, "accounts.view"),
    "accounts:get_by_id": (auth_service.get_account_by_id, "accounts.view"),
    "accounts:create": (auth_service.create_account, "accounts.create"),
    "accounts:update": (auth_service.update_account, "accounts.edit"),
    "accounts:delete": (auth_service.delete_account, "accounts.delete"),
    "accounts:change_password": (auth_service.change_password, None),
    "accounts:reset_password": (auth_service.reset_password, "accounts.change_password"),
    "accounts:login": (auth_service.login, None),
    "accounts:has_permission": (auth_service.has_permission, None),
    "accounts:admin_exists": (auth_service.admin_exists, None),
    # Settings
    "settings:get": (settings_service.get_settings, None),
    "settings:update": (settings_service.update_settings, "settings.edit"),
    # Expiry reminders
    "notifications:get_due": (notification_service.get_due_notifications, "settings.manage_whatsapp"),
    "notifications:record": (notification_service.record_notification, "settings.manage_whatsapp"),
}


def channels() -> List[str]:
    return sorted(CHANNELS)


def _serialize(value: Any) -> Any:
    """Turns model dataclasses (and containers of them) into plain dicts."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    return value


def _error(code: str, message: str) -> Dict[str, Any]:
    return {"ok": False, "error": code, "message": message}


def dispatch(channel: str, *args: Any, actor_id: Optional[str] = None, **kwargs: Any) -> Dict[str, Any]:
    """
    Runs the handler registered for a channel.

    Args:
        channel (str): e.g. "memberships:add_payment".
        actor_id (str, optional): Account making the request. When given, the
                                  channel's permission is checked first.

    Returns:
        dict: {"ok": True, "data": ...} or {"ok": False, "error": code, "message": ...}.
    """
    entry = CHANNELS.get(channel)
    if entry is None:
        logger.warning("Unknown channel %r", channel)
        return _error("UNKNOWN_CHANNEL", f"No handler registered for {channel!r}")

    handler, permission = entry
    if actor_id is not None and permission and not auth_service.has_permission(actor_id, permission):
        logger.warning("Account %s denied %s (needs %s)", actor_id, channel, permission)
        return _error("PERMISSION_DENIED", f"Missing permission {permission}")

    try:
        result = handler(*args, **kwargs)
    except GymError as e:
        logger.warning("%s rejected: %s (%s)", channel, e.code, e)
        return _error(e.code, str(e))

    return {"ok": True, "data": _serialize(result)}
