import datetime
import math
import secrets
from typing import Optional, Tuple, Union

DateLike = Union[datetime.date, str]

DATE_FORMAT = "%Y-%m-%d"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def new_id() -> str:
    """Returns a random 16-character hex identifier for a new row."""
    return secrets.token_hex(8)


def parse_date(value: DateLike) -> datetime.date:
    """
    Converts an ISO date string (or a date/datetime) into a datetime.date.
    Raises ValueError on anything else.
    """
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str) and value.strip():
        # Accept full timestamps too, only the date part matters
        return datetime.datetime.strptime(value.strip()[:10], DATE_FORMAT).date()
    raise ValueError(f"Invalid date: {value!r}")


def to_iso(value: Optional[DateLike]) -> Optional[str]:
    if value is None or value == "":
        return None
    return parse_date(value).strftime(DATE_FORMAT)


def resolve_today(today: Optional[DateLike] = None) -> datetime.date:
    """Returns the given date, or the local calendar date if none was passed."""
    if today is None:
        return datetime.date.today()
    return parse_date(today)


def timestamp(moment: Optional[datetime.datetime] = None) -> str:
    """Local timestamp in the format stored by the database."""
    moment = moment or datetime.datetime.now()
    return moment.strftime(TIMESTAMP_FORMAT)


def start_of_week(day: datetime.date) -> datetime.date:
    """Monday of the week containing `day`."""
    return day - datetime.timedelta(days=day.weekday())


def money(value) -> float:
    """Rounds an amount to cents. None counts as zero."""
    return round(float(value or 0), 2)


def page_bounds(page: Optional[int], limit: int) -> Tuple[int, int]:
    """
    Normalizes a 1-based page number.

    Returns:
        Tuple[int, int]: (page, offset)
    """
    try:
        page = int(page or 1)
    except (TypeError, ValueError):
        page = 1
    page = max(page, 1)
    return page, (page - 1) * limit


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
