import calendar
import datetime

__all__ = ["format_db_timestamp", "parse_db_timestamp", "format_month_name"]

# Fixed width so that text ordering in SQL matches chronological ordering.
DB_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def format_db_timestamp(value: datetime.datetime) -> str:
    """Formats a datetime as the UTC text stored in the database."""
    return value.astimezone(datetime.timezone.utc).strftime(DB_TIMESTAMP_FORMAT)


def parse_db_timestamp(value: str | datetime.datetime) -> datetime.datetime:
    """Parses stored UTC text (or SQLite's CURRENT_TIMESTAMP) into an aware datetime."""
    dt = value if isinstance(value, datetime.datetime) else datetime.datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt


def format_month_name(month: int) -> str:
    """Returns the locale's full month name, e.g. "March" for 3."""
    return calendar.month_name[month]
