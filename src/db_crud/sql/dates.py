"""Calendar windows for the ``created_*`` helpers.

Windows are half-open ``[start, end)`` ranges computed in Python and bound as
parameters, so the same statement works on every dialect.
"""

from datetime import datetime, timedelta

from db_crud.errors import InvalidInput

PERIODS = ("day", "week", "month", "year")


def calendar_window(period: str, now: datetime) -> tuple[datetime, datetime]:
    """
    Start and end of the calendar period containing ``now``.

    Weeks are ISO weeks (Monday start).

    Raises:
        InvalidInput: If period is not one of day, week, month, year
    """
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period == "day":
        return midnight, midnight + timedelta(days=1)

    if period == "week":
        start = midnight - timedelta(days=midnight.weekday())
        return start, start + timedelta(days=7)

    if period == "month":
        start = midnight.replace(day=1)
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
        return start, end

    if period == "year":
        start = midnight.replace(month=1, day=1)
        return start, start.replace(year=start.year + 1)

    raise InvalidInput(f"Unsupported calendar period: {period!r}")
