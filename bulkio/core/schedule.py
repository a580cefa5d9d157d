"""
Schedule resolution for scheduled exports.

A schedule is either a preset (daily, weekly, monthly) or a standard
5-field crontab expression, evaluated in ``settings.SCHEDULE_TIMEZONE``.
Timestamps in and out are naive UTC, like every stored DateTime.

Crontab semantics differ from APScheduler's ``CronTrigger`` in two places,
both handled here: day-of-week numbering (crontab 0 and 7 are Sunday and
steps count from Sunday) and the day-of-month / day-of-week rule (when
both fields are restricted, a day matching either one fires).
"""
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger

from bulkio.core.config import settings
from bulkio.core.exceptions import InvalidScheduleError
from bulkio.transform.normalizers import NormalizeError, normalize_email

PRESETS = {
    "daily": "0 0 * * *",
    "weekly": "0 0 * * sun",
    "monthly": "0 0 1 * *",
}

# Crontab order: index is the crontab weekday number
_DOW_NAMES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]


def _weekday_number(token: str, schedule: str) -> int:
    value = token.strip().lower()
    if value in _DOW_NAMES:
        return _DOW_NAMES.index(value)
    if value.isdigit() and int(value) <= 7:
        return int(value)
    raise InvalidScheduleError(f"Invalid schedule '{schedule}': bad day of week '{token}'")


def expand_day_of_week(field: str, schedule: str = "") -> List[str]:
    """
    Expand a crontab day-of-week field to weekday names, Sunday first.

    Supports ``*``, numbers 0-7, names, lists, ranges and steps. 0 and 7
    both mean Sunday; ``*/2`` is Sunday, Tuesday, Thursday, Saturday.

    Raises:
        InvalidScheduleError: Malformed field or inverted range
    """
    schedule = schedule or field
    days = set()
    for part in field.split(","):
        base, has_step, step_text = part.partition("/")
        step = 1
        if has_step:
            if not step_text.isdigit() or int(step_text) == 0:
                raise InvalidScheduleError(f"Invalid schedule '{schedule}': bad step '{part}'")
            step = int(step_text)

        if base == "*":
            start, end = 0, 6
        elif "-" in base:
            low, high = base.split("-", 1)
            start, end = _weekday_number(low, schedule), _weekday_number(high, schedule)
            if start > end:
                raise InvalidScheduleError(f"Invalid schedule '{schedule}': inverted range '{base}'")
        else:
            start = _weekday_number(base, schedule)
            # "n/step" runs from n to the end of the week
            end = max(start, 6) if has_step else start

        for number in range(start, end + 1, step):
            days.add(number % 7)

    return [_DOW_NAMES[number] for number in sorted(days)]


def resolve_cron(schedule: str) -> str:
    """
    Map a schedule to its crontab expression.

    Raises:
        InvalidScheduleError: Not a preset and not five whitespace-separated fields
    """
    if not schedule or not schedule.strip():
        raise InvalidScheduleError("Schedule is empty")

    value = schedule.strip()
    preset = PRESETS.get(value.lower())
    if preset:
        return preset

    parts = value.split()
    if len(parts) != 5:
        raise InvalidScheduleError(
            f"Invalid schedule '{schedule}': expected daily, weekly, monthly or a 5-field cron expression"
        )
    return value


def build_trigger(schedule: str, tz: Optional[str] = None) -> BaseTrigger:
    """
    Trigger firing exactly when the crontab expression would.

    Raises:
        InvalidScheduleError: A field is malformed or out of range
    """
    minute, hour, day, month, day_of_week = resolve_cron(schedule).split()
    weekdays = ",".join(expand_day_of_week(day_of_week, schedule))
    tz = tz or settings.SCHEDULE_TIMEZONE

    def cron(day_field: str, weekday_field: str) -> CronTrigger:
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day_field,
            month=month,
            day_of_week=weekday_field,
            timezone=tz,
        )

    try:
        if day.startswith("*") or day_of_week.startswith("*"):
            return cron(day, weekdays)
        # Both restricted: day of month OR day of week
        return OrTrigger([cron(day, "*"), cron("*", weekdays)])
    except (ValueError, TypeError) as e:
        raise InvalidScheduleError(f"Invalid schedule '{schedule}': {e}")


def next_run_at(schedule: str, after: datetime, tz: Optional[str] = None) -> datetime:
    """
    First fire time strictly after ``after``.

    Raises:
        InvalidScheduleError: The schedule is invalid or never fires
    """
    trigger = build_trigger(schedule, tz)
    start = after.replace(tzinfo=timezone.utc) if after.tzinfo is None else after
    fire_time = trigger.get_next_fire_time(None, start + timedelta(microseconds=1))
    if fire_time is None:
        raise InvalidScheduleError(f"Schedule '{schedule}' never fires")
    return fire_time.astimezone(timezone.utc).replace(tzinfo=None)


def normalize_recipients(recipients: Iterable[str]) -> List[str]:
    """
    Validate and normalize recipient addresses, dropping duplicates.

    Raises:
        InvalidScheduleError: No recipients, or any address is invalid
    """
    result: List[str] = []
    invalid: List[str] = []
    for raw in recipients or []:
        if raw is None or not str(raw).strip():
            continue
        try:
            email = normalize_email(str(raw))
        except NormalizeError:
            invalid.append(str(raw))
            continue
        if email not in result:
            result.append(email)

    if invalid:
        raise InvalidScheduleError(f"Invalid recipient email(s): {', '.join(invalid)}")
    if not result:
        raise InvalidScheduleError("At least one recipient email is required")
    return result


def validate_schedule(schedule: str, now: datetime) -> datetime:
    """Check a schedule and return its first run time after ``now``."""
    return next_run_at(schedule, now)
