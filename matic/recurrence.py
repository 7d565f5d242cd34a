"""Habit recurrence rules and the "is this due today" evaluation.

Habits persist their schedule in three columns for backward compatibility:
``frequency`` (``daily`` | ``weekly`` | ``custom``), ``frequency_days`` (a list
of weekday names) and ``frequency_data`` (a JSON blob written by the newer
schedule editor). Everything in here works on a single :class:`Recurrence`
value instead; ``recurrence_from_columns`` and ``recurrence_to_columns`` are
the only places that know about the stored shapes.

Nothing in this module raises for bad stored data. A schedule that cannot be
understood is simply never due.
"""

import json
import logging
from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable

logger = logging.getLogger(__name__)

DAILY = "daily"
WEEKLY = "weekly"
WEEKDAYS = "weekdays"
MONTHDAYS = "monthdays"
YEARDAYS = "yeardays"
REPEAT = "repeat"
UNKNOWN = "unknown"

# kind -> "type" value inside the stored frequency_data blob
BLOB_TYPES = {
    WEEKDAYS: "specific_weekdays",
    MONTHDAYS: "specific_monthdays",
    YEARDAYS: "specific_yeardays",
    REPEAT: "repeat",
}
KINDS_BY_BLOB_TYPE = {blob_type: kind for kind, blob_type in BLOB_TYPES.items()}

# Indexed by date.weekday(); always compared as lowercase English tokens.
WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Stored month-day value meaning "the last day of whatever month this is".
LAST_DAY_OF_MONTH = 32


@dataclass
class Recurrence:
    kind: str
    weekdays: list[str] = field(default_factory=list)
    monthdays: list[int] = field(default_factory=list)
    monthday_weekdays: dict[int, list[str]] = field(default_factory=dict)
    yeardays: list[str] = field(default_factory=list)
    interval: int | None = None
    # Stored for the schedule editor; they do not change due/not-due.
    flexible: bool = False
    alternate_days: bool = False


def weekday_name(day: date) -> str:
    return WEEKDAY_NAMES[day.weekday()]


def is_last_day_of_month(day: date) -> bool:
    return day.day == monthrange(day.year, day.month)[1]


def _clean_weekdays(values) -> list[str]:
    if not isinstance(values, (list, tuple)):
        return []
    cleaned = []
    for value in values:
        if not isinstance(value, str):
            continue
        token = value.strip().lower()
        if token in WEEKDAY_NAMES and token not in cleaned:
            cleaned.append(token)
    return cleaned


def _clean_monthdays(values) -> list[int]:
    if not isinstance(values, (list, tuple)):
        return []
    cleaned = []
    for value in values:
        try:
            number = int(value)
        except (TypeError, ValueError):
            continue
        if 1 <= number <= LAST_DAY_OF_MONTH and number not in cleaned:
            cleaned.append(number)
    return sorted(cleaned)


def _clean_monthday_weekdays(raw) -> dict[int, list[str]]:
    if not isinstance(raw, dict):
        return {}
    cleaned = {}
    for key, weekdays in raw.items():
        try:
            number = int(key)
        except (TypeError, ValueError):
            continue
        names = _clean_weekdays(weekdays)
        if names:
            cleaned[number] = names
    return cleaned


def _clean_yeardays(values) -> list[str]:
    if not isinstance(values, (list, tuple)):
        return []
    return [value.strip() for value in values if isinstance(value, str) and value.strip()]


def _as_interval(value) -> int | None:
    if value in (None, "") or isinstance(value, bool):
        return None
    try:
        interval = int(value)
    except (TypeError, ValueError):
        return None
    return interval if interval >= 1 else None


def _recurrence_from_blob(data: dict) -> Recurrence | None:
    raw_type = str(data.get("type") or "").strip().lower()
    kind = KINDS_BY_BLOB_TYPE.get(raw_type, raw_type)
    if kind == WEEKDAYS and data.get("weekdays") is not None:
        return Recurrence(WEEKDAYS, weekdays=_clean_weekdays(data.get("weekdays")))
    if kind == MONTHDAYS and data.get("monthdays") is not None:
        return Recurrence(
            MONTHDAYS,
            monthdays=_clean_monthdays(data.get("monthdays")),
            monthday_weekdays=_clean_monthday_weekdays(data.get("monthdaysWeekdays")),
        )
    if kind == YEARDAYS and data.get("yeardays") is not None:
        return Recurrence(YEARDAYS, yeardays=_clean_yeardays(data.get("yeardays")))
    if kind == REPEAT and data.get("repeatInterval"):
        return Recurrence(
            REPEAT,
            interval=_as_interval(data.get("repeatInterval")),
            flexible=bool(data.get("isFlexible")),
            alternate_days=bool(data.get("alternatedays")),
        )
    return None


def recurrence_from_columns(frequency, frequency_days=None, frequency_data=None) -> Recurrence:
    """Translate the stored habit columns into a :class:`Recurrence`."""
    freq = str(frequency or "").strip().lower()
    if freq == DAILY:
        return Recurrence(DAILY)
    if freq == WEEKLY:
        return Recurrence(WEEKLY)
    if freq != "custom":
        return Recurrence(UNKNOWN)

    if frequency_data:
        try:
            data = json.loads(frequency_data) if isinstance(frequency_data, str) else frequency_data
        except json.JSONDecodeError:
            logger.warning("Unparseable habit frequency_data: %r", frequency_data)
            data = None
        if isinstance(data, dict):
            parsed = _recurrence_from_blob(data)
            if parsed is not None:
                return parsed
            logger.info("Unrecognised frequency_data type %r, using frequency_days", data.get("type"))

    return Recurrence(WEEKDAYS, weekdays=_clean_weekdays(frequency_days))


def recurrence_to_columns(recurrence: Recurrence) -> tuple[str, list[str] | None, str | None]:
    """Return ``(frequency, frequency_days, frequency_data)`` for a recurrence."""
    if recurrence.kind == DAILY:
        return (DAILY, None, None)
    if recurrence.kind == WEEKLY:
        return (WEEKLY, None, None)
    if recurrence.kind == WEEKDAYS:
        weekdays = list(recurrence.weekdays)
        return ("custom", weekdays, json.dumps({"type": BLOB_TYPES[WEEKDAYS], "weekdays": weekdays}))
    if recurrence.kind == MONTHDAYS:
        blob = {"type": BLOB_TYPES[MONTHDAYS], "monthdays": list(recurrence.monthdays)}
        if recurrence.monthday_weekdays:
            blob["monthdaysWeekdays"] = {
                str(day): list(names) for day, names in sorted(recurrence.monthday_weekdays.items())
            }
        return ("custom", None, json.dumps(blob))
    if recurrence.kind == YEARDAYS:
        return ("custom", None, json.dumps({"type": BLOB_TYPES[YEARDAYS], "yeardays": list(recurrence.yeardays)}))
    if recurrence.kind == REPEAT:
        if _as_interval(recurrence.interval) is None:
            raise ValueError("Cannot store a repeat recurrence without an interval of at least 1.")
        blob = {
            "type": BLOB_TYPES[REPEAT],
            "repeatInterval": recurrence.interval,
            "isFlexible": recurrence.flexible,
            "alternatedays": recurrence.alternate_days,
        }
        return ("custom", None, json.dumps(blob))
    raise ValueError(f"Cannot store recurrence of kind {recurrence.kind!r}.")


def recurrence_from_payload(payload) -> Recurrence:
    """Build a recurrence from an API request body, rejecting anything unusable."""
    if not isinstance(payload, dict):
        raise ValueError("Recurrence must be an object with a 'type'.")

    raw_type = str(payload.get("type") or "").strip().lower()
    kind = KINDS_BY_BLOB_TYPE.get(raw_type, raw_type)
    if kind == DAILY:
        return Recurrence(DAILY)
    if kind == WEEKLY:
        return Recurrence(WEEKLY)
    if kind not in BLOB_TYPES:
        raise ValueError(f"Unknown recurrence type: {kind or '(empty)'}.")

    if kind == REPEAT and _as_interval(payload.get("repeatInterval")) is None:
        raise ValueError("repeatInterval must be a whole number of days (1 or more).")

    recurrence = _recurrence_from_blob(payload)
    if recurrence is None:
        raise ValueError(f"Recurrence type {kind} is missing its day list.")
    if kind == WEEKDAYS and not recurrence.weekdays:
        raise ValueError("Pick at least one weekday (monday..sunday).")
    if kind == MONTHDAYS and not recurrence.monthdays:
        raise ValueError("Pick at least one day of the month (1-31, or 32 for the last day).")
    if kind == YEARDAYS and not recurrence.yeardays:
        raise ValueError("Pick at least one date (YYYY-MM-DD or MM-DD).")
    return recurrence


def recurrence_to_payload(recurrence: Recurrence) -> dict:
    payload = {"type": recurrence.kind}
    if recurrence.kind == WEEKDAYS:
        payload["weekdays"] = list(recurrence.weekdays)
    elif recurrence.kind == MONTHDAYS:
        payload["monthdays"] = list(recurrence.monthdays)
        payload["monthdaysWeekdays"] = {str(k): v for k, v in recurrence.monthday_weekdays.items()}
    elif recurrence.kind == YEARDAYS:
        payload["yeardays"] = list(recurrence.yeardays)
    elif recurrence.kind == REPEAT:
        payload["repeatInterval"] = recurrence.interval
        payload["isFlexible"] = recurrence.flexible
        payload["alternatedays"] = recurrence.alternate_days
    return payload


def _monthday_matches(recurrence: Recurrence, day: date) -> bool:
    candidates = [day.day]
    if is_last_day_of_month(day):
        candidates.append(LAST_DAY_OF_MONTH)

    name = weekday_name(day)
    for candidate in candidates:
        if candidate not in recurrence.monthdays:
            continue
        required = recurrence.monthday_weekdays.get(candidate)
        if not required or name in required:
            return True
    return False


def _yearday_matches(recurrence: Recurrence, day: date) -> bool:
    full_date = day.isoformat()
    month_day = day.strftime("%m-%d")
    return any(entry == full_date or entry.endswith(month_day) for entry in recurrence.yeardays)


def is_habit_active(recurrence: Recurrence, start_date: date, end_date: date | None, day: date) -> bool:
    """Return True when a habit with this schedule is due on ``day``.

    The [start_date, end_date] window (both inclusive, end optional) is checked
    before the schedule itself.
    """
    if isinstance(day, datetime):
        day = day.date()
    if start_date is None or day < start_date:
        return False
    if end_date is not None and day > end_date:
        return False

    kind = recurrence.kind
    if kind == DAILY:
        return True
    if kind == WEEKDAYS:
        return weekday_name(day) in recurrence.weekdays
    if kind == MONTHDAYS:
        return _monthday_matches(recurrence, day)
    if kind == YEARDAYS:
        return _yearday_matches(recurrence, day)
    if kind == REPEAT:
        if not recurrence.interval or recurrence.interval < 1:
            return False
        return (day - start_date).days % recurrence.interval == 0
    if kind == WEEKLY:
        return day.weekday() == 0
    return False


def habit_recurrence(habit) -> Recurrence:
    return recurrence_from_columns(habit.frequency, habit.frequency_days, habit.frequency_data)


def apply_recurrence(habit, recurrence: Recurrence) -> None:
    habit.frequency, habit.frequency_days, habit.frequency_data = recurrence_to_columns(recurrence)


def habit_is_due(habit, day: date) -> bool:
    return is_habit_active(habit_recurrence(habit), habit.start_date, habit.end_date, day)


def habits_due_on(habits: Iterable, day: date) -> list:
    due = [habit for habit in habits if habit.is_active and habit_is_due(habit, day)]
    due.sort(key=lambda habit: habit.priority or 0, reverse=True)
    return due


def validate_task_variant(due_date: date | None, is_recurring: bool) -> None:
    if due_date is not None and is_recurring:
        raise ValueError("A task is either dated (due_date) or recurring every day, not both.")


def task_is_due(task, day: date) -> bool:
    if task.due_date is not None:
        return task.due_date == day
    return bool(task.is_recurring)


def tasks_due_on(tasks: Iterable, day: date) -> list:
    due = [task for task in tasks if task_is_due(task, day)]
    due.sort(key=lambda task: task.created_at or datetime.min, reverse=True)
    due.sort(key=lambda task: task.priority or 0, reverse=True)
    return due


def progress_state(progress) -> str:
    if progress is None or not progress.completed_value:
        return "none"
    if progress.is_completed:
        return "completed"
    return "cancelled"


def next_progress_state(progress, target_value: float) -> tuple[float, bool]:
    """Cycle none -> completed -> cancelled -> none; returns (value, is_completed)."""
    state = progress_state(progress)
    if state == "none":
        return (target_value, True)
    if state == "completed":
        return (target_value, False)
    return (0.0, False)


def week_days(anchor: date) -> list[date]:
    monday = anchor - timedelta(days=anchor.weekday())
    return [monday + timedelta(days=offset) for offset in range(7)]


def completion_percentage(
    recurrence: Recurrence,
    start_date: date,
    end_date: date | None,
    completed_days: set[date],
    today: date,
    days: list[date] | None = None,
) -> int:
    """Share of due days marked completed, as a whole percent.

    Habits with an end date are scored over every due day from the start date
    up to today (or the end date, whichever comes first). Open-ended habits are
    scored over ``days``, normally the current week.
    """
    if end_date is not None:
        last = min(today, end_date)
        span = []
        cursor = start_date
        while cursor <= last:
            span.append(cursor)
            cursor += timedelta(days=1)
    else:
        span = list(days if days is not None else week_days(today))

    due = [day for day in span if is_habit_active(recurrence, start_date, end_date, day)]
    if not due:
        return 0
    done = sum(1 for day in due if day in completed_days)
    return int((done * 100 / len(due)) + 0.5)
