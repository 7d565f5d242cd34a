import json
import unittest
from datetime import date, datetime, timedelta
from types import SimpleNamespace

from matic.recurrence import (
    DAILY,
    MONTHDAYS,
    REPEAT,
    UNKNOWN,
    WEEKDAYS,
    WEEKLY,
    YEARDAYS,
    Recurrence,
    completion_percentage,
    habits_due_on,
    is_habit_active,
    next_progress_state,
    progress_state,
    recurrence_from_columns,
    recurrence_from_payload,
    recurrence_to_columns,
    tasks_due_on,
    validate_task_variant,
    week_days,
)


def _habit(name, frequency, frequency_days=None, frequency_data=None, start=date(2026, 1, 1), end=None, priority=0):
    return SimpleNamespace(
        name=name,
        frequency=frequency,
        frequency_days=frequency_days,
        frequency_data=frequency_data,
        start_date=start,
        end_date=end,
        is_active=True,
        priority=priority,
    )


class WindowGatingTestCase(unittest.TestCase):
    def test_days_outside_window_are_never_due(self):
        start = date(2026, 3, 10)
        end = date(2026, 3, 20)
        schedules = [
            Recurrence(DAILY),
            Recurrence(WEEKLY),
            Recurrence(WEEKDAYS, weekdays=["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]),
            Recurrence(MONTHDAYS, monthdays=list(range(1, 33))),
            Recurrence(YEARDAYS, yeardays=["03-09", "03-21", "2026-03-01"]),
            Recurrence(REPEAT, interval=1),
        ]
        for recurrence in schedules:
            for offset in range(1, 15):
                self.assertFalse(is_habit_active(recurrence, start, end, start - timedelta(days=offset)), recurrence.kind)
                self.assertFalse(is_habit_active(recurrence, start, end, end + timedelta(days=offset)), recurrence.kind)

    def test_window_bounds_are_inclusive(self):
        start = date(2026, 3, 10)
        end = date(2026, 3, 20)
        self.assertTrue(is_habit_active(Recurrence(DAILY), start, end, start))
        self.assertTrue(is_habit_active(Recurrence(DAILY), start, end, end))

    def test_missing_start_date_is_never_due(self):
        self.assertFalse(is_habit_active(Recurrence(DAILY), None, None, date(2026, 3, 10)))

    def test_datetime_is_compared_by_calendar_day(self):
        self.assertTrue(is_habit_active(Recurrence(DAILY), date(2026, 3, 10), None, datetime(2026, 3, 10, 23, 30)))


class RecurrenceKindsTestCase(unittest.TestCase):
    def test_daily_is_due_every_day_from_start(self):
        start = date(2024, 2, 27)
        for offset in range(0, 400):
            self.assertTrue(is_habit_active(Recurrence(DAILY), start, None, start + timedelta(days=offset)))

    def test_specific_weekdays(self):
        recurrence = Recurrence(WEEKDAYS, weekdays=["monday", "wednesday"])
        start = date(2026, 1, 5)
        for offset in range(0, 28):
            day = start + timedelta(days=offset)
            self.assertEqual(is_habit_active(recurrence, start, None, day), day.weekday() in (0, 2), day)

    def test_last_day_sentinel_handles_february(self):
        recurrence = Recurrence(MONTHDAYS, monthdays=[32])
        start = date(2023, 1, 1)
        self.assertTrue(is_habit_active(recurrence, start, None, date(2023, 2, 28)))
        self.assertTrue(is_habit_active(recurrence, start, None, date(2024, 2, 29)))
        self.assertFalse(is_habit_active(recurrence, start, None, date(2024, 2, 28)))
        self.assertTrue(is_habit_active(recurrence, start, None, date(2024, 4, 30)))
        self.assertTrue(is_habit_active(recurrence, start, None, date(2024, 12, 31)))
        self.assertFalse(is_habit_active(recurrence, start, None, date(2024, 12, 30)))

    def test_monthday_with_weekday_constraint(self):
        # The 13th, but only when it is a Friday.
        recurrence = Recurrence(MONTHDAYS, monthdays=[13], monthday_weekdays={13: ["friday"]})
        start = date(2026, 1, 1)
        self.assertTrue(is_habit_active(recurrence, start, None, date(2026, 2, 13)))
        self.assertFalse(is_habit_active(recurrence, start, None, date(2026, 1, 13)))

    def test_yeardays_match_full_date_or_month_day(self):
        recurrence = Recurrence(YEARDAYS, yeardays=["2026-07-04", "12-25"])
        start = date(2026, 1, 1)
        self.assertTrue(is_habit_active(recurrence, start, None, date(2026, 7, 4)))
        self.assertTrue(is_habit_active(recurrence, start, None, date(2026, 12, 25)))
        self.assertTrue(is_habit_active(recurrence, start, None, date(2027, 12, 25)))
        self.assertFalse(is_habit_active(recurrence, start, None, date(2026, 12, 24)))

    def test_repeat_every_three_days(self):
        start = date(2026, 5, 1)
        recurrence = Recurrence(REPEAT, interval=3)
        for offset in (0, 3, 6, 30):
            self.assertTrue(is_habit_active(recurrence, start, None, start + timedelta(days=offset)))
        for offset in (1, 2, 4, 5):
            self.assertFalse(is_habit_active(recurrence, start, None, start + timedelta(days=offset)))

    def test_repeat_flags_do_not_change_due_days(self):
        start = date(2026, 5, 1)
        plain = Recurrence(REPEAT, interval=2)
        flagged = Recurrence(REPEAT, interval=2, flexible=True, alternate_days=True)
        for offset in range(0, 10):
            day = start + timedelta(days=offset)
            self.assertEqual(is_habit_active(plain, start, None, day), is_habit_active(flagged, start, None, day))

    def test_weekly_is_due_on_mondays(self):
        start = date(2026, 1, 1)
        self.assertTrue(is_habit_active(Recurrence(WEEKLY), start, None, date(2026, 1, 5)))
        self.assertFalse(is_habit_active(Recurrence(WEEKLY), start, None, date(2026, 1, 6)))

    def test_unknown_kind_is_never_due(self):
        self.assertFalse(is_habit_active(Recurrence(UNKNOWN), date(2026, 1, 1), None, date(2026, 1, 5)))


class StoredColumnsTestCase(unittest.TestCase):
    def test_legacy_custom_uses_frequency_days(self):
        recurrence = recurrence_from_columns("custom", ["Tuesday", "friday", "funday"])
        self.assertEqual(recurrence.kind, WEEKDAYS)
        self.assertEqual(recurrence.weekdays, ["tuesday", "friday"])

    def test_blob_wins_over_legacy_columns(self):
        blob = json.dumps({"type": "specific_monthdays", "monthdays": [1, 32]})
        recurrence = recurrence_from_columns("custom", ["monday"], blob)
        self.assertEqual(recurrence.kind, MONTHDAYS)
        self.assertEqual(recurrence.monthdays, [1, 32])

    def test_unparseable_blob_falls_back_to_weekdays(self):
        recurrence = recurrence_from_columns("custom", ["monday"], "{not json")
        self.assertEqual(recurrence.kind, WEEKDAYS)
        self.assertEqual(recurrence.weekdays, ["monday"])

    def test_unrecognised_frequency_is_unknown(self):
        self.assertEqual(recurrence_from_columns("hourly").kind, UNKNOWN)
        self.assertEqual(recurrence_from_columns(None).kind, UNKNOWN)

    def test_written_columns_read_back_identically(self):
        schedules = [
            Recurrence(DAILY),
            Recurrence(WEEKLY),
            Recurrence(WEEKDAYS, weekdays=["monday", "sunday"]),
            Recurrence(MONTHDAYS, monthdays=[5, 32], monthday_weekdays={5: ["monday"]}),
            Recurrence(YEARDAYS, yeardays=["02-14"]),
            Recurrence(REPEAT, interval=4, flexible=True),
        ]
        for recurrence in schedules:
            self.assertEqual(recurrence_from_columns(*recurrence_to_columns(recurrence)), recurrence)

    def test_unknown_kind_cannot_be_written(self):
        with self.assertRaises(ValueError):
            recurrence_to_columns(Recurrence(UNKNOWN))

    def test_repeat_without_interval_cannot_be_written(self):
        for interval in (None, 0):
            with self.assertRaises(ValueError):
                recurrence_to_columns(Recurrence(REPEAT, interval=interval))


class PayloadTestCase(unittest.TestCase):
    def test_accepts_stored_type_names(self):
        recurrence = recurrence_from_payload({"type": "specific_weekdays", "weekdays": ["monday"]})
        self.assertEqual(recurrence.kind, WEEKDAYS)

    def test_rejects_bad_payloads(self):
        bad = [
            None,
            {"type": "fortnightly"},
            {"type": "weekdays", "weekdays": []},
            {"type": "monthdays", "monthdays": [40]},
            {"type": "repeat", "repeatInterval": 0},
            {"type": "yeardays"},
        ]
        for payload in bad:
            with self.assertRaises(ValueError, msg=str(payload)):
                recurrence_from_payload(payload)


class DueListsTestCase(unittest.TestCase):
    def test_due_list_on_wednesday(self):
        daily = _habit("Drink water", "daily")
        tuesday_only = _habit("Gym", "custom", ["tuesday"])
        wednesday = date(2026, 3, 11)
        self.assertEqual(wednesday.weekday(), 2)
        self.assertEqual([habit.name for habit in habits_due_on([daily, tuesday_only], wednesday)], ["Drink water"])

    def test_due_list_orders_by_priority(self):
        low = _habit("Low", "daily", priority=1)
        high = _habit("High", "daily", priority=5)
        inactive = _habit("Gone", "daily", priority=9)
        inactive.is_active = False
        names = [habit.name for habit in habits_due_on([low, high, inactive], date(2026, 3, 11))]
        self.assertEqual(names, ["High", "Low"])

    def test_tasks_due(self):
        day = date(2026, 3, 11)
        dated = SimpleNamespace(title="dated", due_date=day, is_recurring=False, priority=0, created_at=datetime(2026, 3, 1))
        other_day = SimpleNamespace(title="later", due_date=day + timedelta(days=1), is_recurring=False, priority=0, created_at=datetime(2026, 3, 2))
        recurring = SimpleNamespace(title="recurring", due_date=None, is_recurring=True, priority=3, created_at=datetime(2026, 3, 3))
        loose = SimpleNamespace(title="loose", due_date=None, is_recurring=False, priority=9, created_at=datetime(2026, 3, 4))
        titles = [task.title for task in tasks_due_on([dated, other_day, recurring, loose], day)]
        self.assertEqual(titles, ["recurring", "dated"])

    def test_task_cannot_be_dated_and_recurring(self):
        with self.assertRaises(ValueError):
            validate_task_variant(date(2026, 3, 11), True)
        validate_task_variant(None, True)
        validate_task_variant(date(2026, 3, 11), False)


class ProgressTestCase(unittest.TestCase):
    def test_toggle_cycles_through_three_states(self):
        progress = None
        seen = []
        for _ in range(3):
            value, completed = next_progress_state(progress, 2.0)
            progress = SimpleNamespace(completed_value=value, is_completed=completed)
            seen.append(progress_state(progress))
        self.assertEqual(seen, ["completed", "cancelled", "none"])

    def test_week_days_start_on_monday(self):
        days = week_days(date(2026, 3, 12))
        self.assertEqual(days[0], date(2026, 3, 9))
        self.assertEqual(days[-1], date(2026, 3, 15))

    def test_completion_percentage_for_open_ended_habit(self):
        recurrence = Recurrence(WEEKDAYS, weekdays=["monday", "wednesday", "friday"])
        days = week_days(date(2026, 3, 9))
        pct = completion_percentage(recurrence, date(2026, 1, 1), None, {date(2026, 3, 9), date(2026, 3, 11)}, date(2026, 3, 15), days)
        self.assertEqual(pct, 67)

    def test_completion_percentage_for_end_dated_habit(self):
        recurrence = Recurrence(DAILY)
        start = date(2026, 3, 1)
        completed = {start + timedelta(days=offset) for offset in range(5)}
        pct = completion_percentage(recurrence, start, date(2026, 3, 31), completed, today=date(2026, 3, 10))
        self.assertEqual(pct, 50)

    def test_completion_percentage_without_due_days(self):
        pct = completion_percentage(Recurrence(UNKNOWN), date(2026, 1, 1), None, set(), date(2026, 3, 10))
        self.assertEqual(pct, 0)


if __name__ == "__main__":
    unittest.main()
