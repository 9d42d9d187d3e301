from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

from sqlalchemy import select

from tests.db_support import PALMA_OFFICE, local_dt, make_session_factory, seed_employee
from workforce.models import (
    AnomalyEntityType,
    AnomalyEvent,
    AnomalyStatus,
    Expense,
    ExpenseStatus,
    TimeEntry,
    TimeEntryType,
    Vacation,
    VacationStatus,
    VacationType,
)
from workforce.services.anomaly_detection import (
    Reason,
    aggregate_score,
    detect_expense,
    detect_time_entry,
    detect_vacation,
    median_minutes,
    upsert_anomaly,
)

# Wednesday, 2026-03-04 12:00 local.
NOW = local_dt(2026, 3, 4, 12, 0)


def _codes(reasons: list[Reason]) -> list[str]:
    return [reason.code for reason in reasons]


class ScoreTests(unittest.TestCase):
    def test_aggregate_score_is_capped(self) -> None:
        reasons = [
            Reason(code="A", message="a", score=20),
            Reason(code="B", message="b", score=30),
            Reason(code="C", message="c", score=60),
        ]
        self.assertEqual(aggregate_score(reasons), 100)

    def test_aggregate_score_sums_below_cap(self) -> None:
        self.assertEqual(aggregate_score([]), 0)
        self.assertEqual(
            aggregate_score([Reason("A", "a", 15), Reason("B", "b", 25)]),
            40,
        )

    def test_median_minutes(self) -> None:
        self.assertEqual(median_minutes([]), 0)
        self.assertEqual(median_minutes([600, 540, 560]), 560)
        self.assertEqual(median_minutes([540, 541]), 541)

    def test_reason_to_dict(self) -> None:
        self.assertEqual(
            Reason(code="OFF_HOURS", message="late", score=20).to_dict(),
            {"code": "OFF_HOURS", "message": "late", "score": 20},
        )


class _SqliteTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.db = self.session_factory()
        self.employee = seed_employee(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def _events(self) -> list[AnomalyEvent]:
        self.db.expire_all()
        return list(self.db.scalars(select(AnomalyEvent).order_by(AnomalyEvent.id)).all())

    def _clock(
        self,
        entry_type: TimeEntryType,
        timestamp: datetime,
        *,
        latitude: float | None = None,
        longitude: float | None = None,
        employee_id: int | None = None,
    ) -> TimeEntry:
        entry = TimeEntry(
            employee_id=employee_id or self.employee.id,
            type=entry_type,
            timestamp=timestamp,
            latitude=latitude,
            longitude=longitude,
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry


class UpsertAnomalyTests(_SqliteTestCase):
    def test_empty_reasons_do_not_touch_the_store(self) -> None:
        db = MagicMock()
        upsert_anomaly(db, AnomalyEntityType.EXPENSE, 1, 2, [])
        db.execute.assert_not_called()
        db.commit.assert_not_called()

    def test_single_row_per_entity_with_status_reset(self) -> None:
        upsert_anomaly(
            self.db,
            AnomalyEntityType.TIME_ENTRY,
            42,
            self.employee.id,
            [Reason("OFF_HOURS", "late", 20)],
            reset_status=True,
        )
        first = self._events()
        self.assertEqual(len(first), 1)
        self.assertEqual(first[0].score, 20)
        self.assertEqual(first[0].status, AnomalyStatus.OPEN)

        first[0].status = AnomalyStatus.RESOLVED
        self.db.commit()

        upsert_anomaly(
            self.db,
            AnomalyEntityType.TIME_ENTRY,
            42,
            self.employee.id,
            [Reason("OFF_HOURS", "late", 20), Reason("DUPLICATE_ENTRY", "dup", 15)],
            reset_status=True,
        )
        events = self._events()
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].id, first[0].id)
        self.assertEqual(events[0].score, 35)
        self.assertEqual([item["code"] for item in events[0].reasons], ["OFF_HOURS", "DUPLICATE_ENTRY"])
        self.assertEqual(events[0].status, AnomalyStatus.OPEN)

    def test_reviewer_status_survives_when_reset_disabled(self) -> None:
        upsert_anomaly(
            self.db,
            AnomalyEntityType.EXPENSE,
            7,
            self.employee.id,
            [Reason("WEEKEND_EXPENSE", "weekend", 10)],
        )
        event = self._events()[0]
        event.status = AnomalyStatus.FALSE_POSITIVE
        self.db.commit()

        upsert_anomaly(
            self.db,
            AnomalyEntityType.EXPENSE,
            7,
            None,
            [Reason("AMOUNT_OUTLIER", "high", 25)],
            reset_status=False,
        )
        events = self._events()
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].status, AnomalyStatus.FALSE_POSITIVE)
        self.assertEqual(events[0].score, 25)
        # A missing employee id never erases the stored one.
        self.assertEqual(events[0].employee_id, self.employee.id)

    def test_same_id_different_entity_types_are_separate(self) -> None:
        upsert_anomaly(self.db, AnomalyEntityType.EXPENSE, 5, self.employee.id, [Reason("A", "a", 10)])
        upsert_anomaly(self.db, AnomalyEntityType.VACATION, 5, self.employee.id, [Reason("B", "b", 15)])
        self.assertEqual(len(self._events()), 2)


class TimeEntryDetectionTests(_SqliteTestCase):
    def test_off_hours_boundaries(self) -> None:
        cases = [
            ((4, 59), True),
            ((5, 0), False),
            ((22, 59), False),
            ((23, 0), True),
        ]
        for (hour, minute), expected in cases:
            with self.subTest(hour=hour, minute=minute):
                employee = seed_employee(self.db, full_name=f"Worker {hour}{minute}", office=None)
                entry = self._clock(
                    TimeEntryType.IN,
                    local_dt(2026, 3, 4, hour, minute),
                    employee_id=employee.id,
                )
                reasons = detect_time_entry(self.db, entry, now_utc=NOW)
                self.assertEqual("OFF_HOURS" in _codes(reasons), expected)

    def test_duplicate_clock_in_within_thirty_minutes(self) -> None:
        self._clock(TimeEntryType.IN, local_dt(2026, 3, 4, 9, 0))
        second = self._clock(TimeEntryType.IN, local_dt(2026, 3, 4, 9, 15))

        reasons = detect_time_entry(self.db, second, now_utc=NOW)

        self.assertEqual(_codes(reasons), ["DUPLICATE_ENTRY"])
        events = self._events()
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].entity_type, AnomalyEntityType.TIME_ENTRY)
        self.assertEqual(events[0].entity_id, second.id)
        self.assertEqual(events[0].employee_id, self.employee.id)
        self.assertEqual(events[0].score, 15)

    def test_different_type_is_not_duplicate(self) -> None:
        self._clock(TimeEntryType.IN, local_dt(2026, 3, 4, 9, 0))
        out = self._clock(TimeEntryType.OUT, local_dt(2026, 3, 4, 9, 15))

        self.assertEqual(detect_time_entry(self.db, out, now_utc=NOW), [])
        self.assertEqual(self._events(), [])

    def test_clock_in_out_of_weekday_pattern(self) -> None:
        for day in (date(2026, 1, 28), date(2026, 2, 4), date(2026, 2, 11), date(2026, 2, 18), date(2026, 2, 25)):
            self._clock(TimeEntryType.IN, local_dt(day.year, day.month, day.day, 9, 0))
        late = self._clock(TimeEntryType.IN, local_dt(2026, 3, 4, 13, 0))

        reasons = detect_time_entry(self.db, late, now_utc=local_dt(2026, 3, 4, 13, 0))

        self.assertEqual(_codes(reasons), ["OUT_OF_PATTERN"])

    def test_pattern_needs_enough_history(self) -> None:
        for day in (date(2026, 2, 18), date(2026, 2, 25)):
            self._clock(TimeEntryType.IN, local_dt(day.year, day.month, day.day, 9, 0))
        late = self._clock(TimeEntryType.IN, local_dt(2026, 3, 4, 13, 0))

        self.assertEqual(detect_time_entry(self.db, late, now_utc=local_dt(2026, 3, 4, 13, 0)), [])

    def test_clock_outside_geofence(self) -> None:
        entry = self._clock(
            TimeEntryType.IN,
            local_dt(2026, 3, 4, 9, 0),
            latitude=39.60,
            longitude=2.65,
        )

        reasons = detect_time_entry(self.db, entry, now_utc=NOW)

        self.assertEqual(_codes(reasons), ["GEOFENCE"])
        self.assertIn("> 100m", reasons[0].message)
        self.assertEqual(self._events()[0].score, 25)

    def test_clock_at_office_has_no_geofence_reason(self) -> None:
        entry = self._clock(
            TimeEntryType.OUT,
            local_dt(2026, 3, 4, 17, 0),
            latitude=PALMA_OFFICE[0],
            longitude=PALMA_OFFICE[1],
        )
        self.assertEqual(detect_time_entry(self.db, entry, now_utc=NOW), [])

    def test_detector_failure_is_swallowed(self) -> None:
        db = MagicMock()
        db.scalar.side_effect = RuntimeError("db unavailable")
        entry = SimpleNamespace(
            id=7,
            employee_id=3,
            type=TimeEntryType.IN,
            timestamp=datetime(2026, 3, 4, 8, 0, tzinfo=timezone.utc),
            latitude=None,
            longitude=None,
        )

        with self.assertLogs("workforce.anomaly", level="ERROR") as captured:
            reasons = detect_time_entry(db, entry, now_utc=NOW)

        self.assertEqual(reasons, [])
        db.rollback.assert_called_once()
        self.assertIn("anomaly_detection_failed", captured.output[0])


class ExpenseDetectionTests(_SqliteTestCase):
    def _expense(self, amount: float, expense_date: date, category: str = "TRANSPORT") -> Expense:
        expense = Expense(
            employee_id=self.employee.id,
            amount=amount,
            expense_date=expense_date,
            category=category,
            status=ExpenseStatus.PENDING,
        )
        self.db.add(expense)
        self.db.commit()
        self.db.refresh(expense)
        return expense

    def test_amount_outlier_against_category_average(self) -> None:
        for amount, day in ((40.0, 2), (50.0, 10), (60.0, 18), (50.0, 26)):
            self._expense(amount, date(2026, 2, day))
        self._expense(900.0, date(2026, 2, 20), category="HOTEL")
        expense = self._expense(150.0, date(2026, 3, 4))

        reasons = detect_expense(self.db, expense, now_utc=NOW)

        self.assertEqual(_codes(reasons), ["AMOUNT_OUTLIER"])
        self.assertIn("100.00", reasons[0].message)
        self.assertEqual(self._events()[0].entity_type, AnomalyEntityType.EXPENSE)

    def test_detector_failure_is_swallowed(self) -> None:
        db = MagicMock()
        db.scalar.side_effect = RuntimeError("db unavailable")
        db.execute.side_effect = RuntimeError("db unavailable")
        expense = SimpleNamespace(
            id=11,
            employee_id=3,
            amount=150.0,
            expense_date=date(2026, 3, 7),
            category="TRANSPORT",
        )

        with self.assertLogs("workforce.anomaly", level="ERROR") as captured:
            reasons = detect_expense(db, expense, now_utc=NOW)

        self.assertEqual(reasons, [])
        db.rollback.assert_called_once()
        self.assertIn("anomaly_detection_failed", captured.output[0])

    def test_ordinary_amount_is_not_flagged(self) -> None:
        for amount, day in ((40.0, 2), (50.0, 10), (60.0, 18)):
            self._expense(amount, date(2026, 2, day))
        expense = self._expense(55.0, date(2026, 3, 4))

        self.assertEqual(detect_expense(self.db, expense, now_utc=NOW), [])
        self.assertEqual(self._events(), [])

    def test_flat_threshold_without_history(self) -> None:
        self._expense(20.0, date(2026, 2, 10))
        below = self._expense(499.99, date(2026, 3, 3))
        at_threshold = self._expense(500.0, date(2026, 3, 4))

        self.assertEqual(detect_expense(self.db, below, now_utc=NOW), [])
        self.assertEqual(_codes(detect_expense(self.db, at_threshold, now_utc=NOW)), ["AMOUNT_OUTLIER"])

    def test_weekend_duplicate(self) -> None:
        self._expense(30.0, date(2026, 2, 28))
        duplicate = self._expense(30.0, date(2026, 2, 28))

        reasons = detect_expense(self.db, duplicate, now_utc=NOW)

        self.assertEqual(_codes(reasons), ["WEEKEND_EXPENSE", "DUPLICATE_EXPENSE"])
        self.assertEqual(self._events()[0].score, 30)


class VacationDetectionTests(_SqliteTestCase):
    def _vacation(
        self,
        start: date,
        end: date,
        *,
        days: int,
        status: VacationStatus = VacationStatus.PENDING,
    ) -> Vacation:
        vacation = Vacation(
            employee_id=self.employee.id,
            start_date=start,
            end_date=end,
            type=VacationType.VACATION,
            status=status,
            days=days,
        )
        self.db.add(vacation)
        self.db.commit()
        self.db.refresh(vacation)
        return vacation

    def test_long_absence(self) -> None:
        vacation = self._vacation(date(2026, 4, 14), date(2026, 4, 29), days=12)

        reasons = detect_vacation(self.db, vacation, now_utc=NOW)

        self.assertEqual(_codes(reasons), ["LONG_ABSENCE"])
        self.assertEqual(self._events()[0].score, 15)

    def test_ten_days_is_not_long(self) -> None:
        vacation = self._vacation(date(2026, 4, 14), date(2026, 4, 27), days=10)
        self.assertEqual(detect_vacation(self.db, vacation, now_utc=NOW), [])

    def test_friday_pattern_counts_rejected_requests(self) -> None:
        self._vacation(date(2026, 2, 2), date(2026, 2, 2), days=1)
        self._vacation(date(2026, 2, 13), date(2026, 2, 13), days=1)
        self._vacation(date(2026, 2, 20), date(2026, 2, 20), days=1, status=VacationStatus.REJECTED)
        friday = self._vacation(date(2026, 3, 6), date(2026, 3, 6), days=1)

        reasons = detect_vacation(self.db, friday, now_utc=NOW)

        self.assertEqual(_codes(reasons), ["PATTERN_MF"])

    def test_frequent_absence(self) -> None:
        self._vacation(date(2026, 2, 2), date(2026, 2, 2), days=1)
        self._vacation(date(2026, 2, 13), date(2026, 2, 13), days=1)
        self._vacation(date(2026, 2, 20), date(2026, 2, 20), days=1, status=VacationStatus.APPROVED)
        friday = self._vacation(date(2026, 3, 6), date(2026, 3, 6), days=1)

        reasons = detect_vacation(self.db, friday, now_utc=NOW)

        self.assertEqual(_codes(reasons), ["PATTERN_MF", "FREQUENT_ABSENCE"])
        self.assertEqual(self._events()[0].score, 40)

    def test_detector_failure_is_swallowed(self) -> None:
        db = MagicMock()
        db.scalar.side_effect = RuntimeError("db unavailable")
        vacation = SimpleNamespace(
            id=21,
            employee_id=3,
            start_date=date(2026, 3, 6),
            end_date=date(2026, 3, 6),
            status=VacationStatus.PENDING,
            days=1,
        )

        with self.assertLogs("workforce.anomaly", level="ERROR") as captured:
            reasons = detect_vacation(db, vacation, now_utc=NOW)

        self.assertEqual(reasons, [])
        db.rollback.assert_called_once()
        self.assertIn("anomaly_detection_failed", captured.output[0])


if __name__ == "__main__":
    unittest.main()
