from __future__ import annotations

import unittest
from datetime import datetime, timezone

from tests.db_support import make_session_factory, seed_employee
from workforce.errors import ApiError
from workforce.models import AnomalyEntityType, AnomalyEvent, AnomalyStatus
from workforce.services.anomalies import (
    list_anomalies,
    list_employee_anomalies,
    to_anomaly_read,
    update_anomaly_status,
)
from workforce.services.anomaly_detection import Reason, upsert_anomaly


class AnomalyManagementTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.employee = seed_employee(self.db)
        self.other = seed_employee(self.db, full_name="Marta Ruiz")

        for entity_id in range(1, 6):
            upsert_anomaly(
                self.db,
                AnomalyEntityType.EXPENSE,
                entity_id,
                self.employee.id,
                [Reason("WEEKEND_EXPENSE", "Expense dated on a weekend.", 10)],
            )
        upsert_anomaly(
            self.db,
            AnomalyEntityType.TIME_ENTRY,
            1,
            self.other.id,
            [Reason("OFF_HOURS", "late", 20)],
        )

    def tearDown(self) -> None:
        self.db.close()

    def test_pagination(self) -> None:
        page = list_anomalies(self.db, page=2, limit=4)
        self.assertEqual(page.meta.total, 6)
        self.assertEqual(page.meta.total_pages, 2)
        self.assertEqual(page.meta.page, 2)
        self.assertEqual(len(page.data), 2)

    def test_filters(self) -> None:
        page = list_anomalies(self.db, entity_type=AnomalyEntityType.TIME_ENTRY)
        self.assertEqual(page.meta.total, 1)
        self.assertEqual(page.data[0].employee_name, "Marta Ruiz")
        self.assertEqual(page.data[0].reasons[0].code, "OFF_HOURS")

        empty = list_anomalies(self.db, status=AnomalyStatus.RESOLVED)
        self.assertEqual(empty.meta.total, 0)
        self.assertEqual(empty.meta.total_pages, 0)
        self.assertEqual(empty.data, [])

    def test_status_update(self) -> None:
        event_id = list_anomalies(self.db, entity_type=AnomalyEntityType.TIME_ENTRY).data[0].id

        updated = update_anomaly_status(self.db, event_id, AnomalyStatus.REVIEWED)

        self.assertEqual(updated.status, AnomalyStatus.REVIEWED)
        reviewed = list_anomalies(self.db, status=AnomalyStatus.REVIEWED)
        self.assertEqual([item.id for item in reviewed.data], [event_id])

    def test_status_update_unknown(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            update_anomaly_status(self.db, 999, AnomalyStatus.RESOLVED)
        self.assertEqual(ctx.exception.code, "ANOMALY_NOT_FOUND")

    def test_employee_history(self) -> None:
        rows = list_employee_anomalies(self.db, employee_id=self.other.id)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].entity_type, AnomalyEntityType.TIME_ENTRY)

    def test_malformed_reasons_are_skipped(self) -> None:
        event = AnomalyEvent(
            id=50,
            entity_type=AnomalyEntityType.VACATION,
            entity_id=9,
            employee_id=None,
            score=15,
            reasons=[{"code": "LONG_ABSENCE", "message": "long", "score": 15}, "junk", {"code": "X"}],
            status=AnomalyStatus.OPEN,
        )
        event.created_at = event.updated_at = datetime(2026, 3, 4, tzinfo=timezone.utc)

        read = to_anomaly_read(event)

        self.assertIsNone(read.employee_name)
        self.assertEqual([reason.code for reason in read.reasons], ["LONG_ABSENCE"])


if __name__ == "__main__":
    unittest.main()
