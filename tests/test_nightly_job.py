import unittest
from datetime import timedelta
from unittest import mock

from sqlalchemy.exc import OperationalError

from stock_fixtures import StockTestCase

from app.models import CascadeLock, ClosingStock
from app.scheduler.nightly_job import run_daily_rollover
from app.services.report_service import recalculate_closing_stock


class DailyRolloverTest(StockTestCase):
    def setUp(self):
        super().setUp()
        self.yesterday = self.today - timedelta(days=1)
        self.item = self.add_item("Flour")
        self.add_opening(self.item, self.yesterday, 10, branch_id=self.branch_a.id)
        self.add_sale(self.item, self.yesterday, 4, branch_id=self.branch_a.id)

    def test_closes_yesterday_and_opens_today(self):
        summary = run_daily_rollover(today=self.today, session_factory=self.Session)

        self.assertEqual(self.closing(self.item, self.yesterday, self.branch_a.id).quantity, 6)
        self.assertEqual(self.opening(self.item, self.today, self.branch_a.id).quantity, 6)
        self.assertEqual(self.opening(self.item, self.today, self.branch_b.id).quantity, 0)
        self.assertIn("across 1 organization(s)", summary)
        self.assertEqual(self.count(CascadeLock), 0)

    def test_rerun_leaves_rows_alone(self):
        run_daily_rollover(today=self.today, session_factory=self.Session)
        closings = self.count(ClosingStock)

        summary = run_daily_rollover(today=self.today, session_factory=self.Session)

        self.assertIn("opened 0 item(s)", summary)
        self.assertEqual(self.count(ClosingStock), closings)
        self.assertEqual(self.opening(self.item, self.today, self.branch_a.id).quantity, 6)

    def test_database_error_on_one_branch_keeps_the_others(self):
        branch_a_id = self.branch_a.id

        def fail_on_branch_a(db, day, scope, actor_id, **kwargs):
            if scope.branch_id == branch_a_id:
                raise OperationalError("UPDATE closing_stock", {}, Exception("disk I/O error"))
            return recalculate_closing_stock(db, day, scope, actor_id, **kwargs)

        with mock.patch(
            "app.scheduler.nightly_job.recalculate_closing_stock",
            side_effect=fail_on_branch_a,
        ):
            with self.assertRaises(RuntimeError) as ctx:
                run_daily_rollover(today=self.today, session_factory=self.Session)

        self.assertIn("branch:{}".format(branch_a_id), str(ctx.exception))
        self.assertIsNone(self.opening(self.item, self.today, branch_a_id))
        self.assertIsNotNone(self.opening(self.item, self.today, self.branch_b.id))


if __name__ == "__main__":
    unittest.main()
