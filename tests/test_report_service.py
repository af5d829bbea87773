import unittest
from datetime import timedelta

from stock_fixtures import StockTestCase

from app.core.constants import SOURCE_MANUAL_ENTRY, SOURCE_PREVIOUS_CLOSING, SOURCE_ZERO
from app.core.errors import FutureDateError, InvalidDateError
from app.core.scope import Scope
from app.services.cascade_service import run_cascade
from app.services.report_service import (
    calculate_closing_quantity,
    compute_daily_report,
    recalculate_closing_stock,
)


class ClosingFormulaTest(unittest.TestCase):
    def test_formula_adds_inflows_and_subtracts_outflows(self):
        self.assertEqual(calculate_closing_quantity(100, 20, 5, 30, 5, 10), 80.0)

    def test_formula_clamps_at_zero(self):
        self.assertEqual(calculate_closing_quantity(10, 0, 0, 15, 0, 0), 0.0)

    def test_formula_treats_missing_totals_as_zero(self):
        self.assertEqual(calculate_closing_quantity(None, None, None, None, None, None), 0.0)


class DailyReportTest(StockTestCase):
    def setUp(self):
        super().setUp()
        self.day = self.today - timedelta(days=1)
        self.scope_a = Scope.branch(self.org.id, self.branch_a.id)
        self.scope_b = Scope.branch(self.org.id, self.branch_b.id)

    def test_rice_scenario(self):
        rice = self.add_item("Rice")
        branch = self.branch_a.id
        self.add_opening(rice, self.day, 100, branch_id=branch, cost_price=1.0, selling_price=2.0)
        self.add_restocking(rice, self.day, 20, branch_id=branch)
        self.add_sale(rice, self.day, 30, branch_id=branch)
        self.add_waste(rice, self.day, 5, branch_id=branch)

        report = compute_daily_report(self.db, self.day, self.scope_a, today=self.today)
        row = report.row_for(rice.id)
        self.assertEqual(row.opening_stock, 100)
        self.assertEqual(row.opening_stock_source, SOURCE_MANUAL_ENTRY)
        self.assertEqual((row.opening_cost_price, row.opening_selling_price), (1.0, 2.0))
        self.assertEqual(row.total_restocking, 20)
        self.assertEqual(row.total_sales, 30)
        self.assertEqual(row.total_waste, 5)
        self.assertEqual(row.closing_stock, 85)
        self.assertTrue(row.opening_stock_manual)
        self.assertFalse(row.closing_stock_manual)

        recalculate_closing_stock(self.db, self.day, self.scope_a, "manager-a", today=self.today)
        closing = self.closing(rice, self.day, branch)
        self.assertEqual(closing.quantity, 85)
        self.assertEqual(
            closing.notes,
            "Auto-calculated: Opening (100) + Restocking (20) + Transfers in (0) "
            "- Sales (30) - Waste/Spoilage (5) - Transfers out (0)",
        )

        run_cascade(self.db, self.day, self.scope_a, "manager-a", today=self.today)
        self.assertEqual(self.opening(rice, self.today, branch).quantity, 85)

        next_report = compute_daily_report(self.db, self.today, self.scope_a, today=self.today)
        next_row = next_report.row_for(rice.id)
        self.assertEqual(next_row.opening_stock, 85)
        self.assertEqual(next_row.opening_stock_source, SOURCE_PREVIOUS_CLOSING)

    def test_oversold_day_closes_at_zero(self):
        item = self.add_item("Oil")
        self.add_opening(item, self.day, 10, branch_id=self.branch_a.id)
        self.add_sale(item, self.day, 15, branch_id=self.branch_a.id)

        row = compute_daily_report(self.db, self.day, self.scope_a, today=self.today).row_for(item.id)
        self.assertEqual(row.total_sales, 15)
        self.assertEqual(row.closing_stock, 0)

    def test_item_without_history_opens_at_zero(self):
        item = self.add_item("Salt", quantity=500)

        row = compute_daily_report(self.db, self.day, self.scope_a, today=self.today).row_for(item.id)
        self.assertEqual(row.opening_stock, 0)
        self.assertEqual(row.opening_stock_source, SOURCE_ZERO)
        self.assertEqual(row.closing_stock, 0)
        self.assertIsNone(row.opening_cost_price)
        self.assertFalse(row.opening_stock_manual)

    def test_previous_closing_wins_over_todays_opening_row(self):
        item = self.add_item("Flour")
        branch = self.branch_a.id
        self.add_closing(item, self.day - timedelta(days=1), 40, branch_id=branch)
        self.add_opening(item, self.day, 55, branch_id=branch, cost_price=3.0, selling_price=4.0)

        row = compute_daily_report(self.db, self.day, self.scope_a, today=self.today).row_for(item.id)
        self.assertEqual(row.opening_stock, 40)
        self.assertEqual(row.opening_stock_source, SOURCE_PREVIOUS_CLOSING)
        self.assertEqual((row.opening_cost_price, row.opening_selling_price), (3.0, 4.0))

    def test_prices_fall_back_to_previous_opening_row(self):
        item = self.add_item("Sugar")
        branch = self.branch_a.id
        previous = self.day - timedelta(days=1)
        self.add_opening(item, previous, 12, branch_id=branch, cost_price=7.0, selling_price=8.0)
        self.add_closing(item, previous, 12, branch_id=branch)

        row = compute_daily_report(self.db, self.day, self.scope_a, today=self.today).row_for(item.id)
        self.assertEqual(row.opening_stock_source, SOURCE_PREVIOUS_CLOSING)
        self.assertEqual((row.opening_cost_price, row.opening_selling_price), (7.0, 8.0))

    def test_report_is_idempotent(self):
        item = self.add_item("Beans")
        self.add_opening(item, self.day, 8, branch_id=self.branch_a.id)
        self.add_sale(item, self.day, 3, branch_id=self.branch_a.id)

        first = compute_daily_report(self.db, self.day, self.scope_a, today=self.today)
        second = compute_daily_report(self.db, self.day, self.scope_a, today=self.today)
        self.assertEqual(first.rows, second.rows)

    def test_accepts_day_first_dates(self):
        report = compute_daily_report(self.db, self.day.strftime("%d/%m/%Y"), self.scope_a, today=self.today)
        self.assertEqual(report.date, self.day)

    def test_rejects_future_dates(self):
        with self.assertRaises(FutureDateError):
            compute_daily_report(self.db, self.today + timedelta(days=1), self.scope_a, today=self.today)

    def test_rejects_invalid_dates(self):
        with self.assertRaises(InvalidDateError):
            compute_daily_report(self.db, "31/02/2026", self.scope_a, today=self.today)

    def test_transfers_split_by_branch(self):
        item = self.add_item("Milk")
        self.add_opening(item, self.day, 10, branch_id=self.branch_a.id)
        self.add_opening(item, self.day, 5, branch_id=self.branch_b.id)
        self.add_transfer(item, self.day, 3, self.branch_a.id, self.branch_b.id)

        row_a = compute_daily_report(self.db, self.day, self.scope_a, today=self.today).row_for(item.id)
        row_b = compute_daily_report(self.db, self.day, self.scope_b, today=self.today).row_for(item.id)
        self.assertEqual((row_a.total_transfers_out, row_a.total_transfers_in, row_a.closing_stock), (3, 0, 7))
        self.assertEqual((row_b.total_transfers_out, row_b.total_transfers_in, row_b.closing_stock), (0, 3, 8))

    def test_org_wide_report_sums_branches(self):
        item = self.add_item("Milk")
        self.add_opening(item, self.day, 10, branch_id=self.branch_a.id)
        self.add_opening(item, self.day, 5, branch_id=self.branch_b.id)
        self.add_transfer(item, self.day, 3, self.branch_a.id, self.branch_b.id)

        report = compute_daily_report(self.db, self.day, Scope.organization(self.org.id), today=self.today)
        row = report.row_for(item.id)
        self.assertTrue(report.org_wide)
        self.assertEqual(row.opening_stock, 15)
        self.assertEqual(row.total_transfers_in, 3)
        self.assertEqual(row.total_transfers_out, 3)
        self.assertEqual(row.closing_stock, 15)

    def test_org_wide_closing_clamps_each_branch(self):
        item = self.add_item("Bread")
        self.add_opening(item, self.day, 10, branch_id=self.branch_a.id)
        self.add_sale(item, self.day, 20, branch_id=self.branch_a.id)
        self.add_opening(item, self.day, 10, branch_id=self.branch_b.id)

        org_row = compute_daily_report(
            self.db, self.day, Scope.organization(self.org.id), today=self.today
        ).row_for(item.id)
        row_a = compute_daily_report(self.db, self.day, self.scope_a, today=self.today).row_for(item.id)
        row_b = compute_daily_report(self.db, self.day, self.scope_b, today=self.today).row_for(item.id)

        self.assertEqual((org_row.opening_stock, org_row.total_sales), (20, 20))
        self.assertEqual((row_a.closing_stock, row_b.closing_stock), (0, 10))
        self.assertEqual(org_row.closing_stock, row_a.closing_stock + row_b.closing_stock)
        self.assertEqual(org_row.closing_stock, 10)

    def test_branch_report_hides_other_branch_items(self):
        shared = self.add_item("Shared")
        own = self.add_item("Own", branch_id=self.branch_a.id)
        other = self.add_item("Other", branch_id=self.branch_b.id)

        report = compute_daily_report(self.db, self.day, self.scope_a, today=self.today)
        item_ids = {row.item_id for row in report.rows}
        self.assertEqual(item_ids, {shared.id, own.id})
        self.assertNotIn(other.id, item_ids)

    def test_low_stock_flag_uses_threshold(self):
        watched = self.add_item("Eggs", low_stock_threshold=10)
        unwatched = self.add_item("Cups")
        self.add_opening(watched, self.day, 10, branch_id=self.branch_a.id)
        self.add_opening(unwatched, self.day, 0, branch_id=self.branch_a.id)

        report = compute_daily_report(self.db, self.day, self.scope_a, today=self.today)
        self.assertTrue(report.row_for(watched.id).low_stock)
        self.assertFalse(report.row_for(unwatched.id).low_stock)


class RecalculateClosingStockTest(StockTestCase):
    def setUp(self):
        super().setUp()
        self.day = self.today - timedelta(days=1)

    def test_recalculation_upserts_in_place(self):
        item = self.add_item("Rice")
        scope = Scope.branch(self.org.id, self.branch_a.id)
        self.add_opening(item, self.day, 50, branch_id=self.branch_a.id)

        first = recalculate_closing_stock(self.db, self.day, scope, "manager-a", today=self.today)
        self.add_sale(item, self.day, 20, branch_id=self.branch_a.id)
        second = recalculate_closing_stock(self.db, self.day, scope, "manager-a", today=self.today)

        self.assertEqual((first.inserted, first.updated), (1, 0))
        self.assertEqual((second.inserted, second.updated), (0, 1))
        self.assertEqual(self.closing(item, self.day, self.branch_a.id).quantity, 30)

    def test_org_wide_recalculation_writes_each_branch(self):
        item = self.add_item("Rice")
        self.add_opening(item, self.day, 4, branch_id=self.branch_a.id)
        self.add_opening(item, self.day, 6, branch_id=self.branch_b.id)

        result = recalculate_closing_stock(
            self.db, self.day, Scope.organization(self.org.id), "admin", today=self.today
        )
        self.assertEqual(result.branch_ids, [self.branch_a.id, self.branch_b.id])
        self.assertEqual(self.closing(item, self.day, self.branch_a.id).quantity, 4)
        self.assertEqual(self.closing(item, self.day, self.branch_b.id).quantity, 6)
        self.assertIsNone(self.closing(item, self.day))

    def test_organization_without_branches_writes_null_branch(self):
        organization, _ = self.add_organization("Solo")
        self.add_profile("solo-admin", "admin", organization_id=organization.id)
        item = self.add_item("Tea", organization_id=organization.id)
        self.add_opening(item, self.day, 9)

        result = recalculate_closing_stock(
            self.db, self.day, Scope.organization(organization.id), "solo-admin", today=self.today
        )
        self.assertEqual(result.branch_ids, [None])
        self.assertEqual(self.closing(item, self.day).quantity, 9)

    def test_rejects_future_dates(self):
        with self.assertRaises(FutureDateError):
            recalculate_closing_stock(
                self.db,
                self.today + timedelta(days=2),
                Scope.branch(self.org.id, self.branch_a.id),
                "manager-a",
                today=self.today,
            )


if __name__ == "__main__":
    unittest.main()
