import unittest
from datetime import timedelta

from stock_fixtures import StockTestCase

from app.core.errors import ItemInUseError, NotFoundError, PermissionDeniedError, StockValidationError
from app.models.item import Item
from app.services.item_service import create_item, delete_item


class ItemServiceTest(StockTestCase):
    def test_admin_creates_org_wide_item(self):
        item = create_item(self.db, "admin", name="  Rice ", unit="kg", low_stock_threshold=5, cost_price=1.0)
        self.assertEqual(item.name, "Rice")
        self.assertEqual(item.organization_id, self.org.id)
        self.assertIsNone(item.branch_id)
        self.assertEqual(item.low_stock_threshold, 5)

    def test_branch_manager_items_belong_to_their_branch(self):
        item = create_item(self.db, "manager-a", name="Oil", branch_id=self.branch_b.id)
        self.assertEqual(item.branch_id, self.branch_a.id)

    def test_staff_cannot_create_items(self):
        with self.assertRaises(PermissionDeniedError):
            create_item(self.db, "staff-a", name="Oil")

    def test_negative_prices_are_rejected(self):
        with self.assertRaises(StockValidationError):
            create_item(self.db, "admin", name="Oil", cost_price=-1)

    def test_delete_without_history(self):
        item = self.add_item("Cups")
        delete_item(self.db, "admin", item.id)
        self.assertEqual(self.count(Item), 0)

    def test_delete_with_history_is_refused(self):
        item = self.add_item("Rice")
        self.add_opening(item, self.today - timedelta(days=1), 5, branch_id=self.branch_a.id)
        with self.assertRaises(ItemInUseError):
            delete_item(self.db, "admin", item.id)
        self.assertEqual(self.count(Item), 1)

    def test_delete_unknown_item(self):
        with self.assertRaises(NotFoundError):
            delete_item(self.db, "admin", 404)


if __name__ == "__main__":
    unittest.main()
