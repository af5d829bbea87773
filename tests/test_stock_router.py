import unittest
from datetime import date, datetime, timedelta, timezone
from unittest import mock

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from stock_fixtures import StockTestCase

from app.core.scope import Scope
from app.dependencies import get_db, require_auth
from app.models.cascade_lock import CascadeLock
from app.models.sale import Sale
from app.routers import health, items, stock, transactions


class StockApiTest(StockTestCase):
    today = date.today()

    def setUp(self):
        super().setUp()
        api = FastAPI()
        for module in (health, items, stock, transactions):
            api.include_router(module.router)

        def override_get_db():
            yield self.db

        api.dependency_overrides[get_db] = override_get_db
        api.dependency_overrides[require_auth] = lambda: None
        self.client = TestClient(api)
        self.yesterday = self.today - timedelta(days=1)

    def test_health_reports_database(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["database"], "ok")

    def test_report_for_branch(self):
        item = self.add_item("Rice")
        self.add_opening(item, self.yesterday, 12, branch_id=self.branch_a.id)
        self.add_sale(item, self.yesterday, 2, branch_id=self.branch_a.id)

        response = self.client.get(
            "/stock/report",
            params={"date": self.yesterday.isoformat(), "user_id": "manager-a"},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["branch_id"], self.branch_a.id)
        self.assertFalse(body["org_wide"])
        self.assertEqual(body["rows"][0]["closing_stock"], 10)

    def test_report_rejects_future_date(self):
        response = self.client.get(
            "/stock/report",
            params={"date": (self.today + timedelta(days=1)).isoformat(), "user_id": "manager-a"},
        )
        self.assertEqual(response.status_code, 400)

    def test_report_rejects_unknown_user(self):
        response = self.client.get(
            "/stock/report",
            params={"date": self.yesterday.isoformat(), "user_id": "ghost"},
        )
        self.assertEqual(response.status_code, 403)

    def test_recalculate_cascades_into_today(self):
        item = self.add_item("Rice")
        self.add_opening(item, self.yesterday, 20, branch_id=self.branch_a.id)
        self.add_waste(item, self.yesterday, 5, branch_id=self.branch_a.id)

        response = self.client.post(
            "/stock/closing/recalculate",
            json={"date": self.yesterday.isoformat(), "user_id": "manager-a"},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["inserted"], 1)
        self.assertIsNone(body["cascade_error"])
        self.assertEqual(body["cascade"]["days_processed"], 1)
        self.assertEqual(self.opening(item, self.today, self.branch_a.id).quantity, 15)

    def test_recalculate_reports_interrupted_cascade(self):
        item = self.add_item("Rice")
        self.add_opening(item, self.yesterday, 20, branch_id=self.branch_a.id)
        self.add_waste(item, self.yesterday, 5, branch_id=self.branch_a.id)

        with mock.patch(
            "app.services.cascade_service.write_closing_stock",
            side_effect=OperationalError("UPDATE closing_stock", {}, Exception("database is locked")),
        ):
            response = self.client.post(
                "/stock/closing/recalculate",
                json={"date": self.yesterday.isoformat(), "user_id": "manager-a"},
            )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["inserted"], 1)
        self.assertIsNone(body["cascade"])
        self.assertEqual(body["cascade_error"]["failed_date"], self.today.isoformat())
        self.assertEqual(body["cascade_error"]["updates"], [])
        self.assertEqual(self.closing(item, self.yesterday, self.branch_a.id).quantity, 15)
        self.assertIsNone(self.opening(item, self.today, self.branch_a.id))

    def test_recalculate_is_refused_while_a_cascade_runs(self):
        item = self.add_item("Rice")
        self.add_opening(item, self.yesterday, 20, branch_id=self.branch_a.id)
        scope = Scope.branch(self.org.id, self.branch_a.id)
        self.db.add(
            CascadeLock(
                scope_key=scope.key,
                organization_id=self.org.id,
                branch_id=self.branch_a.id,
                locked_by="other-host:1",
                acquired_at=datetime.now(timezone.utc),
                heartbeat_at=datetime.now(timezone.utc),
            )
        )
        self.db.commit()

        response = self.client.post(
            "/stock/closing/recalculate",
            json={"date": self.yesterday.isoformat(), "user_id": "manager-a"},
        )

        self.assertEqual(response.status_code, 409)
        self.assertIsNone(self.closing(item, self.yesterday, self.branch_a.id))

    def test_sale_can_be_corrected_and_removed(self):
        item = self.add_item("Rice", selling_price=1.0)
        self.add_opening(item, self.today, 5, branch_id=self.branch_a.id)
        sale = self.add_sale(item, self.today, 2, branch_id=self.branch_a.id, price=1.0)

        updated = self.client.put(
            "/transactions/sales/{}".format(sale.id),
            json={"quantity": 4, "user_id": "staff-a"},
        )
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["total_price"], 4.0)

        too_many = self.client.put(
            "/transactions/sales/{}".format(sale.id),
            json={"quantity": 6, "user_id": "staff-a"},
        )
        self.assertEqual(too_many.status_code, 400)

        deleted = self.client.delete("/transactions/sales/{}".format(sale.id), params={"user_id": "staff-a"})
        self.assertEqual(deleted.status_code, 204)
        self.assertEqual(self.count(Sale), 0)

    def test_cascade_endpoint(self):
        item = self.add_item("Rice")
        self.add_closing(item, self.yesterday, 4, branch_id=self.branch_a.id)

        response = self.client.post(
            "/stock/cascade",
            json={"start_date": self.yesterday.isoformat(), "user_id": "manager-a"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["end_date"], self.today.isoformat())
        self.assertEqual(self.opening(item, self.today, self.branch_a.id).quantity, 4)

    def test_manual_opening_requires_items(self):
        response = self.client.post(
            "/stock/opening/manual",
            json={"date": self.yesterday.isoformat(), "user_id": "manager-a", "items": []},
        )
        self.assertEqual(response.status_code, 422)

    def test_sale_is_created(self):
        item = self.add_item("Rice", selling_price=3.0)
        self.add_opening(item, self.today, 5, branch_id=self.branch_a.id)

        response = self.client.post(
            "/transactions/sales",
            json={"item_id": item.id, "date": self.today.isoformat(), "quantity": 2, "user_id": "staff-a"},
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["total_price"], 6.0)
        self.assertEqual(body["branch_id"], self.branch_a.id)

    def test_oversell_is_rejected(self):
        item = self.add_item("Rice")
        response = self.client.post(
            "/transactions/sales",
            json={"item_id": item.id, "date": self.today.isoformat(), "quantity": 2, "user_id": "staff-a"},
        )
        self.assertEqual(response.status_code, 400)

    def test_item_with_history_cannot_be_deleted(self):
        item = self.add_item("Rice")
        self.add_opening(item, self.yesterday, 1, branch_id=self.branch_a.id)

        response = self.client.delete("/items/{}".format(item.id), params={"user_id": "admin"})
        self.assertEqual(response.status_code, 409)

    def test_item_create_and_delete(self):
        created = self.client.post("/items", json={"name": "Cups", "unit": "pcs", "user_id": "admin"})
        self.assertEqual(created.status_code, 201)

        deleted = self.client.delete("/items/{}".format(created.json()["id"]), params={"user_id": "admin"})
        self.assertEqual(deleted.status_code, 204)


if __name__ == "__main__":
    unittest.main()
