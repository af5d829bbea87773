import argparse

from sqlalchemy import delete, select

from app.core.dates import previous_day, today_local
from app.core.logging import setup_logging
from app.database import Base, SessionLocal, engine, ensure_sqlite_schema
from app.models import (
    Branch,
    BranchTransfer,
    CascadeLock,
    ClosingStock,
    Item,
    OpeningStock,
    Organization,
    Profile,
    Restocking,
    Sale,
    WasteSpoilage,
    import_all_models,
)
from app.services.identity_service import load_actor, resolve_scope
from app.services.opening_stock_service import record_manual_opening_stock
from app.services.report_service import recalculate_closing_stock
from app.services.transaction_service import record_restocking, record_sale, record_waste

ADMIN_ID = "demo-admin"
MANAGER_ID = "demo-manager"


def parse_args():
    parser = argparse.ArgumentParser(description="Seed a demo organization with stock history.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Clear existing data before seeding.",
    )
    return parser.parse_args()


def _reset(db):
    for model in (
        Sale,
        WasteSpoilage,
        BranchTransfer,
        Restocking,
        ClosingStock,
        OpeningStock,
        CascadeLock,
        Item,
        Profile,
        Branch,
        Organization,
    ):
        db.execute(delete(model))
    db.commit()


def main():
    setup_logging()
    args = parse_args()

    import_all_models()
    Base.metadata.create_all(bind=engine)
    ensure_sqlite_schema()

    db = SessionLocal()
    try:
        if args.reset:
            _reset(db)

        if db.execute(select(Organization.id).limit(1)).first():
            print("Seed skipped: organizations already exist.")
            return

        organization = Organization(name="Demo Kitchen", subdomain="demo")
        db.add(organization)
        db.flush()
        main_branch = Branch(organization_id=organization.id, name="Main")
        east_branch = Branch(organization_id=organization.id, name="East")
        db.add_all([main_branch, east_branch])
        db.flush()

        db.add_all(
            [
                Profile(
                    id=ADMIN_ID,
                    email="admin@example.com",
                    full_name="Demo Admin",
                    role="tenant_admin",
                    organization_id=organization.id,
                ),
                Profile(
                    id=MANAGER_ID,
                    email="manager@example.com",
                    full_name="Main Manager",
                    role="branch_manager",
                    organization_id=organization.id,
                    branch_id=main_branch.id,
                ),
            ]
        )
        items = [
            Item(organization_id=organization.id, name="Rice", unit="kg", low_stock_threshold=10, cost_price=1.2, selling_price=2.0),
            Item(organization_id=organization.id, name="Cooking Oil", unit="l", low_stock_threshold=5, cost_price=3.5, selling_price=5.0),
            Item(organization_id=organization.id, name="Tomatoes", unit="kg", low_stock_threshold=8, cost_price=0.8, selling_price=1.5),
        ]
        db.add_all(items)
        db.commit()

        today = today_local()
        yesterday = previous_day(today)
        record_manual_opening_stock(
            db,
            yesterday,
            ADMIN_ID,
            [{"item_id": item.id, "quantity": 100} for item in items],
            branch_id=main_branch.id,
            today=today,
        )
        rice = items[0]
        record_restocking(db, MANAGER_ID, item_id=rice.id, date_value=yesterday, quantity=20, cost_price=1.25, today=today)
        record_sale(db, MANAGER_ID, item_id=rice.id, date_value=yesterday, quantity=30, today=today)
        record_waste(db, MANAGER_ID, item_id=rice.id, date_value=yesterday, quantity=5, reason="spoilage", today=today)

        scope = resolve_scope(db, load_actor(db, MANAGER_ID))
        recalculate_closing_stock(db, yesterday, scope, MANAGER_ID, today=today)
        print("Seed complete: organization {} with {} items.".format(organization.id, len(items)))
    finally:
        db.close()


if __name__ == "__main__":
    main()
