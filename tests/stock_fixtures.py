import unittest
from datetime import date

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database.base import Base
from app.models import (
    Branch,
    BranchTransfer,
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

TODAY = date(2026, 3, 10)


class StockTestCase(unittest.TestCase):
    """In-memory ledger with one organization and two branches."""

    today = TODAY

    def setUp(self):
        self.engine = create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        import_all_models()
        Base.metadata.create_all(bind=self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self.db = self.Session()

        self.org = Organization(name="Org One", subdomain="one")
        self.db.add(self.org)
        self.db.flush()
        self.branch_a = Branch(organization_id=self.org.id, name="A")
        self.branch_b = Branch(organization_id=self.org.id, name="B")
        self.db.add_all([self.branch_a, self.branch_b])
        self.db.flush()

        self.add_profile("admin", "tenant_admin")
        self.add_profile("manager-a", "branch_manager", branch_id=self.branch_a.id)
        self.add_profile("staff-a", "staff", branch_id=self.branch_a.id)
        self.db.commit()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------
    def add_organization(self, name="Org Two", branches=()):
        organization = Organization(name=name)
        self.db.add(organization)
        self.db.flush()
        created = []
        for branch_name in branches:
            branch = Branch(organization_id=organization.id, name=branch_name)
            self.db.add(branch)
            created.append(branch)
        self.db.commit()
        return organization, created

    def add_profile(self, profile_id, role, *, organization_id=None, branch_id=None):
        profile = Profile(
            id=profile_id,
            email="{}@example.com".format(profile_id),
            full_name=profile_id,
            role=role,
            organization_id=organization_id or self.org.id,
            branch_id=branch_id,
        )
        self.db.add(profile)
        self.db.commit()
        return profile

    def add_item(self, name="Rice", *, organization_id=None, branch_id=None, **fields):
        item = Item(
            organization_id=organization_id or self.org.id,
            branch_id=branch_id,
            name=name,
            unit=fields.pop("unit", "kg"),
            **fields,
        )
        self.db.add(item)
        self.db.commit()
        return item

    def add_opening(self, item, day, quantity, *, branch_id=None, cost_price=None, selling_price=None, is_manual=True):
        row = OpeningStock(
            item_id=item.id,
            date=day,
            organization_id=item.organization_id,
            branch_id=branch_id,
            quantity=quantity,
            cost_price=cost_price,
            selling_price=selling_price,
            is_manual=is_manual,
            recorded_by="admin",
        )
        self.db.add(row)
        self.db.commit()
        return row

    def add_closing(self, item, day, quantity, *, branch_id=None):
        row = ClosingStock(
            item_id=item.id,
            date=day,
            organization_id=item.organization_id,
            branch_id=branch_id,
            quantity=quantity,
            recorded_by="admin",
        )
        self.db.add(row)
        self.db.commit()
        return row

    def _add_movement(self, model, item, day, quantity, branch_id, **fields):
        row = model(
            item_id=item.id,
            date=day,
            organization_id=item.organization_id,
            branch_id=branch_id,
            quantity=quantity,
            **fields,
        )
        self.db.add(row)
        self.db.commit()
        return row

    def add_sale(self, item, day, quantity, *, branch_id=None, price=0):
        return self._add_movement(Sale, item, day, quantity, branch_id, price_per_unit=price, total_price=price * quantity)

    def add_restocking(self, item, day, quantity, *, branch_id=None, cost_price=None, selling_price=None):
        return self._add_movement(
            Restocking,
            item,
            day,
            quantity,
            branch_id,
            cost_price=cost_price,
            selling_price=selling_price,
        )

    def add_waste(self, item, day, quantity, *, branch_id=None):
        return self._add_movement(WasteSpoilage, item, day, quantity, branch_id)

    def add_transfer(self, item, day, quantity, from_branch_id, to_branch_id):
        row = BranchTransfer(
            item_id=item.id,
            date=day,
            organization_id=item.organization_id,
            from_branch_id=from_branch_id,
            to_branch_id=to_branch_id,
            quantity=quantity,
        )
        self.db.add(row)
        self.db.commit()
        return row

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def _find(self, model, item, day, branch_id):
        self.db.expire_all()
        stmt = select(model).where(model.item_id == item.id, model.date == day)
        if branch_id is None:
            stmt = stmt.where(model.branch_id.is_(None))
        else:
            stmt = stmt.where(model.branch_id == branch_id)
        return self.db.execute(stmt).scalars().first()

    def opening(self, item, day, branch_id=None):
        return self._find(OpeningStock, item, day, branch_id)

    def closing(self, item, day, branch_id=None):
        return self._find(ClosingStock, item, day, branch_id)

    def count(self, model):
        return len(self.db.execute(select(model)).scalars().all())
