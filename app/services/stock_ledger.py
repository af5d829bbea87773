from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.scope import Scope
from app.models.branch_transfer import BranchTransfer
from app.models.closing_stock import ClosingStock
from app.models.item import Item
from app.models.opening_stock import OpeningStock
from app.models.restocking import Restocking
from app.models.sale import Sale
from app.models.waste_spoilage import WasteSpoilage

_MISSING = object()


def _branch_match(column, branch_id: Optional[int]):
    if branch_id is None:
        return column.is_(None)
    return column == branch_id


def index_by_item_branch(rows) -> dict:
    """First row per ``(item_id, branch_id)``."""
    index = {}
    for row in rows:
        index.setdefault((row.item_id, row.branch_id), row)
    return index


def apply_upsert(db: Session, instance, model, values: dict) -> str:
    if instance is not None:
        for key, value in values.items():
            setattr(instance, key, value)
        return "updated"
    db.add(model(**values))
    return "inserted"


class StockLedger:
    """Scoped reads and natural-key upserts over the stock tables."""

    def __init__(self, db: Session, scope: Scope) -> None:
        self.db = db
        self.scope = scope

    def _scoped(self, model, day: date):
        stmt = select(model).where(
            model.organization_id == self.scope.organization_id,
            model.date == day,
        )
        clause = self.scope.branch_clause(model.branch_id)
        if clause is not None:
            stmt = stmt.where(clause)
        return stmt

    def _all(self, stmt):
        return list(self.db.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def items(self) -> list[Item]:
        stmt = select(Item).where(Item.organization_id == self.scope.organization_id)
        if not self.scope.org_wide:
            if self.scope.branch_id is None:
                stmt = stmt.where(Item.branch_id.is_(None))
            else:
                stmt = stmt.where(
                    or_(Item.branch_id == self.scope.branch_id, Item.branch_id.is_(None))
                )
        return self._all(stmt.order_by(Item.name, Item.id))

    def organization_items(self) -> list[Item]:
        stmt = (
            select(Item)
            .where(Item.organization_id == self.scope.organization_id)
            .order_by(Item.name, Item.id)
        )
        return self._all(stmt)

    def opening_stock(self, day: date) -> list[OpeningStock]:
        return self._all(self._scoped(OpeningStock, day).order_by(OpeningStock.branch_id, OpeningStock.id))

    def closing_stock(self, day: date) -> list[ClosingStock]:
        return self._all(self._scoped(ClosingStock, day).order_by(ClosingStock.branch_id, ClosingStock.id))

    def sales(self, day: date) -> list[Sale]:
        return self._all(self._scoped(Sale, day))

    def restocking(self, day: date) -> list[Restocking]:
        return self._all(self._scoped(Restocking, day))

    def waste(self, day: date) -> list[WasteSpoilage]:
        return self._all(self._scoped(WasteSpoilage, day))

    def _transfers(self, branch_column, day: date) -> list[BranchTransfer]:
        stmt = select(BranchTransfer).where(
            BranchTransfer.organization_id == self.scope.organization_id,
            BranchTransfer.date == day,
        )
        clause = self.scope.branch_clause(branch_column)
        if clause is not None:
            stmt = stmt.where(clause)
        return self._all(stmt)

    def transfers_out(self, day: date) -> list[BranchTransfer]:
        return self._transfers(BranchTransfer.from_branch_id, day)

    def transfers_in(self, day: date) -> list[BranchTransfer]:
        return self._transfers(BranchTransfer.to_branch_id, day)

    def latest_restocking_prices(self, on_or_before: date) -> dict:
        """Most recent restocking prices per ``(item_id, branch_id)`` up to a date."""
        stmt = select(Restocking).where(
            Restocking.organization_id == self.scope.organization_id,
            Restocking.date <= on_or_before,
        )
        clause = self.scope.branch_clause(Restocking.branch_id)
        if clause is not None:
            stmt = stmt.where(clause)
        stmt = stmt.order_by(Restocking.date.desc(), Restocking.created_at.desc(), Restocking.id.desc())
        latest = {}
        for row in self._all(stmt):
            if row.cost_price is None and row.selling_price is None:
                continue
            latest.setdefault((row.item_id, row.branch_id), (row.cost_price, row.selling_price))
        return latest

    # ------------------------------------------------------------------
    # Natural-key upserts
    # ------------------------------------------------------------------
    def _find(self, model, item_id: int, day: date, branch_id: Optional[int]):
        stmt = select(model).where(
            model.item_id == item_id,
            model.date == day,
            model.organization_id == self.scope.organization_id,
            _branch_match(model.branch_id, branch_id),
        )
        return self.db.execute(stmt).scalars().first()

    def find_opening(self, item_id: int, day: date, branch_id: Optional[int]) -> Optional[OpeningStock]:
        return self._find(OpeningStock, item_id, day, branch_id)

    def find_closing(self, item_id: int, day: date, branch_id: Optional[int]) -> Optional[ClosingStock]:
        return self._find(ClosingStock, item_id, day, branch_id)

    def _upsert(self, model, item_id, day, branch_id, values, existing):
        if existing is _MISSING:
            existing = self._find(model, item_id, day, branch_id)
        row_values = dict(values)
        row_values.update(
            item_id=item_id,
            date=day,
            organization_id=self.scope.organization_id,
            branch_id=branch_id,
        )
        return apply_upsert(self.db, existing, model, row_values)

    def upsert_opening(self, item_id: int, day: date, branch_id: Optional[int], values: dict, *, existing=_MISSING) -> str:
        return self._upsert(OpeningStock, item_id, day, branch_id, values, existing)

    def upsert_closing(self, item_id: int, day: date, branch_id: Optional[int], values: dict, *, existing=_MISSING) -> str:
        return self._upsert(ClosingStock, item_id, day, branch_id, values, existing)


__all__ = ["StockLedger", "apply_upsert", "index_by_item_branch"]
