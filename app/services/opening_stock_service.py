import logging
from datetime import date, timedelta
from typing import Iterable, Optional

from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.constants import SEED_INSERT_BATCH_SIZE
from app.core.dates import iter_dates, parse_past_or_today, previous_day, today_local
from app.core.errors import StockValidationError
from app.core.logging import scope_extra
from app.core.scope import Scope
from app.models.opening_stock import OpeningStock
from app.services.identity_service import (
    concrete_scopes,
    load_actor,
    require_concrete_scope,
    require_stock_admin,
    resolve_scope,
)
from app.services.item_service import get_item
from app.services.report_service import format_quantity
from app.services.stock_ledger import StockLedger, index_by_item_branch

logger = logging.getLogger(__name__)


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise


def _default_prices(key, restock_prices: dict, previous_opening: dict, item):
    if key in restock_prices:
        return restock_prices[key]
    previous = previous_opening.get(key)
    if previous is not None and (previous.cost_price is not None or previous.selling_price is not None):
        return previous.cost_price, previous.selling_price
    return item.cost_price, item.selling_price


def create_missing_opening_stock(db: Session, day: date, scope: Scope, actor_id, *, item_ids=None) -> int:
    """Insert opening rows for items without one on ``day``; no commit."""
    ledger = StockLedger(db, scope)
    prev = previous_day(day)
    existing = index_by_item_branch(ledger.opening_stock(day))
    previous_closing = index_by_item_branch(ledger.closing_stock(prev))
    previous_opening = index_by_item_branch(ledger.opening_stock(prev))
    restock_prices = ledger.latest_restocking_prices(prev)

    created = 0
    for item in ledger.items():
        if item_ids is not None and item.id not in item_ids:
            continue
        key = (item.id, scope.branch_id)
        if key in existing:
            continue
        closing = previous_closing.get(key)
        if closing is not None:
            quantity = float(closing.quantity or 0)
            notes = "Auto-created from closing stock of {}: {}".format(prev.isoformat(), format_quantity(quantity))
        else:
            quantity = 0.0
            notes = "Auto-created with no closing stock on {}".format(prev.isoformat())
        cost_price, selling_price = _default_prices(key, restock_prices, previous_opening, item)
        ledger.upsert_opening(
            item.id,
            day,
            scope.branch_id,
            {
                "quantity": quantity,
                "cost_price": cost_price,
                "selling_price": selling_price,
                "is_manual": False,
                "recorded_by": actor_id,
                "notes": notes,
            },
            existing=None,
        )
        created += 1
    db.flush()
    return created


def auto_create_opening_stock(
    db: Session,
    date_value,
    scope: Scope,
    actor_id,
    *,
    today: Optional[date] = None,
) -> int:
    """Create the day's missing opening stock rows for every branch in ``scope``.

    Quantities come from the previous day's closing stock (zero when there is
    none). Prices come from the latest restocking before the day, then the
    previous day's opening stock, then the item defaults. Rows that already
    exist are left alone.
    """
    day = parse_past_or_today(date_value, today, action="create opening stock for")
    created = 0
    for branch_scope in concrete_scopes(db, scope):
        created += create_missing_opening_stock(db, day, branch_scope, actor_id)
    _commit(db)
    logger.info("Auto-created %d opening stock row(s)", created, extra=scope_extra(scope, day))
    return created


def record_manual_opening_stock(
    db: Session,
    date_value,
    actor_id,
    entries: Iterable[dict],
    *,
    branch_id: Optional[int] = None,
    today: Optional[date] = None,
) -> dict:
    day = parse_past_or_today(date_value, today, action="record opening stock for")
    actor = load_actor(db, actor_id)
    require_stock_admin(actor)
    scope = require_concrete_scope(db, resolve_scope(db, actor, branch_id))
    ledger = StockLedger(db, scope)

    counts = {"inserted": 0, "updated": 0}
    for entry in entries:
        item = get_item(db, scope.organization_id, entry["item_id"])
        quantity = float(entry.get("quantity") or 0)
        if quantity < 0:
            raise StockValidationError("quantity must not be negative")

        values = {
            "quantity": quantity,
            "is_manual": True,
            "recorded_by": actor.id,
            "notes": entry.get("notes") or "Manual opening stock entry",
        }
        for price_field in ("cost_price", "selling_price"):
            price = entry.get(price_field)
            if price is None:
                continue
            if float(price) < 0:
                raise StockValidationError("{} must not be negative".format(price_field))
            values[price_field] = float(price)
            setattr(item, price_field, float(price))

        existing = ledger.find_opening(item.id, day, scope.branch_id)
        if existing is None:
            values.setdefault("cost_price", item.cost_price)
            values.setdefault("selling_price", item.selling_price)
        counts[ledger.upsert_opening(item.id, day, scope.branch_id, values, existing=existing)] += 1
        db.flush()

    _commit(db)
    logger.info(
        "Recorded manual opening stock (%d inserted, %d updated)",
        counts["inserted"],
        counts["updated"],
        extra=scope_extra(scope, day),
    )
    return counts


def seed_opening_stock(
    db: Session,
    actor_id,
    *,
    start_date=None,
    branch_id: Optional[int] = None,
    today: Optional[date] = None,
) -> int:
    """Zero-quantity opening rows for every item and day from ``start_date`` through today."""
    today = today or today_local()
    if start_date is None:
        start = today - timedelta(days=get_settings().SEED_DEFAULT_DAYS)
    else:
        start = parse_past_or_today(start_date, today, field="start_date", action="seed opening stock for")

    actor = load_actor(db, actor_id)
    require_stock_admin(actor)
    scope = resolve_scope(db, actor, branch_id)

    rows = []
    for branch_scope in concrete_scopes(db, scope):
        ledger = StockLedger(db, branch_scope)
        items = ledger.items()
        if not items:
            continue
        stmt = select(OpeningStock.item_id, OpeningStock.date).where(
            OpeningStock.organization_id == branch_scope.organization_id,
            OpeningStock.date >= start,
            OpeningStock.date <= today,
            branch_scope.branch_clause(OpeningStock.branch_id),
        )
        existing = {(item_id, day) for item_id, day in db.execute(stmt).all()}
        for day in iter_dates(start, today):
            for item in items:
                if (item.id, day) in existing:
                    continue
                rows.append(
                    {
                        "item_id": item.id,
                        "date": day,
                        "organization_id": branch_scope.organization_id,
                        "branch_id": branch_scope.branch_id,
                        "quantity": 0.0,
                        "cost_price": item.cost_price,
                        "selling_price": item.selling_price,
                        "is_manual": False,
                        "recorded_by": actor.id,
                        "notes": "Seeded baseline",
                    }
                )

    try:
        for offset in range(0, len(rows), SEED_INSERT_BATCH_SIZE):
            db.execute(insert(OpeningStock), rows[offset:offset + SEED_INSERT_BATCH_SIZE])
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.info("Seeded %d opening stock row(s) from %s", len(rows), start, extra=scope_extra(scope))
    return len(rows)


__all__ = [
    "auto_create_opening_stock",
    "create_missing_opening_stock",
    "record_manual_opening_stock",
    "seed_opening_stock",
]
