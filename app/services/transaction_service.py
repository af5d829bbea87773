import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.constants import PAYMENT_MODES
from app.core.dates import parse_past_or_today
from app.core.errors import (
    InsufficientStockError,
    NotFoundError,
    PermissionDeniedError,
    StockValidationError,
)
from app.core.logging import scope_extra
from app.core.scope import Scope
from app.models.branch_transfer import BranchTransfer
from app.models.restocking import Restocking
from app.models.sale import Sale
from app.models.waste_spoilage import WasteSpoilage
from app.services.identity_service import (
    ensure_branch_in_organization,
    load_actor,
    require_concrete_scope,
    resolve_scope,
)
from app.services.item_service import get_item
from app.services.opening_stock_service import create_missing_opening_stock
from app.services.report_service import build_daily_report, format_quantity
from app.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


def _positive(value, field: str = "quantity") -> float:
    value = float(value or 0)
    if value <= 0:
        raise StockValidationError("{} must be greater than zero".format(field))
    return value


def _optional_price(value, field: str) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    if value < 0:
        raise StockValidationError("{} must not be negative".format(field))
    return value


def _writable_scope(db: Session, actor_id, branch_id):
    actor = load_actor(db, actor_id)
    scope = require_concrete_scope(db, resolve_scope(db, actor, branch_id))
    return actor, scope


def _save(db: Session, row):
    db.add(row)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(row)
    return row


def available_quantity(db: Session, day: date, scope: Scope, item_id: int) -> float:
    report = build_daily_report(db, day, scope, item_ids={item_id})
    row = report.row_for(item_id)
    return row.closing_stock if row is not None else 0.0


def _ensure_available(db: Session, day: date, scope: Scope, item, quantity: float) -> None:
    available = available_quantity(db, day, scope, item.id)
    if quantity > available:
        raise InsufficientStockError(
            "Insufficient stock for {}: {} available, {} requested".format(
                item.name, format_quantity(available), format_quantity(quantity)
            )
        )


def record_sale(
    db: Session,
    actor_id,
    *,
    item_id: int,
    date_value,
    quantity,
    price_per_unit=None,
    total_price=None,
    payment_mode: str = "cash",
    branch_id: Optional[int] = None,
    restocking_id: Optional[int] = None,
    description: Optional[str] = None,
    today: Optional[date] = None,
) -> Sale:
    day = parse_past_or_today(date_value, today, action="record sales for")
    actor, scope = _writable_scope(db, actor_id, branch_id)
    item = get_item(db, scope.organization_id, item_id)
    quantity = _positive(quantity)

    payment_mode = (payment_mode or "cash").strip().lower()
    if payment_mode not in PAYMENT_MODES:
        raise StockValidationError(
            "payment_mode must be one of: {}".format(", ".join(PAYMENT_MODES))
        )

    _ensure_available(db, day, scope, item, quantity)

    opening = StockLedger(db, scope).find_opening(item.id, day, scope.branch_id)
    price = _optional_price(price_per_unit, "price_per_unit")
    if price is None:
        if opening is not None and opening.selling_price is not None:
            price = float(opening.selling_price)
        else:
            price = float(item.selling_price or 0)
    total = _optional_price(total_price, "total_price")
    if total is None:
        total = quantity * price

    sale = Sale(
        item_id=item.id,
        date=day,
        organization_id=scope.organization_id,
        branch_id=scope.branch_id,
        quantity=quantity,
        price_per_unit=price,
        total_price=total,
        payment_mode=payment_mode,
        restocking_id=restocking_id,
        opening_stock_id=opening.id if opening is not None and restocking_id is None else None,
        recorded_by=actor.id,
        description=description,
    )
    _save(db, sale)
    logger.info("Recorded sale of %s %s", format_quantity(quantity), item.name, extra=scope_extra(scope, day))
    return sale


def record_restocking(
    db: Session,
    actor_id,
    *,
    item_id: int,
    date_value,
    quantity,
    cost_price=None,
    selling_price=None,
    branch_id: Optional[int] = None,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> Restocking:
    day = parse_past_or_today(date_value, today, action="record restocking for")
    actor, scope = _writable_scope(db, actor_id, branch_id)
    item = get_item(db, scope.organization_id, item_id)
    quantity = _positive(quantity)
    cost_price = _optional_price(cost_price, "cost_price")
    selling_price = _optional_price(selling_price, "selling_price")

    # Opening stock for the day is priced from earlier batches, not this one.
    create_missing_opening_stock(db, day, scope, actor.id, item_ids={item.id})

    restocking = Restocking(
        item_id=item.id,
        date=day,
        organization_id=scope.organization_id,
        branch_id=scope.branch_id,
        quantity=quantity,
        cost_price=cost_price,
        selling_price=selling_price,
        total_cost=quantity * cost_price if cost_price is not None else None,
        recorded_by=actor.id,
        notes=notes,
    )
    _save(db, restocking)
    logger.info("Recorded restocking of %s %s", format_quantity(quantity), item.name, extra=scope_extra(scope, day))
    return restocking


def record_waste(
    db: Session,
    actor_id,
    *,
    item_id: int,
    date_value,
    quantity,
    reason: str = "waste",
    branch_id: Optional[int] = None,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> WasteSpoilage:
    day = parse_past_or_today(date_value, today, action="record waste for")
    actor, scope = _writable_scope(db, actor_id, branch_id)
    item = get_item(db, scope.organization_id, item_id)
    quantity = _positive(quantity)

    waste = WasteSpoilage(
        item_id=item.id,
        date=day,
        organization_id=scope.organization_id,
        branch_id=scope.branch_id,
        quantity=quantity,
        reason=(reason or "waste").strip() or "waste",
        recorded_by=actor.id,
        notes=notes,
    )
    _save(db, waste)
    logger.info("Recorded waste of %s %s", format_quantity(quantity), item.name, extra=scope_extra(scope, day))
    return waste


def record_transfer(
    db: Session,
    actor_id,
    *,
    item_id: int,
    date_value,
    quantity,
    from_branch_id: int,
    to_branch_id: int,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> BranchTransfer:
    day = parse_past_or_today(date_value, today, action="record transfers for")
    actor = load_actor(db, actor_id)
    if from_branch_id == to_branch_id:
        raise StockValidationError("Source and destination branch must differ")

    source = resolve_scope(db, actor, from_branch_id)
    if source.branch_id != from_branch_id or source.org_wide:
        raise PermissionDeniedError("Transfers can only be sent from your own branch")
    ensure_branch_in_organization(db, source.organization_id, to_branch_id)

    item = get_item(db, source.organization_id, item_id)
    quantity = _positive(quantity)
    _ensure_available(db, day, source, item, quantity)

    transfer = BranchTransfer(
        item_id=item.id,
        date=day,
        organization_id=source.organization_id,
        from_branch_id=from_branch_id,
        to_branch_id=to_branch_id,
        quantity=quantity,
        recorded_by=actor.id,
        notes=notes,
    )
    _save(db, transfer)
    logger.info(
        "Recorded transfer of %s %s to branch %s",
        format_quantity(quantity),
        item.name,
        to_branch_id,
        extra=scope_extra(source, day),
    )
    return transfer


def _load_sale(db: Session, actor, sale_id: int):
    sale = db.get(Sale, sale_id)
    if sale is None or sale.organization_id != actor.organization_id:
        raise NotFoundError("Sale {} not found".format(sale_id))
    scope = require_concrete_scope(db, resolve_scope(db, actor, sale.branch_id))
    if scope.branch_id != sale.branch_id:
        raise NotFoundError("Sale {} not found".format(sale_id))
    return sale, scope


def update_sale(
    db: Session,
    actor_id,
    sale_id: int,
    *,
    date_value=None,
    quantity=None,
    price_per_unit=None,
    total_price=None,
    payment_mode: Optional[str] = None,
    description: Optional[str] = None,
    today: Optional[date] = None,
) -> Sale:
    """Correct a recorded sale.

    The sale's own quantity is available again on its original date, so a
    correction is checked against the stock left without it. Closing stock is
    not recalculated here.
    """
    actor = load_actor(db, actor_id)
    sale, scope = _load_sale(db, actor, sale_id)
    item = get_item(db, scope.organization_id, sale.item_id)

    day = sale.date
    if date_value is not None:
        day = parse_past_or_today(date_value, today, action="record sales for")
    new_quantity = _positive(quantity) if quantity is not None else float(sale.quantity)
    price = _optional_price(price_per_unit, "price_per_unit")
    total = _optional_price(total_price, "total_price")

    if payment_mode is not None:
        payment_mode = payment_mode.strip().lower()
        if payment_mode not in PAYMENT_MODES:
            raise StockValidationError(
                "payment_mode must be one of: {}".format(", ".join(PAYMENT_MODES))
            )

    available = available_quantity(db, day, scope, item.id)
    if day == sale.date:
        available += float(sale.quantity or 0)
    if new_quantity > available:
        raise InsufficientStockError(
            "Insufficient stock for {}: {} available, {} requested".format(
                item.name, format_quantity(available), format_quantity(new_quantity)
            )
        )

    if total is None and (price is not None or new_quantity != float(sale.quantity)):
        total = new_quantity * (price if price is not None else float(sale.price_per_unit or 0))
    if price is not None:
        sale.price_per_unit = price
    if total is not None:
        sale.total_price = total

    if day != sale.date and sale.restocking_id is None:
        opening = StockLedger(db, scope).find_opening(item.id, day, scope.branch_id)
        sale.opening_stock_id = opening.id if opening is not None else None
    sale.date = day
    sale.quantity = new_quantity
    if payment_mode is not None:
        sale.payment_mode = payment_mode
    if description is not None:
        sale.description = description

    _save(db, sale)
    logger.info("Updated sale %s of %s", sale.id, item.name, extra=scope_extra(scope, day))
    return sale


def delete_sale(db: Session, actor_id, sale_id: int) -> None:
    actor = load_actor(db, actor_id)
    sale, scope = _load_sale(db, actor, sale_id)
    day = sale.date
    db.delete(sale)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.info("Deleted sale %s", sale_id, extra=scope_extra(scope, day))


__all__ = [
    "available_quantity",
    "delete_sale",
    "record_restocking",
    "record_sale",
    "record_transfer",
    "record_waste",
    "update_sale",
]
