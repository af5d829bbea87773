import logging
from typing import Optional

from sqlalchemy import exists, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ItemInUseError, NotFoundError, ScopeError, StockValidationError
from app.models.branch_transfer import BranchTransfer
from app.models.closing_stock import ClosingStock
from app.models.item import Item
from app.models.opening_stock import OpeningStock
from app.models.restocking import Restocking
from app.models.sale import Sale
from app.models.waste_spoilage import WasteSpoilage
from app.services.identity_service import (
    ensure_branch_in_organization,
    load_actor,
    require_stock_admin,
)

logger = logging.getLogger(__name__)


def get_item(db: Session, organization_id: int, item_id: int) -> Item:
    item = db.get(Item, item_id)
    if item is None or item.organization_id != organization_id:
        raise NotFoundError("Item {} not found".format(item_id))
    return item


def _non_negative(value, field: str) -> float:
    if value is None:
        return 0.0
    value = float(value)
    if value < 0:
        raise StockValidationError("{} must not be negative".format(field))
    return value


def create_item(
    db: Session,
    actor_id,
    *,
    name: str,
    unit: str = "pcs",
    branch_id: Optional[int] = None,
    description: Optional[str] = None,
    low_stock_threshold: float = 0,
    cost_price: float = 0,
    selling_price: float = 0,
) -> Item:
    actor = load_actor(db, actor_id)
    require_stock_admin(actor)
    if actor.organization_id is None:
        raise ScopeError("User {} is not assigned to an organization".format(actor.id))

    name = (name or "").strip()
    if not name:
        raise StockValidationError("name is required")

    if actor.is_branch_pinned:
        branch_id = actor.branch_id
    elif branch_id is not None:
        ensure_branch_in_organization(db, actor.organization_id, branch_id)

    item = Item(
        organization_id=actor.organization_id,
        branch_id=branch_id,
        name=name,
        unit=(unit or "pcs").strip() or "pcs",
        description=description,
        low_stock_threshold=_non_negative(low_stock_threshold, "low_stock_threshold"),
        cost_price=_non_negative(cost_price, "cost_price"),
        selling_price=_non_negative(selling_price, "selling_price"),
    )
    db.add(item)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(item)
    logger.info("Created item %s (%s)", item.id, item.name)
    return item


def item_has_history(db: Session, item_id: int) -> bool:
    for model in (Sale, OpeningStock, ClosingStock, Restocking, WasteSpoilage, BranchTransfer):
        if db.execute(select(exists().where(model.item_id == item_id))).scalar():
            return True
    return False


def delete_item(db: Session, actor_id, item_id: int) -> None:
    actor = load_actor(db, actor_id)
    require_stock_admin(actor)
    item = get_item(db, actor.organization_id, item_id)
    if actor.is_branch_pinned and item.branch_id != actor.branch_id:
        raise NotFoundError("Item {} not found".format(item_id))
    if item_has_history(db, item.id):
        raise ItemInUseError(
            "Cannot delete '{}': it has sales or stock history".format(item.name)
        )
    db.delete(item)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.info("Deleted item %s", item_id)


__all__ = ["create_item", "delete_item", "get_item", "item_has_history"]
