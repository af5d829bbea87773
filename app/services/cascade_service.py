"""Forward propagation of closing stock into the following days.

Each day's closing stock becomes the next day's opening stock, and the next
day's closing stock is recomputed from it, up to and including today's
opening stock. Days are committed one at a time so an interruption keeps the
days already propagated.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.dates import next_day, parse_past_or_today, today_local
from app.core.errors import CascadeInterruptedError, CascadeLimitError, StockError
from app.core.logging import scope_extra
from app.core.scope import Scope
from app.services.cascade_lock_service import cascade_lock, touch_cascade_lock
from app.services.identity_service import load_actor, resolve_scope
from app.services.report_service import (
    RecalculationResult,
    build_daily_report,
    format_quantity,
    write_closing_stock,
    write_recalculation,
)
from app.services.stock_ledger import StockLedger, index_by_item_branch

logger = logging.getLogger(__name__)


@dataclass
class CascadeResult:
    start_date: date
    end_date: date
    updates: list[str] = field(default_factory=list)
    days_processed: int = 0
    days_skipped: int = 0


def check_cascade_span(start: date, today: date, max_days: Optional[int] = None) -> None:
    if max_days is None:
        max_days = get_settings().CASCADE_MAX_DAYS
    span = (today - start).days
    if span > max_days:
        raise CascadeLimitError(
            "Cascade from {} spans {} days; the limit is {}".format(start.isoformat(), span, max_days)
        )


def _opening_note(current: date, quantity, existing) -> str:
    if existing is not None and float(existing.quantity or 0) != float(quantity):
        return "Auto-updated from closing stock of {}: {}. Previous value: {}".format(
            current.isoformat(),
            format_quantity(quantity),
            format_quantity(existing.quantity),
        )
    return "Carried forward from closing stock of {}: {}".format(current.isoformat(), format_quantity(quantity))


def _cascade_day(db: Session, ledger: StockLedger, current: date, actor_id) -> Optional[str]:
    """Write ``current``'s closing stock into the next day; ``None`` when there is nothing to carry."""
    closing_rows = ledger.closing_stock(current)
    if not closing_rows:
        return None

    target = next_day(current)
    items = {item.id: item for item in ledger.organization_items()}
    next_opening = index_by_item_branch(ledger.opening_stock(target))
    current_opening = index_by_item_branch(ledger.opening_stock(current))

    counts = {"inserted": 0, "updated": 0}
    affected = {}
    for closing in closing_rows:
        if closing.item_id not in items:
            continue
        key = (closing.item_id, closing.branch_id)
        existing = next_opening.get(key)
        quantity = float(closing.quantity or 0)
        values = {
            "quantity": quantity,
            "is_manual": False,
            "recorded_by": actor_id,
            "notes": _opening_note(current, quantity, existing),
        }
        if existing is None:
            source = current_opening.get(key)
            values["cost_price"] = source.cost_price if source is not None else None
            values["selling_price"] = source.selling_price if source is not None else None
        outcome = ledger.upsert_opening(closing.item_id, target, closing.branch_id, values, existing=existing)
        counts[outcome] += 1
        affected.setdefault(closing.branch_id, set()).add(closing.item_id)
    db.flush()

    recalculated = 0
    for branch_id, item_ids in affected.items():
        branch_scope = Scope.branch(ledger.scope.organization_id, branch_id)
        report = build_daily_report(db, target, branch_scope, item_ids=item_ids)
        written = write_closing_stock(db, report, actor_id)
        recalculated += written["inserted"] + written["updated"]

    return "{}: opening stock carried forward from closing stock of {} for {} item(s) ({} new, {} updated); closing stock recalculated for {} item(s)".format(
        target.isoformat(),
        current.isoformat(),
        counts["inserted"] + counts["updated"],
        counts["inserted"],
        counts["updated"],
        recalculated,
    )


def _propagate(db: Session, start: date, scope: Scope, actor_id, today: date, lock) -> CascadeResult:
    result = CascadeResult(start_date=start, end_date=today)
    ledger = StockLedger(db, scope)

    logger.info("Starting stock cascade from %s to %s", start, today, extra=scope_extra(scope, start))
    current = start
    while current < today:
        try:
            summary = _cascade_day(db, ledger, current, actor_id)
            if summary is None:
                result.days_skipped += 1
                logger.debug("No closing stock to carry forward", extra=scope_extra(scope, current))
            else:
                touch_cascade_lock(db, lock)
                db.commit()
                result.updates.append(summary)
                result.days_processed += 1
                logger.info(summary, extra=scope_extra(scope, next_day(current)))
        except SQLAlchemyError as exc:
            db.rollback()
            failed = next_day(current)
            logger.exception("Stock cascade interrupted", extra=scope_extra(scope, failed))
            raise CascadeInterruptedError(
                "Cascade stopped while updating {}: {}".format(failed.isoformat(), exc),
                updates=result.updates,
                failed_date=failed,
                cause=exc,
            ) from exc
        current = next_day(current)

    logger.info(
        "Stock cascade finished: %d day(s) updated, %d skipped",
        result.days_processed,
        result.days_skipped,
        extra=scope_extra(scope, today),
    )
    return result


def run_cascade(
    db: Session,
    start: date,
    scope: Scope,
    actor_id,
    *,
    today: Optional[date] = None,
) -> CascadeResult:
    """Cascade an already validated ``start`` date through ``scope`` up to ``today``."""
    today = today or today_local()
    check_cascade_span(start, today)
    with cascade_lock(db, scope) as lock:
        return _propagate(db, start, scope, actor_id, today, lock)


def cascade_from(
    db: Session,
    start_date,
    actor_id,
    *,
    branch_id: Optional[int] = None,
    today: Optional[date] = None,
) -> CascadeResult:
    today = today or today_local()
    start = parse_past_or_today(start_date, today, field="start_date", action="cascade from")
    check_cascade_span(start, today)
    actor = load_actor(db, actor_id)
    scope = resolve_scope(db, actor, branch_id)
    return run_cascade(db, start, scope, actor.id, today=today)


@dataclass
class RecalculationOutcome:
    recalculation: RecalculationResult
    cascade: Optional[CascadeResult] = None
    cascade_error: Optional[StockError] = None


def recalculate_and_cascade(
    db: Session,
    date_value,
    scope: Scope,
    actor_id,
    *,
    today: Optional[date] = None,
) -> RecalculationOutcome:
    """Recalculate a day's closing stock and cascade it up to today under one lock.

    The recalculation is committed before the cascade starts, so a cascade
    that stops part way is returned on the outcome instead of raised.
    """
    today = today or today_local()
    day = parse_past_or_today(date_value, today, action="recalculate closing stock for")
    with cascade_lock(db, scope) as lock:
        outcome = RecalculationOutcome(recalculation=write_recalculation(db, day, scope, actor_id))
        if day < today:
            try:
                check_cascade_span(day, today)
                outcome.cascade = _propagate(db, day, scope, actor_id, today, lock)
            except (CascadeInterruptedError, CascadeLimitError) as exc:
                outcome.cascade_error = exc
    return outcome


__all__ = [
    "CascadeResult",
    "RecalculationOutcome",
    "cascade_from",
    "check_cascade_span",
    "recalculate_and_cascade",
    "run_cascade",
]
