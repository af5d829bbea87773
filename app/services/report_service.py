from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.constants import SOURCE_MANUAL_ENTRY, SOURCE_PREVIOUS_CLOSING, SOURCE_ZERO
from app.core.dates import parse_past_or_today, previous_day
from app.core.logging import scope_extra
from app.core.scope import Scope
from app.services.cascade_lock_service import cascade_lock
from app.services.identity_service import concrete_scopes
from app.services.stock_ledger import StockLedger, index_by_item_branch

logger = logging.getLogger(__name__)

_SOURCE_RANK = {SOURCE_PREVIOUS_CLOSING: 0, SOURCE_MANUAL_ENTRY: 1, SOURCE_ZERO: 2}


@dataclass
class ReportRow:
    item_id: int
    item_name: str
    unit: str
    opening_stock: float
    opening_stock_source: str
    opening_cost_price: Optional[float]
    opening_selling_price: Optional[float]
    total_restocking: float
    total_sales: float
    total_waste: float
    total_transfers_in: float
    total_transfers_out: float
    closing_stock: float
    opening_stock_manual: bool
    closing_stock_manual: bool
    low_stock: bool


@dataclass
class DailyReport:
    date: date
    organization_id: int
    branch_id: Optional[int]
    org_wide: bool
    rows: list[ReportRow] = field(default_factory=list)

    def row_for(self, item_id: int) -> Optional[ReportRow]:
        for row in self.rows:
            if row.item_id == item_id:
                return row
        return None


@dataclass
class RecalculationResult:
    date: date
    organization_id: int
    branch_ids: list[Optional[int]]
    inserted: int = 0
    updated: int = 0

    @property
    def items_written(self) -> int:
        return self.inserted + self.updated


@dataclass
class _DayInputs:
    opening_today: dict
    opening_previous: dict
    closing_today: dict
    closing_previous: dict
    sales: dict
    restocking: dict
    waste: dict
    transfers_in: dict
    transfers_out: dict

    def branch_keys(self, item_id: int) -> set:
        keys = set()
        for mapping in (
            self.opening_today,
            self.opening_previous,
            self.closing_today,
            self.closing_previous,
            self.sales,
            self.restocking,
            self.waste,
            self.transfers_in,
            self.transfers_out,
        ):
            keys.update(branch for (row_item, branch) in mapping if row_item == item_id)
        return keys


def calculate_closing_quantity(opening, restocking, transfers_in, sales, waste, transfers_out) -> float:
    value = (
        float(opening or 0)
        + float(restocking or 0)
        + float(transfers_in or 0)
        - float(sales or 0)
        - float(waste or 0)
        - float(transfers_out or 0)
    )
    return max(0.0, value)


def format_quantity(value) -> str:
    value = float(value or 0)
    if value.is_integer():
        return str(int(value))
    return str(value)


def _totals(rows, branch_attr: str = "branch_id") -> dict:
    totals = defaultdict(float)
    for row in rows:
        totals[(row.item_id, getattr(row, branch_attr))] += float(row.quantity or 0)
    return dict(totals)


def _resolve_opening(previous_closing, today_opening, previous_opening):
    if previous_closing is not None:
        quantity = float(previous_closing.quantity or 0)
        source = SOURCE_PREVIOUS_CLOSING
    elif today_opening is not None:
        quantity = float(today_opening.quantity or 0)
        source = SOURCE_MANUAL_ENTRY
    else:
        quantity = 0.0
        source = SOURCE_ZERO

    if today_opening is not None:
        prices = (today_opening.cost_price, today_opening.selling_price)
    elif source == SOURCE_PREVIOUS_CLOSING and previous_opening is not None:
        prices = (previous_opening.cost_price, previous_opening.selling_price)
    else:
        prices = (None, None)
    return quantity, source, prices


def build_report_row(item, inputs: _DayInputs, branch_keys) -> ReportRow:
    """One report row for ``item`` summed over ``branch_keys``.

    Opening precedence is applied per branch, so an org-wide row is the sum
    of the branch rows it covers.
    """
    opening_total = 0.0
    closing_total = 0.0
    totals = defaultdict(float)
    source = SOURCE_ZERO
    cost_price = None
    selling_price = None

    for branch_id in sorted(branch_keys, key=lambda value: (value is not None, value or 0)):
        key = (item.id, branch_id)
        quantity, branch_source, prices = _resolve_opening(
            inputs.closing_previous.get(key),
            inputs.opening_today.get(key),
            inputs.opening_previous.get(key),
        )
        if _SOURCE_RANK[branch_source] < _SOURCE_RANK[source]:
            source = branch_source
        if cost_price is None and selling_price is None:
            cost_price, selling_price = prices

        branch_totals = {
            "restocking": inputs.restocking.get(key, 0.0),
            "sales": inputs.sales.get(key, 0.0),
            "waste": inputs.waste.get(key, 0.0),
            "transfers_in": inputs.transfers_in.get(key, 0.0),
            "transfers_out": inputs.transfers_out.get(key, 0.0),
        }
        for name, value in branch_totals.items():
            totals[name] += value

        opening_total += quantity
        closing_total += calculate_closing_quantity(
            quantity,
            branch_totals["restocking"],
            branch_totals["transfers_in"],
            branch_totals["sales"],
            branch_totals["waste"],
            branch_totals["transfers_out"],
        )

    threshold = float(item.low_stock_threshold or 0)
    return ReportRow(
        item_id=item.id,
        item_name=item.name,
        unit=item.unit,
        opening_stock=opening_total,
        opening_stock_source=source,
        opening_cost_price=cost_price,
        opening_selling_price=selling_price,
        total_restocking=totals["restocking"],
        total_sales=totals["sales"],
        total_waste=totals["waste"],
        total_transfers_in=totals["transfers_in"],
        total_transfers_out=totals["transfers_out"],
        closing_stock=closing_total,
        opening_stock_manual=any(key in inputs.opening_today for key in _item_keys(item.id, branch_keys)),
        closing_stock_manual=any(key in inputs.closing_today for key in _item_keys(item.id, branch_keys)),
        low_stock=threshold > 0 and closing_total <= threshold,
    )


def _item_keys(item_id, branch_keys):
    return [(item_id, branch_id) for branch_id in branch_keys]


def _load_inputs(ledger: StockLedger, day: date) -> _DayInputs:
    prev = previous_day(day)
    return _DayInputs(
        opening_today=index_by_item_branch(ledger.opening_stock(day)),
        opening_previous=index_by_item_branch(ledger.opening_stock(prev)),
        closing_today=index_by_item_branch(ledger.closing_stock(day)),
        closing_previous=index_by_item_branch(ledger.closing_stock(prev)),
        sales=_totals(ledger.sales(day)),
        restocking=_totals(ledger.restocking(day)),
        waste=_totals(ledger.waste(day)),
        transfers_in=_totals(ledger.transfers_in(day), "to_branch_id"),
        transfers_out=_totals(ledger.transfers_out(day), "from_branch_id"),
    )


def build_daily_report(db: Session, day: date, scope: Scope, *, item_ids=None) -> DailyReport:
    """Report for an already validated ``day``."""
    ledger = StockLedger(db, scope)
    inputs = _load_inputs(ledger, day)
    report = DailyReport(
        date=day,
        organization_id=scope.organization_id,
        branch_id=scope.branch_id,
        org_wide=scope.org_wide,
    )
    for item in ledger.items():
        if item_ids is not None and item.id not in item_ids:
            continue
        if scope.org_wide:
            branch_keys = inputs.branch_keys(item.id) or {None}
        else:
            branch_keys = {scope.branch_id}
        report.rows.append(build_report_row(item, inputs, branch_keys))
    return report


def compute_daily_report(db: Session, date_value, scope: Scope, *, today: Optional[date] = None) -> DailyReport:
    day = parse_past_or_today(date_value, today, action="view reports for")
    report = build_daily_report(db, day, scope)
    logger.debug("Computed report with %d rows", len(report.rows), extra=scope_extra(scope, day))
    return report


def closing_audit_note(row: ReportRow) -> str:
    return (
        "Auto-calculated: Opening ({}) + Restocking ({}) + Transfers in ({}) "
        "- Sales ({}) - Waste/Spoilage ({}) - Transfers out ({})".format(
            format_quantity(row.opening_stock),
            format_quantity(row.total_restocking),
            format_quantity(row.total_transfers_in),
            format_quantity(row.total_sales),
            format_quantity(row.total_waste),
            format_quantity(row.total_transfers_out),
        )
    )


def write_closing_stock(db: Session, report: DailyReport, actor_id) -> dict:
    """Upsert one closing row per report row; ``report`` must be branch-scoped."""
    if report.org_wide:
        raise ValueError("Closing stock is written per branch")
    ledger = StockLedger(db, Scope.branch(report.organization_id, report.branch_id))
    counts = {"inserted": 0, "updated": 0}
    for row in report.rows:
        outcome = ledger.upsert_closing(
            row.item_id,
            report.date,
            report.branch_id,
            {
                "quantity": row.closing_stock,
                "recorded_by": actor_id,
                "notes": closing_audit_note(row),
            },
        )
        counts[outcome] += 1
    db.flush()
    return counts


def write_recalculation(db: Session, day: date, scope: Scope, actor_id) -> RecalculationResult:
    """Recalculate and commit closing stock for ``day``; the caller holds the cascade lock."""
    scopes = concrete_scopes(db, scope)
    result = RecalculationResult(
        date=day,
        organization_id=scope.organization_id,
        branch_ids=[branch_scope.branch_id for branch_scope in scopes],
    )
    try:
        for branch_scope in scopes:
            counts = write_closing_stock(db, build_daily_report(db, day, branch_scope), actor_id)
            result.inserted += counts["inserted"]
            result.updated += counts["updated"]
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.info(
        "Recalculated closing stock (%d inserted, %d updated)",
        result.inserted,
        result.updated,
        extra=scope_extra(scope, day),
    )
    return result


def recalculate_closing_stock(
    db: Session,
    date_value,
    scope: Scope,
    actor_id,
    *,
    today: Optional[date] = None,
) -> RecalculationResult:
    day = parse_past_or_today(date_value, today, action="recalculate closing stock for")
    with cascade_lock(db, scope):
        return write_recalculation(db, day, scope, actor_id)


__all__ = [
    "DailyReport",
    "RecalculationResult",
    "ReportRow",
    "build_daily_report",
    "build_report_row",
    "calculate_closing_quantity",
    "closing_audit_note",
    "compute_daily_report",
    "format_quantity",
    "recalculate_closing_stock",
    "write_closing_stock",
    "write_recalculation",
]
