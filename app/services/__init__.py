from app.services.cascade_service import (
    CascadeResult,
    RecalculationOutcome,
    cascade_from,
    recalculate_and_cascade,
    run_cascade,
)
from app.services.opening_stock_service import (
    auto_create_opening_stock,
    record_manual_opening_stock,
    seed_opening_stock,
)
from app.services.report_service import (
    DailyReport,
    RecalculationResult,
    ReportRow,
    calculate_closing_quantity,
    compute_daily_report,
    recalculate_closing_stock,
)
from app.services.stock_ledger import StockLedger

__all__ = [
    "CascadeResult",
    "DailyReport",
    "RecalculationOutcome",
    "RecalculationResult",
    "ReportRow",
    "StockLedger",
    "auto_create_opening_stock",
    "calculate_closing_quantity",
    "cascade_from",
    "compute_daily_report",
    "recalculate_and_cascade",
    "recalculate_closing_stock",
    "record_manual_opening_stock",
    "run_cascade",
    "seed_opening_stock",
]
