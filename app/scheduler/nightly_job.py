import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.core.dates import previous_day, today_local
from app.core.errors import StockError
from app.core.logging import scope_extra
from app.core.scope import Scope
from app.database import session_scope
from app.models.organization import Organization
from app.services.identity_service import concrete_scopes
from app.services.opening_stock_service import auto_create_opening_stock
from app.services.report_service import recalculate_closing_stock

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def run_daily_rollover(today: Optional[date] = None, session_factory=None) -> str:
    """Close yesterday and open today for every organization branch.

    Safe to rerun for the same day. Raises when any branch failed, after every
    other branch has been processed; branches that succeeded keep their writes.
    """
    today = today or today_local()
    yesterday = previous_day(today)
    closed = 0
    opened = 0
    failures = []

    with session_scope(session_factory) as db:
        organization_ids = list(db.execute(select(Organization.id).order_by(Organization.id)).scalars().all())
        for organization_id in organization_ids:
            for scope in concrete_scopes(db, Scope.organization(organization_id)):
                try:
                    result = recalculate_closing_stock(db, yesterday, scope, SYSTEM_ACTOR, today=today)
                    closed += result.items_written
                    opened += auto_create_opening_stock(db, today, scope, SYSTEM_ACTOR, today=today)
                except (StockError, SQLAlchemyError) as exc:
                    db.rollback()
                    failures.append("{}: {}".format(scope.key, exc))
                    logger.exception("Daily rollover failed", extra=scope_extra(scope, today))

    summary = "Closed {} item(s) for {}, opened {} item(s) for {} across {} organization(s)".format(
        closed,
        yesterday.isoformat(),
        opened,
        today.isoformat(),
        len(organization_ids),
    )
    if failures:
        raise RuntimeError("{}; failed: {}".format(summary, "; ".join(failures)))
    logger.info(summary)
    return summary


__all__ = ["SYSTEM_ACTOR", "run_daily_rollover"]
