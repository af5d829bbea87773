from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.errors import CascadeInterruptedError, StockError
from app.core.security import actor_id_from_auth
from app.dependencies import cascade_failure_detail, get_db, require_auth, stock_http_error
from app.schemas.stock import (
    CascadeFailureRead,
    CascadeRequest,
    CascadeResultRead,
    CreatedCount,
    DailyReportRead,
    ManualOpeningStockRequest,
    RecalculateResponse,
    SeedOpeningStockRequest,
    StockDateRequest,
    UpsertCounts,
)
from app.services.cascade_service import cascade_from, recalculate_and_cascade
from app.services.identity_service import load_actor, resolve_scope
from app.services.opening_stock_service import (
    auto_create_opening_stock,
    record_manual_opening_stock,
    seed_opening_stock,
)
from app.services.report_service import compute_daily_report

router = APIRouter(prefix="/stock", tags=["Stock"])


def _actor_scope(db: Session, auth, user_id, branch_id):
    actor = load_actor(db, actor_id_from_auth(auth, user_id))
    return actor, resolve_scope(db, actor, branch_id)


@router.get("/report", response_model=DailyReportRead)
def daily_report(
    date: str = Query(...),
    user_id: Optional[str] = Query(None),
    branch_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    auth=Depends(require_auth),
):
    try:
        _actor, scope = _actor_scope(db, auth, user_id, branch_id)
        report = compute_daily_report(db, date, scope)
    except StockError as exc:
        raise stock_http_error(exc) from exc
    return DailyReportRead.model_validate(report)


@router.post("/closing/recalculate", response_model=RecalculateResponse)
def recalculate_closing(
    payload: StockDateRequest,
    db: Session = Depends(get_db),
    auth=Depends(require_auth),
):
    try:
        actor, scope = _actor_scope(db, auth, payload.user_id, payload.branch_id)
        outcome = recalculate_and_cascade(db, payload.date, scope, actor.id)
    except StockError as exc:
        raise stock_http_error(exc) from exc

    result = outcome.recalculation
    response = RecalculateResponse(
        date=result.date,
        branch_ids=result.branch_ids,
        inserted=result.inserted,
        updated=result.updated,
    )
    if outcome.cascade is not None:
        response.cascade = CascadeResultRead.model_validate(outcome.cascade)
    if isinstance(outcome.cascade_error, CascadeInterruptedError):
        response.cascade_error = CascadeFailureRead(**cascade_failure_detail(outcome.cascade_error))
    elif outcome.cascade_error is not None:
        response.cascade_error = CascadeFailureRead(message=str(outcome.cascade_error))
    return response


@router.post("/cascade", response_model=CascadeResultRead)
def cascade(
    payload: CascadeRequest,
    db: Session = Depends(get_db),
    auth=Depends(require_auth),
):
    try:
        result = cascade_from(
            db,
            payload.start_date,
            actor_id_from_auth(auth, payload.user_id),
            branch_id=payload.branch_id,
        )
    except StockError as exc:
        raise stock_http_error(exc) from exc
    return CascadeResultRead.model_validate(result)


@router.post("/opening/auto-create", response_model=CreatedCount)
def auto_create_opening(
    payload: StockDateRequest,
    db: Session = Depends(get_db),
    auth=Depends(require_auth),
):
    try:
        actor, scope = _actor_scope(db, auth, payload.user_id, payload.branch_id)
        created = auto_create_opening_stock(db, payload.date, scope, actor.id)
    except StockError as exc:
        raise stock_http_error(exc) from exc
    return CreatedCount(created=created)


@router.post("/opening/manual", response_model=UpsertCounts)
def manual_opening(
    payload: ManualOpeningStockRequest,
    db: Session = Depends(get_db),
    auth=Depends(require_auth),
):
    try:
        counts = record_manual_opening_stock(
            db,
            payload.date,
            actor_id_from_auth(auth, payload.user_id),
            [entry.model_dump() for entry in payload.items],
            branch_id=payload.branch_id,
        )
    except StockError as exc:
        raise stock_http_error(exc) from exc
    return UpsertCounts(**counts)


@router.post("/opening/seed", response_model=CreatedCount)
def seed_opening(
    payload: SeedOpeningStockRequest,
    db: Session = Depends(get_db),
    auth=Depends(require_auth),
):
    try:
        created = seed_opening_stock(
            db,
            actor_id_from_auth(auth, payload.user_id),
            start_date=payload.start_date,
            branch_id=payload.branch_id,
        )
    except StockError as exc:
        raise stock_http_error(exc) from exc
    return CreatedCount(created=created)
