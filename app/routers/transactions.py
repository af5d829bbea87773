from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from app.core.errors import StockError
from app.core.security import actor_id_from_auth
from app.dependencies import get_db, require_auth, stock_http_error
from app.schemas.transactions import (
    RestockingCreate,
    RestockingRead,
    SaleCreate,
    SaleRead,
    SaleUpdate,
    TransferCreate,
    TransferRead,
    WasteCreate,
    WasteRead,
)
from app.services.transaction_service import (
    delete_sale,
    record_restocking,
    record_sale,
    record_transfer,
    record_waste,
    update_sale,
)

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.post("/sales", response_model=SaleRead, status_code=201)
def create_sale(payload: SaleCreate, db: Session = Depends(get_db), auth=Depends(require_auth)):
    try:
        sale = record_sale(
            db,
            actor_id_from_auth(auth, payload.user_id),
            item_id=payload.item_id,
            date_value=payload.date,
            quantity=payload.quantity,
            price_per_unit=payload.price_per_unit,
            total_price=payload.total_price,
            payment_mode=payload.payment_mode,
            branch_id=payload.branch_id,
            restocking_id=payload.restocking_id,
            description=payload.description,
        )
    except StockError as exc:
        raise stock_http_error(exc) from exc
    return SaleRead.model_validate(sale)


@router.put("/sales/{sale_id}", response_model=SaleRead)
def edit_sale(sale_id: int, payload: SaleUpdate, db: Session = Depends(get_db), auth=Depends(require_auth)):
    try:
        sale = update_sale(
            db,
            actor_id_from_auth(auth, payload.user_id),
            sale_id,
            date_value=payload.date,
            quantity=payload.quantity,
            price_per_unit=payload.price_per_unit,
            total_price=payload.total_price,
            payment_mode=payload.payment_mode,
            description=payload.description,
        )
    except StockError as exc:
        raise stock_http_error(exc) from exc
    return SaleRead.model_validate(sale)


@router.delete("/sales/{sale_id}", status_code=204)
def remove_sale(
    sale_id: int,
    user_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    auth=Depends(require_auth),
):
    try:
        delete_sale(db, actor_id_from_auth(auth, user_id), sale_id)
    except StockError as exc:
        raise stock_http_error(exc) from exc
    return Response(status_code=204)


@router.post("/restocking", response_model=RestockingRead, status_code=201)
def create_restocking(payload: RestockingCreate, db: Session = Depends(get_db), auth=Depends(require_auth)):
    try:
        restocking = record_restocking(
            db,
            actor_id_from_auth(auth, payload.user_id),
            item_id=payload.item_id,
            date_value=payload.date,
            quantity=payload.quantity,
            cost_price=payload.cost_price,
            selling_price=payload.selling_price,
            branch_id=payload.branch_id,
            notes=payload.notes,
        )
    except StockError as exc:
        raise stock_http_error(exc) from exc
    return RestockingRead.model_validate(restocking)


@router.post("/waste", response_model=WasteRead, status_code=201)
def create_waste(payload: WasteCreate, db: Session = Depends(get_db), auth=Depends(require_auth)):
    try:
        waste = record_waste(
            db,
            actor_id_from_auth(auth, payload.user_id),
            item_id=payload.item_id,
            date_value=payload.date,
            quantity=payload.quantity,
            reason=payload.reason,
            branch_id=payload.branch_id,
            notes=payload.notes,
        )
    except StockError as exc:
        raise stock_http_error(exc) from exc
    return WasteRead.model_validate(waste)


@router.post("/transfers", response_model=TransferRead, status_code=201)
def create_transfer(payload: TransferCreate, db: Session = Depends(get_db), auth=Depends(require_auth)):
    try:
        transfer = record_transfer(
            db,
            actor_id_from_auth(auth, payload.user_id),
            item_id=payload.item_id,
            date_value=payload.date,
            quantity=payload.quantity,
            from_branch_id=payload.from_branch_id,
            to_branch_id=payload.to_branch_id,
            notes=payload.notes,
        )
    except StockError as exc:
        raise stock_http_error(exc) from exc
    return TransferRead.model_validate(transfer)
