from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from app.core.errors import StockError
from app.core.security import actor_id_from_auth
from app.dependencies import get_db, require_auth, stock_http_error
from app.schemas.item import ItemCreate, ItemRead
from app.services.item_service import create_item, delete_item

router = APIRouter(prefix="/items", tags=["Items"])


@router.post("", response_model=ItemRead, status_code=201)
def add_item(payload: ItemCreate, db: Session = Depends(get_db), auth=Depends(require_auth)):
    try:
        item = create_item(
            db,
            actor_id_from_auth(auth, payload.user_id),
            name=payload.name,
            unit=payload.unit,
            branch_id=payload.branch_id,
            description=payload.description,
            low_stock_threshold=payload.low_stock_threshold,
            cost_price=payload.cost_price,
            selling_price=payload.selling_price,
        )
    except StockError as exc:
        raise stock_http_error(exc) from exc
    return ItemRead.model_validate(item)


@router.delete("/{item_id}", status_code=204)
def remove_item(
    item_id: int,
    user_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    auth=Depends(require_auth),
):
    try:
        delete_item(db, actor_id_from_auth(auth, user_id), item_id)
    except StockError as exc:
        raise stock_http_error(exc) from exc
    return Response(status_code=204)
