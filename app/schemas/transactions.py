from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict


class TransactionBase(BaseModel):
    item_id: int
    date: str
    quantity: float
    user_id: Optional[str] = None


class SaleCreate(TransactionBase):
    price_per_unit: Optional[float] = None
    total_price: Optional[float] = None
    payment_mode: str = "cash"
    branch_id: Optional[int] = None
    restocking_id: Optional[int] = None
    description: Optional[str] = None


class SaleUpdate(BaseModel):
    user_id: Optional[str] = None
    date: Optional[str] = None
    quantity: Optional[float] = None
    price_per_unit: Optional[float] = None
    total_price: Optional[float] = None
    payment_mode: Optional[str] = None
    description: Optional[str] = None


class RestockingCreate(TransactionBase):
    cost_price: Optional[float] = None
    selling_price: Optional[float] = None
    branch_id: Optional[int] = None
    notes: Optional[str] = None


class WasteCreate(TransactionBase):
    reason: str = "waste"
    branch_id: Optional[int] = None
    notes: Optional[str] = None


class TransferCreate(TransactionBase):
    from_branch_id: int
    to_branch_id: int
    notes: Optional[str] = None


class TransactionRead(BaseModel):
    id: int
    item_id: int
    date: date
    organization_id: int
    quantity: float
    recorded_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SaleRead(TransactionRead):
    branch_id: Optional[int] = None
    price_per_unit: float
    total_price: float
    payment_mode: str
    restocking_id: Optional[int] = None
    opening_stock_id: Optional[int] = None


class RestockingRead(TransactionRead):
    branch_id: Optional[int] = None
    cost_price: Optional[float] = None
    selling_price: Optional[float] = None
    total_cost: Optional[float] = None


class WasteRead(TransactionRead):
    branch_id: Optional[int] = None
    reason: str


class TransferRead(TransactionRead):
    from_branch_id: int
    to_branch_id: int
