from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ItemBase(BaseModel):
    name: str
    unit: str = "pcs"
    description: Optional[str] = None
    low_stock_threshold: float = 0
    cost_price: float = 0
    selling_price: float = 0


class ItemCreate(ItemBase):
    user_id: Optional[str] = None
    branch_id: Optional[int] = None


class ItemRead(ItemBase):
    id: int
    organization_id: int
    branch_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
