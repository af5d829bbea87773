from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReportRowRead(BaseModel):
    item_id: int
    item_name: str
    unit: str
    opening_stock: float
    opening_stock_source: str
    opening_cost_price: Optional[float] = None
    opening_selling_price: Optional[float] = None
    total_restocking: float
    total_sales: float
    total_waste: float
    total_transfers_in: float
    total_transfers_out: float
    closing_stock: float
    opening_stock_manual: bool
    closing_stock_manual: bool
    low_stock: bool

    model_config = ConfigDict(from_attributes=True)


class DailyReportRead(BaseModel):
    date: date
    organization_id: int
    branch_id: Optional[int] = None
    org_wide: bool
    rows: List[ReportRowRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class StockDateRequest(BaseModel):
    date: str
    user_id: Optional[str] = None
    branch_id: Optional[int] = None


class CascadeRequest(BaseModel):
    start_date: str
    user_id: Optional[str] = None
    branch_id: Optional[int] = None


class CascadeResultRead(BaseModel):
    start_date: date
    end_date: date
    updates: List[str] = Field(default_factory=list)
    days_processed: int = 0
    days_skipped: int = 0

    model_config = ConfigDict(from_attributes=True)


class CascadeFailureRead(BaseModel):
    message: str
    failed_date: Optional[date] = None
    updates: List[str] = Field(default_factory=list)


class RecalculateResponse(BaseModel):
    date: date
    branch_ids: List[Optional[int]] = Field(default_factory=list)
    inserted: int = 0
    updated: int = 0
    cascade: Optional[CascadeResultRead] = None
    cascade_error: Optional[CascadeFailureRead] = None


class OpeningStockEntry(BaseModel):
    item_id: int
    quantity: float
    cost_price: Optional[float] = None
    selling_price: Optional[float] = None
    notes: Optional[str] = None


class ManualOpeningStockRequest(BaseModel):
    date: str
    user_id: Optional[str] = None
    branch_id: Optional[int] = None
    items: List[OpeningStockEntry] = Field(min_length=1)


class SeedOpeningStockRequest(BaseModel):
    user_id: Optional[str] = None
    start_date: Optional[str] = None
    branch_id: Optional[int] = None


class UpsertCounts(BaseModel):
    inserted: int = 0
    updated: int = 0


class CreatedCount(BaseModel):
    created: int = 0
