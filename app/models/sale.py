from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Index, Integer, String

from app.database.base import Base


class Sale(Base):
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    date = Column(Date, nullable=False)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id"))

    quantity = Column(Float, nullable=False)
    price_per_unit = Column(Float, nullable=False, default=0)
    total_price = Column(Float, nullable=False, default=0)
    payment_mode = Column(String(16), nullable=False, default="cash")

    # Batch the sale is priced from.
    restocking_id = Column(Integer, ForeignKey("restocking.id"))
    opening_stock_id = Column(Integer, ForeignKey("opening_stock.id"))

    recorded_by = Column(String(64))
    description = Column(String)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_sales_scope_date", "organization_id", "branch_id", "date"),
        Index("idx_sales_item_date", "item_id", "date"),
    )


__all__ = ["Sale"]
