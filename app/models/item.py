from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String

from app.database.base import Base


class Item(Base):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id"))

    name = Column(String, nullable=False)
    unit = Column(String, nullable=False, default="pcs")
    description = Column(String)
    low_stock_threshold = Column(Float, nullable=False, default=0)

    # Defaults only; the price in force on a day lives on opening stock and
    # restocking rows.
    cost_price = Column(Float, nullable=False, default=0)
    selling_price = Column(Float, nullable=False, default=0)

    # Legacy static quantity, never read by the stock ledger.
    quantity = Column(Float, nullable=False, default=0)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_items_org_branch", "organization_id", "branch_id"),
    )


__all__ = ["Item"]
