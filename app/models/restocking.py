from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Index, Integer, String

from app.database.base import Base


class Restocking(Base):
    __tablename__ = "restocking"

    id = Column(Integer, primary_key=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    date = Column(Date, nullable=False)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id"))

    quantity = Column(Float, nullable=False)
    cost_price = Column(Float)
    selling_price = Column(Float)
    total_cost = Column(Float)

    recorded_by = Column(String(64))
    notes = Column(String)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_restocking_scope_date", "organization_id", "branch_id", "date"),
        Index("idx_restocking_item_date", "item_id", "date"),
    )


__all__ = ["Restocking"]
