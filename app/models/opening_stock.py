from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, UniqueConstraint

from app.database.base import Base


class OpeningStock(Base):
    __tablename__ = "opening_stock"

    id = Column(Integer, primary_key=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    date = Column(Date, nullable=False)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id"))

    quantity = Column(Float, nullable=False, default=0)
    cost_price = Column(Float)
    selling_price = Column(Float)
    is_manual = Column(Boolean, nullable=False, default=False)

    recorded_by = Column(String(64))
    notes = Column(String)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint(
            "item_id", "date", "organization_id", "branch_id",
            name="uq_opening_stock_natural_key",
        ),
        # NULL branch_ids never collide in the constraint above.
        Index(
            "uq_opening_stock_branchless_key",
            "item_id", "date", "organization_id",
            unique=True,
            sqlite_where=branch_id.is_(None),
            postgresql_where=branch_id.is_(None),
        ),
        Index("idx_opening_stock_scope_date", "organization_id", "branch_id", "date"),
    )


__all__ = ["OpeningStock"]
