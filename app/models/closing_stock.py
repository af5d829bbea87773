from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Index, Integer, String, UniqueConstraint

from app.database.base import Base


class ClosingStock(Base):
    __tablename__ = "closing_stock"

    id = Column(Integer, primary_key=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    date = Column(Date, nullable=False)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id"))

    # Always formula-derived, see app.services.report_service.
    quantity = Column(Float, nullable=False, default=0)

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
            name="uq_closing_stock_natural_key",
        ),
        # NULL branch_ids never collide in the constraint above.
        Index(
            "uq_closing_stock_branchless_key",
            "item_id", "date", "organization_id",
            unique=True,
            sqlite_where=branch_id.is_(None),
            postgresql_where=branch_id.is_(None),
        ),
        Index("idx_closing_stock_scope_date", "organization_id", "branch_id", "date"),
    )


__all__ = ["ClosingStock"]
