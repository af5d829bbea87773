from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Index, Integer, String

from app.database.base import Base


class BranchTransfer(Base):
    __tablename__ = "branch_transfers"

    id = Column(Integer, primary_key=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)
    date = Column(Date, nullable=False)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False)
    from_branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False)
    to_branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False)

    quantity = Column(Float, nullable=False)

    recorded_by = Column(String(64))
    notes = Column(String)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_transfers_from_date", "organization_id", "from_branch_id", "date"),
        Index("idx_transfers_to_date", "organization_id", "to_branch_id", "date"),
    )


__all__ = ["BranchTransfer"]
