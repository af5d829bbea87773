from sqlalchemy import Column, ForeignKey, Integer, String

from app.database.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    email = Column(String)
    full_name = Column(String)
    role = Column(String(32), nullable=False, default="staff")

    organization_id = Column(Integer, ForeignKey("organizations.id"))
    branch_id = Column(Integer, ForeignKey("branches.id"))


__all__ = ["Profile"]
