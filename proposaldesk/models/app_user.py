"""AppUser model - sales reps acting on proposals."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from proposaldesk.database import Base, PrimaryKeyType


class AppUser(Base):
    """
    AppUser - the authenticated actor (sales rep).

    Identity resolution happens upstream; this table only anchors ownership of
    customers, proposals and activity log rows.
    """

    __tablename__ = 'app_user'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(200), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}')>"
