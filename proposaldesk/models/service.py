"""Service catalog model (roofing, hvac, windows, ...)."""
from sqlalchemy import Column, String, Boolean
from proposaldesk.database import Base, PrimaryKeyType


class Service(Base):
    """Fixed catalog of services a proposal can include."""

    __tablename__ = 'service'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    name = Column(String(80), nullable=False, unique=True)  # e.g. 'roofing'
    display_name = Column(String(200), nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<Service(id={self.id}, name='{self.name}')>"
