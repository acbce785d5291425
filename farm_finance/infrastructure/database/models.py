"""SQLAlchemy ORM models for the savegame store"""

import uuid

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class SaveGame(Base):
    """Serialized finance state for one save slot"""

    __tablename__ = "finance_savegame"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slot = Column(Text, nullable=False, unique=True, index=True)
    version = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False)
    deal_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
