"""Server-held connection snapshot, one row per user."""

from sqlalchemy import Column, Integer, Text, DateTime, func
from appconnect.db.base import Base


class ConnectionRecord(Base):
    """Full connection snapshot last pushed by a user's client."""
    __tablename__ = "connection_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, unique=True, index=True)
    state_json = Column(Text(4 * 1024 * 1024), nullable=False)  # {"connections": [...], "connectedIds": [...]}
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
