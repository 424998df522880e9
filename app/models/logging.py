from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from app.models.base import Base


class EventErrorLog(Base):
    __tablename__ = "EventErrorLog"
    ErrorLogID = Column(Integer, primary_key=True, autoincrement=True)
    ErrorType = Column(String(32), nullable=False, index=True)
    ErrorMessage = Column(Text, nullable=False)
    ContextData = Column(JSON, nullable=True)
    StackTrace = Column(Text, nullable=True)
    # Copied out of ContextData["event_id"] so per-event lookups stay index-friendly
    EventID = Column(String(36), nullable=True, index=True)
    CreatedAt = Column(DateTime, server_default=func.now(), index=True)
