from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class HistoryBlob(Base):
    __tablename__ = "history_blobs"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, unique=True, index=True, nullable=False)
    data = Column(Text, nullable=False, default="[]")  # JSON array of snapshots
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
