import json

import structlog
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from config import settings
from models import Base, HistoryBlob

logger = structlog.get_logger()

engine = None
SessionLocal = None


def configure(database_url: str) -> None:
    global engine, SessionLocal
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(database_url, connect_args=connect_args)
    SessionLocal = sessionmaker(bind=engine)


configure(settings.database_url)


def init_db():
    Base.metadata.create_all(bind=engine)


def _decode(raw, key):
    try:
        value = json.loads(raw or "[]")
    except (TypeError, ValueError):
        logger.warning("history_malformed", key=key, reason="invalid json")
        return []
    if not isinstance(value, list):
        logger.warning("history_malformed", key=key, reason="not an array")
        return []
    return value


def load_history(key: str | None = None) -> list:
    """Return the stored history array, or [] when missing or malformed."""
    key = key or settings.storage_key
    sess: Session = SessionLocal()
    try:
        row = sess.query(HistoryBlob).filter_by(key=key).first()
        history = _decode(row.data, key) if row else []
    finally:
        sess.close()
    logger.debug("history_loaded", key=key, snapshots=len(history))
    return history


def save_history(history: list, key: str | None = None) -> int:
    key = key or settings.storage_key
    payload = json.dumps(history, ensure_ascii=False)
    sess: Session = SessionLocal()
    try:
        row = sess.query(HistoryBlob).filter_by(key=key).first()
        if row is None:
            sess.add(HistoryBlob(key=key, data=payload))
        else:
            row.data = payload
        sess.commit()
    finally:
        sess.close()
    logger.debug("history_saved", key=key, snapshots=len(history))
    return len(history)


def reset_history(key: str | None = None) -> None:
    save_history([], key)
    logger.info("history_reset", key=key or settings.storage_key)
