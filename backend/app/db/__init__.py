from app.db.base import Base, UTCDateTime, utcnow
from app.db.session import async_session_maker, engine, get_db, init_db

__all__ = ["Base", "UTCDateTime", "async_session_maker", "engine", "get_db", "init_db", "utcnow"]
