"""Database package."""

from taskhub.db.base import Base, BaseModel
from taskhub.db.session import DBSession, get_db_session
from taskhub.db.transaction import atomic

__all__ = ["Base", "BaseModel", "DBSession", "atomic", "get_db_session"]
