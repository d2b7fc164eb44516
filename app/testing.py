"""Helpers shared by the app/test_*.py modules."""
import os
import tempfile

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401
from app.database import Base
from app.models.user import User


class SqliteDatabase:
    """
    Throwaway file-backed SQLite database.
    File-backed rather than in-memory so separate sessions (and threads)
    get separate connections, like against a real server.
    """

    def __init__(self):
        self._tmp = tempfile.TemporaryDirectory()
        path = os.path.join(self._tmp.name, "test.db")
        self.engine = create_engine(
            f"sqlite:///{path}",
            connect_args={"check_same_thread": False, "timeout": 15},
        )
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    def add_user(self, user_id: int, email: str, display_name: str | None = None) -> User:
        with self.Session() as db:
            user = User(id=user_id, email=email, displayName=display_name, isActive=True)
            db.add(user)
            db.commit()
            return user

    def get_db(self):
        db = self.Session()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def close(self):
        self.engine.dispose()
        self._tmp.cleanup()
