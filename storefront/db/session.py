from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.core.config import settings
from storefront.core.errors import StorageError

class Base(DeclarativeBase): pass

def _enable_sqlite_fks(dbapi_conn, _record):
    cur = dbapi_conn.cursor()
    cur.execute('PRAGMA foreign_keys=ON')
    cur.close()

class Database:
    """Engine plus session factory, handed to every store.

    ``session()`` is a unit of work: it commits when the block exits cleanly
    and rolls back otherwise. Passing an already open session joins it
    instead, so several stores can share one transaction.
    """

    def __init__(self, url: str, **engine_kwargs):
        self.url = url
        if url.startswith('sqlite'):
            engine_kwargs.setdefault('connect_args', {'check_same_thread': False})
            if ':memory:' in url or url.rstrip('/') == 'sqlite:':
                engine_kwargs.setdefault('poolclass', StaticPool)
        else:
            engine_kwargs.setdefault('pool_pre_ping', True)
        self.engine = create_engine(url, **engine_kwargs)
        if url.startswith('sqlite'):
            event.listen(self.engine, 'connect', _enable_sqlite_fks)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False, expire_on_commit=False)

    @contextmanager
    def session(self, existing: Optional[Session] = None) -> Iterator[Session]:
        if existing is not None:
            yield existing
            return
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageError() from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # a transaction is a session that several stores join explicitly
    transaction = session

    def create_all(self):
        import storefront.db.models  # noqa
        Base.metadata.create_all(self.engine)

    def drop_all(self):
        Base.metadata.drop_all(self.engine)

    def dispose(self):
        self.engine.dispose()

@lru_cache
def get_database() -> Database:
    return Database(settings.DATABASE_URL)
