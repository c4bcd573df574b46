import os

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from .config import settings


def create_db_engine(url=None):
    url = make_url(url or settings.DATABASE_URL)
    if url.get_backend_name() == 'sqlite':
        # File databases need their directory; the store shares one engine across threads
        if url.database and url.database != ':memory:':
            os.makedirs(os.path.dirname(os.path.abspath(url.database)), exist_ok=True)
        return create_engine(url, echo=False, connect_args={'check_same_thread': False})
    return create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=5,
        pool_timeout=30
    )


def make_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
