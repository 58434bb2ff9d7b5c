import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from parcel_api.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()

# Bound to an engine by init_db() at startup
SessionLocal = sessionmaker(autocommit=False, autoflush=False)
engine = None


def make_engine(database_url: str):
    return create_engine(
        database_url,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {}
    )


def init_db(database_url: str = None):
    """Create the engine, bind the session factory and create missing tables."""
    global engine
    if engine is not None:
        return engine

    # registers the tables on Base.metadata
    import parcel_api.models  # noqa: F401

    url = database_url or settings.database_url
    engine = make_engine(url)
    SessionLocal.configure(bind=engine)
    Base.metadata.create_all(bind=engine)
    logger.info("connected to database %s", engine.url.render_as_string(hide_password=True))
    return engine


def close_db():
    global engine
    if engine is None:
        return
    engine.dispose()
    engine = None
    logger.info("database connections closed")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
