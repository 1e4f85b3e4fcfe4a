from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()

# Bound by init_engine(); every request opens its own session from here
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

engine = None


def init_engine(database_url, echo=False):
    """Create the engine for database_url and bind SessionLocal to it."""
    global engine

    connect_args = {}
    if database_url.startswith("sqlite"):
        # Sessions are checked out per request thread
        connect_args["check_same_thread"] = False

    if engine is not None:
        engine.dispose()
    engine = create_engine(database_url, echo=echo, future=True, connect_args=connect_args)
    SessionLocal.configure(bind=engine)
    return engine


def init_db():
    """Create all tables if they don't exist"""
    # CRITICAL: import all models so they register with Base
    import consent_broker.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope():
    """Provide a transactional scope around a series of operations."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
