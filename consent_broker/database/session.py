from flask import g

from .config import SessionLocal


def get_db():
    """Session for the current request, opened on first use."""
    if "db" not in g:
        g.db = SessionLocal()
    return g.db


def close_db(exc=None):
    db = g.pop("db", None)
    if db is not None:
        if exc is not None:
            db.rollback()
        db.close()
