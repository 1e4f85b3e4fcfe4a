from .config import Base, SessionLocal, init_db, init_engine, session_scope

__all__ = ['Base', 'SessionLocal', 'init_db', 'init_engine', 'session_scope']
