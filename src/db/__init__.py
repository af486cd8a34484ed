from src.db.connection import Base, as_utc, check_db_health, get_db, get_engine, get_sessionmaker

__all__ = ["Base", "as_utc", "get_engine", "get_sessionmaker", "get_db", "check_db_health"]
