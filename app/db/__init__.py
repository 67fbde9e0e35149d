"""
Database engine helpers.
"""

from app.db.session import get_engine, init_db, run_blocking

__all__ = ["get_engine", "init_db", "run_blocking"]
