"""
SQLModel engine management.

The engine is created lazily from settings so tests can swap in their own
(see ``set_engine``). Store calls are blocking; async code reaches them
through ``run_blocking`` so the event loop keeps serving other connections.
"""

import asyncio
import functools
import logging
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from app.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Get or create the global database engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.database_url.startswith("sqlite"):
            # Store calls run on executor threads
            connect_args["check_same_thread"] = False
        _engine = create_engine(
            settings.database_url,
            echo=settings.debug,
            connect_args=connect_args,
        )
        logger.info(f"Database engine created for {_engine.url.render_as_string(hide_password=True)}")
    return _engine


def set_engine(engine: Optional[Engine]) -> None:
    """Replace the global engine (used by tests)."""
    global _engine
    _engine = engine


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet."""
    # Importing the models registers them on SQLModel.metadata
    from app import models  # noqa: F401

    SQLModel.metadata.create_all(engine or get_engine())


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking store call in the default thread pool executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
