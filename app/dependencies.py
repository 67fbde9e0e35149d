"""
FastAPI dependency providers shared by the routers.

Tests replace these through ``app.dependency_overrides``.
"""

from app.services.job_store import JobStore
from app.services.progress_broker import ProgressBroker, get_progress_broker
from app.services.token_manager import TokenLifecycleManager, get_token_manager


def get_job_store() -> JobStore:
    return JobStore()


def get_broker() -> ProgressBroker:
    return get_progress_broker()


def get_manager() -> TokenLifecycleManager:
    return get_token_manager()
