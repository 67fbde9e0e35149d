"""
FastAPI routers for the Clipstream API.
"""

from app.routers import callbacks, health, progress, social

__all__ = ["health", "progress", "callbacks", "social"]
