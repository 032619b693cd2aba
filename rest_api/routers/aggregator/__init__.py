"""Aggregator bridge router."""

from .routes import router

__all__ = ["router"]
