"""Observability helpers for the sidebar.

Provides:
- configure_structlog: structlog processor chain (JSON in production,
  console output elsewhere)
"""

from src.sidebar.observability.logging import configure_structlog

__all__ = ["configure_structlog"]
