"""API routes."""

from planet_core.api.routes import accounts, messages, read_state, search

__all__ = ["accounts", "messages", "read_state", "search"]
