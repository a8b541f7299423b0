"""Shared FastAPI dependencies for the API routers."""

from broadcast import ConnectionManager, manager as broadcast_manager
from livestreams import LivestreamManager
from tokens import GraduationManager

livestream_manager = LivestreamManager()
graduation_manager = GraduationManager()

def get_connection_manager() -> ConnectionManager:
    """WebSocket registry that delivers published payloads."""
    return broadcast_manager

def get_livestream_manager() -> LivestreamManager:
    return livestream_manager

def get_graduation_manager() -> GraduationManager:
    return graduation_manager
