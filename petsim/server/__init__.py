"""
Game server: JSON document store, HTTP API and realtime hub.
"""

from .api import create_app
from .document_store import DocumentStore, GameRepository
from .realtime import Broadcaster, RealtimeHub

__all__ = ["create_app", "DocumentStore", "GameRepository", "Broadcaster", "RealtimeHub"]
