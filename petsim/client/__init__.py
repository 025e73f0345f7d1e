"""
Network clients for the Pet Simulator game server.
"""

from .api_client import GameApiClient
from .identity import PlayerIdentity
from .realtime_client import ConnectionState, RealtimeClient

__all__ = ["GameApiClient", "PlayerIdentity", "ConnectionState", "RealtimeClient"]
