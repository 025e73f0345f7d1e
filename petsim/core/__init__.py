"""
Core game components for Pet Simulator.

Contains the probability tables, the economy engine, the single-threaded game
loop and the realtime message router. GameSession is imported from
petsim.core.game_session directly, since it depends on the client and
services packages.
"""

from .config import Settings, load_settings
from .economy import EconomyEngine
from .game_loop import GameLoop
from .message_router import MessageRouter
from .probability import ProbabilityTable

__all__ = [
    "Settings",
    "load_settings",
    "EconomyEngine",
    "GameLoop",
    "MessageRouter",
    "ProbabilityTable",
]
