"""
Models package for Pet Simulator.

Contains the player game state, social entities and their JSON mappings.
"""

from .game_state import ITEM_CATALOG, BreakableSpawn, GameEvent, Item, Pet, PlayerState
from .social import TRADE_STATUSES, ChatMessage, Clan, Member, Trade
from .timestamps import parse_iso, utc_now_iso

__all__ = [
    "ITEM_CATALOG",
    "BreakableSpawn",
    "GameEvent",
    "Item",
    "Pet",
    "PlayerState",
    "TRADE_STATUSES",
    "ChatMessage",
    "Clan",
    "Member",
    "Trade",
    "parse_iso",
    "utc_now_iso",
]
