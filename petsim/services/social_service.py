"""
Keeps the client's read-only view of clans, trades and chat.

Clans and trades are owned by the server; this service fetches them, applies
realtime updates to the cached copies and forwards mutations over HTTP.
"""

import logging
import threading
from collections import deque
from typing import Dict, List, Optional

from ..core.errors import ValidationFailure
from ..models import ChatMessage, Clan, Trade

CHAT_HISTORY_LIMIT = 100


class SocialService:
    def __init__(self, api_client):
        """
        Args:
            api_client: GameApiClient used for all server calls
        """
        self.api_client = api_client
        self.clans: Dict[str, Clan] = {}
        self.trades: Dict[str, Trade] = {}
        self.chat_log = {"clan": deque(maxlen=CHAT_HISTORY_LIMIT), "global": deque(maxlen=CHAT_HISTORY_LIMIT)}
        self._lock = threading.Lock()

    # ========== CLANS ==========

    def refresh_clans(self) -> List[Clan]:
        clans = [Clan.from_dict(c) for c in self.api_client.list_clans()]
        with self._lock:
            self.clans = {c.id: c for c in clans}
        logging.info(f"Loaded {len(clans)} clans")
        return clans

    def create_clan(self, name: str, player_id: str, player_name: str) -> Clan:
        if not name or not name.strip():
            raise ValidationFailure("Clan name cannot be empty")
        clan = Clan.from_dict(self.api_client.create_clan(name.strip(), player_id, player_name))
        with self._lock:
            self.clans[clan.id] = clan
        logging.info(f"Created clan {clan.name} ({clan.id})")
        return clan

    def join_clan(self, clan_id: str, player_id: str, player_name: str) -> Clan:
        clan = Clan.from_dict(self.api_client.join_clan(clan_id, player_id, player_name))
        with self._lock:
            self.clans[clan.id] = clan
        logging.info(f"Joined clan {clan.name} ({clan.id})")
        return clan

    def get_clan(self, clan_id: str) -> Optional[Clan]:
        with self._lock:
            return self.clans.get(clan_id)

    # ========== TRADES ==========

    def refresh_trades(self) -> List[Trade]:
        trades = [Trade.from_dict(t) for t in self.api_client.list_trades()]
        with self._lock:
            self.trades = {t.id: t for t in trades}
        return trades

    def post_trade(self, trade: Trade) -> Trade:
        created = Trade.from_dict(self.api_client.post_trade(trade.to_dict()))
        self.apply_trade(created.to_dict())
        return created

    def set_trade_status(self, trade_id: str, status: str) -> Trade:
        trade = self.trades.get(trade_id)
        if trade is not None:
            # Check locally first so illegal moves never reach the server
            Trade.from_dict(trade.to_dict()).transition(status)
        updated = Trade.from_dict(self.api_client.set_trade_status(trade_id, status))
        self.apply_trade(updated.to_dict())
        return updated

    def apply_trade(self, payload: dict) -> Optional[Trade]:
        """Upsert a trade received from NEW_TRADE / TRADE_UPDATE. Payloads without an id are offers only."""
        if not isinstance(payload, dict) or not payload.get("id"):
            return None
        trade = Trade.from_dict(payload)
        with self._lock:
            self.trades[trade.id] = trade
        return trade

    def active_trades(self) -> List[Trade]:
        with self._lock:
            return [t for t in self.trades.values() if t.status == "active"]

    # ========== CHAT ==========

    def add_chat(self, channel: str, payload: dict) -> ChatMessage:
        message = ChatMessage.from_dict(payload if isinstance(payload, dict) else {})
        with self._lock:
            self.chat_log[channel].append(message)
        return message

    def chat_history(self, channel: str) -> List[ChatMessage]:
        with self._lock:
            return list(self.chat_log[channel])
