"""
Realtime hub: relays chat and trade events between connected clients.

Each connection is tracked under its own uuid together with the player id and
clan (group) it belongs to. Delivery is best effort: connections that are not
open are skipped and send failures are logged, never raised.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional
from urllib.parse import parse_qs, urlparse

from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from ..core.errors import MalformedMessage
from ..core.message_router import parse_envelope
from ..models.timestamps import utc_now_iso

SEND_TIMEOUT = 0.5  # seconds before a client that stopped reading is skipped


class Broadcaster:
    """Fan-out capability used by the HTTP API."""

    async def publish_global(self, message: Dict[str, Any]) -> int:
        raise NotImplementedError

    async def publish_to_group(self, group_id: str, message: Dict[str, Any]) -> int:
        raise NotImplementedError

    def assign_group(self, player_id: str, group_id: Optional[str]):
        raise NotImplementedError


@dataclass
class HubConnection:
    connection_id: str
    websocket: Any
    player_id: Optional[str] = None
    group_id: Optional[str] = None


class RealtimeHub(Broadcaster):
    def __init__(self, clan_chat_scope: str = "clan", send_timeout: float = SEND_TIMEOUT):
        """
        Args:
            clan_chat_scope: "clan" delivers CLAN_CHAT to members of the clan only,
                "global" delivers it to every connection
            send_timeout: Seconds one client may take to accept a message
        """
        self.clan_chat_scope = clan_chat_scope
        self.send_timeout = send_timeout
        self.connections: Dict[str, HubConnection] = {}

    async def handler(self, websocket):
        """Serve one client connection until it closes."""
        connection = self.register(websocket)
        try:
            async for frame in websocket:
                await self.handle_frame(connection, frame)
        except ConnectionClosed as e:
            logging.debug(f"Connection {connection.connection_id} closed: {e}")
        finally:
            self.unregister(connection.connection_id)

    def register(self, websocket) -> HubConnection:
        player_id, group_id = self._identify(websocket)
        connection = HubConnection(str(uuid.uuid4()), websocket, player_id, group_id)
        self.connections[connection.connection_id] = connection
        logging.info(
            f"Client connected: {connection.connection_id} (player={player_id}, clan={group_id}), "
            f"{len(self.connections)} online"
        )
        return connection

    def unregister(self, connection_id: str):
        if self.connections.pop(connection_id, None) is not None:
            logging.info(f"Client disconnected: {connection_id}, {len(self.connections)} online")

    @staticmethod
    def _identify(websocket):
        request = getattr(websocket, "request", None)
        path = getattr(request, "path", "") or ""
        params = parse_qs(urlparse(path).query)
        player_id = params.get("playerId", [None])[0]
        group_id = params.get("clanId", [None])[0]
        return player_id, group_id

    async def handle_frame(self, connection: HubConnection, frame: Any):
        """Dispatch one inbound frame. Malformed frames are dropped and the connection stays open."""
        try:
            message = parse_envelope(frame)
        except MalformedMessage as e:
            logging.warning(f"Dropping malformed message from {connection.connection_id}: {e}")
            return

        message_type = message["type"]
        payload = message["payload"]

        if message_type == "TRADE_OFFER":
            await self.publish_global({"type": "TRADE_UPDATE", "payload": payload})
        elif message_type == "CLAN_MESSAGE":
            await self._relay_clan_message(connection, payload)
        elif message_type == "GLOBAL_MESSAGE":
            await self.publish_global({"type": "GLOBAL_CHAT", "payload": self._stamp(payload)})
        else:
            logging.warning(f"Unknown message type from {connection.connection_id}: {message_type}")

    async def _relay_clan_message(self, connection: HubConnection, payload: Any):
        payload = self._stamp(payload)
        clan_id = payload.get("clanId") if isinstance(payload, dict) else None
        if clan_id:
            connection.group_id = clan_id
        else:
            clan_id = connection.group_id

        message = {"type": "CLAN_CHAT", "payload": payload}
        if self.clan_chat_scope == "global":
            await self.publish_global(message)
        elif clan_id:
            await self.publish_to_group(clan_id, message)
        else:
            logging.warning(f"Dropping clan message from {connection.connection_id}: sender has no clan")

    @staticmethod
    def _stamp(payload: Any) -> Any:
        if isinstance(payload, dict) and not payload.get("timestamp"):
            payload = dict(payload, timestamp=utc_now_iso())
        return payload

    # ========== BROADCASTER ==========

    async def publish_global(self, message: Dict[str, Any]) -> int:
        return await self._send_all(self.connections.values(), message)

    async def publish_to_group(self, group_id: str, message: Dict[str, Any]) -> int:
        members = [c for c in self.connections.values() if group_id and c.group_id == group_id]
        return await self._send_all(members, message)

    def assign_group(self, player_id: str, group_id: Optional[str]):
        """Move every connection of a player into a clan after an HTTP create/join."""
        for connection in self.connections.values():
            if player_id and connection.player_id == player_id:
                connection.group_id = group_id

    async def _send_all(self, targets: Iterable[HubConnection], message: Dict[str, Any]) -> int:
        """Send to every open target concurrently. Returns how many accepted the message in time."""
        data = json.dumps(message)
        open_targets = [c for c in targets if c.websocket.state is State.OPEN]
        results = await asyncio.gather(*(self._send_one(c, data) for c in open_targets))
        return sum(results)

    async def _send_one(self, connection: HubConnection, data: str) -> bool:
        try:
            await asyncio.wait_for(connection.websocket.send(data), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logging.warning(f"Send to {connection.connection_id} timed out, skipping it")
        except ConnectionClosed:
            logging.debug(f"Skipping closed connection {connection.connection_id}")
        return False
