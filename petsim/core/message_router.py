"""
Message router for realtime frames received from the game server.

Parses `{type, payload}` envelopes and routes NEW_TRADE, TRADE_UPDATE,
CLAN_CHAT and GLOBAL_CHAT to the handlers registered for them.
"""

import json
import logging
from typing import Any, Callable, Dict, List

from .errors import MalformedMessage

INBOUND_TYPES = ("NEW_TRADE", "TRADE_UPDATE", "CLAN_CHAT", "GLOBAL_CHAT")


def parse_envelope(raw: Any) -> Dict[str, Any]:
    """
    Decode one realtime frame into an envelope dict.

    Raises:
        MalformedMessage: If the frame is not JSON or has no string `type`.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedMessage(f"Frame is not UTF-8: {e}") from e

    if isinstance(raw, str):
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedMessage(f"Frame is not valid JSON: {e}") from e
    else:
        message = raw

    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        raise MalformedMessage(f"Frame has no message type: {str(raw)[:100]}")

    message.setdefault("payload", {})
    return message


class MessageRouter:
    """
    Routes realtime envelopes to registered handlers.

    Handlers are called with the envelope's payload. Unknown types and
    malformed frames are logged and dropped; they never raise to the caller.
    """

    def __init__(self):
        self.handlers: Dict[str, List[Callable[[Any], None]]] = {}
        self.stats = {"routed": 0, "unknown": 0, "malformed": 0, "handler_errors": 0}

    def register(self, message_type: str, handler: Callable[[Any], None]):
        """Register a handler for one inbound message type."""
        if message_type not in INBOUND_TYPES:
            logging.warning(f"Registering handler for non-standard message type '{message_type}'")
        self.handlers.setdefault(message_type, []).append(handler)

    def handle_message(self, raw: Any) -> bool:
        """
        Main message handler.

        Args:
            raw: Text frame, bytes or an already decoded dict

        Returns:
            bool: True if at least one handler received the payload
        """
        try:
            message = parse_envelope(raw)
        except MalformedMessage as e:
            self.stats["malformed"] += 1
            logging.warning(f"Dropping malformed realtime message: {e}")
            return False

        message_type = message["type"]
        handlers = self.handlers.get(message_type)
        if not handlers:
            self.stats["unknown"] += 1
            logging.warning(f"Unknown message type: {message_type}")
            return False

        for handler in handlers:
            try:
                handler(message["payload"])
            except Exception as e:
                self.stats["handler_errors"] += 1
                logging.error(f"Error in handler for {message_type}: {e}", exc_info=True)

        self.stats["routed"] += 1
        return True

    def get_stats(self) -> dict:
        return self.stats.copy()
