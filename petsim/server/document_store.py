"""
JSON document persistence for the game server.

One document per collection (games, clans, trades), each a mapping from id to
entity. Reads are tolerant: a missing or corrupt document reads as empty.
Writes go through a per-collection lock and an atomic file replace.
"""

import json
import logging
import os
import tempfile
import threading
from typing import Any, Callable, Dict, List, Optional

from ..models.game_state import PlayerState
from ..models.timestamps import utc_now_iso

COLLECTIONS = ("games", "clans", "trades")


class DocumentStore:
    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self._locks: Dict[str, threading.Lock] = {name: threading.Lock() for name in COLLECTIONS}
        self._locks_guard = threading.Lock()
        os.makedirs(self.data_dir, exist_ok=True)

    def _path(self, collection: str) -> str:
        return os.path.join(self.data_dir, f"{collection}.json")

    def _lock(self, collection: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(collection, threading.Lock())

    def read(self, collection: str) -> Dict[str, Any]:
        """Return the whole document, or {} when it is missing or unreadable."""
        path = self._path(collection)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, OSError) as e:
            logging.error(f"Error reading {path}: {e}")
            return {}

        if not isinstance(data, dict):
            logging.error(f"{path} does not contain a JSON object, treating it as empty")
            return {}
        return data

    def _write(self, collection: str, data: Dict[str, Any]):
        path = self._path(collection)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{collection}.", suffix=".tmp", dir=self.data_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def update(self, collection: str, mutator: Callable[[Dict[str, Any]], Any]) -> Any:
        """
        Read, mutate and write one document as a single step.

        The mutator receives the document dict and may change it in place.
        Writers of different keys never lose each other's updates; writers of
        the same key are last-writer-wins.

        Returns:
            Whatever the mutator returns
        """
        with self._lock(collection):
            data = self.read(collection)
            result = mutator(data)
            self._write(collection, data)
            return result

    def get(self, collection: str, key: str) -> Optional[Any]:
        return self.read(collection).get(key)

    def put(self, collection: str, key: str, value: Any) -> Any:
        def _put(data):
            data[key] = value
            return value

        return self.update(collection, _put)

    def values(self, collection: str) -> List[Any]:
        return list(self.read(collection).values())


class GameRepository:
    """Player game documents stored in the `games` collection."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def load_or_create(self, player_id: str) -> Dict[str, Any]:
        """Return the player's game, creating and persisting the default game on first access."""
        existing = self.get(player_id)
        if existing is not None:
            return existing

        def _load(games):
            if player_id not in games:
                logging.info(f"Creating new game for {player_id}")
                games[player_id] = PlayerState.new_game(player_id).to_dict()
            return games[player_id]

        return self.store.update("games", _load)

    def get(self, player_id: str) -> Optional[Dict[str, Any]]:
        return self.store.get("games", player_id)

    def save(self, player_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Store the client's state as-is, stamped with a server-side lastSaved."""
        document = dict(data)
        document["lastSaved"] = utc_now_iso()
        return self.store.put("games", player_id, document)
