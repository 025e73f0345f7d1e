import json
import logging
import os
from typing import Any, Dict, Optional

from ..core.data_paths import get_user_data_path

CACHE_FILE = "petSimulator99.json"


class LocalGameCache:
    """
    Client-side fallback copy of the last game state.

    Only read when loading from the server fails with a network error, and
    only written when a save hits one. It is never reconciled with the server
    on its own.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or get_user_data_path(CACHE_FILE)

    def save(self, data: Dict[str, Any]) -> bool:
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
            logging.info(f"Game state cached locally at {self.path}")
            return True
        except (OSError, TypeError) as e:
            logging.error(f"Error writing local game cache: {e}")
            return False

    def load(self) -> Optional[Dict[str, Any]]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logging.info("No local game cache found")
            return None
        except (json.JSONDecodeError, OSError) as e:
            logging.error(f"Local game cache is unreadable: {e}")
            return None

        if not isinstance(data, dict):
            logging.error("Local game cache has unexpected format, ignoring it")
            return None
        return data

    def clear(self):
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
