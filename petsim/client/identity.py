import json
import logging
import time

import keyring

from ..core.data_paths import get_user_data_path

PLAYER_DATA_FILE = "player_data.json"


class PlayerIdentity:
    """
    Locally invented player identity.

    The player id lives in the system keyring. The display name, and the id
    when no keyring backend is available, live in player_data.json.
    """

    SERVICE_NAME = "PetSimulator"

    def __init__(self):
        self.player_id = None
        self.player_name = None
        self.load_user_data_from_file()

    def load_or_create(self, player_name: str = None) -> str:
        """Return the stored player id, inventing `player_<epoch-ms>` on first run."""
        player_id = self._get_credential_from_keyring("player_id") or self.player_id
        if not player_id:
            player_id = f"player_{int(time.time() * 1000)}"
            logging.info(f"Created new player id {player_id}")
            if not self._set_credential_in_keyring("player_id", player_id):
                self.update_user_data_file("player_id", player_id)

        self.player_id = player_id
        if player_name and player_name != self.player_name:
            self.set_player_name(player_name)
        return player_id

    def set_player_name(self, player_name: str):
        if not player_name or not player_name.strip():
            raise ValueError("Player name cannot be empty")
        self.player_name = player_name.strip()
        self.update_user_data_file("player_name", self.player_name)

    def _get_credential_from_keyring(self, key_name: str) -> str | None:
        try:
            return keyring.get_password(self.SERVICE_NAME, key_name)
        except keyring.errors.NoKeyringError:
            logging.warning("No keyring backend found - player id will be kept in player_data.json.")
            return None
        except Exception as e:
            logging.error(f"Error retrieving '{key_name}' from keyring: {e}")
            return None

    def _set_credential_in_keyring(self, key_name: str, value: str) -> bool:
        try:
            keyring.set_password(self.SERVICE_NAME, key_name, value)
            return True
        except keyring.errors.NoKeyringError:
            logging.warning("No keyring backend found. Storing player id in player_data.json instead.")
        except Exception as e:
            logging.error(f"Error storing '{key_name}' in keyring: {e}")
        return False

    def update_user_data_file(self, key: str, value: str):
        file_path = get_user_data_path(PLAYER_DATA_FILE)
        data = {}
        try:
            with open(file_path, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            logging.warning(f"{PLAYER_DATA_FILE} not found. Creating a new one.")
        except json.JSONDecodeError:
            logging.warning(f"{PLAYER_DATA_FILE} is malformed. Overwriting with new data.")
            data = {}

        try:
            data[key] = value
            with open(file_path, "w") as f:
                json.dump(data, f, indent=4)
            logging.info(f"User data file updated: {key} in {file_path}")
        except OSError as e:
            logging.error(f"Error writing to {PLAYER_DATA_FILE}: {e}")

    def load_user_data_from_file(self):
        try:
            with open(get_user_data_path(PLAYER_DATA_FILE), "r") as f:
                data = json.load(f)
            self.player_id = data.get("player_id")
            self.player_name = data.get("player_name")
            logging.info("Player data loaded successfully from file.")
        except FileNotFoundError:
            logging.info(f"{PLAYER_DATA_FILE} not found. A new player will be created.")
        except json.JSONDecodeError:
            logging.error(f"{PLAYER_DATA_FILE} is corrupted or empty. Please check the file.")
