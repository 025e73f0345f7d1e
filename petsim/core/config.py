"""
Runtime configuration for the Pet Simulator client and server.

Settings come from three layers, later ones winning:
dataclass defaults, an optional settings.toml, then environment variables.
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

import toml

from .data_paths import get_user_data_path
from .errors import ValidationFailure

CLAN_CHAT_SCOPES = ("clan", "global")

# environment variable -> settings field
ENV_OVERRIDES = {
    "PETSIM_API_BASE": "api_base",
    "PETSIM_WS_URL": "ws_url",
    "PETSIM_DATA_DIR": "data_dir",
    "PETSIM_UPLOAD_DIR": "upload_dir",
    "PETSIM_HOST": "host",
    "PORT": "port",
    "PETSIM_WS_PORT": "ws_port",
    "PETSIM_CLAN_CHAT_SCOPE": "clan_chat_scope",
}


@dataclass(frozen=True)
class Settings:
    # [client]
    api_base: str = "http://localhost:3000/api"
    ws_url: str = "ws://localhost:8080"
    request_timeout: float = 5.0
    reconnect_delay: float = 5.0
    autosave_interval: float = 30.0
    notification_duration: float = 3.0

    # [server]
    host: str = "0.0.0.0"
    port: int = 3000
    ws_port: int = 8080
    data_dir: str = "./data"
    upload_dir: str = "./uploads"
    clan_chat_scope: str = "clan"

    # [game]
    spawn_interval: float = 2.0
    breakable_lifetime: float = 30.0
    play_time_interval: float = 1.0
    pet_work_interval: float = 3.0
    pet_work_delay: float = 1.0
    pet_work_chance: float = 0.3
    item_drop_chance: float = 0.1
    pet_cost: int = 100
    max_enchants: int = 5
    chest_item_count: int = 3
    gift_money_min: int = 10
    gift_money_max: int = 59
    gift_items_min: int = 1
    gift_items_max: int = 3
    arena_width: int = 800
    arena_height: int = 600

    def validate(self) -> "Settings":
        if self.clan_chat_scope not in CLAN_CHAT_SCOPES:
            raise ValidationFailure(f"clan_chat_scope must be one of {CLAN_CHAT_SCOPES}, got {self.clan_chat_scope!r}")
        if self.gift_money_min > self.gift_money_max or self.gift_items_min > self.gift_items_max:
            raise ValidationFailure("gift reward ranges are inverted")
        if not 0.0 <= self.item_drop_chance <= 1.0 or not 0.0 <= self.pet_work_chance <= 1.0:
            raise ValidationFailure("chances must be within [0, 1]")
        return self


def _coerce(name: str, raw: Any) -> Any:
    """Convert a raw TOML/env value to the type of the matching field default."""
    default = getattr(Settings, name)
    if isinstance(default, bool):
        return str(raw).lower() in ("1", "true", "yes")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return str(raw)


def _flatten(data: Dict[str, Any]) -> Dict[str, Any]:
    """Sections like [client] and [game] are only grouping; merge them into one mapping."""
    flat = {}
    for key, value in data.items():
        if isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value
    return flat


def load_settings(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> Settings:
    """
    Build the effective settings.

    Args:
        path: TOML file to read. Defaults to PETSIM_CONFIG, then settings.toml
            in the user data directory. A missing file is not an error.
        environ: Environment mapping, os.environ when omitted.

    Returns:
        Settings: validated settings

    Raises:
        ValidationFailure: If a value has the wrong type or is out of range.
    """
    environ = os.environ if environ is None else environ
    path = path or environ.get("PETSIM_CONFIG") or get_user_data_path("settings.toml")

    known = {f.name for f in fields(Settings)}
    overrides = {}

    if os.path.exists(path):
        try:
            data = toml.load(path)
            logging.info(f"Loaded settings from {path}")
        except toml.TomlDecodeError as e:
            raise ValidationFailure(f"settings file {path} is not valid TOML: {e}") from e

        for key, value in _flatten(data).items():
            if key not in known:
                logging.warning(f"Ignoring unknown setting '{key}' in {path}")
                continue
            overrides[key] = value

    for env_name, field_name in ENV_OVERRIDES.items():
        if env_name in environ:
            overrides[field_name] = environ[env_name]

    try:
        coerced = {name: _coerce(name, value) for name, value in overrides.items()}
    except (TypeError, ValueError) as e:
        raise ValidationFailure(f"Invalid setting value: {e}") from e

    return replace(Settings(), **coerced).validate()
