import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .timestamps import utc_now_iso

# Item kinds and their fixed presentation data. Names are what older saves carry.
ITEM_CATALOG = {
    "potion": {"name": "Mikstura", "rarity": "common", "effect": "Tymczasowy boost"},
    "enchant": {"name": "Zaklęcie", "rarity": "rare", "effect": "Stałe wzmocnienie"},
    "key": {"name": "Klucz", "rarity": "rare", "effect": "Otwiera Ultra-Loot Chest"},
    "gift": {"name": "Prezent", "rarity": "rare", "effect": "Zawiera losowe przedmioty"},
    "ultra_rare": {"name": "Rzadki Przedmiot", "rarity": "ultra-rare", "effect": "Można handlować"},
}

NAME_TO_KIND = {entry["name"]: kind for kind, entry in ITEM_CATALOG.items()}

# Keys PlayerState knows about; anything else the server sends is carried in `extra`.
PLAYER_STATE_KEYS = (
    "playerId",
    "playerName",
    "money",
    "totalMoney",
    "breakablesDestroyed",
    "keys",
    "gifts",
    "pets",
    "inventory",
    "enchants",
    "clans",
    "playerClan",
    "playTime",
    "gameHistory",
    "created",
    "lastSaved",
)


@dataclass
class Pet:
    """A pet that destroys breakables on its own. `working` is never persisted."""

    id: Any
    level: int = 1
    damage: int = 1
    speed: int = 1
    position: Dict[str, float] = field(default_factory=lambda: {"x": 100, "y": 100})
    name: Optional[str] = None
    working: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "Pet":
        if not isinstance(data, dict):
            raise ValueError(f"Invalid pet format: expected dict, got {type(data)}")
        if "id" not in data:
            raise ValueError("Missing required field 'id' in pet data")

        position = data.get("position") or {}
        return cls(
            id=data["id"],
            level=data.get("level", 1),
            damage=data.get("damage", 1),
            speed=data.get("speed", 1),
            position={"x": position.get("x", 0), "y": position.get("y", 0)},
            name=data.get("name"),
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "level": self.level,
            "damage": self.damage,
            "speed": self.speed,
            "position": dict(self.position),
        }
        if self.name is not None:
            data["name"] = self.name
        return data


@dataclass
class Item:
    id: Any
    kind: str
    name: str
    rarity: str
    effect: str

    @classmethod
    def create(cls, item_id: Any, kind: str, name: Optional[str] = None) -> "Item":
        """Build an item of a catalog kind; ultra-rare items get their own flavor name."""
        entry = ITEM_CATALOG[kind]
        return cls(id=item_id, kind=kind, name=name or entry["name"], rarity=entry["rarity"], effect=entry["effect"])

    @classmethod
    def from_dict(cls, data: dict) -> "Item":
        if not isinstance(data, dict):
            raise ValueError(f"Invalid item format: expected dict, got {type(data)}")
        if "id" not in data:
            raise ValueError("Missing required field 'id' in item data")

        name = data.get("name", "")
        kind = data.get("kind") or NAME_TO_KIND.get(name)
        if kind is None:
            # Ultra-rare items carry a flavor name instead of the catalog name
            kind = "ultra_rare" if data.get("rarity") == "ultra-rare" else "potion"
            logging.debug(f"Item {data['id']} has no kind, resolved to {kind} from name '{name}'")
        entry = ITEM_CATALOG[kind]
        return cls(
            id=data["id"],
            kind=kind,
            name=name or entry["name"],
            rarity=data.get("rarity", entry["rarity"]),
            effect=data.get("effect", entry["effect"]),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "kind": self.kind, "name": self.name, "rarity": self.rarity, "effect": self.effect}


@dataclass
class GameEvent:
    """One immutable entry of the append-only game history."""

    type: str
    timestamp: str
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "GameEvent":
        details = {k: v for k, v in data.items() if k not in ("type", "timestamp")}
        return cls(type=data.get("type", "unknown"), timestamp=data.get("timestamp", ""), details=details)

    def to_dict(self) -> dict:
        return {"type": self.type, "timestamp": self.timestamp, **self.details}


@dataclass
class BreakableSpawn:
    """A clickable reward entity. Lives only in client memory."""

    id: str
    type_name: str
    value: int
    color_class: str
    spawned_at: float
    expires_at: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type_name,
            "value": self.value,
            "colorClass": self.color_class,
            "spawnedAt": self.spawned_at,
            "expiresAt": self.expires_at,
        }


@dataclass
class PlayerState:
    """
    Working copy of one player's game. The server is the durability authority.

    Serialized with the camelCase keys the server stores.
    """

    player_id: Optional[str] = None
    player_name: str = "Gracz"
    money: int = 0
    total_money: int = 0
    breakables_destroyed: int = 0
    keys: int = 0
    gifts: int = 0
    pets: List[Pet] = field(default_factory=list)
    inventory: List[Item] = field(default_factory=list)
    enchants: List[Item] = field(default_factory=list)
    clans: List[Dict[str, Any]] = field(default_factory=list)
    player_clan: Optional[str] = None
    play_time: int = 0
    game_history: List[GameEvent] = field(default_factory=list)
    created: Optional[str] = None
    last_saved: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new_game(cls, player_id: str, player_name: Optional[str] = None) -> "PlayerState":
        """Default state for a first-time player: one starter pet, zero balances."""
        now = utc_now_iso()
        state = cls(
            player_id=player_id,
            pets=[Pet(id=1, name="Starter Pet", position={"x": 100, "y": 100})],
            created=now,
            last_saved=now,
        )
        if player_name:
            state.player_name = player_name
        return state

    @classmethod
    def from_dict(cls, data: dict) -> "PlayerState":
        if not isinstance(data, dict):
            raise ValueError(f"Invalid game state format: expected dict, got {type(data)}")

        return cls(
            player_id=data.get("playerId"),
            player_name=data.get("playerName") or "Gracz",
            money=data.get("money", 0),
            total_money=data.get("totalMoney", 0),
            breakables_destroyed=data.get("breakablesDestroyed", 0),
            keys=data.get("keys", 0),
            gifts=data.get("gifts", 0),
            pets=[Pet.from_dict(p) for p in data.get("pets") or []],
            inventory=[Item.from_dict(i) for i in data.get("inventory") or []],
            enchants=[Item.from_dict(i) for i in data.get("enchants") or []],
            clans=list(data.get("clans") or []),
            player_clan=data.get("playerClan"),
            play_time=data.get("playTime", 0),
            game_history=[GameEvent.from_dict(e) for e in data.get("gameHistory") or []],
            created=data.get("created"),
            last_saved=data.get("lastSaved"),
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in PLAYER_STATE_KEYS},
        )

    def to_dict(self) -> dict:
        data = copy.deepcopy(self.extra)
        data.update(
            {
                "playerId": self.player_id,
                "playerName": self.player_name,
                "money": self.money,
                "totalMoney": self.total_money,
                "breakablesDestroyed": self.breakables_destroyed,
                "keys": self.keys,
                "gifts": self.gifts,
                "pets": [p.to_dict() for p in self.pets],
                "inventory": [i.to_dict() for i in self.inventory],
                "enchants": [i.to_dict() for i in self.enchants],
                "clans": copy.deepcopy(self.clans),
                "playerClan": self.player_clan,
                "playTime": self.play_time,
                "gameHistory": [e.to_dict() for e in self.game_history],
                "created": self.created,
                "lastSaved": self.last_saved,
            }
        )
        return data

    def find_item(self, item_id: Any) -> Optional[Item]:
        for item in self.inventory:
            if item.id == item_id:
                return item
        return None

    def find_pet(self, pet_id: Any) -> Optional[Pet]:
        for pet in self.pets:
            if pet.id == pet_id:
                return pet
        return None
