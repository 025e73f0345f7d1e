from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.errors import ValidationFailure
from .timestamps import utc_now_iso

TRADE_STATUSES = ("active", "accepted", "cancelled")

# Allowed trade status moves. Terminal states have no way out.
TRADE_TRANSITIONS = {
    "active": ("accepted", "cancelled"),
    "accepted": (),
    "cancelled": (),
}


@dataclass
class Member:
    id: str
    name: str
    role: str = "member"
    join_date: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_dict(cls, data: dict) -> "Member":
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            role=data.get("role", "member"),
            join_date=data.get("joinDate", ""),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "role": self.role, "joinDate": self.join_date}


@dataclass
class Clan:
    """Server-owned clan. Clients hold read-only cached copies."""

    id: str
    name: str
    level: int = 1
    experience: int = 0
    members: List[Member] = field(default_factory=list)
    created: str = field(default_factory=utc_now_iso)

    @classmethod
    def found(cls, clan_id: str, name: str, leader_id: str, leader_name: str) -> "Clan":
        """Create a new clan whose founder becomes its leader."""
        name = (name or "").strip()
        if not name:
            raise ValidationFailure("Clan name cannot be empty")
        if not leader_id:
            raise ValidationFailure("playerId is required to create a clan")
        return cls(id=clan_id, name=name, members=[Member(id=leader_id, name=leader_name or "", role="leader")])

    @classmethod
    def from_dict(cls, data: dict) -> "Clan":
        if not isinstance(data, dict):
            raise ValueError(f"Invalid clan format: expected dict, got {type(data)}")
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            level=data.get("level", 1),
            experience=data.get("experience", 0),
            members=[Member.from_dict(m) for m in data.get("members") or []],
            created=data.get("created", ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "level": self.level,
            "experience": self.experience,
            "members": [m.to_dict() for m in self.members],
            "created": self.created,
        }

    def has_member(self, player_id: str) -> bool:
        return any(m.id == player_id for m in self.members)

    def add_member(self, player_id: str, player_name: str) -> bool:
        """Append a member. Returns False when the player already belongs to the clan."""
        if not player_id:
            raise ValidationFailure("playerId is required to join a clan")
        if self.has_member(player_id):
            return False
        role = "leader" if not self.members else "member"
        self.members.append(Member(id=player_id, name=player_name or "", role=role))
        return True


@dataclass
class Trade:
    id: Optional[str]
    player_id: str
    player_name: str
    offer_items: List[Any] = field(default_factory=list)
    offer_money: int = 0
    request_items: List[Any] = field(default_factory=list)
    request_money: int = 0
    status: str = "active"
    created: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "Trade":
        if not isinstance(data, dict):
            raise ValueError(f"Invalid trade format: expected dict, got {type(data)}")
        known = {
            "id", "playerId", "playerName", "offerItems", "offerMoney",
            "requestItems", "requestMoney", "status", "created",
        }
        return cls(
            id=data.get("id"),
            player_id=data.get("playerId"),
            player_name=data.get("playerName", ""),
            offer_items=list(data.get("offerItems") or []),
            offer_money=data.get("offerMoney") or 0,
            request_items=list(data.get("requestItems") or []),
            request_money=data.get("requestMoney") or 0,
            status=data.get("status", "active"),
            created=data.get("created"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "playerId": self.player_id,
                "playerName": self.player_name,
                "offerItems": list(self.offer_items),
                "offerMoney": self.offer_money,
                "requestItems": list(self.request_items),
                "requestMoney": self.request_money,
                "status": self.status,
                "created": self.created,
            }
        )
        return data

    def transition(self, new_status: str):
        """
        Move the trade to a new status.

        Raises:
            ValidationFailure: If the status is unknown or the move goes backward.
        """
        if new_status not in TRADE_STATUSES:
            raise ValidationFailure(f"Unknown trade status '{new_status}'")
        if new_status not in TRADE_TRANSITIONS.get(self.status, ()):
            raise ValidationFailure(f"Trade {self.id} cannot move from {self.status} to {new_status}")
        self.status = new_status


@dataclass
class ChatMessage:
    """Relayed chat line. Never persisted."""

    player_id: str
    player_name: str
    message: str
    timestamp: str = field(default_factory=utc_now_iso)
    clan_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ChatMessage":
        return cls(
            player_id=data.get("playerId"),
            player_name=data.get("playerName", ""),
            message=data.get("message", ""),
            timestamp=data.get("timestamp", ""),
            clan_id=data.get("clanId"),
        )

    def to_dict(self) -> dict:
        return {
            "playerId": self.player_id,
            "playerName": self.player_name,
            "message": self.message,
            "timestamp": self.timestamp,
            "clanId": self.clan_id,
        }
