"""
Economy engine: breakable spawning, destruction rewards, loot and item use.

The engine mutates one PlayerState in place and must only be driven from the
GameLoop worker thread, so every operation here runs to completion without
interleaving with another.
"""

import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..models.game_state import BreakableSpawn, GameEvent, Item, Pet, PlayerState
from ..models.timestamps import utc_now_iso
from .config import Settings
from .probability import ProbabilityTable

PLAYER_AGENT = "player"


@dataclass(frozen=True)
class BreakableType:
    name: str
    value: int
    color: str
    color_class: str


BREAKABLE_TYPES = [
    BreakableType("Zwykły", 1, "#8bc34a", "common"),
    BreakableType("Rzadki", 5, "#2196f3", "rare"),
    BreakableType("Epicki", 20, "#9c27b0", "epic"),
    BreakableType("Legendarny", 100, "#ff9800", "legendary"),
]

BREAKABLE_TIERS = ProbabilityTable(list(zip(BREAKABLE_TYPES, (0.70, 0.20, 0.07, 0.03))))

LOOT_BANDS = ProbabilityTable(
    [
        ("potion", 0.50),
        ("enchant", 0.25),
        ("key", 0.15),
        ("gift", 0.08),
        ("ultra_rare", 0.02),
    ]
)

ULTRA_RARE_NAMES = [
    "Mityczny Miecz",
    "Starożytny Artefakt",
    "Kryształ Mocy",
    "Smocza Skóra",
    "Klejnot Wieczności",
]


@dataclass
class DestructionResult:
    breakable: BreakableSpawn
    agent: Any
    dropped_item: Optional[Item] = None


@dataclass
class ItemUseResult:
    accepted: bool
    message: str
    rewards: List[Item] = field(default_factory=list)
    money: int = 0


class EconomyEngine:
    """
    Owns the rules of the game economy for one player.

    Randomness and ids are injected so tests can pin every draw.
    """

    def __init__(
        self,
        state: PlayerState,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Optional[Callable[[], Any]] = None,
    ):
        self.state = state
        self.settings = settings or Settings()
        self.rng = rng or random.Random()
        self.clock = clock
        self.id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self.breakables: Dict[str, BreakableSpawn] = {}

    # ========== BREAKABLES ==========

    def spawn_breakable(self, now: Optional[float] = None) -> BreakableSpawn:
        """Spawn one breakable of a randomly drawn tier."""
        now = self.clock() if now is None else now
        tier = BREAKABLE_TIERS.sample(self.rng)
        breakable = BreakableSpawn(
            id=str(self.id_factory()),
            type_name=tier.name,
            value=tier.value,
            color_class=tier.color_class,
            spawned_at=now,
            expires_at=now + self.settings.breakable_lifetime,
        )
        self.breakables[breakable.id] = breakable
        logging.debug(f"Spawned {tier.name} breakable {breakable.id} worth {tier.value}")
        return breakable

    def expire_breakable(self, breakable_id: str) -> bool:
        """Remove an unclicked breakable. No reward. Returns False if it was already gone."""
        breakable = self.breakables.pop(breakable_id, None)
        if breakable is None:
            return False
        logging.debug(f"Breakable {breakable_id} expired")
        return True

    def expire_due(self, now: Optional[float] = None) -> List[str]:
        """Expire every breakable whose lifetime has elapsed."""
        now = self.clock() if now is None else now
        due = [b.id for b in self.breakables.values() if b.expires_at <= now]
        for breakable_id in due:
            self.expire_breakable(breakable_id)
        return due

    def destroy_breakable(self, breakable_id: str, agent: Any = PLAYER_AGENT) -> Optional[DestructionResult]:
        """
        Resolve the destruction of a spawned breakable.

        Credits the reward, counts the destruction, rolls the item drop and
        records the event. A breakable is removed before any reward is paid,
        so it can be destroyed at most once.

        Args:
            breakable_id: Id of a currently spawned breakable
            agent: "player" or the id of the pet that broke it

        Returns:
            DestructionResult, or None if the breakable is not spawned anymore
        """
        breakable = self.breakables.pop(breakable_id, None)
        if breakable is None:
            logging.debug(f"Breakable {breakable_id} already destroyed or expired")
            return None

        state = self.state
        state.money += breakable.value
        state.total_money += breakable.value
        state.breakables_destroyed += 1

        dropped = None
        if self.rng.random() < self.settings.item_drop_chance:
            dropped = self.roll_item()
            state.inventory.append(dropped)
            logging.info(f"Item drop: {dropped.name} ({dropped.rarity})")

        state.game_history.append(
            GameEvent(
                type="breakable_destroyed",
                timestamp=utc_now_iso(),
                details={"breakableType": breakable.type_name, "value": breakable.value, "petId": agent},
            )
        )
        return DestructionResult(breakable=breakable, agent=agent, dropped_item=dropped)

    # ========== LOOT ==========

    def roll_item(self) -> Item:
        """Roll one item through the loot bands. Keys and gifts also bump their counters."""
        kind = LOOT_BANDS.sample(self.rng)
        name = self.rng.choice(ULTRA_RARE_NAMES) if kind == "ultra_rare" else None
        item = Item.create(self.id_factory(), kind, name=name)

        if kind == "key":
            self.state.keys += 1
        elif kind == "gift":
            self.state.gifts += 1
        return item

    def open_loot_chest(self) -> Optional[List[Item]]:
        """Spend one key for a fixed number of item rolls. None when there is no key."""
        if self.state.keys <= 0:
            logging.info("Cannot open loot chest: no keys")
            return None

        self.state.keys -= 1
        rewards = [self.roll_item() for _ in range(self.settings.chest_item_count)]
        self.state.inventory.extend(rewards)
        self._record("loot_chest_opened", items=len(rewards))
        return rewards

    def open_gift(self) -> Optional[ItemUseResult]:
        """Spend one gift for a money reward plus a few item rolls. None when there is no gift."""
        if self.state.gifts <= 0:
            logging.info("Cannot open gift: no gifts")
            return None

        s = self.settings
        self.state.gifts -= 1
        money = self.rng.randint(s.gift_money_min, s.gift_money_max)
        self.state.money += money
        self.state.total_money += money

        count = self.rng.randint(s.gift_items_min, s.gift_items_max)
        items = [self.roll_item() for _ in range(count)]
        self.state.inventory.extend(items)
        self._record("gift_opened", money=money, items=count)
        return ItemUseResult(True, f"Gift opened: {money} coins and {count} items", rewards=items, money=money)

    def use_item(self, item_id: Any) -> ItemUseResult:
        """
        Use an inventory item.

        The item is removed from the inventory unless the use is rejected
        (unknown item, enchant cap reached).
        """
        item = self.state.find_item(item_id)
        if item is None:
            return ItemUseResult(False, f"Item {item_id} is not in the inventory")

        if item.kind == "potion":
            result = ItemUseResult(True, "Potion used: temporary boost")
        elif item.kind == "enchant":
            if len(self.state.enchants) >= self.settings.max_enchants:
                return ItemUseResult(False, f"Enchant limit reached ({self.settings.max_enchants})")
            self.state.enchants.append(item)
            result = ItemUseResult(True, "Enchant applied: permanent boost")
        elif item.kind == "key":
            rewards = self.open_loot_chest()
            if rewards is None:
                result = ItemUseResult(True, "No keys left to open a chest")
            else:
                result = ItemUseResult(True, f"Ultra-Loot Chest opened: {len(rewards)} items", rewards=rewards)
        elif item.kind == "gift":
            result = self.open_gift() or ItemUseResult(True, "No gifts left to open")
        else:
            result = ItemUseResult(True, f"{item.name} is an ultra-rare item and can be traded")

        self.state.inventory = [i for i in self.state.inventory if i.id != item.id]
        return result

    # ========== PETS ==========

    def buy_pet(self, position: Optional[Dict[str, float]] = None) -> Optional[Pet]:
        """Buy a level 1 pet. None when the player cannot afford it."""
        cost = self.settings.pet_cost
        if self.state.money < cost:
            logging.info(f"Cannot buy pet: {self.state.money} < {cost}")
            return None

        self.state.money -= cost
        if position is None:
            position = {
                "x": self.rng.random() * max(self.settings.arena_width - 40, 0),
                "y": self.rng.random() * max(self.settings.arena_height - 40, 0),
            }
        pet = Pet(id=self.id_factory(), level=1, damage=1, speed=1, position=position)
        self.state.pets.append(pet)
        self._record("pet_purchased", petId=pet.id, cost=cost)
        return pet

    def start_pet_work(self) -> List[Any]:
        """Roll every pet's work chance. Returns ids of pets that started working."""
        started = []
        for pet in self.state.pets:
            if self.rng.random() < self.settings.pet_work_chance:
                pet.working = True
                started.append(pet.id)
        return started

    def complete_pet_work(self, pet_id: Any) -> Optional[DestructionResult]:
        """Finish a pet's work cycle: back to idle, then break one random spawned breakable."""
        pet = self.state.find_pet(pet_id)
        if pet is None:
            return None

        pet.working = False
        if not self.breakables:
            return None
        target = self.rng.choice(list(self.breakables))
        return self.destroy_breakable(target, agent=pet.id)

    # ========== MISC ==========

    def tick_play_time(self, seconds: int = 1):
        self.state.play_time += seconds

    def _record(self, event_type: str, **details):
        self.state.game_history.append(GameEvent(type=event_type, timestamp=utc_now_iso(), details=details))
