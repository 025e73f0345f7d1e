"""
Tests for EconomyEngine - rewards, loot, item use and pets.
"""

import itertools

import pytest

from petsim.core.config import Settings
from petsim.core.economy import ULTRA_RARE_NAMES, EconomyEngine
from petsim.models import Item, PlayerState
from tests.conftest import FakeClock, ScriptedRandom

# Draw values for readability
NO_DROP = 0.5
DROP = 0.05
LEGENDARY = 0.99
COMMON = 0.1
POTION = 0.1
ENCHANT = 0.6
KEY = 0.8
GIFT = 0.95


@pytest.fixture
def state():
    return PlayerState.new_game("player_test")


@pytest.fixture
def rng():
    return ScriptedRandom()


@pytest.fixture
def engine(state, rng):
    counter = itertools.count(1)
    return EconomyEngine(state, Settings(), rng=rng, clock=FakeClock(10.0), id_factory=lambda: f"id-{next(counter)}")


def make_items(kind, count):
    return [Item.create(f"{kind}-{i}", kind) for i in range(count)]


class TestBreakables:
    def test_spawn_registers_breakable_with_expiry(self, engine, rng):
        rng.draws = [COMMON]

        breakable = engine.spawn_breakable()

        assert breakable.type_name == "Zwykły"
        assert breakable.value == 1
        assert breakable.spawned_at == 10.0
        assert breakable.expires_at == 40.0
        assert engine.breakables[breakable.id] is breakable

    def test_legendary_destruction_scenario(self, engine, state, rng):
        rng.draws = [LEGENDARY, NO_DROP]
        breakable = engine.spawn_breakable()
        money, total = state.money, state.total_money

        result = engine.destroy_breakable(breakable.id)

        assert result is not None
        assert state.money == money + 100
        assert state.total_money == total + 100
        assert state.breakables_destroyed == 1
        assert len(state.game_history) == 1
        event = state.game_history[0].to_dict()
        assert event["type"] == "breakable_destroyed"
        assert event["breakableType"] == "Legendarny"
        assert event["value"] == 100
        assert event["petId"] == "player"

    def test_breakable_destroyed_at_most_once(self, engine, state, rng):
        rng.draws = [COMMON, NO_DROP]
        breakable = engine.spawn_breakable()

        assert engine.destroy_breakable(breakable.id) is not None
        assert engine.destroy_breakable(breakable.id) is None
        assert state.money == 1
        assert state.breakables_destroyed == 1

    def test_expired_breakable_cannot_be_destroyed(self, engine, state, rng):
        rng.draws = [COMMON]
        breakable = engine.spawn_breakable()

        assert engine.expire_breakable(breakable.id) is True
        assert engine.expire_breakable(breakable.id) is False
        assert engine.destroy_breakable(breakable.id) is None
        assert state.money == 0

    def test_expire_due(self, engine, rng):
        rng.draws = [COMMON, COMMON]
        first = engine.spawn_breakable(now=0.0)
        second = engine.spawn_breakable(now=20.0)

        expired = engine.expire_due(now=30.0)

        assert expired == [first.id]
        assert second.id in engine.breakables

    def test_item_drop_on_destruction(self, engine, state, rng):
        rng.draws = [COMMON, DROP, POTION]
        breakable = engine.spawn_breakable()

        result = engine.destroy_breakable(breakable.id)

        assert result.dropped_item is not None
        assert result.dropped_item.kind == "potion"
        assert state.inventory == [result.dropped_item]

    def test_pet_destruction_records_pet_id(self, engine, state, rng):
        rng.draws = [COMMON, NO_DROP]
        breakable = engine.spawn_breakable()

        engine.destroy_breakable(breakable.id, agent=1)

        assert state.game_history[-1].details["petId"] == 1


class TestLoot:
    def test_roll_item_kinds(self, engine, state, rng):
        rng.draws = [POTION, ENCHANT, KEY, GIFT]

        kinds = [engine.roll_item().kind for _ in range(4)]

        assert kinds == ["potion", "enchant", "key", "gift"]
        assert state.keys == 1
        assert state.gifts == 1

    def test_ultra_rare_gets_pool_name(self, engine, rng):
        rng.draws = [0.995]

        item = engine.roll_item()

        assert item.kind == "ultra_rare"
        assert item.rarity == "ultra-rare"
        assert item.name in ULTRA_RARE_NAMES

    def test_rolled_items_have_unique_ids(self, state):
        engine = EconomyEngine(state, Settings(), rng=ScriptedRandom(default=POTION))

        ids = {engine.roll_item().id for _ in range(50)}

        assert len(ids) == 50

    def test_loot_chest_yields_three_items(self, engine, state, rng):
        state.keys = 1
        rng.draws = [POTION, POTION, ENCHANT]

        rewards = engine.open_loot_chest()

        assert len(rewards) == 3
        assert state.keys == 0
        assert len(state.inventory) == 3
        assert state.game_history[-1].type == "loot_chest_opened"

    def test_loot_chest_without_keys_is_noop(self, engine, state):
        assert engine.open_loot_chest() is None
        assert state.inventory == []
        assert state.keys == 0

    def test_gift_credits_money_and_items(self, engine, state, rng):
        state.gifts = 1
        rng.default = POTION
        total_before = state.total_money

        result = engine.open_gift()

        assert 10 <= result.money <= 59
        assert state.money == result.money
        assert state.total_money == total_before + result.money
        assert 1 <= len(result.rewards) <= 3
        assert state.gifts == 0
        assert state.game_history[-1].type == "gift_opened"

    def test_gift_without_gifts_is_noop(self, engine, state):
        assert engine.open_gift() is None
        assert state.money == 0


class TestUseItem:
    def test_potion_is_consumed(self, engine, state):
        state.inventory = make_items("potion", 1)

        result = engine.use_item("potion-0")

        assert result.accepted
        assert state.inventory == []

    def test_enchant_moves_to_enchants(self, engine, state):
        state.inventory = make_items("enchant", 1)

        result = engine.use_item("enchant-0")

        assert result.accepted
        assert state.inventory == []
        assert [e.id for e in state.enchants] == ["enchant-0"]

    def test_enchant_rejected_at_cap(self, engine, state):
        state.enchants = make_items("enchant", 5)
        extra = Item.create("extra", "enchant")
        state.inventory = [extra]

        result = engine.use_item("extra")

        assert not result.accepted
        assert state.inventory == [extra]
        assert len(state.enchants) == 5

    def test_key_opens_chest(self, engine, state, rng):
        state.inventory = make_items("key", 1)
        state.keys = 1
        rng.draws = [POTION, POTION, POTION]

        result = engine.use_item("key-0")

        assert result.accepted
        assert len(result.rewards) == 3
        assert state.keys == 0
        assert [i.kind for i in state.inventory] == ["potion", "potion", "potion"]

    def test_key_without_key_count_is_still_consumed(self, engine, state):
        state.inventory = make_items("key", 1)
        state.keys = 0

        result = engine.use_item("key-0")

        assert result.accepted
        assert result.rewards == []
        assert state.inventory == []

    def test_gift_item_opens_gift(self, engine, state, rng):
        state.inventory = make_items("gift", 1)
        state.gifts = 1
        rng.default = POTION

        result = engine.use_item("gift-0")

        assert result.accepted
        assert result.money >= 10
        assert state.gifts == 0
        assert all(i.id != "gift-0" for i in state.inventory)

    def test_ultra_rare_use_is_notice_only(self, engine, state):
        state.inventory = [Item.create("u1", "ultra_rare", name="Smocza Skóra")]

        result = engine.use_item("u1")

        assert result.accepted
        assert "Smocza Skóra" in result.message
        assert state.inventory == []

    def test_unknown_item_rejected(self, engine, state):
        result = engine.use_item("missing")

        assert not result.accepted


class TestPets:
    def test_buy_pet_scenario(self, engine, state):
        state.money = 150
        state.total_money = 150

        pet = engine.buy_pet()

        assert state.money == 50
        assert state.total_money == 150
        assert len(state.pets) == 2
        assert pet.level == 1
        assert pet.damage == 1
        assert pet.speed == 1
        assert 0 <= pet.position["x"] <= 760
        assert state.game_history[-1].type == "pet_purchased"

    def test_buy_pet_without_money(self, engine, state):
        state.money = 99

        assert engine.buy_pet() is None
        assert state.money == 99
        assert len(state.pets) == 1

    def test_pet_ids_are_unique(self, engine, state):
        state.money = 500

        for _ in range(5):
            engine.buy_pet(position={"x": 0, "y": 0})

        ids = [p.id for p in state.pets]
        assert len(ids) == len(set(ids)) == 6

    def test_pet_work_cycle_destroys_breakable(self, engine, state, rng):
        rng.draws = [COMMON, 0.1, NO_DROP]
        breakable = engine.spawn_breakable()

        started = engine.start_pet_work()
        assert started == [1]
        assert state.pets[0].working

        result = engine.complete_pet_work(1)

        assert not state.pets[0].working
        assert result.breakable.id == breakable.id
        assert result.agent == 1
        assert state.money == 1

    def test_pet_work_roll_fails(self, engine, state, rng):
        rng.draws = [0.3]

        assert engine.start_pet_work() == []
        assert not state.pets[0].working

    def test_pet_work_without_breakables(self, engine, state, rng):
        rng.draws = [0.1]
        engine.start_pet_work()

        assert engine.complete_pet_work(1) is None
        assert not state.pets[0].working

    def test_play_time(self, engine, state):
        engine.tick_play_time()
        engine.tick_play_time(5)

        assert state.play_time == 6


class TestInvariants:
    def test_total_money_never_decreases(self, state):
        engine = EconomyEngine(state, Settings(), rng=ScriptedRandom(seed=7, default=0.3))
        state.keys = 3
        state.gifts = 3
        history = [state.total_money]

        for step in range(200):
            breakable = engine.spawn_breakable(now=float(step))
            engine.destroy_breakable(breakable.id)
            history.append(state.total_money)
            if step % 20 == 0:
                engine.open_loot_chest()
                engine.open_gift()
                engine.buy_pet(position={"x": 0, "y": 0})
                history.append(state.total_money)

        assert history == sorted(history)
        assert len(state.enchants) <= 5
