"""
Pytest configuration and shared fixtures for Pet Simulator tests.

Provides scripted randomness, a fake clock, synchronous executors and mock
network collaborators so the game session, transport and server can be
tested without real sockets or timers.
"""

import asyncio
import copy
import json
import queue
import random
from concurrent.futures import Future
from typing import Any, Dict, List

import keyring
import pytest
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from petsim.core.config import Settings
from petsim.core.errors import NotFound
from petsim.core.game_loop import GameLoop
from petsim.client.realtime_client import ConnectionState


# ========== MOCK CLASSES ==========

class ScriptedRandom:
    """random.Random stand-in whose random() draws come from a script."""

    def __init__(self, draws=(), default: float = 0.99, seed: int = 0):
        self.draws = list(draws)
        self.default = default
        self._rng = random.Random(seed)

    def random(self) -> float:
        return self.draws.pop(0) if self.draws else self.default

    def choice(self, seq):
        return self._rng.choice(seq)

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class ImmediateExecutor:
    """Executor that runs every task synchronously in submit()."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs) -> Future:
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True):
        pass


class DeferredExecutor(ImmediateExecutor):
    """Executor that holds submitted tasks until run_all() is called."""

    def __init__(self):
        super().__init__()
        self.pending = []

    def submit(self, fn, *args, **kwargs) -> Future:
        self.submitted += 1
        future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_all(self):
        while self.pending:
            future, fn, args, kwargs = self.pending.pop(0)
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)


class FakeTimer:
    """threading.Timer stand-in that only fires when told to."""

    created: List["FakeTimer"] = []

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function(*self.args, **self.kwargs)


class MockApiClient:
    """In-memory stand-in for GameApiClient."""

    def __init__(self):
        self.games: Dict[str, Dict[str, Any]] = {}
        self.clans: Dict[str, Dict[str, Any]] = {}
        self.trades: Dict[str, Dict[str, Any]] = {}
        self.saved: List[Dict[str, Any]] = []
        self.fail_loads_with = None
        self.fail_saves_with = None
        self.fail_social_with = None

    def load_game(self, player_id: str) -> Dict[str, Any]:
        if self.fail_loads_with:
            raise self.fail_loads_with
        if player_id not in self.games:
            raise NotFound(player_id)
        return copy.deepcopy(self.games[player_id])

    def save_game(self, player_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if self.fail_saves_with:
            raise self.fail_saves_with
        self.saved.append(copy.deepcopy(data))
        self.games[player_id] = copy.deepcopy(data)
        return {"success": True, "message": "Game saved"}

    def list_clans(self):
        self._maybe_fail()
        return list(self.clans.values())

    def create_clan(self, name, player_id, player_name):
        self._maybe_fail()
        clan_id = f"clan-{len(self.clans) + 1}"
        clan = {
            "id": clan_id,
            "name": name,
            "level": 1,
            "experience": 0,
            "members": [{"id": player_id, "name": player_name, "role": "leader", "joinDate": "2024-01-01T00:00:00.000Z"}],
            "created": "2024-01-01T00:00:00.000Z",
        }
        self.clans[clan_id] = clan
        return clan

    def join_clan(self, clan_id, player_id, player_name):
        self._maybe_fail()
        if clan_id not in self.clans:
            raise NotFound(f"Clan {clan_id} not found")
        clan = self.clans[clan_id]
        clan["members"].append({"id": player_id, "name": player_name, "role": "member", "joinDate": ""})
        return clan

    def list_trades(self):
        self._maybe_fail()
        return list(self.trades.values())

    def post_trade(self, draft):
        self._maybe_fail()
        trade = dict(draft, id=f"trade-{len(self.trades) + 1}", status="active")
        self.trades[trade["id"]] = trade
        return trade

    def set_trade_status(self, trade_id, status):
        self._maybe_fail()
        if trade_id not in self.trades:
            raise NotFound(f"Trade {trade_id} not found")
        self.trades[trade_id]["status"] = status
        return self.trades[trade_id]

    def _maybe_fail(self):
        if self.fail_social_with:
            raise self.fail_social_with


class MockIdentity:
    def __init__(self, player_id: str = "player_test", player_name: str = "Tester"):
        self.player_id = player_id
        self.player_name = player_name

    def load_or_create(self, player_name=None):
        if player_name:
            self.player_name = player_name
        return self.player_id


class MockRealtimeClient:
    """Records outbound envelopes instead of opening a socket."""

    def __init__(self, connected: bool = True):
        self.connected = connected
        self.sent: List[Dict[str, Any]] = []
        self.params: Dict[str, str] = {}
        self.started = False
        self.stopped = False

    @property
    def state(self):
        return ConnectionState.OPEN if self.connected else ConnectionState.CLOSED

    def set_params(self, **params):
        for key, value in params.items():
            if value is None:
                self.params.pop(key, None)
            else:
                self.params[key] = str(value)

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def send(self, message_type, payload) -> bool:
        if not self.connected:
            return False
        self.sent.append({"type": message_type, "payload": payload})
        return True


class FakeServerSocket:
    """Server-side websocket stand-in for RealtimeHub tests."""

    class _Request:
        def __init__(self, path):
            self.path = path

    def __init__(self, path: str = "/", frames=(), fail_send: bool = False, stall: bool = False):
        self.request = self._Request(path)
        self.state = State.OPEN
        self.frames = list(frames)
        self.fail_send = fail_send
        self.stall = stall
        self.sent: List[Dict[str, Any]] = []

    async def send(self, data: str):
        if self.fail_send:
            raise ConnectionClosed(None, None)
        if self.stall:
            # Open but no longer reading: the send never completes
            await asyncio.Event().wait()
        self.sent.append(json.loads(data))

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.frames:
            raise StopAsyncIteration
        return self.frames.pop(0)

    def close(self):
        self.state = State.CLOSED


class FakeClientConnection:
    """Client-side websocket stand-in for RealtimeClient tests."""

    def __init__(self, frames=()):
        self.frames = list(frames)
        self.sent: List[str] = []
        self.closed = False

    def recv(self, timeout=None):
        if self.frames:
            frame = self.frames.pop(0)
            if isinstance(frame, BaseException):
                raise frame
            return frame
        raise ConnectionClosed(None, None)

    def send(self, data):
        self.sent.append(data)

    def close(self):
        self.closed = True


class FakeBroadcaster:
    """Records publishes and group assignments made by the HTTP API."""

    def __init__(self):
        self.published: List[Dict[str, Any]] = []
        self.group_published: List[tuple] = []
        self.assignments: List[tuple] = []

    async def publish_global(self, message):
        self.published.append(message)
        return 0

    async def publish_to_group(self, group_id, message):
        self.group_published.append((group_id, message))
        return 0

    def assign_group(self, player_id, group_id):
        self.assignments.append((player_id, group_id))


# ========== FIXTURE DATA ==========

def get_mock_game_state(**overrides) -> Dict[str, Any]:
    """A saved game as the server stores it."""
    state = {
        "playerId": "player_test",
        "playerName": "Tester",
        "money": 42,
        "totalMoney": 300,
        "breakablesDestroyed": 17,
        "keys": 1,
        "gifts": 0,
        "pets": [{"id": 1, "level": 1, "damage": 1, "speed": 1, "name": "Starter Pet", "position": {"x": 100, "y": 100}}],
        "inventory": [
            {"id": "it-1", "name": "Mikstura", "rarity": "common", "effect": "Tymczasowy boost"},
            {"id": "it-2", "name": "Klejnot Wieczności", "rarity": "ultra-rare", "effect": "Można handlować"},
        ],
        "enchants": [],
        "clans": [],
        "playerClan": None,
        "playTime": 120,
        "gameHistory": [
            {"type": "breakable_destroyed", "timestamp": "2024-01-01T00:00:00.000Z", "breakableType": "Rzadki", "value": 5, "petId": "player"}
        ],
        "created": "2024-01-01T00:00:00.000Z",
        "lastSaved": "2024-01-01T00:10:00.000Z",
        "theme": "dark",
    }
    state.update(overrides)
    return state


# ========== PYTEST FIXTURES ==========

@pytest.fixture(autouse=True)
def isolated_user_data(tmp_path, monkeypatch):
    """Redirect the user data directory so tests never touch real player files."""
    home = tmp_path / "petsim-home"
    home.mkdir()
    monkeypatch.setenv("PETSIM_HOME", str(home))
    for name in ("PETSIM_CONFIG", "PETSIM_API_BASE", "PETSIM_WS_URL", "PORT", "PETSIM_CLAN_CHAT_SCOPE"):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture(autouse=True)
def memory_keyring(monkeypatch):
    """Replace the system keyring with a dict."""
    store = {}
    monkeypatch.setattr(keyring, "get_password", lambda service, key: store.get((service, key)))
    monkeypatch.setattr(keyring, "set_password", lambda service, key, value: store.__setitem__((service, key), value))
    return store


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def game_loop(fake_clock):
    return GameLoop(clock=fake_clock)


@pytest.fixture
def scripted_rng():
    return ScriptedRandom()


@pytest.fixture
def mock_data_queue():
    return queue.Queue()


@pytest.fixture
def fake_timers():
    """Timers created through FakeTimer during the test."""
    FakeTimer.created = []
    yield FakeTimer.created
    FakeTimer.created = []


@pytest.fixture
def mock_api_client():
    return MockApiClient()


@pytest.fixture
def mock_realtime_client():
    return MockRealtimeClient()


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=str(tmp_path / "data"), upload_dir=str(tmp_path / "uploads"))


# ========== UTILITY FUNCTIONS ==========

def drain_queue(data_queue) -> List[Dict[str, Any]]:
    """Pop every message currently in a data queue."""
    messages = []
    while True:
        try:
            messages.append(data_queue.get_nowait())
        except queue.Empty:
            return messages


def messages_of_type(messages, message_type) -> List[Any]:
    return [m["data"] for m in messages if m["type"] == message_type]
