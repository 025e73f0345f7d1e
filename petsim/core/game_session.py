import logging
import queue
import random
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from ..client.api_client import GameApiClient
from ..client.identity import PlayerIdentity
from ..client.realtime_client import ConnectionState, RealtimeClient
from ..models import Clan, PlayerState, Trade
from ..services.local_cache import LocalGameCache
from ..services.notification_service import NotificationService
from ..services.social_service import SocialService
from .config import Settings
from .economy import DestructionResult, EconomyEngine
from .errors import ApiError, NotFound, PetSimError, TransientNetworkFailure, ValidationFailure
from .game_loop import GameLoop
from .message_router import MessageRouter


class GameSession:
    """
    Owns one player's game on the client and keeps it in sync with the server.

    Startup loads identity, then the server state (falling back to the local
    cache on a network failure), then opens the realtime connection and starts
    the economy timers. All game state mutation happens on the GameLoop
    thread. Network I/O runs on a small thread pool against snapshots, and
    results come back to the loop as commands.

    Presentation events go to `data_queue` as {"type": ..., "data": ...}.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        api_client: Optional[GameApiClient] = None,
        identity: Optional[PlayerIdentity] = None,
        local_cache: Optional[LocalGameCache] = None,
        realtime_client: Optional[RealtimeClient] = None,
        loop: Optional[GameLoop] = None,
        executor=None,
        rng: Optional[random.Random] = None,
        data_queue=None,
    ):
        self.settings = settings or Settings()
        self.data_queue = data_queue if data_queue is not None else queue.Queue()

        self.api_client = api_client or GameApiClient(self.settings.api_base, self.settings.request_timeout)
        self.identity = identity or PlayerIdentity()
        self.local_cache = local_cache or LocalGameCache()
        self.loop = loop or GameLoop()
        self.executor = executor or ThreadPoolExecutor(max_workers=3, thread_name_prefix="petsim-io")
        self.rng = rng or random.Random()

        self.notifications = NotificationService(self.data_queue, self.settings.notification_duration)
        self.social = SocialService(self.api_client)

        self.router = MessageRouter()
        self.router.register("NEW_TRADE", self._on_new_trade)
        self.router.register("TRADE_UPDATE", self._on_trade_update)
        self.router.register("CLAN_CHAT", self._on_clan_chat)
        self.router.register("GLOBAL_CHAT", self._on_global_chat)

        self.realtime = realtime_client or RealtimeClient(
            self.settings.ws_url,
            on_message=self._on_realtime_frame,
            reconnect_delay=self.settings.reconnect_delay,
            on_state_change=self._on_connection_state,
        )

        self.player_id: Optional[str] = None
        self.state: Optional[PlayerState] = None
        self.engine: Optional[EconomyEngine] = None
        self.load_source: Optional[str] = None
        self._timers = []

    # ========== LIFECYCLE ==========

    def start(self, player_name: Optional[str] = None):
        """Load everything, then start the realtime connection and the game loop."""
        self.initialize(player_name)
        self.realtime.start()
        self.loop.start()
        self.refresh_clans()
        self.refresh_trades()
        logging.info(f"Pet Simulator session ready for {self.player_id} (state from {self.load_source})")

    def initialize(self, player_name: Optional[str] = None):
        """
        Resolve identity, load the initial state and register the economy timers.

        Runs on the caller's thread before the loop starts, so it may block on
        the network.
        """
        self.player_id = self.identity.load_or_create(player_name)
        state, self.load_source = self._load_initial_state()
        if not state.player_id:
            state.player_id = self.player_id
        name = player_name or self.identity.player_name
        if name:
            state.player_name = name

        self._install_state(state)
        self.realtime.set_params(playerId=self.player_id, clanId=state.player_clan)
        self._schedule_timers()
        self.data_queue.put({"type": "game_state", "data": self.state.to_dict()})

    def stop(self):
        """Stop timers and realtime, then flush one final save."""
        logging.info("Stopping GameSession...")
        for timer in self._timers:
            timer.cancel()
        self._timers = []

        self.realtime.stop()
        self.loop.stop()

        if self.state is not None:
            self._save_worker(self.state.to_dict())

        self.notifications.shutdown()
        self.executor.shutdown(wait=True)
        logging.info("GameSession stopped.")

    def _load_initial_state(self):
        try:
            data = self.api_client.load_game(self.player_id)
            logging.info(f"Loaded game state for {self.player_id} from server")
            return PlayerState.from_dict(data), "server"
        except TransientNetworkFailure as e:
            logging.warning(f"Server unavailable, trying local cache: {e}")
            cached = self.local_cache.load()
            if cached is not None:
                try:
                    return PlayerState.from_dict(cached), "cache"
                except ValueError as parse_error:
                    logging.error(f"Local cache is not a valid game state: {parse_error}")
        except (NotFound, ApiError, ValueError) as e:
            logging.error(f"Failed to load game state from server: {e}")

        logging.info("Starting a new game with default state")
        return PlayerState.new_game(self.player_id), "default"

    def _install_state(self, state: PlayerState):
        self.state = state
        if self.engine is None:
            self.engine = EconomyEngine(state, self.settings, rng=self.rng, clock=self.loop.clock)
        else:
            self.engine.state = state

    def _schedule_timers(self):
        s = self.settings
        self._timers = [
            self.loop.call_every(s.spawn_interval, self._spawn_tick),
            self.loop.call_every(s.play_time_interval, self._play_time_tick),
            self.loop.call_every(s.pet_work_interval, self._pet_work_tick),
            self.loop.call_every(s.autosave_interval, self.save),
        ]

    # ========== RECONCILIATION ==========

    def merge_server_state(self, data: Dict[str, Any]):
        """
        Replace the local state with a state received from the server.

        Server wins on every field. Spawned breakables are client-only and
        survive the merge. Must run on the loop thread.
        """
        state = PlayerState.from_dict(data)
        if not state.player_id:
            state.player_id = self.player_id
        self._install_state(state)
        self.realtime.set_params(clanId=state.player_clan)
        self.data_queue.put({"type": "game_state", "data": state.to_dict()})

    def reload_from_server(self) -> Future:
        return self.executor.submit(self._reload_worker)

    def _reload_worker(self):
        try:
            data = self.api_client.load_game(self.player_id)
        except PetSimError as e:
            logging.warning(f"Reload from server failed: {e}")
            self.notifications.notify("Could not reach the server", "warning")
            return
        self.loop.submit(self.merge_server_state, data)

    def save(self):
        """Snapshot the state on the loop thread and hand the copy to an I/O worker."""
        if self.state is None:
            return
        snapshot = self.state.to_dict()
        self.executor.submit(self._save_worker, snapshot)

    def request_save(self):
        self.loop.submit(self.save)

    def _save_worker(self, snapshot: Dict[str, Any]) -> bool:
        try:
            self.api_client.save_game(self.player_id, snapshot)
            logging.debug(f"Game saved for {self.player_id}")
            return True
        except TransientNetworkFailure as e:
            logging.warning(f"Save failed, keeping a local copy: {e}")
            self.local_cache.save(snapshot)
            self.notifications.notify("Server unavailable, game saved locally", "warning")
        except (ApiError, NotFound) as e:
            logging.error(f"Server rejected save: {e}")
            self.notifications.notify("Saving the game failed", "error")
        return False

    # ========== TIMERS ==========

    def _spawn_tick(self):
        breakable = self.engine.spawn_breakable(self.loop.clock())
        self.loop.call_later(self.settings.breakable_lifetime, self._expire_breakable, breakable.id)
        self.data_queue.put({"type": "breakable_spawned", "data": breakable.to_dict()})

    def _expire_breakable(self, breakable_id: str):
        if self.engine.expire_breakable(breakable_id):
            self.data_queue.put({"type": "breakable_expired", "data": {"id": breakable_id}})

    def _play_time_tick(self):
        self.engine.tick_play_time()

    def _pet_work_tick(self):
        for pet_id in self.engine.start_pet_work():
            self.data_queue.put({"type": "pet_working", "data": {"petId": pet_id}})
            self.loop.call_later(self.settings.pet_work_delay, self._complete_pet_work, pet_id)

    def _complete_pet_work(self, pet_id):
        result = self.engine.complete_pet_work(pet_id)
        self.data_queue.put({"type": "pet_idle", "data": {"petId": pet_id}})
        if result:
            self._after_destruction(result)

    def _after_destruction(self, result: DestructionResult):
        self.data_queue.put(
            {
                "type": "breakable_destroyed",
                "data": {"id": result.breakable.id, "value": result.breakable.value, "agent": result.agent},
            }
        )
        if result.dropped_item:
            self.notifications.notify(f"Found item: {result.dropped_item.name}")
        self._publish_stats()

    def _publish_stats(self):
        s = self.state
        self.data_queue.put(
            {
                "type": "stats",
                "data": {
                    "money": s.money,
                    "totalMoney": s.total_money,
                    "breakablesDestroyed": s.breakables_destroyed,
                    "keys": s.keys,
                    "gifts": s.gifts,
                    "pets": len(s.pets),
                    "playTime": s.play_time,
                },
            }
        )

    # ========== PLAYER ACTIONS ==========
    # Safe to call from any thread; the work is queued onto the loop.

    def click_breakable(self, breakable_id: str):
        self.loop.submit(self._click_breakable, breakable_id)

    def _click_breakable(self, breakable_id: str):
        result = self.engine.destroy_breakable(breakable_id)
        if result:
            self._after_destruction(result)

    def buy_pet(self):
        self.loop.submit(self._buy_pet)

    def _buy_pet(self):
        pet = self.engine.buy_pet()
        if pet is None:
            self.notifications.notify(f"Not enough money! A pet costs {self.settings.pet_cost}", "warning")
            return
        self.data_queue.put({"type": "pet_added", "data": pet.to_dict()})
        self.notifications.notify("New pet bought!")
        self._publish_stats()
        self.save()

    def use_item(self, item_id):
        self.loop.submit(self._use_item, item_id)

    def _use_item(self, item_id):
        result = self.engine.use_item(item_id)
        self.notifications.notify(result.message, "info" if result.accepted else "warning")
        if not result.accepted:
            return
        self.data_queue.put(
            {"type": "inventory", "data": [i.to_dict() for i in self.state.inventory]}
        )
        self._publish_stats()
        self.save()

    # ========== SOCIAL ==========

    def send_chat(self, message: str, scope: str = "clan") -> bool:
        """Send a chat line over the realtime connection. The hub echoes it back to us."""
        message = (message or "").strip()
        if not message:
            return False

        payload = {
            "playerId": self.player_id,
            "playerName": self.state.player_name if self.state else "",
            "message": message,
        }
        if scope == "clan":
            clan_id = self.state.player_clan if self.state else None
            if not clan_id:
                self.notifications.notify("Join a clan to use clan chat", "warning")
                return False
            payload["clanId"] = clan_id
            message_type = "CLAN_MESSAGE"
        else:
            message_type = "GLOBAL_MESSAGE"

        if not self.realtime.send(message_type, payload):
            self.notifications.notify("Not connected to the chat server", "warning")
            return False
        return True

    def send_trade_offer(self, trade: Trade) -> bool:
        return self.realtime.send("TRADE_OFFER", trade.to_dict())

    def refresh_clans(self) -> Future:
        return self.executor.submit(self._social_worker, self._refresh_clans)

    def _refresh_clans(self):
        clans = self.social.refresh_clans()
        data = [c.to_dict() for c in clans]
        self.loop.submit(self._set_cached_clans, data)
        self.data_queue.put({"type": "clans", "data": data})

    def _set_cached_clans(self, data: List[Dict[str, Any]]):
        self.state.clans = data

    def create_clan(self, name: str) -> Future:
        # Read on the calling thread; the worker must not touch game state
        return self.executor.submit(self._social_worker, self._create_clan, name, self.state.player_name)

    def _create_clan(self, name: str, player_name: str):
        clan = self.social.create_clan(name, self.player_id, player_name)
        self.loop.submit(self._joined_clan, clan)

    def join_clan(self, clan_id: str) -> Future:
        return self.executor.submit(self._social_worker, self._join_clan, clan_id, self.state.player_name)

    def _join_clan(self, clan_id: str, player_name: str):
        clan = self.social.join_clan(clan_id, self.player_id, player_name)
        self.loop.submit(self._joined_clan, clan)

    def _joined_clan(self, clan: Clan):
        self.state.player_clan = clan.id
        self.realtime.set_params(clanId=clan.id)
        self.data_queue.put({"type": "clan_joined", "data": clan.to_dict()})
        self.notifications.notify(f"Joined clan {clan.name}")
        self.save()

    def refresh_trades(self) -> Future:
        return self.executor.submit(self._social_worker, self._refresh_trades)

    def _refresh_trades(self):
        trades = self.social.refresh_trades()
        self.data_queue.put({"type": "trades", "data": [t.to_dict() for t in trades]})

    def post_trade(
        self,
        offer_items: Optional[List[Any]] = None,
        offer_money: int = 0,
        request_items: Optional[List[Any]] = None,
        request_money: int = 0,
    ) -> Future:
        trade = Trade(
            id=None,
            player_id=self.player_id,
            player_name=self.state.player_name,
            offer_items=list(offer_items or []),
            offer_money=offer_money,
            request_items=list(request_items or []),
            request_money=request_money,
        )
        return self.executor.submit(self._social_worker, self.social.post_trade, trade)

    def accept_trade(self, trade_id: str) -> Future:
        return self.executor.submit(self._social_worker, self.social.set_trade_status, trade_id, "accepted")

    def cancel_trade(self, trade_id: str) -> Future:
        return self.executor.submit(self._social_worker, self.social.set_trade_status, trade_id, "cancelled")

    def _social_worker(self, func, *args):
        """Run a social call on an I/O worker and turn failures into notifications."""
        try:
            return func(*args)
        except ValidationFailure as e:
            self.notifications.notify(str(e), "warning")
        except NotFound as e:
            self.notifications.notify(f"Not found: {e}", "warning")
        except TransientNetworkFailure as e:
            logging.warning(f"Social request failed: {e}")
            self.notifications.notify("Server unavailable", "warning")
        except ApiError as e:
            logging.error(f"Social request rejected: {e}")
            self.notifications.notify(e.message or "Request failed", "error")
        return None

    # ========== REALTIME ==========

    def _on_realtime_frame(self, frame):
        self.loop.submit(self.router.handle_message, frame)

    def _on_connection_state(self, state: ConnectionState):
        self.data_queue.put({"type": "connection_status", "data": {"status": state.value}})

    def _on_new_trade(self, payload):
        trade = self.social.apply_trade(payload)
        if trade is None:
            return
        self.data_queue.put({"type": "new_trade", "data": trade.to_dict()})
        if trade.player_id != self.player_id:
            self.notifications.notify(f"New trade offer from {trade.player_name}")

    def _on_trade_update(self, payload):
        trade = self.social.apply_trade(payload)
        self.data_queue.put({"type": "trade_update", "data": trade.to_dict() if trade else payload})

    def _on_clan_chat(self, payload):
        message = self.social.add_chat("clan", payload)
        self.data_queue.put({"type": "clan_chat", "data": message.to_dict()})

    def _on_global_chat(self, payload):
        message = self.social.add_chat("global", payload)
        self.data_queue.put({"type": "global_chat", "data": message.to_dict()})
