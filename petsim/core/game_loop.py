"""
Single-threaded game loop.

Every mutation of the player's game state runs on the loop thread: periodic
timers (spawning, pet work, play time, autosave), one-shot delays (breakable
expiry, pet work completion) and commands submitted from other threads
(user actions, network results, realtime events).
"""

import heapq
import itertools
import logging
import queue
import threading
import time
from typing import Callable, List, Optional


class ScheduledCall:
    """Handle for a timer registered on the loop."""

    def __init__(self, callback: Callable, args: tuple, due: float, interval: Optional[float] = None):
        self.callback = callback
        self.args = args
        self.due = due
        self.interval = interval
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    @property
    def name(self) -> str:
        return getattr(self.callback, "__name__", repr(self.callback))


class GameLoop:
    """
    Runs callbacks one at a time on a dedicated worker thread.

    The clock is injectable; tests drive the loop with run_pending() and a fake
    clock instead of starting the thread.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, poll_interval: float = 0.1):
        self.clock = clock
        self.poll_interval = poll_interval

        self._commands = queue.Queue()
        self._timers: List[tuple] = []
        self._timers_lock = threading.Lock()
        self._sequence = itertools.count()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ========== SCHEDULING ==========

    def call_every(self, interval: float, callback: Callable, *args) -> ScheduledCall:
        """Run callback every `interval` seconds, first run one interval from now."""
        if interval <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval}")
        return self._schedule(ScheduledCall(callback, args, self.clock() + interval, interval))

    def call_later(self, delay: float, callback: Callable, *args) -> ScheduledCall:
        """Run callback once after `delay` seconds."""
        return self._schedule(ScheduledCall(callback, args, self.clock() + max(delay, 0.0)))

    def submit(self, callback: Callable, *args):
        """Queue a command to run on the loop thread as soon as possible. Safe from any thread."""
        self._commands.put((callback, args))

    def _schedule(self, call: ScheduledCall) -> ScheduledCall:
        with self._timers_lock:
            heapq.heappush(self._timers, (call.due, next(self._sequence), call))
        return call

    # ========== EXECUTION ==========

    def run_pending(self, now: Optional[float] = None) -> int:
        """
        Run queued commands, then every timer that is due.

        A repeating timer runs at most once per pass. If the loop fell behind
        by more than one interval, the missed ticks are dropped and the next
        run is one interval from now.

        Args:
            now: Time to run up to; defaults to the loop clock

        Returns:
            int: Number of callbacks executed
        """
        executed = self._run_commands()
        now = self.clock() if now is None else now

        while True:
            with self._timers_lock:
                if not self._timers or self._timers[0][0] > now:
                    break
                _, _, call = heapq.heappop(self._timers)

            if call.cancelled:
                continue

            if call.interval is not None:
                call.due += call.interval
                if call.due <= now:
                    # Missed ticks are dropped, not replayed
                    skipped = int((now - call.due) // call.interval) + 1
                    logging.debug(f"[GameLoop] {call.name} fell behind, skipping {skipped} tick(s)")
                    call.due = now + call.interval
                self._schedule(call)

            self._invoke(call.callback, call.args)
            executed += 1

            # Commands submitted by a timer run before the next timer
            executed += self._run_commands()

        return executed

    def drain(self) -> int:
        """Run every queued command without touching timers."""
        return self._run_commands()

    def _run_commands(self) -> int:
        executed = 0
        while True:
            try:
                callback, args = self._commands.get_nowait()
            except queue.Empty:
                return executed
            self._invoke(callback, args)
            executed += 1

    def _invoke(self, callback: Callable, args: tuple):
        try:
            callback(*args)
        except Exception as e:
            logging.error(f"[GameLoop] Error in {getattr(callback, '__name__', callback)}: {e}", exc_info=True)

    def next_due(self) -> Optional[float]:
        with self._timers_lock:
            while self._timers and self._timers[0][2].cancelled:
                heapq.heappop(self._timers)
            return self._timers[0][0] if self._timers else None

    # ========== THREAD ==========

    def start(self):
        if self._thread and self._thread.is_alive():
            logging.warning("GameLoop is already running.")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="GameLoop", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0):
        self._stop_event.set()
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logging.warning("GameLoop thread did not finish within timeout")

    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def in_loop_thread(self) -> bool:
        return self._thread is threading.current_thread()

    def _run(self):
        logging.info("[GameLoop] Started")
        while not self._stop_event.is_set():
            due = self.next_due()
            wait = self.poll_interval if due is None else min(max(due - self.clock(), 0.0), self.poll_interval)
            try:
                callback, args = self._commands.get(timeout=wait) if wait > 0 else self._commands.get_nowait()
                self._invoke(callback, args)
            except queue.Empty:
                pass
            self.run_pending()
        logging.info("[GameLoop] Stopped")
