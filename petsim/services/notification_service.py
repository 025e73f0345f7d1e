"""
Notification service for Pet Simulator.

Posts short-lived, auto-dismissing notifications to the presentation queue.
"""

import itertools
import logging
import threading
from typing import Callable, Dict


class NotificationService:
    """
    Transient user notifications.

    Each notification is pushed to the data queue immediately and a dismissal
    follows after `duration` seconds.
    """

    def __init__(self, data_queue, duration: float = 3.0, timer_factory: Callable = threading.Timer):
        """
        Args:
            data_queue: Thread-safe queue read by the presentation layer
            duration: Seconds before a notification is dismissed
            timer_factory: threading.Timer compatible factory
        """
        self.data_queue = data_queue
        self.duration = duration
        self._timer_factory = timer_factory
        self._ids = itertools.count(1)
        self._timers: Dict[int, threading.Timer] = {}
        self._lock = threading.Lock()

    def notify(self, message: str, level: str = "info") -> int:
        notification_id = next(self._ids)
        self.data_queue.put(
            {"type": "notification", "data": {"id": notification_id, "message": message, "level": level}}
        )
        logging.info(f"[Notification] {message}")

        timer = self._timer_factory(self.duration, self.dismiss, args=(notification_id,))
        timer.daemon = True
        with self._lock:
            self._timers[notification_id] = timer
        timer.start()
        return notification_id

    def dismiss(self, notification_id: int):
        with self._lock:
            timer = self._timers.pop(notification_id, None)
        if timer is None:
            return
        timer.cancel()
        self.data_queue.put({"type": "notification_dismissed", "data": {"id": notification_id}})

    def active_count(self) -> int:
        with self._lock:
            return len(self._timers)

    def shutdown(self):
        """Cancel pending dismissals without posting them."""
        with self._lock:
            timers, self._timers = self._timers, {}
        for timer in timers.values():
            timer.cancel()
