# monitor-worker/utils/bus.py
import logging
import threading
from collections import defaultdict
from typing import Callable, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, dict], None]


class EventBus:
    """
    Fire-and-forget publish/subscribe keyed by user id.

    In-process subscribers (websocket sessions, tests) are called inline.
    When api_url is set every event is also POSTed to <api_url>/events.
    Delivery problems are logged and never reach the publisher.
    """

    def __init__(self, api_url: Optional[str] = None, timeout: float = 2.5):
        self.api_url = api_url.rstrip("/") if api_url else None
        self.timeout = float(timeout)
        self._subs: Dict[str, List[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, user_id: str, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subs[user_id].append(callback)

        def unsubscribe():
            with self._lock:
                subs = self._subs.get(user_id)
                if subs and callback in subs:
                    subs.remove(callback)
                    if not subs:
                        del self._subs[user_id]
        return unsubscribe

    def subscriber_count(self, user_id: str) -> int:
        with self._lock:
            return len(self._subs.get(user_id, ()))

    def publish(self, user_id: str, event: str, payload: dict):
        with self._lock:
            subs = list(self._subs.get(user_id, ()))
        for cb in subs:
            try:
                cb(event, payload)
            except Exception:
                logger.exception("[bus] subscriber failed for %s/%s", user_id, event)
        if self.api_url:
            self._post(user_id, event, payload)

    def _post(self, user_id: str, event: str, payload: dict):
        url = f"{self.api_url}/events"
        try:
            r = requests.post(url, json={"userId": user_id, "event": event, "payload": payload}, timeout=self.timeout)
            if r.status_code >= 300:
                logger.warning("[bus] API error %s -> %s: %s", r.status_code, url, r.text[:500])
            else:
                logger.debug("[bus] POST %s -> %s", r.status_code, url)
        except requests.RequestException as e:
            logger.warning("[bus] POST failed for %s/%s: %s", user_id, event, e)
