# Overview: Fan-out of committed active-session snapshots to live subscribers, relayed over Redis across processes.

"""
Session Feed

WHY: Every terminal shows the same list of children on the floor. Instead of
each screen polling the database, writers publish the full list of committed
session snapshots after each commit and subscribers render from that.

DESIGN:
- Each subscriber owns a small bounded queue
- Messages are whole lists, so a slow subscriber only needs the newest one:
  on overflow the oldest pending message is dropped
- No database imports here; the feed never sees uncommitted state because
  only code running after a commit publishes
- One process on its own fans out locally. With several worker processes a
  RedisFeedRelay carries each publish over Redis pub/sub, and every process
  (the publisher included) delivers what arrives on the channel locally
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from typing import Any, Sequence

import redis

from .billing_service import SessionSnapshot

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 8
DEFAULT_CHANNEL = "playtime:sessions"


class Subscription:
    """Handle returned by SessionFeed.subscribe(); iterate with get()."""

    def __init__(self, feed: "SessionFeed", maxsize: int):
        self._feed = feed
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self.closed = False

    def _offer(self, message: Any) -> None:
        while True:
            try:
                self._queue.put_nowait(message)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass

    def get(self, timeout: float | None = None) -> Any | None:
        """Next published message, or None if nothing arrived within timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def cancel(self) -> None:
        if not self.closed:
            self.closed = True
            self._feed._remove(self)


class SessionFeed:
    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._subscribers: list[Subscription] = []
        self._latest: list | None = None
        self._relay: "RedisFeedRelay | None" = None

    def attach_relay(self, relay: "RedisFeedRelay | None") -> None:
        self._relay = relay

    def subscribe(self) -> Subscription:
        """
        Register a new subscriber.

        If anything was published before, the subscriber immediately gets the
        latest list so it does not start from an empty screen.
        """
        sub = Subscription(self, self._queue_size)
        with self._lock:
            self._subscribers.append(sub)
            latest = self._latest
        if latest is not None:
            sub._offer(latest)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    def publish(self, snapshots: Sequence[Any]) -> int:
        """
        Publish a committed snapshot list.

        With a relay attached the list goes through Redis and comes back via
        deliver(); the return value is then the number of receiving processes.
        """
        if self._relay is not None:
            return self._relay.send(snapshots)
        return self.deliver(snapshots)

    def deliver(self, snapshots: Sequence[Any]) -> int:
        """Hand a snapshot list to every local subscriber. Returns the fan-out count."""
        message = list(snapshots)
        with self._lock:
            self._latest = message
            targets = list(self._subscribers)
        for sub in targets:
            sub._offer(message)
        logger.debug("Published %d sessions to %d subscribers", len(message), len(targets))
        return len(targets)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def reset(self) -> None:
        with self._lock:
            self._subscribers.clear()
            self._latest = None
            self._relay = None


# =============================================================================
# CROSS-PROCESS RELAY
# =============================================================================

def encode_snapshots(snapshots: Sequence[SessionSnapshot]) -> str:
    return json.dumps([s.to_wire() for s in snapshots])


def decode_snapshots(raw) -> list[SessionSnapshot]:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return [SessionSnapshot.from_wire(item) for item in json.loads(raw)]


class RedisFeedRelay:
    """
    Redis pub/sub hop between the SessionFeed of each worker process.

    Subscribing runs redis-py's listener thread; each message received on the
    channel is decoded and delivered to the local feed.
    """

    def __init__(self, feed: SessionFeed, client, channel: str = DEFAULT_CHANNEL):
        self.feed = feed
        self.client = client
        self.channel = channel
        self._worker = None

    @classmethod
    def from_url(cls, feed: SessionFeed, url: str, channel: str = DEFAULT_CHANNEL) -> "RedisFeedRelay":
        return cls(feed, redis.Redis.from_url(url), channel)

    def send(self, snapshots: Sequence[SessionSnapshot]) -> int:
        try:
            return self.client.publish(self.channel, encode_snapshots(snapshots))
        except redis.RedisError as exc:
            # The write already committed; keep this process's screens current.
            logger.warning("Session feed relay publish failed (%s); delivering locally", exc)
            return self.feed.deliver(list(snapshots))

    def handle(self, message: dict) -> int:
        try:
            snapshots = decode_snapshots(message["data"])
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Dropping malformed session feed message: %s", exc)
            return 0
        return self.feed.deliver(snapshots)

    def start(self, sleep_time: float = 0.5) -> None:
        if self._worker is not None:
            return
        pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(**{self.channel: self.handle})
        self._worker = pubsub.run_in_thread(sleep_time=sleep_time, daemon=True)
        logger.info("Session feed relay listening on %s", self.channel)

    def stop(self) -> None:
        if self._worker is not None:
            self._worker.stop()
            self._worker = None
