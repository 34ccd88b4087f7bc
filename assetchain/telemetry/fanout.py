"""
assetchain/telemetry/fanout.py

Topic-keyed publish/subscribe hub for live telemetry.

- Channels are keyed by asset id; a subscriber may join any number of them.
- publish() never blocks: every subscriber owns a bounded outbox, and when
  the outbox is full the oldest pending event is dropped (and counted).
- Events on one channel reach each subscriber in publish order.
- Publishing to a channel nobody listens on is a no-op.

There is no persistence here; history comes from ledger event queries.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

LOGGER = logging.getLogger("assetchain.telemetry.fanout")


@dataclass(frozen=True)
class TelemetryEvent:
    """
    A single telemetry event on one asset channel.

    Examples:
        - event="reading", payload={"sensorId": "...", "value": 7512, ...}
        - event="anomaly", payload={"sensorId": "...", "value": 11268, ...}
    """

    event: str
    asset_id: str
    payload: Mapping[str, Any]
    created_at: datetime

    @staticmethod
    def now(event: str, asset_id: str, payload: Mapping[str, Any]) -> "TelemetryEvent":
        return TelemetryEvent(
            event=event,
            asset_id=asset_id,
            payload=dict(payload),
            created_at=datetime.now(timezone.utc),
        )

    def to_message(self) -> Dict[str, Any]:
        return {"event": self.event, "assetId": self.asset_id, "data": dict(self.payload)}


def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


class Subscriber:
    """
    A live viewer's bounded outbox.

    When bound to an event loop, offers from other threads are handed over
    with call_soon_threadsafe so the queue is only touched on its own loop.
    """

    def __init__(
        self,
        subscriber_id: Optional[str] = None,
        *,
        max_pending: int = 256,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        if max_pending <= 0:
            raise ValueError("max_pending must be positive")
        self.subscriber_id = subscriber_id or uuid.uuid4().hex
        self._queue: "asyncio.Queue[TelemetryEvent]" = asyncio.Queue(maxsize=max_pending)
        self._loop = loop
        self.dropped = 0
        self.closed = False

    def offer(self, event: TelemetryEvent) -> None:
        loop = self._loop
        if loop is not None and not _on_loop(loop):
            loop.call_soon_threadsafe(self._enqueue, event)
        else:
            self._enqueue(event)

    def _enqueue(self, event: TelemetryEvent) -> None:
        if self.closed:
            return
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(event)

    async def next_event(self) -> TelemetryEvent:
        return await self._queue.get()

    def drain(self) -> List[TelemetryEvent]:
        out: List[TelemetryEvent] = []
        while not self._queue.empty():
            out.append(self._queue.get_nowait())
        return out

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self.closed = True


class TelemetryFanout:
    def __init__(self) -> None:
        self._channels: Dict[str, "OrderedDict[str, Subscriber]"] = {}
        self._lock = threading.Lock()
        self.published = 0

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(self, asset_id: str, subscriber: Subscriber) -> bool:
        """
        Register ``subscriber`` on the asset channel.

        Returns True when this made the channel go from empty to non-empty.
        """
        with self._lock:
            channel = self._channels.setdefault(asset_id, OrderedDict())
            first = not channel
            channel[subscriber.subscriber_id] = subscriber
        LOGGER.info("Subscriber %s joined channel %s", subscriber.subscriber_id, asset_id)
        return first

    def unsubscribe(self, asset_id: str, subscriber: Subscriber) -> None:
        with self._lock:
            channel = self._channels.get(asset_id)
            if channel is None:
                return
            channel.pop(subscriber.subscriber_id, None)
            if not channel:
                del self._channels[asset_id]

    def unsubscribe_all(self, subscriber: Subscriber) -> List[str]:
        """Drop ``subscriber`` from every channel (disconnect). Returns the channels left."""
        left: List[str] = []
        with self._lock:
            for asset_id in list(self._channels):
                channel = self._channels[asset_id]
                if channel.pop(subscriber.subscriber_id, None) is not None:
                    left.append(asset_id)
                if not channel:
                    del self._channels[asset_id]
        subscriber.close()
        if left:
            LOGGER.info("Subscriber %s left channels %s", subscriber.subscriber_id, ", ".join(left))
        return left

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    def publish(self, asset_id: str, event: TelemetryEvent) -> int:
        """
        Deliver ``event`` to every current subscriber of ``asset_id``.

        Returns the number of subscribers offered the event.
        """
        with self._lock:
            self.published += 1
            channel = self._channels.get(asset_id)
            targets = list(channel.values()) if channel else []

        for subscriber in targets:
            try:
                subscriber.offer(event)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Delivery to subscriber %s on %s failed", subscriber.subscriber_id, asset_id)
        return len(targets)

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def subscriber_count(self, asset_id: str) -> int:
        with self._lock:
            return len(self._channels.get(asset_id) or ())

    def channel_sizes(self) -> Dict[str, int]:
        with self._lock:
            return {asset_id: len(channel) for asset_id, channel in self._channels.items()}

    def dropped_events(self) -> int:
        with self._lock:
            subscribers = {s.subscriber_id: s for ch in self._channels.values() for s in ch.values()}
        return sum(s.dropped for s in subscribers.values())
