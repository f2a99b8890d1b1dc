"""Publish/subscribe fan-out with bounded, persisted replay.

BroadcastHub is transport agnostic: each connected observer is represented by
a Subscriber whose outbox the transport drains (see app.pump_subscriber).
Publish and subscribe share a single lock, so a new subscriber always sees
the replay backfill, the backfill_complete marker and then live events, with
no gap and no duplicate at the boundary.
"""

import json
import os
import tempfile
import threading
from collections import deque

from comms import CanonicalEvent


AGENT_COMMS = 'agent_comms'
ANTFARM_EVENT = 'antfarm_event'
BACKFILL_COMPLETE = 'backfill_complete'


class ReplayBuffer:
    """Bounded FIFO of recent items, optionally persisted as a JSON array."""

    def __init__(self, capacity, path=None, encode=None, decode=None):
        if capacity < 1:
            raise ValueError('replay capacity must be at least 1')
        self.capacity = capacity
        self.path = path
        self._encode = encode or (lambda item: item)
        self._decode = decode or (lambda row: row)
        self._items = deque(maxlen=capacity)

    def __len__(self):
        return len(self._items)

    def append(self, item):
        self._items.append(item)

    def snapshot(self):
        return list(self._items)

    def load(self):
        """Replace contents with the persisted array, keeping only the newest entries."""
        if not self.path or not os.path.exists(self.path):
            return 0
        try:
            with open(self.path, 'r', encoding='utf-8') as fh:
                rows = json.load(fh)
        except (OSError, ValueError) as e:
            print(f'[HUB] Could not load replay file {self.path}: {e}')
            return 0
        if not isinstance(rows, list):
            return 0
        self._items.clear()
        for row in rows:
            item = self._decode(row)
            if item is not None:
                self._items.append(item)
        return len(self._items)

    def save(self):
        """Overwrite the persisted array with the current contents."""
        if not self.path:
            return
        directory = os.path.dirname(self.path) or '.'
        os.makedirs(directory, exist_ok=True)
        payload = [self._encode(item) for item in self._items]
        fd, tmp_path = tempfile.mkstemp(prefix='.replay-', suffix='.json', dir=directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump(payload, fh, ensure_ascii=False, indent=2, default=str)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


class Subscriber:
    """Outbox for one observer; oldest messages are dropped when it is full."""

    def __init__(self, max_queue=1000):
        self._queue = deque(maxlen=max_queue)
        self._cond = threading.Condition()
        self.closed = False
        self.dropped = 0

    @property
    def is_open(self):
        return not self.closed

    def offer(self, message):
        """Queue a message without blocking. Returns False if the subscriber is closed."""
        with self._cond:
            if self.closed:
                return False
            if len(self._queue) == self._queue.maxlen:
                self.dropped += 1
            self._queue.append(message)
            self._cond.notify()
            return True

    def drain(self, timeout=None):
        """Wait up to timeout for messages and return everything queued."""
        with self._cond:
            if not self._queue and not self.closed:
                self._cond.wait(timeout)
            items = list(self._queue)
            self._queue.clear()
            return items

    def close(self):
        with self._cond:
            self.closed = True
            self._cond.notify_all()


def _encode_event(event):
    return event.to_dict()


class BroadcastHub:
    """Fan comms and antfarm events out to subscribers, keeping a replay window."""

    def __init__(self, capacity=200, persist_path=None, antfarm_capacity=50, subscriber_queue=1000):
        self.comms = ReplayBuffer(
            capacity,
            path=persist_path,
            encode=_encode_event,
            decode=CanonicalEvent.from_dict,
        )
        self.antfarm = ReplayBuffer(max(1, antfarm_capacity))
        self.antfarm_backfill_enabled = antfarm_capacity > 0
        self.subscriber_queue = subscriber_queue
        self._subscribers = []
        self._lock = threading.Lock()

    def load(self):
        with self._lock:
            count = self.comms.load()
        if count:
            print(f'[HUB] Restored {count} agent comms events from {self.comms.path}')
        return count

    @property
    def subscriber_count(self):
        with self._lock:
            return len(self._subscribers)

    def _deliver(self, message):
        for subscriber in self._subscribers:
            if subscriber.is_open:
                subscriber.offer(message)

    def publish(self, event):
        """Record a comms event in the replay window, persist it and push it live."""
        with self._lock:
            self.comms.append(event)
            try:
                self.comms.save()
            except OSError as e:
                print(f'[HUB] Failed to persist replay buffer: {e}')
            self._deliver({'type': AGENT_COMMS, 'data': event.to_dict()})

    def publish_antfarm(self, row):
        with self._lock:
            if self.antfarm_backfill_enabled:
                self.antfarm.append(row)
            self._deliver({'type': ANTFARM_EVENT, 'data': row})

    def seed_antfarm(self, rows):
        """Preload antfarm backfill rows without broadcasting them."""
        if not self.antfarm_backfill_enabled:
            return
        with self._lock:
            for row in rows:
                self.antfarm.append(row)

    def subscribe(self, queue_size=None):
        """Register a new subscriber, queue its backfill and switch it to live delivery."""
        with self._lock:
            antfarm_rows = self.antfarm.snapshot() if self.antfarm_backfill_enabled else []
            comms_events = self.comms.snapshot()
            backfill_size = len(antfarm_rows) + len(comms_events) + 1
            subscriber = Subscriber(max(queue_size or self.subscriber_queue, backfill_size))
            for row in antfarm_rows:
                subscriber.offer({'type': ANTFARM_EVENT, 'data': row, 'backfill': True})
            for event in comms_events:
                subscriber.offer({'type': AGENT_COMMS, 'data': event.to_dict(), 'backfill': True})
            subscriber.offer({'type': BACKFILL_COMPLETE})
            self._subscribers.append(subscriber)
            return subscriber

    def unsubscribe(self, subscriber):
        subscriber.close()
        with self._lock:
            try:
                self._subscribers.remove(subscriber)
            except ValueError:
                pass

    def recent(self, limit=50):
        """Newest-first serialized comms events."""
        with self._lock:
            events = self.comms.snapshot()
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return [event.to_dict() for event in reversed(events)]
