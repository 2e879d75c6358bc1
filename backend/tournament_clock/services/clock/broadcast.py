import logging
import queue
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

Message = Tuple[str, Dict[str, Any]]


class Subscriber:
    __slots__ = ('sid', 'outbox')

    def __init__(self, sid: str, queue_size: int):
        self.sid = sid
        self.outbox: 'queue.Queue[Message]' = queue.Queue(maxsize=queue_size)


class Broadcaster:
    """Fan-out of clock messages to attached real-time subscribers.

    ``publish`` only enqueues, so it is safe to call while holding the clock
    lock and the per-subscriber order matches the order of mutations. A
    subscriber whose queue is full is dropped; the message is never dropped
    for the others. ``flush`` does the actual sends and is serialized so two
    callers cannot interleave one subscriber's messages.
    """

    def __init__(
        self,
        send: Callable[[str, Dict[str, Any], str], None],
        disconnect: Optional[Callable[[str], None]] = None,
        on_drop: Optional[Callable[[str], None]] = None,
        queue_size: int = 64,
        logger=None,
    ):
        self._send = send
        self._disconnect = disconnect
        self._on_drop = on_drop
        self._queue_size = max(1, int(queue_size))
        self._logger = logger or logging.getLogger(__name__)
        self._subscribers: Dict[str, Subscriber] = {}
        self._dropped: List[Tuple[str, str]] = []
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def has_subscriber(self, sid: str) -> bool:
        return sid in self._subscribers

    def attach(self, sid: str, snapshot: Message) -> None:
        """Register ``sid`` and queue ``snapshot`` for it alone."""
        subscriber = Subscriber(sid, self._queue_size)
        subscriber.outbox.put_nowait(snapshot)
        with self._lock:
            self._subscribers[sid] = subscriber

    def detach(self, sid: str) -> bool:
        with self._lock:
            return self._subscribers.pop(sid, None) is not None

    def publish(self, event: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            for sid, subscriber in list(self._subscribers.items()):
                try:
                    subscriber.outbox.put_nowait((event, payload))
                except queue.Full:
                    del self._subscribers[sid]
                    self._dropped.append((sid, 'queue full'))

    def flush(self) -> int:
        """Deliver everything queued. Returns the number of messages sent."""
        sent = 0
        with self._flush_lock:
            with self._lock:
                subscribers = list(self._subscribers.values())
            for subscriber in subscribers:
                while True:
                    try:
                        event, payload = subscriber.outbox.get_nowait()
                    except queue.Empty:
                        break
                    try:
                        self._send(event, payload, subscriber.sid)
                    except Exception as exc:
                        self.detach(subscriber.sid)
                        with self._lock:
                            self._dropped.append((subscriber.sid, f"send failed: {exc}"))
                        break
                    sent += 1
            self._reap_dropped()
        return sent

    def close(self) -> None:
        """Detach and disconnect every subscriber."""
        with self._lock:
            sids = list(self._subscribers)
            self._subscribers.clear()
        for sid in sids:
            self._notify(self._disconnect, sid)

    def _reap_dropped(self) -> None:
        with self._lock:
            dropped, self._dropped = self._dropped, []
        for sid, reason in dropped:
            self._logger.warning(f"[subscriber-drop] sid={sid} reason={reason}")
            self._notify(self._on_drop, sid)
            self._notify(self._disconnect, sid)

    def _notify(self, callback, sid: str) -> None:
        # One failing cleanup must not stop the others
        if callback is None:
            return
        try:
            callback(sid)
        except Exception:
            self._logger.exception(f"[subscriber-drop-error] cleanup failed for sid={sid}")
