"""Corrected wall-clock time.

``TimeSource.now()`` is the only "now" the clock reads. It is the local wall
clock, advanced by ``time.monotonic()`` so host clock steps do not leak in,
plus an offset measured against a reference time server. The offset is only
ever replaced as a whole; :class:`TimeCorrector` hands the new value to a
callback that swaps it and shifts every held instant in one step.
"""

import socket
import struct
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Callable, Iterable, List, Optional

# Seconds between the NTP epoch (1900) and the Unix epoch (1970)
NTP_EPOCH_DELTA = 2208988800
NTP_PORT = 123
NTP_PACKET = b'\x1b' + 47 * b'\0'  # LI=0, VN=3, mode=3 (client)


class MonotonicWallClock:
    """Epoch milliseconds read once, then advanced by the monotonic clock."""

    def __init__(self):
        self._epoch_ms = int(time.time() * 1000)
        self._mono_start = time.monotonic()

    def __call__(self) -> int:
        return self._epoch_ms + int((time.monotonic() - self._mono_start) * 1000)


class TimeSource:
    def __init__(self, wall_clock: Optional[Callable[[], int]] = None, offset_ms: int = 0):
        self._wall_clock = wall_clock or MonotonicWallClock()
        self._offset_ms = int(offset_ms)
        self._lock = threading.Lock()

    @property
    def offset_ms(self) -> int:
        return self._offset_ms

    def local_now(self) -> int:
        """Uncorrected local time in epoch milliseconds."""
        return int(self._wall_clock())

    def now(self) -> int:
        """Corrected time in epoch milliseconds."""
        with self._lock:
            return int(self._wall_clock()) + self._offset_ms

    def swap_offset(self, offset_ms: int) -> int:
        """Replace the offset and return the change (new - old)."""
        with self._lock:
            delta = int(offset_ms) - self._offset_ms
            self._offset_ms = int(offset_ms)
        return delta


def query_sntp(server: str, timeout: float = 5.0, port: int = NTP_PORT) -> int:
    """Return the server's transmit timestamp in epoch milliseconds.

    Raises ``OSError`` (including ``socket.timeout``) or ``ValueError`` on failure.
    """
    family, _, _, _, addr = socket.getaddrinfo(server, port, 0, socket.SOCK_DGRAM)[0]
    with socket.socket(family, socket.SOCK_DGRAM) as sock:
        sock.settimeout(timeout)
        sock.sendto(NTP_PACKET, addr)
        data, _ = sock.recvfrom(512)
    if len(data) < 48:
        raise ValueError(f"short NTP reply from {server} ({len(data)} bytes)")
    seconds, fraction = struct.unpack('!II', data[40:48])
    if seconds == 0:
        raise ValueError(f"NTP reply from {server} has no transmit timestamp")
    return (seconds - NTP_EPOCH_DELTA) * 1000 + (fraction * 1000 >> 32)


@dataclass
class SyncEvent:
    timestamp: int
    server: Optional[str]
    success: bool
    offset: Optional[int] = None
    delay: Optional[int] = None
    applied: bool = False
    error: Optional[str] = None


class TimeSyncFailed(Exception):
    """Every reference source failed during one correction cycle."""

    def __init__(self, errors: List[str]):
        super().__init__('; '.join(errors) or 'no time servers configured')
        self.errors = errors


class TimeCorrector:
    """Measures the offset to a reference time source and applies it.

    Servers are tried in order; the first answer wins. When all of them fail
    the previous offset stays in place and the corrector reports degraded
    health. Nothing here raises into the tick path.
    """

    def __init__(
        self,
        time_source: TimeSource,
        apply_offset: Callable[[int], int],
        servers: Iterable[str] = ('time.google.com', 'pool.ntp.org'),
        query: Callable[..., int] = query_sntp,
        timeout: float = 5.0,
        interval_sec: float = 1800,
        drift_threshold_ms: int = 0,
        logger=None,
        history_size: int = 20,
    ):
        self._time_source = time_source
        self._apply_offset = apply_offset
        self.servers = [s.strip() for s in servers if s and s.strip()]
        self._query = query
        self.timeout = timeout
        self.interval_sec = interval_sec
        self.drift_threshold_ms = drift_threshold_ms
        self._logger = logger
        self._lock = threading.Lock()
        self._history = deque(maxlen=history_size)
        self.sync_count = 0
        self.error_count = 0
        self.last_sync: Optional[int] = None
        self.last_server: Optional[str] = None
        self.last_error: Optional[str] = None
        self._degraded = False

    def measure(self, server: str) -> SyncEvent:
        """One round trip: offset = remote - (send + rtt / 2)."""
        sent = self._time_source.local_now()
        remote = int(self._query(server, timeout=self.timeout))
        received = self._time_source.local_now()
        rtt = max(0, received - sent)
        offset = remote - (sent + rtt // 2)
        return SyncEvent(timestamp=received, server=server, success=True, offset=offset, delay=rtt)

    def sync(self, servers: Optional[Iterable[str]] = None) -> SyncEvent:
        """Run one correction cycle. Raises :class:`TimeSyncFailed` if no server answered."""
        candidates = [s for s in (servers or self.servers) if s]
        errors = []
        with self._lock:
            for server in candidates:
                try:
                    event = self.measure(server)
                except (OSError, ValueError) as exc:
                    errors.append(f"{server}: {exc}")
                    self._log('warning', f"[time-sync-fail] server={server} error={exc}")
                    continue
                current = self._time_source.offset_ms
                if abs(event.offset - current) >= self.drift_threshold_ms:
                    self._apply_offset(event.offset)
                    event.applied = True
                self.sync_count += 1
                self.last_sync = event.timestamp
                self.last_server = server
                self.last_error = None
                self._degraded = False
                self._history.append(event)
                self._log(
                    'info',
                    f"[time-sync] server={server} offset={event.offset}ms delay={event.delay}ms applied={event.applied}",
                )
                return event

            self.error_count += 1
            self._degraded = True
            failure = TimeSyncFailed(errors)
            self.last_error = str(failure)
            self._history.append(
                SyncEvent(timestamp=self._time_source.local_now(), server=None, success=False, error=self.last_error)
            )
            self._log('error', f"[time-sync-fail] all servers failed; keeping offset={self._time_source.offset_ms}ms")
            raise failure

    @property
    def healthy(self) -> bool:
        if self._degraded:
            return False
        if self.last_sync is None:
            return True
        age_ms = self._time_source.local_now() - self.last_sync
        return age_ms < self.interval_sec * 2 * 1000

    def status(self) -> dict:
        return {
            'healthy': self.healthy,
            'offset': self._time_source.offset_ms,
            'lastSync': self.last_sync,
            'lastServer': self.last_server,
            'syncCount': self.sync_count,
            'errorCount': self.error_count,
            'lastError': self.last_error,
            'servers': list(self.servers),
            'history': [asdict(e) for e in self._history],
        }

    def _log(self, level: str, message: str) -> None:
        if self._logger is not None:
            getattr(self._logger, level)(message)
