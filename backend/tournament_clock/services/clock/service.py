import logging
import threading
from typing import Any, Dict, Mapping, Optional

from . import commands as clock_commands
from .broadcast import Broadcaster
from .commands import CommandResult
from .engine import TickResult, tick as advance
from .errors import InvalidCommand, InvariantViolation
from .registry import ConnectionRegistry
from .state import ClockState, check_invariants
from .time_source import TimeSource

API_VERSION = '1.0.0'
SYNC_POLICIES = ('seed', 'overwrite')


class ClockService:
    """Single owner of the clock state.

    Commands, ticks, time corrections and subscriber attaches all go through
    ``self._lock``; the lock is held only while the next state is computed,
    checked, committed and queued for broadcast. Sending happens after the
    lock is released, either inline (``inline_delivery``) or from the
    broadcast pump.
    """

    def __init__(
        self,
        time_source: TimeSource,
        broadcaster: Broadcaster,
        registry: Optional[ConnectionRegistry] = None,
        initial_state: Optional[ClockState] = None,
        sync_policy: str = 'seed',
        inline_delivery: bool = False,
        logger: Optional[logging.Logger] = None,
    ):
        if sync_policy not in SYNC_POLICIES:
            raise ValueError(f"sync policy must be one of {SYNC_POLICIES}, got {sync_policy!r}")
        self.time_source = time_source
        self.broadcaster = broadcaster
        self.registry = registry or ConnectionRegistry()
        self.sync_policy = sync_policy
        self.inline_delivery = inline_delivery
        self.logger = logger or logging.getLogger(__name__)
        self.corrector = None
        self._state = initial_state or ClockState(last_update_time=time_source.now())
        check_invariants(self._state)
        self._configured = False
        self._lock = threading.Lock()

    # ---- Reads ----

    @property
    def state(self) -> ClockState:
        return self._state

    @property
    def configured(self) -> bool:
        return self._configured

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return self._status_payload(self._state, self.time_source.now())

    def _status_payload(self, state: ClockState, now: int) -> Dict[str, Any]:
        payload = state.to_dict()
        payload['type'] = 'status'
        payload['serverTime'] = now
        payload['ntpOffset'] = self.time_source.offset_ms
        return payload

    def status(self, fields=None) -> Dict[str, Any]:
        payload = self.snapshot()
        payload.pop('type', None)
        payload['api_version'] = API_VERSION
        payload['connection_protocol'] = 'http_rest_websocket'
        if fields:
            return {f: payload[f] for f in fields if f in payload}
        return payload

    # ---- Mutations ----

    def execute(
        self,
        name: str,
        payload: Optional[Mapping[str, Any]] = None,
        seed_only: bool = False,
    ) -> CommandResult:
        """Run one command under the state lock.

        With ``seed_only`` the command is skipped (``applied=False``) once the
        server has been configured; the check and the commit share the lock.
        """
        handler = clock_commands.COMMANDS.get(name)
        if handler is None:
            raise InvalidCommand(f"unknown command {name!r}")
        with self._lock:
            if seed_only and self._configured:
                self.logger.info(f"[{name}] ignored; server already configured")
                return CommandResult(self._state, applied=False)
            now = self.time_source.now()
            result = handler(self._state, now, payload or {})
            if result.applied:
                self._commit(result.state, now, result.events)
                if name in clock_commands.CONFIG_COMMANDS:
                    self._configured = True
        if result.applied:
            self.logger.info(
                f"[clock-{name}] phase={result.state.phase.value} round={result.state.current_round}/"
                f"{result.state.total_rounds} remaining={result.state.display_seconds}s"
            )
            self._deliver()
        return result

    def sync_settings(self, payload: Mapping[str, Any]) -> CommandResult:
        """Apply client-held settings according to the configured policy."""
        return self.execute('sync-settings', payload, seed_only=self.sync_policy == 'seed')

    def tick(self) -> TickResult:
        with self._lock:
            now = self.time_source.now()
            result = advance(self._state, now)
            if result.changed:
                self._commit(result.state, now)
        for transition in result.transitions:
            self.logger.info(f"[round-complete] {transition}")
        if result.changed:
            self._deliver()
        return result

    def apply_time_correction(self, offset_ms: int) -> int:
        """Swap in a new offset and shift held instants by the same delta.

        Durations already shown to clients do not move; only absolute
        anchors are reconciled. Returns the delta.
        """
        with self._lock:
            previous = self.time_source.offset_ms
            delta = self.time_source.swap_offset(offset_ms)
            if delta:
                draft = self._state.copy()
                draft.shift_instants(delta)
                try:
                    self._commit(draft, self.time_source.now())
                except InvariantViolation:
                    self.time_source.swap_offset(previous)
                    raise
        if delta:
            self._deliver()
        return delta

    def _commit(self, state: ClockState, now: int, events=()) -> None:
        check_invariants(state)
        self._state = state
        for event, payload in events:
            self.broadcaster.publish(event, payload)
        self.broadcaster.publish('status', self._status_payload(state, now))

    def _deliver(self) -> None:
        if self.inline_delivery:
            self.broadcaster.flush()

    # ---- Subscribers ----

    def attach(self, sid: str, origin=None, remote_addr=None, user_agent=None) -> None:
        with self._lock:
            now = self.time_source.now()
            self.registry.add(sid, now, origin=origin, remote_addr=remote_addr, user_agent=user_agent)
            self.broadcaster.attach(sid, ('status', self._status_payload(self._state, now)))
        self._deliver()

    def detach(self, sid: str) -> None:
        self.broadcaster.detach(sid)
        self.registry.remove(sid)

    def shutdown(self) -> None:
        self.broadcaster.close()
