"""Control commands applied to the clock.

Each command is a pure function ``(state, now, payload) -> CommandResult``.
It works on a copy and never touches the state it was given, so a rejected
or failing command leaves the committed state exactly as it was.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Tuple

from .errors import IllegalTransition, InvalidCommand
from .state import ClockState, Phase, join_seconds, whole_seconds_between

# Upper bound on a configured round; anything larger is a typo, not a tournament
MAX_ROUND_SECONDS = 24 * 60 * 60
MAX_ROUNDS = 99

Event = Tuple[str, Dict[str, Any]]


@dataclass
class CommandResult:
    state: ClockState
    events: List[Event] = field(default_factory=list)
    applied: bool = True


def _action(name: str, **payload) -> Event:
    return 'action', dict(action=name, **payload)


def _noop(state: ClockState) -> CommandResult:
    return CommandResult(state, applied=False)


# ---- Payload parsing ----

def _int_field(payload: Mapping[str, Any], key: str, *, lo=None, hi=None, default=None) -> int:
    value = payload.get(key, default)
    # bool is an int subclass; a JSON true is not a number of seconds
    if value is None or isinstance(value, bool):
        raise InvalidCommand(f"{key} must be an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidCommand(f"{key} must be a whole number")
        value = int(value)
    elif isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise InvalidCommand(f"{key} must be an integer") from None
    elif not isinstance(value, int):
        raise InvalidCommand(f"{key} must be an integer")
    if lo is not None and value < lo:
        raise InvalidCommand(f"{key} must be >= {lo}")
    if hi is not None and value > hi:
        raise InvalidCommand(f"{key} must be <= {hi}")
    return value


def _bool_field(payload: Mapping[str, Any], key: str) -> bool:
    value = payload.get(key)
    if not isinstance(value, bool):
        raise InvalidCommand(f"{key} must be a boolean")
    return value


def _round_duration(payload: Mapping[str, Any]) -> int:
    minutes = _int_field(payload, 'minutes', lo=0, default=0)
    seconds = _int_field(payload, 'seconds', lo=0, hi=59, default=0)
    total = join_seconds(minutes, seconds)
    if total <= 0:
        raise InvalidCommand("round duration must be positive")
    if total > MAX_ROUND_SECONDS:
        raise InvalidCommand(f"round duration must be <= {MAX_ROUND_SECONDS} seconds")
    return total


# ---- Shared transitions ----

def _resume(state: ClockState, now: int) -> None:
    state.total_paused_seconds += whole_seconds_between(state.pause_started_at, now)
    state.pause_started_at = None
    state.current_pause_seconds = 0
    state.phase = Phase.RUNNING
    state.anchor(now)


def _stop_at_round_start(state: ClockState) -> None:
    state.remaining = state.round_duration
    state.phase = Phase.IDLE
    state.between_rounds_elapsed = 0
    state.clear_pause_accounting()
    state.clear_anchors()


# ---- Commands ----

def start(state: ClockState, now: int, payload=None) -> CommandResult:
    if state.phase.advancing:
        return _noop(state)
    draft = state.copy()
    if draft.phase is Phase.PAUSED:
        _resume(draft, now)
    else:
        draft.phase = Phase.RUNNING
        draft.current_pause_seconds = 0
        draft.anchor(now)
    draft.last_update_time = now
    return CommandResult(draft, [_action('start')])


def pause(state: ClockState, now: int, payload=None) -> CommandResult:
    """Toggle between running and paused."""
    draft = state.copy()
    if draft.phase is Phase.PAUSED:
        _resume(draft, now)
    elif draft.phase is Phase.RUNNING:
        draft.phase = Phase.PAUSED
        draft.pause_started_at = now
        draft.current_pause_seconds = 0
        draft.clear_anchors()
    else:
        raise IllegalTransition(f"cannot pause while {state.phase.value}")
    draft.last_update_time = now
    return CommandResult(draft, [_action('pause', paused=draft.phase is Phase.PAUSED)])


def _full_reset(state: ClockState, now: int, name: str) -> CommandResult:
    draft = state.copy()
    draft.current_round = 1
    _stop_at_round_start(draft)
    draft.last_update_time = now
    return CommandResult(draft, [_action(name)])


def reset(state: ClockState, now: int, payload=None) -> CommandResult:
    return _full_reset(state, now, 'reset')


def reset_rounds(state: ClockState, now: int, payload=None) -> CommandResult:
    return _full_reset(state, now, 'reset-rounds')


def reset_time(state: ClockState, now: int, payload=None) -> CommandResult:
    draft = state.copy()
    _stop_at_round_start(draft)
    draft.last_update_time = now
    return CommandResult(draft, [_action('reset-time')])


def next_round(state: ClockState, now: int, payload=None) -> CommandResult:
    if state.current_round >= state.total_rounds:
        raise IllegalTransition(f"already at the last round ({state.total_rounds})")
    draft = state.copy()
    draft.current_round += 1
    _stop_at_round_start(draft)
    draft.last_update_time = now
    return CommandResult(draft, [_action('next-round', round=draft.current_round)])


def previous_round(state: ClockState, now: int, payload=None) -> CommandResult:
    if state.current_round <= 1:
        raise IllegalTransition("already at the first round")
    draft = state.copy()
    draft.current_round -= 1
    _stop_at_round_start(draft)
    draft.last_update_time = now
    return CommandResult(draft, [_action('previous-round', round=draft.current_round)])


def set_time(state: ClockState, now: int, payload=None) -> CommandResult:
    payload = payload or {}
    duration = _round_duration(payload)
    if state.phase is Phase.RUNNING:
        return _noop(state)
    draft = state.copy()
    draft.round_duration = duration
    _stop_at_round_start(draft)
    draft.last_update_time = now
    return CommandResult(draft, [_action('set-time', minutes=duration // 60, seconds=duration % 60)])


def set_rounds(state: ClockState, now: int, payload=None) -> CommandResult:
    rounds = _int_field(payload or {}, 'rounds', lo=1, hi=MAX_ROUNDS)
    draft = state.copy()
    draft.total_rounds = rounds
    draft.current_round = 1
    draft.last_update_time = now
    return CommandResult(draft, [_action('set-rounds', rounds=rounds)])


def set_between_rounds(state: ClockState, now: int, payload=None) -> CommandResult:
    payload = payload or {}
    enabled = _bool_field(payload, 'enabled')
    duration = _int_field(payload, 'time', lo=1, hi=MAX_ROUND_SECONDS)
    draft = state.copy()
    draft.between_rounds_enabled = enabled
    draft.between_rounds_duration = duration
    if draft.phase is Phase.BETWEEN_ROUNDS:
        draft.refresh_phase_end()
    draft.last_update_time = now
    return CommandResult(draft, [_action('set-between-rounds', enabled=enabled, time=duration)])


def adjust_time(state: ClockState, now: int, payload=None) -> CommandResult:
    delta = _int_field(payload or {}, 'seconds', lo=-MAX_ROUND_SECONDS, hi=MAX_ROUND_SECONDS)
    if state.phase.advancing:
        raise IllegalTransition(f"cannot adjust time while {state.phase.value}")
    draft = state.copy()
    draft.remaining = max(0, min(MAX_ROUND_SECONDS, draft.remaining + delta))
    draft.last_update_time = now
    return CommandResult(draft, [_action('adjust-time', seconds=delta)])


def sync_settings(state: ClockState, now: int, payload=None) -> CommandResult:
    """Apply client-held configuration: round length, rounds and between-rounds."""
    payload = payload or {}
    draft = state.copy()
    initial = payload.get('initialTime')
    if initial is not None:
        if not isinstance(initial, Mapping):
            raise InvalidCommand("initialTime must be an object")
        draft.round_duration = _round_duration(initial)
        if draft.phase is Phase.IDLE:
            draft.remaining = draft.round_duration
    if payload.get('totalRounds') is not None:
        draft.total_rounds = _int_field(payload, 'totalRounds', lo=1, hi=MAX_ROUNDS)
        draft.current_round = min(draft.current_round, draft.total_rounds)
    if payload.get('betweenRoundsEnabled') is not None:
        draft.between_rounds_enabled = _bool_field(payload, 'betweenRoundsEnabled')
    if payload.get('betweenRoundsTime') is not None:
        draft.between_rounds_duration = _int_field(payload, 'betweenRoundsTime', lo=1, hi=MAX_ROUND_SECONDS)
    if draft.phase.advancing:
        draft.refresh_phase_end()
    draft.last_update_time = now
    return CommandResult(draft, [_action('sync-settings')])


COMMANDS: Dict[str, Callable[..., CommandResult]] = {
    'start': start,
    'pause': pause,
    'reset': reset,
    'reset-time': reset_time,
    'reset-rounds': reset_rounds,
    'next-round': next_round,
    'previous-round': previous_round,
    'set-time': set_time,
    'set-rounds': set_rounds,
    'set-between-rounds': set_between_rounds,
    'adjust-time': adjust_time,
    'sync-settings': sync_settings,
}

# Commands that establish server-held configuration
CONFIG_COMMANDS = frozenset({'set-time', 'set-rounds', 'set-between-rounds', 'sync-settings'})
