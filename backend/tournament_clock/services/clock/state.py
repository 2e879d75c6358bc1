"""Clock state and the duration math shared by every module.

All durations are whole seconds; all absolute instants are integer
milliseconds on the corrected time scale. Keeping both in integers avoids
rounding drift between handlers.
"""

import copy
import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .errors import InvariantViolation

MS_PER_SECOND = 1000


class Phase(str, enum.Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    PAUSED = 'paused'
    BETWEEN_ROUNDS = 'between_rounds'

    @property
    def advancing(self) -> bool:
        return self in (Phase.RUNNING, Phase.BETWEEN_ROUNDS)


def split_seconds(total: int) -> Dict[str, int]:
    total = max(0, int(total))
    return {'minutes': total // 60, 'seconds': total % 60}


def join_seconds(minutes: int, seconds: int) -> int:
    return int(minutes) * 60 + int(seconds)


def whole_seconds_between(start_ms: Optional[int], end_ms: int) -> int:
    """Whole seconds from ``start_ms`` to ``end_ms``; 0 when unset or negative."""
    if start_ms is None or end_ms <= start_ms:
        return 0
    return (end_ms - start_ms) // MS_PER_SECOND


@dataclass
class ClockState:
    round_duration: int = 300
    remaining: int = 300
    phase: Phase = Phase.IDLE
    current_round: int = 1
    total_rounds: int = 3
    between_rounds_enabled: bool = False
    between_rounds_duration: int = 60
    # Up-counter shown while phase is BETWEEN_ROUNDS
    between_rounds_elapsed: int = 0
    pause_started_at: Optional[int] = None
    total_paused_seconds: int = 0
    current_pause_seconds: int = 0
    last_tick_at: Optional[int] = None
    phase_ends_at: Optional[int] = None
    last_update_time: int = 0

    @classmethod
    def from_config(cls, config, now: int = 0) -> 'ClockState':
        duration = join_seconds(config.get('DEFAULT_ROUND_MINUTES', 5), config.get('DEFAULT_ROUND_SECONDS', 0))
        return cls(
            round_duration=duration,
            remaining=duration,
            total_rounds=max(1, int(config.get('DEFAULT_TOTAL_ROUNDS', 3))),
            between_rounds_enabled=bool(config.get('BETWEEN_ROUNDS_ENABLED', False)),
            between_rounds_duration=max(1, int(config.get('BETWEEN_ROUNDS_SEC', 60))),
            last_update_time=now,
        )

    def copy(self) -> 'ClockState':
        return copy.copy(self)

    @property
    def display_seconds(self) -> int:
        if self.phase is Phase.BETWEEN_ROUNDS:
            return self.between_rounds_elapsed
        return self.remaining

    @property
    def elapsed(self) -> int:
        if self.phase is Phase.BETWEEN_ROUNDS:
            return self.round_duration
        return max(0, self.round_duration - self.remaining)

    def clear_pause_accounting(self) -> None:
        self.pause_started_at = None
        self.total_paused_seconds = 0
        self.current_pause_seconds = 0

    def clear_anchors(self) -> None:
        self.last_tick_at = None
        self.phase_ends_at = None

    def anchor(self, now: int) -> None:
        """Re-anchor an advancing phase at ``now``."""
        self.last_tick_at = now
        self.refresh_phase_end()

    def refresh_phase_end(self) -> None:
        if self.phase is Phase.RUNNING:
            left = self.remaining
        elif self.phase is Phase.BETWEEN_ROUNDS:
            left = max(0, self.between_rounds_duration - self.between_rounds_elapsed)
        else:
            self.phase_ends_at = None
            return
        self.phase_ends_at = self.last_tick_at + left * MS_PER_SECOND

    def shift_instants(self, delta_ms: int) -> None:
        """Move every absolute instant by ``delta_ms`` without touching durations."""
        if self.pause_started_at is not None:
            self.pause_started_at += delta_ms
        if self.last_tick_at is not None:
            self.last_tick_at += delta_ms
        if self.phase_ends_at is not None:
            self.phase_ends_at += delta_ms

    def to_dict(self) -> Dict[str, Any]:
        display = split_seconds(self.display_seconds)
        elapsed = split_seconds(self.elapsed)
        between = split_seconds(self.between_rounds_elapsed)
        return {
            'phase': self.phase.value,
            'minutes': display['minutes'],
            'seconds': display['seconds'],
            'currentRound': self.current_round,
            'totalRounds': self.total_rounds,
            'isRunning': self.phase is not Phase.IDLE,
            'isPaused': self.phase is Phase.PAUSED,
            'isBetweenRounds': self.phase is Phase.BETWEEN_ROUNDS,
            'elapsedMinutes': elapsed['minutes'],
            'elapsedSeconds': elapsed['seconds'],
            'pauseStartTime': self.pause_started_at,
            'totalPausedTime': self.total_paused_seconds,
            'currentPauseDuration': self.current_pause_seconds,
            'betweenRoundsMinutes': between['minutes'],
            'betweenRoundsSeconds': between['seconds'],
            'initialTime': split_seconds(self.round_duration),
            'betweenRoundsEnabled': self.between_rounds_enabled,
            'betweenRoundsTime': self.between_rounds_duration,
            'lastTickAt': self.last_tick_at,
            'phaseEndsAt': self.phase_ends_at,
            'lastUpdateTime': self.last_update_time,
        }


def check_invariants(state: ClockState) -> None:
    """Raise :class:`InvariantViolation` if ``state`` is not a legal clock state."""
    if not isinstance(state.phase, Phase):
        raise InvariantViolation(f"unknown phase {state.phase!r}")
    if state.remaining < 0 or state.round_duration < 0:
        raise InvariantViolation(f"negative duration remaining={state.remaining} round={state.round_duration}")
    if not 1 <= state.current_round <= state.total_rounds:
        raise InvariantViolation(f"round {state.current_round} outside 1..{state.total_rounds}")
    if (state.pause_started_at is not None) != (state.phase is Phase.PAUSED):
        raise InvariantViolation(f"pause start {state.pause_started_at} inconsistent with phase {state.phase.value}")
    if state.phase.advancing:
        if state.last_tick_at is None or state.phase_ends_at is None:
            raise InvariantViolation(f"phase {state.phase.value} advancing without anchors")
    elif state.last_tick_at is not None or state.phase_ends_at is not None:
        raise InvariantViolation(f"phase {state.phase.value} holds anchors")
    if state.phase is not Phase.BETWEEN_ROUNDS and state.between_rounds_elapsed:
        raise InvariantViolation("between-rounds counter set outside between-rounds")
    if state.between_rounds_duration < 1:
        raise InvariantViolation(f"between-rounds duration {state.between_rounds_duration} < 1")
