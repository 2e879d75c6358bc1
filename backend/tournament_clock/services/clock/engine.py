from dataclasses import dataclass, field
from typing import List

from .state import MS_PER_SECOND, ClockState, Phase, whole_seconds_between


@dataclass
class TickResult:
    state: ClockState
    changed: bool = False
    transitions: List[str] = field(default_factory=list)


def tick(state: ClockState, now: int) -> TickResult:
    """Advance ``state`` to corrected time ``now``.

    Running and between-rounds phases consume every whole second since
    ``last_tick_at`` one at a time, so a late tick walks through each round
    boundary it crossed instead of skipping it. The input state is never
    modified.
    """
    if state.phase is Phase.IDLE:
        return TickResult(state)

    draft = state.copy()
    if draft.phase is Phase.PAUSED:
        draft.current_pause_seconds = whole_seconds_between(draft.pause_started_at, now)
        draft.last_update_time = now
        return TickResult(draft, changed=True)

    steps = whole_seconds_between(draft.last_tick_at, now)
    if steps == 0:
        return TickResult(state)

    # Keep the sub-second remainder so cadence jitter does not accumulate
    draft.last_tick_at += steps * MS_PER_SECOND
    transitions: List[str] = []
    for _ in range(steps):
        if draft.phase is Phase.RUNNING:
            _step_round(draft, transitions)
        elif draft.phase is Phase.BETWEEN_ROUNDS:
            _step_between_rounds(draft, transitions)
        else:
            break

    if draft.phase.advancing:
        draft.refresh_phase_end()
    else:
        draft.clear_anchors()
    draft.last_update_time = now
    return TickResult(draft, changed=True, transitions=transitions)


def _step_round(state: ClockState, transitions: List[str]) -> None:
    if state.remaining > 0:
        state.remaining -= 1
    if state.remaining > 0:
        return

    # Round-complete edge: remaining is frozen at 0:00
    state.remaining = 0
    if state.current_round < state.total_rounds:
        if state.between_rounds_enabled:
            state.phase = Phase.BETWEEN_ROUNDS
            state.between_rounds_elapsed = 0
            transitions.append(f"round {state.current_round} complete -> between rounds")
        else:
            finished = state.current_round
            _begin_next_round(state)
            transitions.append(f"round {finished} complete -> round {state.current_round}")
    else:
        state.phase = Phase.IDLE
        transitions.append(f"round {state.current_round} complete -> all rounds finished")


def _step_between_rounds(state: ClockState, transitions: List[str]) -> None:
    state.between_rounds_elapsed += 1
    if state.between_rounds_elapsed < state.between_rounds_duration:
        return

    state.between_rounds_elapsed = 0
    if state.current_round < state.total_rounds:
        _begin_next_round(state)
        transitions.append(f"between rounds complete -> round {state.current_round}")
    else:
        state.phase = Phase.IDLE
        state.remaining = 0
        transitions.append("between rounds complete -> all rounds finished")


def _begin_next_round(state: ClockState) -> None:
    state.current_round += 1
    state.remaining = state.round_duration
    state.phase = Phase.RUNNING
    state.clear_pause_accounting()
