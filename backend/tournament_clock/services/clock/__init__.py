"""Clock domain services: state machine, commands, time correction and fan-out.

Everything in this package is transport-agnostic. HTTP routes and socket
handlers reach it only through :class:`ClockService`, which owns the single
``ClockState`` instance and serializes every mutation.
"""

from .errors import ClockError, IllegalTransition, InvalidCommand, InvariantViolation
from .service import ClockService
from .state import ClockState, Phase

__all__ = [
    'ClockError',
    'ClockService',
    'ClockState',
    'IllegalTransition',
    'InvalidCommand',
    'InvariantViolation',
    'Phase',
]
