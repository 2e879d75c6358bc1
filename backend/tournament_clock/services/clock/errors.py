class ClockError(Exception):
    """Base class for clock command failures."""


class InvalidCommand(ClockError):
    """Malformed or out-of-range command payload."""


class IllegalTransition(ClockError):
    """Command is not allowed in the current phase."""


class InvariantViolation(AssertionError):
    """A computed state broke a clock invariant. Always a programming error."""
