"""Exception types raised by the direction pipeline."""


class DataError(ValueError):
    """Input data cannot be used: empty, malformed, or missing columns."""


class StateError(RuntimeError):
    """A pipeline step was invoked before its prerequisite step."""
