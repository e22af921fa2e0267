"""Errors raised by the pendulum engine and its shared state."""


class PendulumError(Exception):
    """Base class for engine errors."""


class BobIndexError(PendulumError, IndexError):
    """A remove/modify request named a bob that does not exist.

    Raised before anything is mutated.
    """

    def __init__(self, index: int, count: int):
        super().__init__(f"bob index {index} out of range for {count} bob(s)")
        self.index = index
        self.count = count


class StateAccessError(PendulumError, RuntimeError):
    """Exclusive access to the shared pendulum could not be obtained.

    Either the lock timed out or an earlier operation failed while holding
    it, leaving the state poisoned.
    """


class SinkClosed(Exception):
    """Raised by a snapshot sink to end the sampling loop."""
