"""Shared pendulum: the one live Pendulum behind a single lock.

The sampling loop and edit requests both go through ``exclusive()``, so a
tick (step + kinematics + snapshot copy) and an edit never interleave.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from chain.errors import PendulumError, StateAccessError
from chain.snapshot import PendulumSnapshot
from simulation import Pendulum, default_pendulum

logger = logging.getLogger(__name__)


class SharedPendulum:
    """Owns a Pendulum and serializes every read and write to it.

    An unexpected exception raised while the lock is held poisons the
    state: the chain may be half-updated, so every later access raises
    StateAccessError. Request errors (PendulumError) are raised before any
    mutation and do not poison.
    """

    def __init__(self, pendulum: Pendulum | None = None,
                 lock_timeout: float | None = None):
        self._pendulum = pendulum if pendulum is not None else default_pendulum()
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout
        self._poisoned = False
        self._tick = 0
        self._time = 0.0

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    @contextmanager
    def exclusive(self) -> Iterator[Pendulum]:
        """Yield the live Pendulum while holding the lock."""
        timeout = -1 if self._lock_timeout is None else self._lock_timeout
        if not self._lock.acquire(timeout=timeout):
            raise StateAccessError(
                f"could not lock pendulum within {self._lock_timeout}s"
            )
        try:
            if self._poisoned:
                raise StateAccessError("pendulum state poisoned by an earlier failure")
            try:
                yield self._pendulum
            except PendulumError:
                raise
            except BaseException:
                self._poisoned = True
                logger.error("Operation failed while holding the pendulum lock")
                raise
        finally:
            self._lock.release()

    # -- Mutation interface --

    def add_bob(self, length_rod: float, mass: float,
                theta: float = 0.0, omega: float = 0.0) -> int:
        with self.exclusive() as pendulum:
            index = pendulum.add_bob(length_rod, mass, theta, omega)
        logger.debug("Added bob %d (l=%g, m=%g)", index, length_rod, mass)
        return index

    def remove_bob(self, index: int) -> None:
        with self.exclusive() as pendulum:
            pendulum.remove_bob(index)
        logger.debug("Removed bob %d", index)

    def modify_bob(self, index: int, *, length_rod: float | None = None,
                   mass: float | None = None, theta: float | None = None,
                   omega: float | None = None) -> None:
        with self.exclusive() as pendulum:
            pendulum.modify_bob(
                index, length_rod=length_rod, mass=mass,
                theta=theta, omega=omega,
            )
        logger.debug("Modified bob %d", index)

    # -- Sampling --

    @property
    def bob_count(self) -> int:
        with self.exclusive() as pendulum:
            return pendulum.n

    def advance(self, dt: float, sub_steps: int = 1) -> PendulumSnapshot:
        """Run one tick of ``sub_steps`` steps of dt / sub_steps and snapshot it.

        The lock is held for the whole tick.
        """
        h = dt / sub_steps
        with self.exclusive() as pendulum:
            for _ in range(sub_steps):
                pendulum.step(h)
            self._tick += 1
            self._time += dt
            return PendulumSnapshot.capture(pendulum, self._tick, self._time)

    def snapshot(self) -> PendulumSnapshot:
        """Copy the current state without stepping.

        Positions are as of the last step; an edited angle shows up only
        after the next tick.
        """
        with self.exclusive() as pendulum:
            return PendulumSnapshot.capture(pendulum, self._tick, self._time)
