"""Sampling worker: QThread that runs the sampling loop in the background.

Each snapshot is emitted through ``snapshot_ready``; receivers in other
threads get it through Qt's queued connections.
"""

from __future__ import annotations

import logging

from PyQt6.QtCore import QThread, pyqtSignal

from chain.sampling import (
    DEFAULT_SUB_STEPS, TICK_DT, TICK_INTERVAL, run_sampling_loop,
)
from chain.state import SharedPendulum

logger = logging.getLogger(__name__)


class SamplingWorker(QThread):
    """Background driver for one snapshot subscriber.

    Runs until cancel() is called. A failure inside the loop (e.g. a
    poisoned state) is logged and reported through ``failed``.
    """

    snapshot_ready = pyqtSignal(object)   # PendulumSnapshot
    failed = pyqtSignal(str)

    def __init__(
        self,
        shared: SharedPendulum,
        dt: float = TICK_DT,
        sub_steps: int = DEFAULT_SUB_STEPS,
        interval: float = TICK_INTERVAL,
    ):
        super().__init__()
        self._shared = shared
        self._dt = dt
        self._sub_steps = sub_steps
        self._interval = interval
        self._cancelled = False
        self.ticks = 0

    def cancel(self) -> None:
        """Request cancellation. Takes effect before the next tick."""
        self._cancelled = True

    def _cancel_check(self) -> bool:
        return self._cancelled

    def run(self) -> None:
        logger.info("Sampling worker started")
        try:
            self.ticks = run_sampling_loop(
                self._shared,
                self.snapshot_ready.emit,
                dt=self._dt,
                sub_steps=self._sub_steps,
                interval=self._interval,
                cancel_check=self._cancel_check,
            )
        except Exception as exc:
            logger.exception("Sampling loop failed")
            self.failed.emit(str(exc))
            return
        logger.info("Sampling worker stopped after %d ticks", self.ticks)
