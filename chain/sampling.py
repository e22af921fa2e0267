"""Sampling loop: advance the shared pendulum on a fixed cadence and push
snapshots to a sink.

The sink is any callable taking a PendulumSnapshot. It ends the loop by
raising SinkClosed. The loop never sleeps while holding the state lock.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from chain.errors import SinkClosed
from chain.snapshot import PendulumSnapshot
from chain.state import SharedPendulum

logger = logging.getLogger(__name__)

# Physics time advanced per tick (seconds)
TICK_DT = 0.016
# Wall-clock time between ticks (seconds)
TICK_INTERVAL = 0.016
DEFAULT_SUB_STEPS = 1


def run_sampling_loop(
    shared: SharedPendulum,
    sink: Callable[[PendulumSnapshot], None],
    dt: float = TICK_DT,
    sub_steps: int = DEFAULT_SUB_STEPS,
    interval: float = TICK_INTERVAL,
    cancel_check: Callable[[], bool] | None = None,
    max_ticks: int | None = None,
) -> int:
    """Tick the pendulum until the sink closes or the caller cancels.

    Args:
        shared: The pendulum to advance.
        sink: Receives one snapshot per tick; raises SinkClosed to stop.
        dt: Simulated time per tick, split evenly over ``sub_steps``.
        sub_steps: Integration steps per tick.
        interval: Wall-clock seconds between tick starts. 0 runs flat out.
        cancel_check: If callable returns True, stop before the next tick.
        max_ticks: Stop after this many ticks (None runs indefinitely).

    Returns:
        Number of snapshots delivered to the sink.

    Raises:
        StateAccessError: The shared state could not be locked.
    """
    if dt <= 0:
        raise ValueError(f"dt must be positive, got {dt}")
    if sub_steps < 1:
        raise ValueError(f"sub_steps must be >= 1, got {sub_steps}")
    if interval < 0:
        raise ValueError(f"interval must be non-negative, got {interval}")

    logger.debug(
        "Sampling loop started (dt=%g, sub_steps=%d, interval=%g)",
        dt, sub_steps, interval,
    )

    delivered = 0
    deadline = time.monotonic()
    while max_ticks is None or delivered < max_ticks:
        if cancel_check is not None and cancel_check():
            logger.debug("Sampling loop cancelled after %d ticks", delivered)
            break

        snapshot = shared.advance(dt, sub_steps)
        try:
            sink(snapshot)
        except SinkClosed:
            logger.debug("Sink closed after %d ticks", delivered)
            break
        delivered += 1

        if interval > 0:
            deadline += interval
            remaining = deadline - time.monotonic()
            if remaining > 0:
                time.sleep(remaining)
            else:
                # Running behind: drop the backlog instead of bursting
                deadline = time.monotonic()

    return delivered
