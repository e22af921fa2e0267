"""Entry point for the headless pendulum engine.

Runs the sampling worker on a Qt core event loop and writes each snapshot
as one JSON line to stdout or a file.

Usage:
    python main.py [--bobs 3] [--duration 10] [--output states.jsonl]
"""

import argparse
import json
import logging
import sys

from PyQt6.QtCore import QCoreApplication, QTimer

from chain.sampling import DEFAULT_SUB_STEPS, TICK_DT, TICK_INTERVAL
from chain.state import SharedPendulum
from chain.worker import SamplingWorker
from simulation import (
    DEFAULT_BOB_COUNT, DEFAULT_LENGTH_ROD, DEFAULT_MASS, DEFAULT_THETA,
    default_pendulum,
)

logger = logging.getLogger(__name__)

# Log total energy every this many ticks
_ENERGY_LOG_INTERVAL = 250


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="N-link pendulum engine")
    parser.add_argument("--bobs", type=int, default=DEFAULT_BOB_COUNT)
    parser.add_argument("--length", type=float, default=DEFAULT_LENGTH_ROD)
    parser.add_argument("--mass", type=float, default=DEFAULT_MASS)
    parser.add_argument("--theta", type=float, default=DEFAULT_THETA,
                        help="initial angle of every bob (radians)")
    parser.add_argument("--dt", type=float, default=TICK_DT,
                        help="simulated seconds per tick")
    parser.add_argument("--sub-steps", type=int, default=DEFAULT_SUB_STEPS)
    parser.add_argument("--interval-ms", type=float,
                        default=TICK_INTERVAL * 1000)
    parser.add_argument("--duration", type=float, default=None,
                        help="wall-clock seconds to run (default: forever)")
    parser.add_argument("--output", default=None,
                        help="JSON-lines file (default: stdout)")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    app = QCoreApplication(sys.argv[:1])

    pendulum = default_pendulum(args.bobs, args.length, args.mass, args.theta)
    shared = SharedPendulum(pendulum)
    logger.info(
        "Starting %d-bob pendulum (dt=%g, sub_steps=%d, interval=%gms)",
        args.bobs, args.dt, args.sub_steps, args.interval_ms,
    )

    out = open(args.output, "w") if args.output else sys.stdout

    def on_snapshot(snapshot):
        out.write(json.dumps(snapshot.to_dict()) + "\n")
        if snapshot.tick % _ENERGY_LOG_INTERVAL == 0:
            energy = snapshot.to_pendulum(pendulum.g).total_energy()
            logger.info("t=%.3f s  E=%.4f", snapshot.time, energy)

    worker = SamplingWorker(
        shared, dt=args.dt, sub_steps=args.sub_steps,
        interval=args.interval_ms / 1000,
    )
    worker.snapshot_ready.connect(on_snapshot)
    worker.failed.connect(lambda msg: app.exit(1))
    worker.start()

    if args.duration is not None:
        QTimer.singleShot(int(args.duration * 1000), app.quit)

    code = app.exec()
    worker.cancel()
    worker.wait()
    if out is not sys.stdout:
        out.close()
    sys.exit(code)


if __name__ == "__main__":
    main()
