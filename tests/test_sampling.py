"""Tests for chain/sampling.py: cadence loop, termination, concurrent edits."""

import math
import threading
import time

import pytest

from chain.errors import SinkClosed, StateAccessError
from chain.sampling import run_sampling_loop
from chain.state import SharedPendulum
from simulation import Bob, Pendulum


def _shared(n=2):
    return SharedPendulum(Pendulum(bobs=[Bob(1.0, 1.0, 0.5) for _ in range(n)]))


class _ClosingSink:
    """Collects snapshots and closes after ``limit`` of them."""

    def __init__(self, limit):
        self.limit = limit
        self.received = []

    def __call__(self, snapshot):
        if len(self.received) >= self.limit:
            raise SinkClosed
        self.received.append(snapshot)


class TestLoopTermination:
    """The loop stops only on sink closure, cancellation, or max_ticks."""

    def test_sink_closed(self):
        sink = _ClosingSink(limit=5)
        delivered = run_sampling_loop(_shared(), sink, interval=0.0)
        assert delivered == 5
        assert [s.tick for s in sink.received] == [1, 2, 3, 4, 5]

    def test_cancel_check(self):
        received = []
        delivered = run_sampling_loop(
            _shared(), received.append, interval=0.0,
            cancel_check=lambda: len(received) >= 3,
        )
        assert delivered == 3

    def test_max_ticks(self):
        received = []
        assert run_sampling_loop(_shared(), received.append,
                                 interval=0.0, max_ticks=10) == 10
        assert len(received) == 10

    def test_snapshots_in_order(self):
        received = []
        run_sampling_loop(_shared(), received.append, dt=0.01,
                          interval=0.0, max_ticks=20)
        times = [s.time for s in received]
        assert times == sorted(times)
        assert times[-1] == pytest.approx(0.2)

    @pytest.mark.parametrize("kwargs", [
        {"dt": 0.0}, {"dt": -0.01}, {"sub_steps": 0}, {"interval": -1.0},
    ])
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            run_sampling_loop(_shared(), lambda s: None, max_ticks=1, **kwargs)

    def test_poisoned_state_is_fatal(self):
        shared = _shared()
        with pytest.raises(RuntimeError):
            with shared.exclusive():
                raise RuntimeError("edit failed")
        with pytest.raises(StateAccessError):
            run_sampling_loop(shared, lambda s: None, interval=0.0, max_ticks=5)


class TestDegenerateConfigurations:
    """Singular dynamics never interrupt the loop."""

    def test_empty_chain_keeps_ticking(self):
        received = []
        run_sampling_loop(SharedPendulum(Pendulum()), received.append,
                          interval=0.0, max_ticks=50)
        assert len(received) == 50
        assert all(len(s) == 0 for s in received)

    def test_singular_chain_keeps_ticking(self):
        shared = SharedPendulum(Pendulum(bobs=[Bob(0.0, 1.0, 1.0)]))
        received = []
        run_sampling_loop(shared, received.append, interval=0.0, max_ticks=50)
        assert len(received) == 50

    @pytest.mark.parametrize("edit", [
        {"theta": math.inf}, {"theta": math.nan}, {"omega": math.inf},
    ])
    def test_non_finite_edit_keeps_ticking(self, edit):
        shared = _shared()
        shared.modify_bob(1, **edit)
        received = []
        assert run_sampling_loop(shared, received.append,
                                 interval=0.0, max_ticks=5) == 5
        assert not shared.poisoned
        assert math.isnan(received[-1].positions[1].x)
        assert math.isfinite(received[-1].positions[0].x)

        shared.modify_bob(1, theta=0.0, omega=0.0)
        snap = shared.advance(0.016)
        assert all(math.isfinite(p.x) and math.isfinite(p.y)
                   for p in snap.positions)


class TestCadence:

    def test_interval_paces_ticks(self):
        start = time.monotonic()
        run_sampling_loop(_shared(), lambda s: None,
                          interval=0.01, max_ticks=10)
        assert time.monotonic() - start >= 0.08

    def test_lock_free_between_ticks(self):
        """An edit can land while the loop waits out its interval."""
        shared = _shared()
        received = []
        loop = threading.Thread(
            target=run_sampling_loop,
            args=(shared, received.append),
            kwargs={"interval": 0.05, "max_ticks": 4},
        )
        loop.start()
        time.sleep(0.07)
        shared.add_bob(1.0, 2.0)
        loop.join(timeout=5)
        assert not loop.is_alive()
        assert len(received[0]) == 2
        assert len(received[-1]) == 3


class TestConcurrentEdits:
    """Ticks and edits from another thread never interleave."""

    def _edit_plan(self):
        """100 edits and the (length, mass) signature after each prefix."""
        plan = []
        for i in range(100):
            kind = i % 4
            if kind == 0:
                plan.append(("add", (1.0 + 0.01 * i, 1.0 + 0.1 * i)))
            elif kind == 1:
                plan.append(("modify", (0, 0.5 + 0.01 * i, 2.0 + 0.1 * i)))
            elif kind == 2:
                plan.append(("add", (0.8, 0.5 + 0.05 * i)))
            else:
                plan.append(("remove", (1,)))
        return plan

    @staticmethod
    def _apply(model, op, args):
        if op == "add":
            model.append(args)
        elif op == "modify":
            index, length, mass = args
            model[index] = (length, mass)
        else:
            del model[args[0]]

    def test_snapshots_match_some_edit_prefix(self):
        initial = [(1.0, 1.0), (1.0, 1.0)]
        shared = SharedPendulum(
            Pendulum(bobs=[Bob(l, m, 0.5) for l, m in initial])
        )
        plan = self._edit_plan()

        model = list(initial)
        valid = {tuple(model): 0}
        for step, (op, args) in enumerate(plan, start=1):
            self._apply(model, op, args)
            valid[tuple(model)] = step

        def editor():
            for op, args in plan:
                if op == "add":
                    shared.add_bob(*args, theta=0.3)
                elif op == "modify":
                    index, length, mass = args
                    shared.modify_bob(index, length_rod=length, mass=mass)
                else:
                    shared.remove_bob(*args)
                time.sleep(0.0005)

        received = []
        loop = threading.Thread(
            target=run_sampling_loop,
            args=(shared, received.append),
            kwargs={"dt": 0.001, "interval": 0.0, "max_ticks": 1000},
        )
        edits = threading.Thread(target=editor)
        loop.start()
        edits.start()
        edits.join(timeout=30)
        loop.join(timeout=30)
        assert not loop.is_alive() and not edits.is_alive()

        assert len(received) == 1000
        seen = []
        for snap in received:
            signature = tuple((b.length_rod, b.mass) for b in snap.bobs)
            assert signature in valid, f"tick {snap.tick} saw a partial edit"
            seen.append(valid[signature])
        # Edits show up in the order they were applied
        assert seen == sorted(seen)

        final = tuple(
            (b.length_rod, b.mass) for b in shared.snapshot().bobs
        )
        assert final == tuple(model)
