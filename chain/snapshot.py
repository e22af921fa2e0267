"""Immutable snapshots of the pendulum state.

A snapshot holds plain values copied out under the state lock, so it can be
handed to another thread or serialized without touching the live chain.
"""

from __future__ import annotations

from dataclasses import dataclass

from simulation import GRAVITATIONAL_ACCELERATION, Bob, Coordinate, Pendulum


@dataclass(frozen=True)
class BobState:
    """One bob at one instant."""

    theta: float
    omega: float
    position: Coordinate
    mass: float
    length_rod: float

    def to_dict(self) -> dict:
        return {
            "theta": self.theta,
            "omega": self.omega,
            "position": {"x": self.position.x, "y": self.position.y},
            "mass": self.mass,
            "lengthRod": self.length_rod,
        }


@dataclass(frozen=True)
class PendulumSnapshot:
    """The whole chain at one tick."""

    bobs: tuple[BobState, ...]
    tick: int = 0
    time: float = 0.0

    @classmethod
    def capture(cls, pendulum: Pendulum, tick: int = 0,
                time: float = 0.0) -> PendulumSnapshot:
        """Copy the current bob values. Caller must hold exclusive access."""
        return cls(
            bobs=tuple(
                BobState(
                    theta=float(b.theta),
                    omega=float(b.omega),
                    position=Coordinate(float(b.position.x), float(b.position.y)),
                    mass=float(b.mass),
                    length_rod=float(b.length_rod),
                )
                for b in pendulum.bobs
            ),
            tick=tick,
            time=time,
        )

    def __len__(self) -> int:
        return len(self.bobs)

    @property
    def angles(self) -> list[float]:
        return [b.theta for b in self.bobs]

    @property
    def positions(self) -> list[Coordinate]:
        return [b.position for b in self.bobs]

    def to_pendulum(self, g: float = GRAVITATIONAL_ACCELERATION) -> Pendulum:
        """Rebuild a detached Pendulum from these values, e.g. for energy."""
        return Pendulum(
            bobs=[
                Bob(b.length_rod, b.mass, b.theta, b.omega, b.position)
                for b in self.bobs
            ],
            g=g,
        )

    def to_dict(self) -> dict:
        """JSON-ready form, camelCase keys as the presentation layer reads them."""
        return {
            "bobs": [b.to_dict() for b in self.bobs],
            "tick": self.tick,
            "time": self.time,
        }
