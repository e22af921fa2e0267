"""N-link compound pendulum physics engine.

Derives the equations of motion M(theta) * theta_dd + C(theta, omega) + G(theta) = 0
from the Lagrangian of a planar chain of point masses on massless rods,
solves them for the angular accelerations, and advances the state with a
symplectic (semi-implicit) Euler step.

Coordinates: each theta is measured from the downward vertical, and y grows
downward (screen convention), so a chain hanging at rest has theta = 0 and
positive y.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import NamedTuple

import numpy as np
from scipy.linalg import LinAlgError, solve

from chain.errors import BobIndexError

logger = logging.getLogger(__name__)

GRAVITATIONAL_ACCELERATION = 9.81

# Default chain: two horizontal links, sized in screen units
DEFAULT_BOB_COUNT = 2
DEFAULT_LENGTH_ROD = 120.0
DEFAULT_MASS = 10.0
DEFAULT_THETA = math.pi / 2

# Mass matrices worse conditioned than this are treated as singular
MAX_CONDITION = 1.0 / np.finfo(np.float64).eps


class Coordinate(NamedTuple):
    """Immutable 2-D point. y grows downward."""

    x: float = 0.0
    y: float = 0.0


@dataclass
class Bob:
    """A point mass at the end of a rigid, massless rod.

    ``length_rod`` and ``mass`` must be positive; this is not checked.
    ``position`` is derived from the angles and is overwritten every step.
    """

    length_rod: float
    mass: float
    theta: float = 0.0
    omega: float = 0.0
    position: Coordinate = field(default_factory=Coordinate)


@dataclass
class Pendulum:
    """Ordered chain of bobs. Bob i hangs from bob i-1, bob 0 from ``origin``."""

    bobs: list[Bob] = field(default_factory=list)
    g: float = GRAVITATIONAL_ACCELERATION
    origin: Coordinate = field(default_factory=Coordinate)

    @property
    def n(self) -> int:
        return len(self.bobs)

    # -- State vectors --

    def lengths(self) -> np.ndarray:
        return np.array([b.length_rod for b in self.bobs], dtype=np.float64)

    def masses(self) -> np.ndarray:
        return np.array([b.mass for b in self.bobs], dtype=np.float64)

    def thetas(self) -> np.ndarray:
        return np.array([b.theta for b in self.bobs], dtype=np.float64)

    def omegas(self) -> np.ndarray:
        return np.array([b.omega for b in self.bobs], dtype=np.float64)

    # -- Dynamics --

    def suffix_masses(self) -> np.ndarray:
        """Mass carried by each link: suffix[i] = sum of mass[k] for k >= i."""
        return np.cumsum(self.masses()[::-1])[::-1]

    def _coupling(self) -> np.ndarray:
        """(n, n) array of suffix[max(i, j)] * l_i * l_j."""
        idx = np.arange(self.n)
        suffix = self.suffix_masses()
        lengths = self.lengths()
        return suffix[np.maximum.outer(idx, idx)] * np.outer(lengths, lengths)

    def mass_matrix(self) -> np.ndarray:
        """Generalized mass matrix M[i, j] = suffix[max(i, j)] l_i l_j cos(theta_i - theta_j).

        Symmetric by construction. Shape (n, n).
        """
        theta = self.thetas()
        delta = theta[:, None] - theta[None, :]
        return self._coupling() * np.cos(delta)

    def mass_matrix_derivative(self) -> np.ndarray:
        """Partial derivatives of the mass matrix with respect to each angle.

        Returns:
            (n, n, n) array D with D[a, b, c] = dM[a, b] / d theta_c
            = -suffix[max(a, b)] l_a l_b sin(theta_a - theta_b) (delta_ac - delta_bc).
        """
        n = self.n
        theta = self.thetas()
        delta = theta[:, None] - theta[None, :]
        base = -self._coupling() * np.sin(delta)
        eye = np.eye(n)
        selector = eye[:, None, :] - eye[None, :, :]
        return base[:, :, None] * selector

    def christoffel(self) -> np.ndarray:
        """Christoffel symbols of the first kind.

        Gamma[i, j, k] = 1/2 (dM_ik/dtheta_j + dM_ij/dtheta_k - dM_jk/dtheta_i)
        """
        d = self.mass_matrix_derivative()
        return 0.5 * (
            np.einsum("ikj->ijk", d)
            + d
            - np.einsum("jki->ijk", d)
        )

    def coriolis(self) -> np.ndarray:
        """Coriolis/centrifugal vector C[i] = sum_jk Gamma[i, j, k] omega_j omega_k."""
        omega = self.omegas()
        return np.einsum("ijk,j,k->i", self.christoffel(), omega, omega)

    def gravity(self) -> np.ndarray:
        """Gradient of the potential energy: G[i] = l_i sin(theta_i) suffix[i] g."""
        return self.lengths() * np.sin(self.thetas()) * self.suffix_masses() * self.g

    def accelerations(self) -> np.ndarray:
        """Solve M a = -(C + G) for the angular accelerations.

        A degenerate system (no bobs, singular or ill-conditioned M, or a
        non-finite result) yields zero acceleration for every bob.
        """
        n = self.n
        if n == 0:
            return np.zeros(0)

        with np.errstate(invalid="ignore", over="ignore"):
            m = self.mass_matrix()
            rhs = -(self.coriolis() + self.gravity())
        if not (np.all(np.isfinite(m)) and np.all(np.isfinite(rhs))):
            logger.debug("Non-finite state (n=%d), freezing", n)
            return np.zeros(n)

        with np.errstate(divide="ignore", invalid="ignore"):
            cond = np.linalg.cond(m)
        if not np.isfinite(cond) or cond > MAX_CONDITION:
            logger.debug("Singular mass matrix (n=%d, cond=%g), freezing", n, cond)
            return np.zeros(n)

        try:
            a = solve(m, rhs, check_finite=False)
        except LinAlgError as exc:
            logger.debug("Degenerate mass matrix (n=%d), freezing: %s", n, exc)
            return np.zeros(n)

        if not np.all(np.isfinite(a)):
            logger.debug("Non-finite accelerations (n=%d), freezing", n)
            return np.zeros(n)
        return a

    # -- Integration --

    def step(self, dt: float) -> None:
        """Advance all bobs by one symplectic Euler step of size dt.

        omega is updated first; theta then uses the updated omega.
        Angles are not wrapped.
        """
        a = self.accelerations()
        for bob, alpha in zip(self.bobs, a):
            bob.omega = bob.omega + float(alpha) * dt
            bob.theta = bob.theta + bob.omega * dt
        self.update_positions()

    # -- Kinematics --

    def positions(self) -> list[Coordinate]:
        """Cartesian position of every bob, chained from the origin.

        A non-finite angle gives nan coordinates for that bob and every bob
        below it.
        """
        lengths = self.lengths()
        theta = self.thetas()
        with np.errstate(invalid="ignore", over="ignore"):
            xs = self.origin.x + np.cumsum(lengths * np.sin(theta))
            ys = self.origin.y + np.cumsum(lengths * np.cos(theta))
        return [Coordinate(float(x), float(y)) for x, y in zip(xs, ys)]

    def update_positions(self) -> None:
        for bob, pos in zip(self.bobs, self.positions()):
            bob.position = pos

    # -- Energy --

    def kinetic_energy(self) -> float:
        omega = self.omegas()
        return float(0.5 * omega @ self.mass_matrix() @ omega)

    def potential_energy(self) -> float:
        """Gravitational potential relative to the origin's height.

        y grows downward, so V = -g * sum(m_k * (y_k - origin.y)).
        """
        depth = np.array([p.y - self.origin.y for p in self.positions()])
        return float(-self.g * np.sum(self.masses() * depth))

    def total_energy(self) -> float:
        return self.kinetic_energy() + self.potential_energy()

    # -- Editing --

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= self.n:
            raise BobIndexError(index, self.n)

    def add_bob(self, length_rod: float, mass: float,
                theta: float = 0.0, omega: float = 0.0) -> int:
        """Append a bob to the end of the chain and return its index."""
        self.bobs.append(Bob(length_rod, mass, theta, omega))
        return self.n - 1

    def remove_bob(self, index: int) -> Bob:
        """Remove the bob at index. Later bobs shift down and re-hang
        from the removed bob's predecessor."""
        self._check_index(index)
        return self.bobs.pop(index)

    def modify_bob(self, index: int, *, length_rod: float | None = None,
                   mass: float | None = None, theta: float | None = None,
                   omega: float | None = None) -> None:
        """Overwrite any subset of a bob's parameters.

        The cached position is left stale until the next step.
        """
        self._check_index(index)
        bob = self.bobs[index]
        if length_rod is not None:
            bob.length_rod = length_rod
        if mass is not None:
            bob.mass = mass
        if theta is not None:
            bob.theta = theta
        if omega is not None:
            bob.omega = omega


def default_pendulum(
    count: int = DEFAULT_BOB_COUNT,
    length_rod: float = DEFAULT_LENGTH_ROD,
    mass: float = DEFAULT_MASS,
    theta: float = DEFAULT_THETA,
) -> Pendulum:
    """Build the start-up configuration: ``count`` identical bobs at rest."""
    pendulum = Pendulum(
        bobs=[Bob(length_rod, mass, theta, 0.0) for _ in range(count)]
    )
    pendulum.update_positions()
    return pendulum
