# -- SPH Time Integration and Wall Containment -- #

'''
Penalty walls, gravity and the semi-implicit Euler update.

Each wall is a half-plane n . x + offset >= 0 with inward unit normal
n. A particle that has crossed a wall (signed distance d < 0) feels

    a_wall = -k * d * n

which pushes it back along the inward normal and grows linearly with
penetration depth. Particles inside every wall feel nothing. Large
time steps can still carry a particle through a wall for a few steps;
the penalty only pulls it back.

Update sequence (kick then drift):
    v(t+dt) = v(t) + a(t) * dt
    x(t+dt) = x(t) + v(t+dt) * dt

References:
-----------
Monaghan (2005) -- Smoothed Particle Hydrodynamics
Hairer et al. (2003) -- Geometric Numerical Integration
'''

from __future__ import annotations

from typing import Protocol

import numpy as np


def wallAcceleration(
    positions: np.ndarray,
    normals: np.ndarray,
    offsets: np.ndarray,
    stiffness: float,
) -> np.ndarray:
    '''
    Penalty acceleration from up to four half-plane walls.

    Parameters:
    -----------
    positions : np.ndarray
        Particle positions [m], shape (N, 2)
    normals : np.ndarray
        Inward unit normals, shape (W, 2)
    offsets : np.ndarray
        Plane offsets [m], shape (W,)
    stiffness : float
        Wall stiffness k

    Returns:
    --------
    np.ndarray : Wall acceleration, shape (N, 2)
    '''
    if normals.shape[0] == 0:
        return np.zeros_like(positions)

    distances = positions @ normals.T + offsets
    penetration = np.minimum(distances, 0.0)
    return -stiffness * (penetration @ normals)


######################################################################
# -- Time Integrator Protocol -- #
######################################################################

class TimeIntegrator(Protocol):
    '''Protocol for time integration schemes.'''

    def integrate(
        self,
        positions: np.ndarray,
        velocities: np.ndarray,
        accelerations: np.ndarray,
        dt: float,
    ) -> tuple[np.ndarray, np.ndarray]:
        '''
        Advance particles by one time step.

        Parameters:
        -----------
        positions, velocities : np.ndarray
            Current state, shape (N, 2); not modified
        accelerations : np.ndarray
            Total acceleration, shape (N, 2)
        dt : float
            Time step size [s]

        Returns:
        --------
        tuple[np.ndarray, np.ndarray] : (positions, velocities) at t + dt
        '''
        ...


class SemiImplicitEuler:
    '''
    Semi-implicit (symplectic) Euler integrator.

    The drift uses the updated velocity, so a particle in free fall
    moves by -g * dt^2 in its first step.
    '''

    def integrate(
        self,
        positions: np.ndarray,
        velocities: np.ndarray,
        accelerations: np.ndarray,
        dt: float,
    ) -> tuple[np.ndarray, np.ndarray]:
        newVelocities = velocities + dt * accelerations
        newPositions = positions + dt * newVelocities
        return newPositions, newVelocities


######################################################################
# -- Integrate Stage Kernel -- #
######################################################################

def integrateKernel(
    start: int,
    stop: int,
    positions: np.ndarray,
    velocities: np.ndarray,
    accelerations: np.ndarray,
    order: np.ndarray,
    normals: np.ndarray,
    offsets: np.ndarray,
    stiffness: float,
    gravity: np.ndarray,
    dt: float,
    outPositions: np.ndarray,
    outVelocities: np.ndarray,
    integrator: TimeIntegrator | None = None,
) -> None:
    '''
    Advance particles [start, stop) and write them to their original slot.

    The input arrays may be in rearranged (cell-sorted) order; `order`
    maps each input index to the particle's original index, so the
    output buffer keeps particle identity from step to step.

    Parameters:
    -----------
    start, stop : int
        Particle range of this chunk (input order)
    positions, velocities : np.ndarray
        Particle state of this step, shape (N, 2)
    accelerations : np.ndarray
        Pressure and viscosity acceleration, shape (N, 2)
    order : np.ndarray
        Original particle index of each input index, shape (N,)
    normals, offsets : np.ndarray
        Wall planes, shapes (W, 2) and (W,)
    stiffness : float
        Wall stiffness k
    gravity : np.ndarray
        Gravity vector [m/s^2]
    dt : float
        Time step [s]
    outPositions, outVelocities : np.ndarray
        Next-step particle buffers in original order, shape (N, 2)
    integrator : TimeIntegrator | None
        Update scheme (defaults to SemiImplicitEuler)
    '''
    integrator = integrator or SemiImplicitEuler()
    x = positions[start:stop]
    v = velocities[start:stop]

    total = accelerations[start:stop] + wallAcceleration(x, normals, offsets, stiffness) + gravity
    newX, newV = integrator.integrate(x, v, total, dt)

    targets = order[start:stop]
    outPositions[targets] = newX
    outVelocities[targets] = newV
