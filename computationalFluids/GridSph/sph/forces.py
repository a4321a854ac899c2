# -- SPH Pressure and Viscosity Forces -- #

'''
Pressure-gradient and viscosity-laplacian accelerations.

Equation of state (Tait-like, clamped at rest density):

    p = B * max((rho / rho_0)^3 - 1, 0)

Per neighbor pair (j != i, r_ij < h), with x_ij = x_j - x_i:

    pressure   += spiky' * m * (p_i + p_j) / 2 / rho_j * (h - r)^2 * x_ij / r
    viscosity  += lap    * m * mu / rho_j * (h - r) * (v_j - v_i)

a_i = (pressure + viscosity) / rho_i

The spiky gradient coefficient is negative, so the pressure term
points away from the neighbor. The division by the particle's own
density happens once, after both sums.

References:
-----------
Muller et al. (2003) -- Particle-Based Fluid Simulation for Interactive Applications
'''

from __future__ import annotations

import numpy as np

from computationalFluids.GridSph.grid.gridBuilder import BruteForceNeighbors, NeighborSource
from computationalFluids.GridSph.sph.kernels import KernelCoefficients


def taitPressure(
    density: np.ndarray,
    restDensity: float,
    pressureCoefficient: float,
) -> np.ndarray:
    '''
    Pressure from density, never negative.

    Parameters:
    -----------
    density : np.ndarray
        Particle densities [kg/m^3]
    restDensity : float
        Rest density rho_0 [kg/m^3]
    pressureCoefficient : float
        Stiffness B [Pa]

    Returns:
    --------
    np.ndarray : Pressures [Pa]
    '''
    ratio = np.asarray(density, dtype=np.float64) / restDensity
    return pressureCoefficient * np.maximum(ratio * ratio * ratio - 1.0, 0.0)


def forceKernel(
    start: int,
    stop: int,
    positions: np.ndarray,
    velocities: np.ndarray,
    densities: np.ndarray,
    neighbors: NeighborSource,
    coefficients: KernelCoefficients,
    particleMass: float,
    viscosity: float,
    restDensity: float,
    pressureCoefficient: float,
    out: np.ndarray,
) -> None:
    '''
    Pressure and viscosity acceleration of particles [start, stop).

    Parameters:
    -----------
    start, stop : int
        Particle range of this chunk
    positions, velocities : np.ndarray
        Particle state in the order `neighbors` indexes, shape (N, 2)
    densities : np.ndarray
        Densities of the current step, all positive, shape (N,)
    neighbors : NeighborSource
        Candidate pair source
    coefficients : KernelCoefficients
        Kernel coefficients
    particleMass : float
        Particle mass [kg]
    viscosity : float
        Viscosity coefficient mu
    restDensity : float
        Rest density rho_0 [kg/m^3]
    pressureCoefficient : float
        Stiffness B [Pa]
    out : np.ndarray
        Acceleration buffer, shape (N, 2)
    '''
    count = stop - start
    h = coefficients.radius
    hSq = coefficients.radiusSq
    pressures = taitPressure(densities, restDensity, pressureCoefficient)
    accumulated = np.zeros((count, 2))

    for localI, j in neighbors.iterPairs(start, stop):
        i = start + localI
        diff = positions[j] - positions[i]
        rSq = np.einsum('ij,ij->i', diff, diff)
        keep = (rSq < hSq) & (j != i)
        if not np.any(keep):
            continue

        localI = localI[keep]
        i = i[keep]
        j = j[keep]
        diff = diff[keep]
        r = np.sqrt(rSq[keep])
        gap = h - r
        invRhoJ = 1.0 / densities[j]

        # Coincident particles have no separation direction
        safeR = np.where(r > 0.0, r, 1.0)
        avgPressure = 0.5 * (pressures[i] + pressures[j])
        pressureScale = np.where(
            r > 0.0,
            coefficients.spikyGradient * particleMass * avgPressure * invRhoJ * gap * gap / safeR,
            0.0,
        )
        viscosityScale = coefficients.viscosityLaplacian * particleMass * viscosity * invRhoJ * gap

        contribution = pressureScale[:, None] * diff + viscosityScale[:, None] * (velocities[j] - velocities[i])
        accumulated[:, 0] += np.bincount(localI, weights=contribution[:, 0], minlength=count)
        accumulated[:, 1] += np.bincount(localI, weights=contribution[:, 1], minlength=count)

    out[start:stop] = accumulated / densities[start:stop, None]


def bruteForceForces(
    positions: np.ndarray,
    velocities: np.ndarray,
    densities: np.ndarray,
    coefficients: KernelCoefficients,
    particleMass: float,
    viscosity: float,
    restDensity: float,
    pressureCoefficient: float,
) -> np.ndarray:
    '''Reference accelerations by scanning every particle pair.'''
    n = positions.shape[0]
    out = np.zeros((n, 2))
    forceKernel(
        0, n, positions, velocities, densities, BruteForceNeighbors(n), coefficients,
        particleMass, viscosity, restDensity, pressureCoefficient, out,
    )
    return out
