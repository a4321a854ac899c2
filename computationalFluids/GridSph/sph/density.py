# -- SPH Density Evaluation -- #

'''
Density summation over the neighbor candidates of each particle.

rho_i = sum_j m * poly6 * (h^2 - r_ij^2)^3      for r_ij^2 < h^2

The sum includes j = i (r = 0 always passes the cutoff), so every
density is at least the self term m * poly6 * h^6.

Accumulation is chunk-local: a work item sums into its own slot of a
private accumulator with np.bincount, so no two chunks ever touch the
same output element.
'''

from __future__ import annotations

import warnings

import numpy as np

from computationalFluids.GridSph.errors import NumericalInstabilityError, NumericalInstabilityWarning
from computationalFluids.GridSph.grid.gridBuilder import BruteForceNeighbors, NeighborSource
from computationalFluids.GridSph.sph.kernels import KernelCoefficients


def densityKernel(
    start: int,
    stop: int,
    positions: np.ndarray,
    neighbors: NeighborSource,
    coefficients: KernelCoefficients,
    particleMass: float,
    out: np.ndarray,
) -> None:
    '''
    Density of particles [start, stop).

    Parameters:
    -----------
    start, stop : int
        Particle range of this chunk
    positions : np.ndarray
        Particle positions in the order `neighbors` indexes, shape (N, 2)
    neighbors : NeighborSource
        Candidate pair source
    coefficients : KernelCoefficients
        Kernel coefficients
    particleMass : float
        Particle mass [kg]
    out : np.ndarray
        Density buffer, shape (N,)
    '''
    count = stop - start
    hSq = coefficients.radiusSq
    accumulated = np.zeros(count)

    for localI, j in neighbors.iterPairs(start, stop):
        diff = positions[j] - positions[start + localI]
        rSq = np.einsum('ij,ij->i', diff, diff)
        within = rSq < hSq
        if not np.any(within):
            continue
        gap = hSq - rSq[within]
        accumulated += np.bincount(localI[within], weights=gap * gap * gap, minlength=count)

    out[start:stop] = particleMass * coefficients.poly6 * accumulated


def bruteForceDensity(
    positions: np.ndarray,
    coefficients: KernelCoefficients,
    particleMass: float,
) -> np.ndarray:
    '''Reference density by scanning every particle pair.'''
    n = positions.shape[0]
    out = np.zeros(n)
    densityKernel(0, n, positions, BruteForceNeighbors(n), coefficients, particleMass, out)
    return out


def applyDensityPolicy(densities: np.ndarray, policy: str, densityFloor: float) -> int:
    '''
    Enforce a positive density before it is used as a divisor.

    Non-finite densities always abort the step. Non-positive finite
    densities are raised to `densityFloor` with a warning under the
    'clamp' policy, or abort the step under 'abort'.

    Parameters:
    -----------
    densities : np.ndarray
        Density buffer, modified in place under 'clamp'
    policy : str
        'clamp' or 'abort'
    densityFloor : float
        Replacement density [kg/m^3]

    Returns:
    --------
    int : Number of clamped densities

    Raises:
    -------
    NumericalInstabilityError : On non-finite densities, or on
        non-positive densities under the 'abort' policy
    '''
    nonFinite = ~np.isfinite(densities)
    if np.any(nonFinite):
        raise NumericalInstabilityError(
            f'{int(np.sum(nonFinite))} particle densities are not finite'
        )

    bad = densities <= 0.0
    nBad = int(np.sum(bad))
    if nBad == 0:
        return 0

    if policy == 'abort':
        raise NumericalInstabilityError(f'{nBad} particle densities are <= 0')

    warnings.warn(
        f'{nBad} particle densities are <= 0; clamped to {densityFloor}',
        NumericalInstabilityWarning,
        stacklevel=2,
    )
    densities[bad] = densityFloor
    return nBad
