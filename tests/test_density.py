# -- Density Evaluator Tests -- #

import numpy as np
import pytest

from computationalFluids.GridSph.errors import NumericalInstabilityError, NumericalInstabilityWarning
from computationalFluids.GridSph.grid.gridBuilder import SpatialHashGrid
from computationalFluids.GridSph.grid.gridKeys import GridTransform
from computationalFluids.GridSph.sph.density import applyDensityPolicy, bruteForceDensity, densityKernel
from computationalFluids.GridSph.sph.kernels import createKernelCoefficients


H = 0.012
MASS = 0.0002


def gridDensity(positions, chunk=None):
    '''Grid density returned in original particle order.'''
    grid = SpatialHashGrid(GridTransform.fromCellSize(H))
    grid.build(positions)
    coeffs = createKernelCoefficients(H)
    n = positions.shape[0]
    sortedDensity = np.zeros(n)

    chunk = chunk or n
    for start in range(0, n, chunk):
        densityKernel(start, min(start + chunk, n), grid.sortedPositions, grid.neighbors, coeffs, MASS, sortedDensity)

    densities = np.empty(n)
    densities[grid.order] = sortedDensity
    return densities


def testIsolatedParticleHasSelfDensity():
    coeffs = createKernelCoefficients(H)
    densities = bruteForceDensity(np.array([[0.5, 0.5], [0.9, 0.9]]), coeffs, MASS)
    np.testing.assert_allclose(densities, coeffs.selfDensity(MASS))


def testDensityIsAtLeastSelfTerm(cloud):
    coeffs = createKernelCoefficients(H)
    densities = bruteForceDensity(cloud.positions, coeffs, MASS)
    assert np.all(densities >= coeffs.selfDensity(MASS))


def testPairDensity():
    coeffs = createKernelCoefficients(H)
    d = 0.005
    densities = bruteForceDensity(np.array([[0.5, 0.5], [0.5 + d, 0.5]]), coeffs, MASS)
    expected = MASS * coeffs.poly6 * (H ** 6 + (H * H - d * d) ** 3)
    np.testing.assert_allclose(densities, expected)


def testGridDensityMatchesBruteForce(cloud):
    coeffs = createKernelCoefficients(H)
    expected = bruteForceDensity(cloud.positions, coeffs, MASS)
    np.testing.assert_allclose(gridDensity(cloud.positions), expected, rtol=1e-12)
    np.testing.assert_allclose(gridDensity(cloud.positions, chunk=33), expected, rtol=1e-12)


def testDensityIndependentOfParticleOrder(cloud, rng):
    perm = rng.permutation(cloud.nParticles)
    reference = gridDensity(cloud.positions)
    permuted = gridDensity(cloud.positions[perm])
    np.testing.assert_allclose(permuted, reference[perm], rtol=1e-12)


def testPolicyLeavesPositiveDensitiesAlone():
    densities = np.array([1.0, 900.0, 1100.0])
    assert applyDensityPolicy(densities, 'clamp', 1e-6) == 0
    np.testing.assert_array_equal(densities, [1.0, 900.0, 1100.0])


def testClampPolicyWarnsAndFloors():
    densities = np.array([1000.0, 0.0, -3.0])
    with pytest.warns(NumericalInstabilityWarning):
        nClamped = applyDensityPolicy(densities, 'clamp', 0.5)
    assert nClamped == 2
    np.testing.assert_array_equal(densities, [1000.0, 0.5, 0.5])


def testAbortPolicyRaises():
    with pytest.raises(NumericalInstabilityError):
        applyDensityPolicy(np.array([1000.0, 0.0]), 'abort', 1e-6)


@pytest.mark.parametrize('policy', ['clamp', 'abort'])
def testNonFiniteDensityAlwaysRaises(policy):
    with pytest.raises(NumericalInstabilityError):
        applyDensityPolicy(np.array([1000.0, np.nan]), policy, 1e-6)
