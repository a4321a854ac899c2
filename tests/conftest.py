# -- Shared Test Fixtures -- #

import numpy as np
import pytest

from computationalFluids.GridSph.sph.particles import ParticleState
from computationalFluids.GridSph.sph.protocols import SimulationConfig


@pytest.fixture
def freeConfig():
    '''Reference constants without walls or gravity, inline execution.'''
    return SimulationConfig(
        gravity=np.array([0.0, 0.0]),
        walls=[],
        workerCount=1,
    )


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def cloud(rng):
    '''Random particle cloud inside a 0.2 x 0.15 m box.'''
    positions = rng.uniform([0.01, 0.01], [0.21, 0.16], size=(400, 2))
    velocities = rng.normal(scale=0.05, size=(400, 2))
    return ParticleState(positions=positions, velocities=velocities)
