# -- Visualization Tests -- #

import numpy as np
import plotly.graph_objects as go

from computationalFluids.GridSph import constants as const
from computationalFluids.GridSph.sph.particles import ParticleState
from computationalFluids.GridSph.sph.protocols import SimulationConfig
from computationalFluids.GridSph.visualization import plotEnergyHistory, plotGridOccupancy, plotParticles


def testParticlePlotUsesDensityColour():
    particles = ParticleState.createBlock(16, spacing=0.01)
    densities = np.linspace(990.0, 1010.0, 16)
    fig = plotParticles(particles, densities, config=SimulationConfig())

    assert isinstance(fig, go.Figure)
    assert len(fig.data) == 1
    np.testing.assert_array_equal(fig.data[0].marker.color, densities)
    assert len(fig.layout.shapes) == 1


def testParticlePlotFallsBackToSpeed():
    particles = ParticleState(positions=np.zeros((2, 2)), velocities=np.array([[3.0, 4.0], [0.0, 1.0]]))
    fig = plotParticles(particles)
    np.testing.assert_allclose(fig.data[0].marker.color, [5.0, 1.0])
    assert len(fig.layout.shapes) == 0


def testOccupancyFromCellRanges():
    ranges = np.zeros((const.gridCellCount, 2), dtype=np.uint32)
    # Cell (x=3, y=2) holds particles [0, 5), cell (x=4, y=2) holds [5, 7)
    ranges[2 * 256 + 3] = (0, 5)
    ranges[2 * 256 + 4] = (5, 7)

    fig = plotGridOccupancy(ranges)
    heatmap = fig.data[0]
    assert np.asarray(heatmap.z).tolist() == [[5, 2]]
    assert list(heatmap.x) == [3, 4]
    assert list(heatmap.y) == [2]


def testOccupancyUncropped():
    occupancy = np.zeros((256, 256), dtype=np.int64)
    occupancy[10, 20] = 3
    fig = plotGridOccupancy(occupancy, cropToOccupied=False)
    assert np.asarray(fig.data[0].z).shape == (256, 256)
    assert 'max 3' in fig.layout.title.text


def testEnergyHistory():
    history = {'times': [0.0, 0.1], 'kinetic': [0.0, 1e-3], 'maxDensityError': [0.01, 0.02]}
    fig = plotEnergyHistory(history)
    assert len(fig.data) == 2
    np.testing.assert_allclose(fig.data[1].y, [1.0, 2.0])
