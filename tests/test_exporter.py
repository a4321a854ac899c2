# -- Frame Exporter Tests -- #

import os

import numpy as np
import pytest

from computationalFluids.GridSph.export.frameExporter import FrameExporter
from computationalFluids.GridSph.sph.particles import ParticleState
from computationalFluids.GridSph.sph.protocols import SimulationConfig, SimulationState


def makeState(time, step):
    return SimulationState(
        time=time, step=step, dt=0.005, kineticEnergy=1.5e-3, maxVelocity=0.25,
        minDensity=990.0, maxDensity=1010.0, maxDensityError=0.01,
    )


@pytest.fixture
def particles():
    return ParticleState(
        positions=np.array([[0.1, 0.2], [0.3, 0.4]]),
        velocities=np.array([[3.0, 4.0], [0.0, 0.0]]),
    )


def testAddFrame(particles):
    exporter = FrameExporter()
    exporter.addFrame(makeState(0.0, 0), particles, np.array([999.0, 1001.0]))
    exporter.addFrame(makeState(0.005, 1), particles)

    assert exporter.nFrames == 2
    first, second = exporter.frames
    assert first['positions'] == [[0.1, 0.2], [0.3, 0.4]]
    assert first['velocityMagnitudes'] == [5.0, 0.0]
    assert first['densities'] == [999.0, 1001.0]
    assert 'densities' not in second
    assert exporter.history['times'] == [0.0, 0.005]
    assert exporter.history['maxVelocity'] == [0.25, 0.25]


def testExportAndLoad(tmp_path, particles):
    exporter = FrameExporter()
    exporter.addFrame(makeState(0.0, 0), particles)

    path = exporter.export(SimulationConfig(), outputDir=str(tmp_path / 'frames'), scenarioName='test')
    assert os.path.isfile(path)
    assert os.path.basename(path).startswith('gridSph_test_')

    data = FrameExporter.load(path)
    assert data['meta']['type'] == 'gridSph'
    assert data['meta']['nFrames'] == 1
    assert data['meta']['nParticles'] == 2
    assert data['config']['simulationMode'] == 'grid'
    assert data['frames'][0]['step'] == 0
    assert data['history']['kinetic'] == [1.5e-3]


def testExportWithoutFrames(tmp_path):
    path = FrameExporter().export(SimulationConfig(), outputDir=str(tmp_path))
    data = FrameExporter.load(path)
    assert data['meta']['nParticles'] == 0
    assert data['frames'] == []
