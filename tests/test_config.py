# -- Simulation Configuration Tests -- #

import json

import numpy as np
import pytest

from computationalFluids.GridSph import constants as const
from computationalFluids.GridSph.errors import ConfigurationError
from computationalFluids.GridSph.sph.protocols import SimulationConfig, WallPlane


def testDefaultConfigIsValid():
    config = SimulationConfig()
    config.validate()
    assert config.cellSize == const.smoothingLength
    assert len(config.wallPlanes) == 4


@pytest.mark.parametrize('overrides', [
    {'timeStep': 0.0},
    {'effectiveRadius': -0.01},
    {'particleMass': float('nan')},
    {'restDensity': 0.0},
    {'densityFloor': 0.0},
    {'pressureCoefficient': -1.0},
    {'viscosity': float('inf')},
    {'wallStiffness': -5.0},
    {'gravity': np.array([0.0, 0.0, -9.81])},
    {'gravity': np.array([np.nan, 0.0])},
    {'simulationMode': 'octree'},
    {'instabilityPolicy': 'ignore'},
    {'sorterType': 'radix'},
    {'workerCount': 0},
    {'chunkSize': 0},
    {'kernelForm': 'cubic'},
    {'gridCellSize': 0.005},
    {'domainMax': np.array([4.0, 1.0])},
    {'domainMin': np.array([-0.1, 0.0])},
    {'domainMax': np.array([0.0, 1.0])},
])
def testInvalidConfigRejected(overrides):
    with pytest.raises(ConfigurationError):
        SimulationConfig(**overrides).validate()


def testLargerCellsAllowed():
    config = SimulationConfig(gridCellSize=0.02)
    config.validate()
    assert config.gridTransform.cellSize == pytest.approx(0.02)


def testTooManyWallsRejected():
    walls = [WallPlane(normal=(0.0, 1.0), offset=0.0)] * 5
    with pytest.raises(ConfigurationError):
        SimulationConfig(walls=walls).validate()


def testEmptyWallListMeansNoWalls(freeConfig):
    normals, offsets = freeConfig.wallArrays
    assert normals.shape == (0, 2)
    assert offsets.shape == (0,)


#--------------------------------------------------------------------#
# -- Wall Planes -- #
#--------------------------------------------------------------------#

def testWallNormalization():
    wall = WallPlane(normal=(0.0, 2.0), offset=-0.5).normalized()
    assert wall.normal == (0.0, 1.0)
    assert wall.offset == pytest.approx(-0.25)

    # Signed distance is unchanged by scaling the plane equation
    point = np.array([[0.3, 0.75]])
    assert wall.signedDistance(point)[0] == pytest.approx(0.5)


@pytest.mark.parametrize('wall', [
    WallPlane(normal=(0.0, 0.0), offset=1.0),
    WallPlane(normal=(np.nan, 1.0), offset=0.0),
    WallPlane(normal=(1.0, 0.0), offset=np.inf),
])
def testMalformedWallRejected(wall):
    with pytest.raises(ConfigurationError):
        wall.normalized()


def testBoxWallsContainInterior():
    walls = WallPlane.boxWalls(np.array([0.0, 0.0]), np.array([1.6, 1.2]))
    inside = np.array([[0.8, 0.6], [0.01, 1.19]])
    outside = np.array([[-0.1, 0.6], [0.8, 1.3]])

    assert all(np.all(wall.signedDistance(inside) > 0.0) for wall in walls)
    for point in outside:
        assert any(wall.signedDistance(point[None, :])[0] < 0.0 for wall in walls)


#--------------------------------------------------------------------#
# -- Serialization -- #
#--------------------------------------------------------------------#

def testFromJson(tmp_path):
    data = {
        'fluid': {'restDensity': 998.0, 'gravity': -9.81},
        'sph': {'effectiveRadius': 0.015, 'kernelForm': 'planar'},
        'simulation': {'timeStep': 0.001, 'mode': 'simple', 'workers': 2},
        'map': {'max': [1.0, 0.5]},
        'walls': [{'normal': [0.0, 1.0], 'offset': 0.0}],
    }
    path = tmp_path / 'config.json'
    path.write_text(json.dumps(data))

    config = SimulationConfig.fromJson(str(path))
    config.validate()

    assert config.restDensity == 998.0
    np.testing.assert_array_equal(config.gravity, [0.0, -9.81])
    assert config.effectiveRadius == 0.015
    assert config.kernelForm == 'planar'
    assert config.timeStep == 0.001
    assert config.simulationMode == 'simple'
    assert config.workerCount == 2
    np.testing.assert_array_equal(config.domainMax, [1.0, 0.5])
    assert config.wallPlanes == [WallPlane(normal=(0.0, 1.0), offset=0.0)]


def testFromDictDefaults():
    config = SimulationConfig.fromDict({})
    assert config.restDensity == const.restDensity
    np.testing.assert_array_equal(config.gravity, [0.0, const.gravity])
    assert config.walls is None


def testVectorGravity():
    config = SimulationConfig.fromDict({'fluid': {'gravity': [1.0, -2.0]}})
    np.testing.assert_array_equal(config.gravity, [1.0, -2.0])


def testToDictIsJsonSerializable():
    data = SimulationConfig().toDict()
    restored = json.loads(json.dumps(data))
    assert restored['gridCellSize'] == const.smoothingLength
    assert len(restored['walls']) == 4


def testWithOverridesLeavesOriginal():
    config = SimulationConfig()
    changed = config.withOverrides(timeStep=0.001)
    assert changed.timeStep == 0.001
    assert config.timeStep == const.maxTimeStep
