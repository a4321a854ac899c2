# -- SPH Simulation Protocols -- #

'''
Configuration, wall planes, diagnostics and the solver protocol.

SimulationConfig is the immutable set of constants passed into every
stage: fluid parameters, kernel radius, time step, gravity, the grid
transform and up to four wall half-planes. It validates itself
against the packed grid format before any step runs.
'''

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Protocol, TYPE_CHECKING

import numpy as np

from computationalFluids.GridSph import constants as const
from computationalFluids.GridSph.errors import ConfigurationError
from computationalFluids.GridSph.grid.gridKeys import GridTransform
from computationalFluids.GridSph.sph.kernels import KernelCoefficients, createKernelCoefficients

if TYPE_CHECKING:
    from computationalFluids.GridSph.sph.particles import ParticleState


MAX_WALLS = 4

SIMULATION_MODES = ('grid', 'simple')
INSTABILITY_POLICIES = ('clamp', 'abort')
SORTER_TYPES = ('numpy', 'bitonic')


######################################################################
# -- Wall Planes -- #
######################################################################

@dataclass(frozen=True)
class WallPlane:
    '''
    Half-plane wall: n . x + offset >= 0 inside the fluid domain.

    Parameters:
    -----------
    normal : tuple[float, float]
        Inward unit normal
    offset : float
        Plane offset [m]
    '''

    normal: tuple[float, float]
    offset: float

    def signedDistance(self, positions: np.ndarray) -> np.ndarray:
        '''Signed distance of positions to the wall; negative outside.'''
        return positions @ np.asarray(self.normal, dtype=np.float64) + self.offset

    def normalized(self) -> WallPlane:
        '''
        Same plane with a unit normal.

        Raises:
        -------
        ConfigurationError : If the normal is zero-length or non-finite
        '''
        normal = np.asarray(self.normal, dtype=np.float64)
        if normal.shape != (2,) or not np.all(np.isfinite(normal)) or not np.isfinite(self.offset):
            raise ConfigurationError(f'Malformed wall plane: normal={self.normal}, offset={self.offset}')
        length = float(np.linalg.norm(normal))
        if length == 0.0:
            raise ConfigurationError('Wall plane normal has zero length')
        unit = normal / length
        return WallPlane(normal=(float(unit[0]), float(unit[1])), offset=float(self.offset) / length)

    @classmethod
    def boxWalls(cls, domainMin: np.ndarray, domainMax: np.ndarray) -> list[WallPlane]:
        '''Left, bottom, right and top walls of an axis-aligned box.'''
        xMin, yMin = float(domainMin[0]), float(domainMin[1])
        xMax, yMax = float(domainMax[0]), float(domainMax[1])
        return [
            cls(normal=(1.0, 0.0), offset=-xMin),
            cls(normal=(0.0, 1.0), offset=-yMin),
            cls(normal=(-1.0, 0.0), offset=xMax),
            cls(normal=(0.0, -1.0), offset=yMax),
        ]


######################################################################
# -- Simulation Configuration -- #
######################################################################

@dataclass
class SimulationConfig:
    '''
    Constants for a grid SPH simulation.

    Parameters:
    -----------
    restDensity : float
        Rest density rho_0 [kg/m^3]
    pressureCoefficient : float
        Tait pressure coefficient B [Pa]
    particleMass : float
        Mass of one particle [kg]
    effectiveRadius : float
        Interaction cutoff h [m]
    timeStep : float
        Fixed time step [s]
    viscosity : float
        Viscosity coefficient
    wallStiffness : float
        Penalty stiffness of the walls
    particleGap : float
        Initial lattice spacing [m]
    gravity : np.ndarray
        Gravity vector [m/s^2]
    domainMin : np.ndarray
        Lower corner of the map [m]
    domainMax : np.ndarray
        Upper corner of the map [m]
    gridCellSize : float | None
        Grid cell edge [m]; None uses effectiveRadius
    gridOrigin : np.ndarray
        World position of cell (0, 0) [m]
    walls : list[WallPlane] | None
        Up to four wall half-planes; None uses the domain box walls
    kernelForm : str
        'muller' or 'planar' kernel normalization
    simulationMode : str
        'grid' (spatial hash) or 'simple' (O(N^2) reference)
    sorterType : str
        'numpy' or 'bitonic' grid entry sort
    instabilityPolicy : str
        'clamp' (floor density and warn) or 'abort' (raise, step not committed)
    densityFloor : float
        Density used by the clamp policy [kg/m^3]
    workerCount : int
        Worker threads for stage fan-out
    chunkSize : int
        Work items per chunk
    endTime : float
        Simulation end time for the runner [s]
    outputInterval : float
        Time between exported frames [s]
    '''

    restDensity: float = const.restDensity
    pressureCoefficient: float = const.pressureStiffness
    particleMass: float = const.particleMass
    effectiveRadius: float = const.smoothingLength
    timeStep: float = const.maxTimeStep
    viscosity: float = const.viscosity
    wallStiffness: float = const.wallStiffness
    particleGap: float = const.initialParticleSpacing
    gravity: np.ndarray = field(default_factory=lambda: np.array([0.0, const.gravity]))
    domainMin: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    domainMax: np.ndarray = field(default_factory=lambda: np.array([const.mapWidth, const.mapHeight]))
    gridCellSize: float | None = None
    gridOrigin: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    walls: list[WallPlane] | None = None
    kernelForm: str = 'muller'
    simulationMode: str = 'grid'
    sorterType: str = 'numpy'
    instabilityPolicy: str = 'clamp'
    densityFloor: float = const.densityFloor
    workerCount: int = const.defaultWorkerCount
    chunkSize: int = const.defaultChunkSize
    endTime: float = 2.0
    outputInterval: float = 0.05

    #--------------------------------------------------------------------#
    # -- Derived Quantities -- #
    #--------------------------------------------------------------------#

    @property
    def cellSize(self) -> float:
        '''Grid cell edge [m].'''
        return self.gridCellSize if self.gridCellSize is not None else self.effectiveRadius

    @property
    def kernelCoefficients(self) -> KernelCoefficients:
        '''Poly6 / spiky / viscosity coefficients for effectiveRadius.'''
        return createKernelCoefficients(self.effectiveRadius, self.kernelForm)

    @property
    def gridTransform(self) -> GridTransform:
        '''World to cell transform.'''
        return GridTransform.fromCellSize(self.cellSize, self.gridOrigin)

    @property
    def wallPlanes(self) -> list[WallPlane]:
        '''Walls with unit normals.'''
        walls = self.walls if self.walls is not None else WallPlane.boxWalls(self.domainMin, self.domainMax)
        return [wall.normalized() for wall in walls]

    @property
    def wallArrays(self) -> tuple[np.ndarray, np.ndarray]:
        '''Wall normals (W, 2) and offsets (W,) for vectorized evaluation.'''
        planes = self.wallPlanes
        if not planes:
            return (np.zeros((0, 2)), np.zeros(0))
        normals = np.array([plane.normal for plane in planes], dtype=np.float64)
        offsets = np.array([plane.offset for plane in planes], dtype=np.float64)
        return (normals, offsets)

    @property
    def selfDensity(self) -> float:
        '''Single-particle density mass * poly6 * h^6 [kg/m^3].'''
        return self.kernelCoefficients.selfDensity(self.particleMass)

    #--------------------------------------------------------------------#
    # -- Validation -- #
    #--------------------------------------------------------------------#

    def validate(self) -> None:
        '''
        Reject constants the pipeline cannot run with.

        Raises:
        -------
        ConfigurationError : On the first invalid value found
        '''
        positive = {
            'effectiveRadius': self.effectiveRadius,
            'timeStep': self.timeStep,
            'particleMass': self.particleMass,
            'restDensity': self.restDensity,
            'densityFloor': self.densityFloor,
        }
        for name, value in positive.items():
            if not (np.isfinite(value) and value > 0.0):
                raise ConfigurationError(f'{name} must be positive, got {value}')

        nonNegative = {
            'pressureCoefficient': self.pressureCoefficient,
            'viscosity': self.viscosity,
            'wallStiffness': self.wallStiffness,
        }
        for name, value in nonNegative.items():
            if not (np.isfinite(value) and value >= 0.0):
                raise ConfigurationError(f'{name} must be non-negative, got {value}')

        gravity = np.asarray(self.gravity, dtype=np.float64)
        if gravity.shape != (2,) or not np.all(np.isfinite(gravity)):
            raise ConfigurationError(f'Gravity must be a finite 2-vector, got {self.gravity}')

        if self.simulationMode not in SIMULATION_MODES:
            raise ConfigurationError(f'Unknown simulation mode: {self.simulationMode}')
        if self.instabilityPolicy not in INSTABILITY_POLICIES:
            raise ConfigurationError(f'Unknown instability policy: {self.instabilityPolicy}')
        if self.sorterType not in SORTER_TYPES:
            raise ConfigurationError(f'Unknown sorter type: {self.sorterType}')
        if self.workerCount < 1 or self.chunkSize < 1:
            raise ConfigurationError('workerCount and chunkSize must be >= 1')

        createKernelCoefficients(self.effectiveRadius, self.kernelForm)

        walls = self.walls if self.walls is not None else []
        if len(walls) > MAX_WALLS:
            raise ConfigurationError(f'At most {MAX_WALLS} walls are supported, got {len(walls)}')
        for wall in walls:
            wall.normalized()

        domainMin = np.asarray(self.domainMin, dtype=np.float64)
        domainMax = np.asarray(self.domainMax, dtype=np.float64)
        if domainMin.shape != (2,) or domainMax.shape != (2,) or not np.all(domainMax > domainMin):
            raise ConfigurationError(f'Malformed domain bounds: {self.domainMin} .. {self.domainMax}')

        # Neighbors up to h away must lie in the 3x3 block
        if self.cellSize < self.effectiveRadius:
            raise ConfigurationError(
                f'Grid cell size {self.cellSize} is smaller than effectiveRadius {self.effectiveRadius}'
            )

        lo, hi = self.gridTransform.cellBounds(domainMin, domainMax)
        limit = const.gridCellsPerAxis
        if np.any(lo < 0) or np.any(hi >= limit):
            raise ConfigurationError(
                f'Domain spans cells {lo.tolist()} .. {hi.tolist()}, '
                f'outside the {limit}x{limit} packed grid'
            )

    #--------------------------------------------------------------------#
    # -- Serialization -- #
    #--------------------------------------------------------------------#

    def withOverrides(self, **overrides) -> SimulationConfig:
        '''Copy of the config with some fields replaced.'''
        return replace(self, **overrides)

    def toDict(self) -> dict:
        '''JSON-friendly dictionary of the configuration.'''
        return {
            'restDensity': self.restDensity,
            'pressureCoefficient': self.pressureCoefficient,
            'particleMass': self.particleMass,
            'effectiveRadius': self.effectiveRadius,
            'timeStep': self.timeStep,
            'viscosity': self.viscosity,
            'wallStiffness': self.wallStiffness,
            'particleGap': self.particleGap,
            'gravity': np.asarray(self.gravity).tolist(),
            'domainMin': np.asarray(self.domainMin).tolist(),
            'domainMax': np.asarray(self.domainMax).tolist(),
            'gridCellSize': self.cellSize,
            'gridOrigin': np.asarray(self.gridOrigin).tolist(),
            'walls': [{'normal': list(w.normal), 'offset': w.offset} for w in self.wallPlanes],
            'kernelForm': self.kernelForm,
            'simulationMode': self.simulationMode,
            'sorterType': self.sorterType,
            'instabilityPolicy': self.instabilityPolicy,
        }

    @classmethod
    def fromDict(cls, data: dict) -> SimulationConfig:
        '''
        Build a configuration from parsed JSON sections.

        Reads the 'simulation', 'sph', 'fluid', 'map', 'grid' and
        'walls' sections; missing values fall back to constants.py.

        Parameters:
        -----------
        data : dict
            Parsed configuration

        Returns:
        --------
        SimulationConfig : Configuration (not yet validated)
        '''
        simSection = data.get('simulation', {})
        sphSection = data.get('sph', {})
        fluidSection = data.get('fluid', {})
        mapSection = data.get('map', {})
        gridSection = data.get('grid', {})

        # Gravity as a vector, or a scalar vertical component
        gravityValue = fluidSection.get('gravity', const.gravity)
        if np.isscalar(gravityValue):
            gravityVec = np.array([0.0, float(gravityValue)])
        else:
            gravityVec = np.asarray(gravityValue, dtype=np.float64)

        walls = None
        if 'walls' in data:
            walls = [
                WallPlane(normal=tuple(wall['normal']), offset=float(wall['offset']))
                for wall in data['walls']
            ]

        return cls(
            restDensity=fluidSection.get('restDensity', const.restDensity),
            pressureCoefficient=fluidSection.get('pressureCoefficient', const.pressureStiffness),
            viscosity=fluidSection.get('viscosity', const.viscosity),
            gravity=gravityVec,
            particleMass=sphSection.get('particleMass', const.particleMass),
            effectiveRadius=sphSection.get('effectiveRadius', const.smoothingLength),
            particleGap=sphSection.get('particleGap', const.initialParticleSpacing),
            kernelForm=sphSection.get('kernelForm', 'muller'),
            densityFloor=sphSection.get('densityFloor', const.densityFloor),
            timeStep=simSection.get('timeStep', const.maxTimeStep),
            endTime=simSection.get('endTime', 2.0),
            outputInterval=simSection.get('outputInterval', 0.05),
            simulationMode=simSection.get('mode', 'grid'),
            sorterType=simSection.get('sorter', 'numpy'),
            instabilityPolicy=simSection.get('instabilityPolicy', 'clamp'),
            workerCount=simSection.get('workers', const.defaultWorkerCount),
            chunkSize=simSection.get('chunkSize', const.defaultChunkSize),
            domainMin=np.asarray(mapSection.get('min', [0.0, 0.0]), dtype=np.float64),
            domainMax=np.asarray(mapSection.get('max', [const.mapWidth, const.mapHeight]), dtype=np.float64),
            wallStiffness=mapSection.get('wallStiffness', const.wallStiffness),
            gridCellSize=gridSection.get('cellSize'),
            gridOrigin=np.asarray(gridSection.get('origin', [0.0, 0.0]), dtype=np.float64),
            walls=walls,
        )

    @classmethod
    def fromJson(cls, configPath: str) -> SimulationConfig:
        '''Load configuration from a JSON file (see fromDict).'''
        with open(configPath, 'r') as f:
            data = json.load(f)
        return cls.fromDict(data)


######################################################################
# -- Simulation State -- #
######################################################################

@dataclass
class SimulationState:
    '''
    Diagnostics snapshot after a committed step.

    Parameters:
    -----------
    time : float
        Simulation time [s]
    step : int
        Number of committed steps
    dt : float
        Time step [s]
    kineticEnergy : float
        Total kinetic energy [J]
    maxVelocity : float
        Maximum particle speed [m/s]
    minDensity : float
        Smallest particle density of the step [kg/m^3]
    maxDensity : float
        Largest particle density of the step [kg/m^3]
    maxDensityError : float
        Maximum |rho - rho_0| / rho_0
    occupiedCells : int
        Number of non-empty grid cells (0 in simple mode)
    maxCellOccupancy : int
        Largest particle count in one cell (0 in simple mode)
    nClampedDensities : int
        Densities raised to the floor by the clamp policy
    '''

    time: float
    step: int
    dt: float
    kineticEnergy: float
    maxVelocity: float
    minDensity: float
    maxDensity: float
    maxDensityError: float
    occupiedCells: int = 0
    maxCellOccupancy: int = 0
    nClampedDensities: int = 0


######################################################################
# -- Solver Protocol -- #
######################################################################

class FluidSolver(Protocol):
    '''Protocol for step-based fluid solvers.'''

    def initialize(self, particles: ParticleState) -> None:
        '''Load the initial particle state.'''
        ...

    def step(self) -> SimulationState:
        '''Advance one step and return the new state.'''
        ...

    @property
    def currentState(self) -> SimulationState:
        '''Current diagnostics snapshot.'''
        ...

    @property
    def particles(self) -> ParticleState:
        '''Committed particle state.'''
        ...

    @property
    def densities(self) -> np.ndarray:
        '''Densities of the committed state, in particle order.'''
        ...
