# -- Grid SPH Step Pipeline -- #

'''
Per-step pipeline of the grid SPH simulation.

One step is a fixed sequence of data-parallel stages separated by
full barriers (StageExecutor.run returns only after every chunk):

    1. buildGrid             packed (cell, index) entry per particle
    -. sortGrid              ascending sort of the entries
    2. clearGridIndices      reset the 65536 cell ranges
    3. buildGridIndices      cell range boundaries from the sorted keys
    4. rearrangeParticles    particle state gathered into cell order
    5. density               Poly6 density over the 3x3 cell block
    6. force                 pressure + viscosity acceleration
    7. integrate             walls, gravity, semi-implicit Euler

In 'simple' mode stages 1 to 4 are skipped and density / force scan
every particle pair of the unsorted state.

Stages 1 to 6 read the committed particle buffer and the integrator
writes the other half of the ping-pong pair. The step is committed
(buffers swapped, time advanced) only after every stage finished and
the new state is finite; a step that raises leaves the committed
state untouched and may simply be retried.

Particle identity is stable: the integrator scatters each rearranged
particle back to its original index, so particle i of the committed
state is always the same particle.
'''

from __future__ import annotations

from copy import deepcopy

import numpy as np

from computationalFluids.GridSph import constants as const
from computationalFluids.GridSph.errors import NumericalInstabilityError
from computationalFluids.GridSph.executor import StageExecutor
from computationalFluids.GridSph.grid.gridBuilder import (
    BruteForceNeighbors,
    GridNeighbors,
    NeighborSource,
    SpatialHashGrid,
    buildGridIndicesKernel,
    buildGridKernel,
    clearGridIndicesKernel,
    rearrangeParticlesKernel,
)
from computationalFluids.GridSph.grid.gridKeys import gridEntryValues
from computationalFluids.GridSph.grid.sorting import createSorter
from computationalFluids.GridSph.sph.buffers import (
    GRID_STAGE_ORDER,
    SIMPLE_STAGE_ORDER,
    PingPongBuffer,
    PipelineStage,
    StageBuffer,
    StageSequencer,
)
from computationalFluids.GridSph.sph.density import applyDensityPolicy, densityKernel
from computationalFluids.GridSph.sph.forces import forceKernel
from computationalFluids.GridSph.sph.particles import ParticleState
from computationalFluids.GridSph.sph.protocols import SimulationConfig, SimulationState
from computationalFluids.GridSph.sph.timeIntegration import SemiImplicitEuler, integrateKernel


class SphPipeline:
    '''
    Grid SPH solver running the staged pipeline.

    Parameters:
    -----------
    config : SimulationConfig
        Simulation constants; copied and validated on construction,
        later changes to the caller's object are not seen

    Raises:
    -------
    ConfigurationError : If the configuration cannot be simulated
    '''

    def __init__(self, config: SimulationConfig) -> None:
        config = deepcopy(config)
        config.validate()

        self._config = config
        self._coefficients = config.kernelCoefficients
        self._transform = config.gridTransform
        self._wallNormals, self._wallOffsets = config.wallArrays
        self._gravity = np.asarray(config.gravity, dtype=np.float64)
        self._gridMode = config.simulationMode == 'grid'

        self._executor = StageExecutor(config.workerCount, config.chunkSize)
        self._sorter = createSorter(config.sorterType)
        self._integrator = SemiImplicitEuler()
        self._sequencer = StageSequencer(GRID_STAGE_ORDER if self._gridMode else SIMPLE_STAGE_ORDER)

        self._particleBuffers: PingPongBuffer[ParticleState] | None = None
        self._time = 0.0
        self._densities = np.zeros(0)
        self._forces = np.zeros((0, 2))
        self._occupancy = np.zeros((const.gridCellsPerAxis, const.gridCellsPerAxis), dtype=np.int64)
        self._nClamped = 0
        self._pendingClamped = 0

    ######################################################################
    # -- Initialization -- #
    ######################################################################

    def initialize(self, particles: ParticleState) -> None:
        '''
        Load the initial particle state and allocate the stage buffers.

        The caller's arrays are copied; later steps never modify them.

        Parameters:
        -----------
        particles : ParticleState
            Initial positions and velocities

        Raises:
        -------
        ConfigurationError : If the particle buffers are malformed or
            exceed the packed grid capacity
        '''
        particles.validate()
        n = particles.nParticles

        front = ParticleState(
            positions=np.array(particles.positions, dtype=np.float64),
            velocities=np.array(particles.velocities, dtype=np.float64),
        )
        self._particleBuffers = PingPongBuffer(front, ParticleState.empty(n), 'particles')

        self._gridEntries = StageBuffer(np.zeros(n, dtype=np.uint32), 'gridEntries')
        self._sortedEntries = StageBuffer(np.zeros(n, dtype=np.uint32), 'sortedEntries')
        self._gridIndices = StageBuffer(np.zeros((const.gridCellCount, 2), dtype=np.uint32), 'gridIndices')
        self._sortedParticles = StageBuffer(ParticleState.empty(n), 'sortedParticles')
        self._densityBuffer = StageBuffer(np.zeros(n), 'densities')
        self._forceBuffer = StageBuffer(np.zeros((n, 2)), 'forces')

        self._sequencer = StageSequencer(GRID_STAGE_ORDER if self._gridMode else SIMPLE_STAGE_ORDER)
        self._time = 0.0
        self._forces = np.zeros((n, 2))
        self._nClamped = 0
        self._pendingClamped = 0
        self._densities, self._occupancy = self._previewDensities(front)

    def _previewDensities(self, particles: ParticleState) -> tuple[np.ndarray, np.ndarray]:
        '''Densities and cell occupancy of a state, outside the step sequence.'''
        n = particles.nParticles
        densities = np.zeros(n)
        occupancy = np.zeros((const.gridCellsPerAxis, const.gridCellsPerAxis), dtype=np.int64)

        if self._gridMode:
            grid = SpatialHashGrid(self._transform, self._executor, self._sorter)
            grid.build(particles.positions)
            sortedDensities = np.zeros(n)
            self._executor.run(
                lambda s, e: densityKernel(
                    s, e, grid.sortedPositions, grid.neighbors, self._coefficients,
                    self._config.particleMass, sortedDensities,
                ),
                n,
            )
            densities[grid.order] = sortedDensities
            occupancy = grid.cellOccupancy()
        else:
            self._executor.run(
                lambda s, e: densityKernel(
                    s, e, particles.positions, BruteForceNeighbors(n), self._coefficients,
                    self._config.particleMass, densities,
                ),
                n,
            )
        return densities, occupancy

    ######################################################################
    # -- Main Time Step -- #
    ######################################################################

    def step(self) -> SimulationState:
        '''
        Advance one time step.

        Returns:
        --------
        SimulationState : Diagnostics after the committed step

        Raises:
        -------
        NumericalInstabilityError : If densities or the new state are
            not usable; the step is not committed
        PipelineOrderingError : If a stage observed stale input
        '''
        if self._particleBuffers is None:
            raise RuntimeError('SphPipeline.step() called before initialize()')

        try:
            if self._gridMode:
                state, neighbors, order = self._runGridStages()
            else:
                state = self._particleBuffers.read.data
                neighbors = BruteForceNeighbors(state.nParticles)
                order = np.arange(state.nParticles)
            self._runPhysicsStages(state, neighbors, order)
        except Exception:
            self._abandonStep()
            raise

        self._commit(order)
        return self.currentState

    def run(self, nSteps: int) -> SimulationState:
        '''Advance several steps and return the final state.'''
        for _ in range(nSteps):
            self.step()
        return self.currentState

    #--------------------------------------------------------------------#
    # -- Stage Helpers -- #
    #--------------------------------------------------------------------#

    def _runStage(self, stage: PipelineStage, kernel, nItems: int, outputs: list[StageBuffer]) -> None:
        '''Run one stage to its barrier and stamp its output buffers.'''
        step = self._sequencer.step
        self._sequencer.begin(stage)
        self._executor.run(kernel, nItems)
        for buffer in outputs:
            buffer.markWritten(step, stage)
        self._sequencer.complete(stage)

    def _runGridStages(self) -> tuple[ParticleState, NeighborSource, np.ndarray]:
        '''Stages 1 to 4: build, sort and index the grid, rearrange particles.'''
        step = self._sequencer.step
        front = self._particleBuffers.read.data
        n = front.nParticles
        entries = self._gridEntries.data

        # 1. Packed grid entries
        self._runStage(
            PipelineStage.BUILD_GRID,
            lambda s, e: buildGridKernel(s, e, front.positions, self._transform, entries),
            n,
            [self._gridEntries],
        )

        # External sort, a barrier of its own
        unsorted = self._gridEntries.requireWrittenBy(step, PipelineStage.BUILD_GRID)
        self._sequencer.begin(PipelineStage.SORT_GRID)
        self._sortedEntries.data[:] = self._sorter.sort(unsorted)
        self._sortedEntries.markWritten(step, PipelineStage.SORT_GRID)
        self._sequencer.complete(PipelineStage.SORT_GRID)

        # 2. Clear cell ranges
        indices = self._gridIndices.data
        self._runStage(
            PipelineStage.CLEAR_GRID_INDICES,
            lambda s, e: clearGridIndicesKernel(s, e, indices),
            const.gridCellCount,
            [self._gridIndices],
        )

        # 3. Cell range boundaries
        sortedEntries = self._sortedEntries.requireWrittenBy(step, PipelineStage.SORT_GRID)
        self._gridIndices.requireWrittenBy(step, PipelineStage.CLEAR_GRID_INDICES)
        self._runStage(
            PipelineStage.BUILD_GRID_INDICES,
            lambda s, e: buildGridIndicesKernel(s, e, sortedEntries, indices),
            n,
            [self._gridIndices],
        )

        # 4. Rearrange into cell order
        sortedState = self._sortedParticles.data
        self._runStage(
            PipelineStage.REARRANGE_PARTICLES,
            lambda s, e: rearrangeParticlesKernel(
                s, e, sortedEntries, front.positions, front.velocities,
                sortedState.positions, sortedState.velocities,
            ),
            n,
            [self._sortedParticles],
        )

        gridIndices = self._gridIndices.requireWrittenBy(step, PipelineStage.BUILD_GRID_INDICES)
        state = self._sortedParticles.requireWrittenBy(step, PipelineStage.REARRANGE_PARTICLES)
        return state, GridNeighbors(sortedEntries, gridIndices), gridEntryValues(sortedEntries)

    def _runPhysicsStages(self, state: ParticleState, neighbors: NeighborSource, order: np.ndarray) -> None:
        '''Stages 5 to 7: density, force and integration.'''
        cfg = self._config
        step = self._sequencer.step
        n = state.nParticles

        # 5. Density
        densityOut = self._densityBuffer.data
        self._sequencer.begin(PipelineStage.DENSITY)
        self._executor.run(
            lambda s, e: densityKernel(
                s, e, state.positions, neighbors, self._coefficients, cfg.particleMass, densityOut,
            ),
            n,
        )
        self._pendingClamped = applyDensityPolicy(densityOut, cfg.instabilityPolicy, cfg.densityFloor)
        self._densityBuffer.markWritten(step, PipelineStage.DENSITY)
        self._sequencer.complete(PipelineStage.DENSITY)

        # 6. Pressure and viscosity
        densities = self._densityBuffer.requireWrittenBy(step, PipelineStage.DENSITY)
        forceOut = self._forceBuffer.data
        self._runStage(
            PipelineStage.FORCE,
            lambda s, e: forceKernel(
                s, e, state.positions, state.velocities, densities, neighbors, self._coefficients,
                cfg.particleMass, cfg.viscosity, cfg.restDensity, cfg.pressureCoefficient, forceOut,
            ),
            n,
            [self._forceBuffer],
        )

        # 7. Walls, gravity, semi-implicit Euler into the back buffer
        forces = self._forceBuffer.requireWrittenBy(step, PipelineStage.FORCE)
        target = self._particleBuffers.write
        self._runStage(
            PipelineStage.INTEGRATE,
            lambda s, e: integrateKernel(
                s, e, state.positions, state.velocities, forces, order,
                self._wallNormals, self._wallOffsets, cfg.wallStiffness, self._gravity, cfg.timeStep,
                target.data.positions, target.data.velocities, self._integrator,
            ),
            n,
            [target],
        )

        nextState = target.requireWrittenBy(step, PipelineStage.INTEGRATE)
        if not (np.all(np.isfinite(nextState.positions)) and np.all(np.isfinite(nextState.velocities))):
            raise NumericalInstabilityError(f'Particle state became non-finite in step {step}')

    def _commit(self, order: np.ndarray) -> None:
        '''Swap the particle buffers and publish the step's scratch values.'''
        n = order.shape[0]
        self._sequencer.commit()
        self._particleBuffers.swap()
        self._time += self._config.timeStep
        self._nClamped = self._pendingClamped

        densities = np.empty(n)
        densities[order] = self._densityBuffer.data
        forces = np.empty((n, 2))
        forces[order] = self._forceBuffer.data
        self._densities = densities
        self._forces = forces

        if self._gridMode:
            counts = self._gridIndices.data[:, 1].astype(np.int64) - self._gridIndices.data[:, 0].astype(np.int64)
            self._occupancy = counts.reshape(const.gridCellsPerAxis, const.gridCellsPerAxis)

    def _abandonStep(self) -> None:
        '''Forget every partial write of a failed step.'''
        self._sequencer.abandon()
        self._pendingClamped = 0
        for buffer in (
            self._gridEntries, self._sortedEntries, self._gridIndices,
            self._sortedParticles, self._densityBuffer, self._forceBuffer,
            self._particleBuffers.write,
        ):
            buffer.invalidate()

    ######################################################################
    # -- Properties -- #
    ######################################################################

    @property
    def currentState(self) -> SimulationState:
        '''Diagnostics of the committed state.'''
        particles = self.particles
        densities = self._densities
        rho0 = self._config.restDensity

        hasDensity = densities.shape[0] > 0
        return SimulationState(
            time=self._time,
            step=self._sequencer.step,
            dt=self._config.timeStep,
            kineticEnergy=particles.kineticEnergy(self._config.particleMass),
            maxVelocity=particles.maxSpeed(),
            minDensity=float(np.min(densities)) if hasDensity else 0.0,
            maxDensity=float(np.max(densities)) if hasDensity else 0.0,
            maxDensityError=float(np.max(np.abs(densities - rho0)) / rho0) if hasDensity else 0.0,
            occupiedCells=int(np.count_nonzero(self._occupancy)),
            maxCellOccupancy=int(np.max(self._occupancy)),
            nClampedDensities=self._nClamped,
        )

    @property
    def config(self) -> SimulationConfig:
        '''Copy of the simulation constants in use.'''
        return deepcopy(self._config)

    @property
    def particles(self) -> ParticleState:
        '''Committed particle state (read-only view of the front buffer).'''
        if self._particleBuffers is None:
            raise RuntimeError('SphPipeline has not been initialized')
        return self._particleBuffers.read.data

    @property
    def densities(self) -> np.ndarray:
        '''Densities of the last committed step, in particle order.'''
        return self._densities

    @property
    def forces(self) -> np.ndarray:
        '''Pressure and viscosity accelerations of the last committed step.'''
        return self._forces

    @property
    def gridOccupancy(self) -> np.ndarray:
        '''Particles per cell, (256, 256) indexed [cellY, cellX].'''
        return self._occupancy

    @property
    def time(self) -> float:
        '''Current simulation time [s].'''
        return self._time

    @property
    def stepCount(self) -> int:
        '''Number of committed steps.'''
        return self._sequencer.step

    #--------------------------------------------------------------------#
    # -- Resource Management -- #
    #--------------------------------------------------------------------#

    def close(self) -> None:
        '''Stop the stage worker threads.'''
        self._executor.shutdown()

    def __enter__(self) -> SphPipeline:
        return self

    def __exit__(self, *excInfo) -> None:
        self.close()
