# -- Grid SPH Simulation Runner -- #

'''
Command-line entry point for running grid SPH simulations.

Builds the dam break scenario, runs the staged pipeline, displays
progress, and optionally exports frame data for the plotly
diagnostics.

Usage:
    python -m computationalFluids.GridSph                       # Small dam break
    python -m computationalFluids.GridSph --preset standard     # Reference 16K particles
    python -m computationalFluids.GridSph --preset standard --particles 64K
    python -m computationalFluids.GridSph --mode simple         # O(N^2) neighbor scan
    python -m computationalFluids.GridSph --config configs/damBreak.json
    python -m computationalFluids.GridSph --no-export           # Skip frame export
'''

from __future__ import annotations

import argparse
import json
import math
import time as timeModule

from tqdm import tqdm

from computationalFluids.GridSph import constants as const
from computationalFluids.GridSph.errors import NumericalInstabilityError
from computationalFluids.GridSph.export.frameExporter import FrameExporter
from computationalFluids.GridSph.scenarios.damBreak import DamBreakConfig, createDamBreak
from computationalFluids.GridSph.sph.pipeline import SphPipeline
from computationalFluids.GridSph.sph.protocols import FluidSolver, SimulationConfig, SimulationState


DEFAULT_OUTPUT_DIR = 'computationalFluids/GridSph/output'

# Block sizes selectable with --particles
PARTICLE_COUNTS = {
    '8K': const.particleCount8K,
    '16K': const.particleCount16K,
    '32K': const.particleCount32K,
    '64K': const.particleCount64K,
}


#--------------------------------------------------------------------#
# -- CLI Argument Parser -- #
#--------------------------------------------------------------------#

def buildParser() -> argparse.ArgumentParser:
    '''Build the CLI argument parser.'''
    parser = argparse.ArgumentParser(
        description='GridSph -- 2D particle fluid on a spatial hash grid',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        '--config', type=str, default=None,
        help='Path to JSON configuration file',
    )
    parser.add_argument(
        '--preset', type=str, default='small',
        choices=['small', 'standard'],
        help='Dam break preset (default: small)',
    )
    parser.add_argument(
        '--mode', type=str, default=None,
        choices=['grid', 'simple'],
        help='Neighbor search mode (default: grid)',
    )
    parser.add_argument(
        '--sorter', type=str, default=None,
        choices=['numpy', 'bitonic'],
        help='Grid entry sorter (default: numpy)',
    )
    parser.add_argument(
        '--particles', type=str, default=None,
        choices=list(PARTICLE_COUNTS),
        help='Particle block size, overriding the preset (use with --preset standard)',
    )
    parser.add_argument(
        '--workers', type=int, default=None,
        help='Worker threads per stage (default: 4)',
    )
    parser.add_argument(
        '--steps', type=int, default=None,
        help='Run a fixed number of steps instead of until endTime',
    )
    parser.add_argument(
        '--progress-bar', action='store_true',
        help='Show a tqdm progress bar instead of the progress table',
    )
    parser.add_argument(
        '--no-export', action='store_true',
        help='Skip frame data export',
    )
    parser.add_argument(
        '--output-dir', type=str, default=DEFAULT_OUTPUT_DIR,
        help='Output directory for exported frames (default: GridSph/output)',
    )

    return parser


#--------------------------------------------------------------------#
# -- Configuration Loading -- #
#--------------------------------------------------------------------#

def loadDamBreakConfig(configPath: str) -> tuple[DamBreakConfig, SimulationConfig]:
    '''Scenario layout and fluid constants from one JSON file.'''
    with open(configPath, 'r') as f:
        data = json.load(f)
    return (DamBreakConfig.fromDict(data), SimulationConfig.fromDict(data))


#--------------------------------------------------------------------#
# -- Runner Class -- #
#--------------------------------------------------------------------#

class GridSphRunner:
    '''
    Runs a grid SPH simulation and stores results.

    Handles the full pipeline: scenario setup, simulation loop
    with progress reporting, and optional frame export.
    '''

    def __init__(self) -> None:
        self._exporter: FrameExporter = FrameExporter()

    @property
    def exporter(self) -> FrameExporter:
        '''Frames collected by the last run.'''
        return self._exporter

    def _recordFrame(self, solver: FluidSolver, state: SimulationState) -> None:
        '''Add the solver's committed state to the exporter.'''
        self._exporter.addFrame(state, solver.particles, solver.densities)

    def runFromConfig(
        self,
        configPath: str,
        doExport: bool = True,
        exportDir: str = DEFAULT_OUTPUT_DIR,
        **runOptions,
    ) -> dict:
        '''
        Run a dam break from a JSON configuration file.

        The same file supplies the fluid constants (SimulationConfig
        sections) and the scenario layout (DamBreakConfig sections).

        Parameters:
        -----------
        configPath : str
            Path to the JSON configuration file
        doExport : bool
            Whether to export frame data
        exportDir : str
            Output directory for frame export

        Returns:
        --------
        dict : Simulation results summary
        '''
        damConfig, baseConfig = loadDamBreakConfig(configPath)
        return self.runDamBreak(
            damConfig,
            baseConfig=baseConfig,
            doExport=doExport,
            exportDir=exportDir,
            **runOptions,
        )

    def runDamBreak(
        self,
        damConfig: DamBreakConfig,
        baseConfig: SimulationConfig | None = None,
        doExport: bool = True,
        exportDir: str = DEFAULT_OUTPUT_DIR,
        maxSteps: int | None = None,
        progressBar: bool = False,
        sorterType: str | None = None,
    ) -> dict:
        '''
        Run a dam break simulation.

        Parameters:
        -----------
        damConfig : DamBreakConfig
            Dam break configuration
        baseConfig : SimulationConfig | None
            Fluid constants (defaults to the reference set)
        doExport : bool
            Whether to export frame data
        exportDir : str
            Output directory for frame export
        maxSteps : int | None
            Fixed step count; None runs until damConfig.endTime
        progressBar : bool
            Show a tqdm bar; table rows are then written through it
        sorterType : str | None
            Override of the grid entry sorter

        Returns:
        --------
        dict : Simulation results summary
        '''
        self._exporter = FrameExporter()

        print()
        print('=' * 62)
        print('  GRIDSPH -- DAM BREAK SIMULATION')
        print('=' * 62)
        print()

        #--------------------------------------------------------------------#
        # Scenario Setup
        #--------------------------------------------------------------------#
        print('-' * 62)
        print('  SCENARIO SETUP')
        print('-' * 62)

        simConfig, particles = createDamBreak(damConfig, baseConfig)
        if sorterType is not None:
            simConfig = simConfig.withOverrides(sorterType=sorterType)

        nSteps = maxSteps if maxSteps is not None else int(math.ceil(simConfig.endTime / simConfig.timeStep))

        print(f'  Map Size:          {damConfig.mapWidth:8.3f} x {damConfig.mapHeight:.3f} m')
        print(f'  Particles:         {particles.nParticles:8d}')
        print(f'  Particle Gap:      {simConfig.particleGap:8.4f} m')
        print(f'  Effective Radius:  {simConfig.effectiveRadius:8.4f} m')
        print(f'  Rest Density:      {simConfig.restDensity:8.1f} kg/m^3')
        print(f'  Time Step:         {simConfig.timeStep:8.4f} s')
        print(f'  Steps:             {nSteps:8d}')
        print(f'  Mode:              {simConfig.simulationMode:>8s}')
        print()

        #--------------------------------------------------------------------#
        # Initialize Pipeline
        #--------------------------------------------------------------------#
        print('-' * 62)
        print('  INITIALIZING PIPELINE')
        print('-' * 62)

        with SphPipeline(simConfig) as pipeline:
            pipeline.initialize(particles)
            initialState = pipeline.currentState

            print(f'  Workers:           {simConfig.workerCount:8d}')
            print(f'  Chunk Size:        {simConfig.chunkSize:8d}')
            print(f'  Sorter:            {simConfig.sorterType:>8s}')
            print(f'  Self Density:      {simConfig.selfDensity:8.2f} kg/m^3')
            print(f'  Initial Density:   {initialState.minDensity:8.1f} .. {initialState.maxDensity:.1f} kg/m^3')
            if simConfig.simulationMode == 'grid':
                print(f'  Occupied Cells:    {initialState.occupiedCells:8d}')
                print(f'  Max Per Cell:      {initialState.maxCellOccupancy:8d}')
            print()

            # Record initial frame
            self._recordFrame(pipeline, initialState)

            #--------------------------------------------------------------------#
            # Simulation Loop
            #--------------------------------------------------------------------#
            print('-' * 62)
            print('  RUNNING SIMULATION')
            print('-' * 62)
            print()
            print(f'  {"Time":>8}  {"Step":>8}  {"MaxVel":>8}  {"DensErr":>8}  {"Clamped":>8}  {"Energy":>10}')
            print(f'  {"(s)":>8}  {"":>8}  {"(m/s)":>8}  {"(%)":>8}  {"":>8}  {"(J)":>10}')
            print('  ' + '-' * 58)

            steps = range(nSteps)
            emit = print
            if progressBar:
                steps = tqdm(steps, desc='steps', leave=False)
                emit = tqdm.write

            wallClockStart = timeModule.time()
            nextOutputTime = simConfig.outputInterval
            printEvery = max(1, nSteps // 20)
            abortReason = None

            for _ in steps:
                try:
                    state = pipeline.step()
                except NumericalInstabilityError as error:
                    abortReason = str(error)
                    break

                # Export frame at output intervals
                if pipeline.time >= nextOutputTime:
                    self._recordFrame(pipeline, state)
                    nextOutputTime += simConfig.outputInterval

                # Print progress at regular intervals
                if state.step % printEvery == 0:
                    emit(
                        f'  {state.time:8.4f}  {state.step:8d}  {state.maxVelocity:8.4f}  '
                        f'{state.maxDensityError * 100:8.3f}  {state.nClampedDensities:8d}  '
                        f'{state.kineticEnergy:10.4e}'
                    )

            wallClockSeconds = timeModule.time() - wallClockStart

            # Final frame
            finalState = pipeline.currentState
            self._recordFrame(pipeline, finalState)

        print()
        if abortReason is not None:
            print(f'  Simulation aborted: {abortReason}')
        else:
            print('  Simulation complete.')
        print(f'  Total steps:       {finalState.step:8d}')
        print(f'  Wall-clock time:   {wallClockSeconds:8.1f} s')
        if finalState.step > 0:
            print(f'  Time per step:     {1000.0 * wallClockSeconds / finalState.step:8.2f} ms')
        print(f'  Frames collected:  {self._exporter.nFrames:8d}')
        print()

        #--------------------------------------------------------------------#
        # Export
        #--------------------------------------------------------------------#
        exportPath = None
        if doExport:
            print('-' * 62)
            print('  EXPORTING FRAME DATA')
            print('-' * 62)

            exportPath = self._exporter.export(
                config=simConfig,
                outputDir=exportDir,
                scenarioName='damBreak',
            )
            print(f'  Exported to: {exportPath}')
            print()

        #--------------------------------------------------------------------#
        # Summary
        #--------------------------------------------------------------------#
        print('=' * 62)
        print('  SIMULATION SUMMARY')
        print('=' * 62)
        print(f'  Final KE:          {finalState.kineticEnergy:10.6f} J')
        print(f'  Density Range:     {finalState.minDensity:8.1f} .. {finalState.maxDensity:.1f} kg/m^3')
        print(f'  Max Density Error: {finalState.maxDensityError * 100:8.3f} %')
        print(f'  Max Velocity:      {finalState.maxVelocity:8.4f} m/s')
        if simConfig.simulationMode == 'grid':
            print(f'  Max Per Cell:      {finalState.maxCellOccupancy:8d}')
        print('=' * 62)
        print()

        return {
            'finalState': finalState,
            'wallClockSeconds': wallClockSeconds,
            'nFrames': self._exporter.nFrames,
            'exportPath': exportPath,
            'aborted': abortReason is not None,
        }


#--------------------------------------------------------------------#
# -- CLI Entry Point -- #
#--------------------------------------------------------------------#

def main(argv: list[str] | None = None) -> None:
    '''CLI entry point.'''
    parser = buildParser()
    args = parser.parse_args(argv)

    runner = GridSphRunner()
    runOptions = {
        'doExport': not args.no_export,
        'exportDir': args.output_dir,
        'maxSteps': args.steps,
        'progressBar': args.progress_bar,
        'sorterType': args.sorter,
    }

    if args.config:
        damConfig, baseConfig = loadDamBreakConfig(args.config)
    else:
        presets = {
            'small': DamBreakConfig.small2D,
            'standard': DamBreakConfig.standard2D,
        }
        damConfig = presets[args.preset]()
        baseConfig = None

    if args.mode is not None:
        damConfig.simulationMode = args.mode
    if args.workers is not None:
        damConfig.workerCount = args.workers
    if args.particles is not None:
        damConfig.nParticles = PARTICLE_COUNTS[args.particles]

    runner.runDamBreak(damConfig, baseConfig=baseConfig, **runOptions)


if __name__ == '__main__':
    main()
