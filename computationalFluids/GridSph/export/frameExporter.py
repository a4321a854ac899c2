# -- Simulation Frame Exporter -- #

'''
Exports grid SPH frames as compact JSON for visualization.

Collects particle snapshots at step boundaries and writes them,
with the simulation constants and an energy / density history, to a
single JSON file that the plotly diagnostics (or any external
viewer) can load.
'''

from __future__ import annotations

import json
import os
from datetime import datetime

import numpy as np

from computationalFluids.GridSph.sph.particles import ParticleState
from computationalFluids.GridSph.sph.protocols import SimulationConfig, SimulationState


class FrameExporter:
    '''
    Collects and exports simulation frame data as JSON.

    Usage:
        exporter = FrameExporter()
        # During simulation loop:
        exporter.addFrame(state, pipeline.particles, pipeline.densities)
        # After simulation:
        exporter.export(config, outputDir='output')

    Output JSON format:
    {
        "meta": { "type": "gridSph", "nFrames": 41, "nParticles": 16384, ... },
        "config": { "restDensity": 1000.0, "walls": [...], ... },
        "frames": [
            {
                "time": 0.0,
                "step": 0,
                "positions": [[x0, y0], [x1, y1], ...],
                "velocityMagnitudes": [v0, v1, ...],
                "densities": [rho0, rho1, ...]
            },
            ...
        ],
        "history": {
            "times": [...],
            "kinetic": [...],
            "maxDensityError": [...],
            "maxVelocity": [...]
        }
    }
    '''

    def __init__(self) -> None:
        self._frames: list[dict] = []
        self._history: dict[str, list[float]] = {
            'times': [],
            'kinetic': [],
            'maxDensityError': [],
            'maxVelocity': [],
        }

    @property
    def nFrames(self) -> int:
        '''Number of collected frames.'''
        return len(self._frames)

    @property
    def frames(self) -> list[dict]:
        '''Collected frames.'''
        return self._frames

    @property
    def history(self) -> dict[str, list[float]]:
        '''Per-frame energy and density diagnostics.'''
        return self._history

    def addFrame(
        self,
        state: SimulationState,
        particles: ParticleState,
        densities: np.ndarray | None = None,
    ) -> None:
        '''
        Record a simulation frame.

        Parameters:
        -----------
        state : SimulationState
            Diagnostics of the committed step
        particles : ParticleState
            Committed particle state
        densities : np.ndarray | None
            Per-particle densities in particle order (omitted if None)
        '''
        velMagnitudes = np.linalg.norm(particles.velocities, axis=1)

        frame = {
            'time': round(state.time, 6),
            'step': state.step,
            'positions': np.round(particles.positions, 6).tolist(),
            'velocityMagnitudes': np.round(velMagnitudes, 6).tolist(),
        }
        if densities is not None and len(densities) == particles.nParticles:
            frame['densities'] = np.round(densities, 2).tolist()
        self._frames.append(frame)

        self._history['times'].append(round(state.time, 6))
        self._history['kinetic'].append(state.kineticEnergy)
        self._history['maxDensityError'].append(round(state.maxDensityError, 6))
        self._history['maxVelocity'].append(round(state.maxVelocity, 6))

    def export(
        self,
        config: SimulationConfig,
        outputDir: str = 'output',
        scenarioName: str = 'damBreak',
    ) -> str:
        '''
        Write all collected frames to a JSON file.

        Parameters:
        -----------
        config : SimulationConfig
            Simulation configuration for metadata
        outputDir : str
            Output directory path
        scenarioName : str
            Scenario name for the filename

        Returns:
        --------
        str : Path to the exported JSON file
        '''
        os.makedirs(outputDir, exist_ok=True)

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        filename = f'gridSph_{scenarioName}_{timestamp}.json'
        filepath = os.path.join(outputDir, filename)

        output = {
            'meta': {
                'type': 'gridSph',
                'dimensions': 2,
                'nFrames': len(self._frames),
                'nParticles': len(self._frames[0]['positions']) if self._frames else 0,
                'simulationMode': config.simulationMode,
                'created': datetime.now().isoformat(),
            },
            'config': config.toDict(),
            'frames': self._frames,
            'history': self._history,
        }

        with open(filepath, 'w') as f:
            json.dump(output, f, indent=None, separators=(',', ':'))

        return filepath

    @staticmethod
    def load(filepath: str) -> dict:
        '''Read an exported JSON file back into a dictionary.'''
        with open(filepath, 'r') as f:
            return json.load(f)
