# -- SPH Particle State -- #

'''
Dataclass holding the per-particle state advanced by the pipeline.

A particle is a position and a velocity; its identity is its index
in these arrays, and the count is fixed for the lifetime of a
simulation. Density and acceleration are step-local scratch values
and live in the pipeline, not here.
'''

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from computationalFluids.GridSph import constants as const
from computationalFluids.GridSph.errors import ConfigurationError


@dataclass
class ParticleState:
    '''
    Positions and velocities of all particles.

    Parameters:
    -----------
    positions : np.ndarray
        Particle positions [m], shape (N, 2)
    velocities : np.ndarray
        Particle velocities [m/s], shape (N, 2)
    '''

    positions: np.ndarray
    velocities: np.ndarray

    @property
    def nParticles(self) -> int:
        '''Number of particles.'''
        return self.positions.shape[0]

    def validate(self) -> None:
        '''
        Check shapes, finiteness and the packed-index capacity.

        Raises:
        -------
        ConfigurationError : If the buffers cannot be simulated
        '''
        if self.positions.ndim != 2 or self.positions.shape[1] != 2:
            raise ConfigurationError(f'Positions must have shape (N, 2), got {self.positions.shape}')
        if self.velocities.shape != self.positions.shape:
            raise ConfigurationError(
                f'Velocities shape {self.velocities.shape} does not match positions {self.positions.shape}'
            )
        if not 1 <= self.nParticles <= const.maxParticles:
            raise ConfigurationError(
                f'Particle count {self.nParticles} outside [1, {const.maxParticles}]'
            )
        if not (np.all(np.isfinite(self.positions)) and np.all(np.isfinite(self.velocities))):
            raise ConfigurationError('Initial particle state contains non-finite values')

    def copy(self) -> ParticleState:
        '''Deep copy of the state.'''
        return ParticleState(
            positions=self.positions.copy(),
            velocities=self.velocities.copy(),
        )

    def kineticEnergy(self, particleMass: float) -> float:
        '''
        Total kinetic energy.

        KE = (1/2) * m * sum_i |v_i|^2
        '''
        speedsSq = np.sum(self.velocities * self.velocities, axis=1)
        return float(0.5 * particleMass * np.sum(speedsSq))

    def maxSpeed(self) -> float:
        '''Maximum velocity magnitude [m/s].'''
        if self.nParticles == 0:
            return 0.0
        return float(np.max(np.linalg.norm(self.velocities, axis=1)))

    @classmethod
    def empty(cls, nParticles: int) -> ParticleState:
        '''Zero-filled state for n particles.'''
        return cls(
            positions=np.zeros((nParticles, 2)),
            velocities=np.zeros((nParticles, 2)),
        )

    @classmethod
    def createBlock(
        cls,
        nParticles: int,
        spacing: float = const.initialParticleSpacing,
        origin: np.ndarray | tuple = (0.0, 0.0),
    ) -> ParticleState:
        '''
        Particles at rest on a square lattice, filled row by row.

        Particle i sits at origin + spacing * (i % width, i // width)
        with width = floor(sqrt(nParticles)).

        Parameters:
        -----------
        nParticles : int
            Number of particles
        spacing : float
            Lattice spacing [m]
        origin : np.ndarray | tuple
            Position of particle 0 [m]

        Returns:
        --------
        ParticleState : Block of particles with zero velocity
        '''
        width = max(1, int(math.sqrt(nParticles)))
        ids = np.arange(nParticles)
        positions = np.column_stack([
            origin[0] + spacing * (ids % width),
            origin[1] + spacing * (ids // width),
        ]).astype(np.float64)

        return cls(
            positions=positions,
            velocities=np.zeros((nParticles, 2)),
        )
