# -- Grid SPH Engine Package -- #

'''
SPH physics of the grid pipeline.

Kernel coefficients, particle state, stage buffers, the density,
force and integration stages, and the SphPipeline that runs them
over the spatial hash grid.
'''

from computationalFluids.GridSph.sph.protocols import SimulationConfig, SimulationState, WallPlane
from computationalFluids.GridSph.sph.kernels import KernelCoefficients, createKernelCoefficients
from computationalFluids.GridSph.sph.particles import ParticleState
from computationalFluids.GridSph.sph.pipeline import SphPipeline
