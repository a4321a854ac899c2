# -- SPH Smoothing Kernel Coefficients -- #

'''
Precomputed coefficients of the Poly6 / Spiky / Viscosity kernel family.

Each kernel is used only through a closed-form piece that needs the
pair distance alone:

    Poly6 (density):
        W(r, h) = poly6 * (h^2 - r^2)^3

    Spiky gradient (pressure):
        |grad W(r, h)| = spikyGradient * (h - r)^2      (spikyGradient < 0)

    Viscosity laplacian:
        lap W(r, h) = viscosityLaplacian * (h - r)

All three vanish for r >= h. Particle mass and viscosity are applied
by the evaluators, not folded into the coefficients.

Two normalizations are available:
    'muller' -- the 3D normalization of Muller et al. (2003), which the
                reference 2D parameter set in constants.py is tuned for
    'planar' -- the same kernel shapes normalized over the plane

References:
-----------
Muller et al. (2003) -- Particle-based fluid simulation for
    interactive applications
Kelager (2006) -- Lagrangian fluid dynamics using SPH
'''

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from computationalFluids.GridSph.errors import ConfigurationError


######################################################################
# -- Kernel Coefficients -- #
######################################################################

@dataclass(frozen=True)
class KernelCoefficients:
    '''
    Kernel coefficients for one smoothing length.

    Parameters:
    -----------
    radius : float
        Effective radius h [m]
    poly6 : float
        Poly6 density coefficient
    spikyGradient : float
        Spiky kernel gradient coefficient (negative)
    viscosityLaplacian : float
        Viscosity kernel laplacian coefficient
    '''

    radius: float
    poly6: float
    spikyGradient: float
    viscosityLaplacian: float

    @property
    def radiusSq(self) -> float:
        '''Squared effective radius h^2.'''
        return self.radius * self.radius

    def poly6Weight(self, rSq: np.ndarray) -> np.ndarray:
        '''
        Poly6 kernel value from squared distances.

        Parameters:
        -----------
        rSq : np.ndarray
            Squared pair distances [m^2]

        Returns:
        --------
        np.ndarray : poly6 * (h^2 - r^2)^3, zero where r^2 >= h^2
        '''
        rSq = np.asarray(rSq, dtype=np.float64)
        diff = self.radiusSq - rSq
        return np.where(rSq < self.radiusSq, self.poly6 * diff * diff * diff, 0.0)

    def spikyGradientWeight(self, r: np.ndarray) -> np.ndarray:
        '''Scalar spiky gradient spikyGradient * (h - r)^2, zero beyond h.'''
        r = np.asarray(r, dtype=np.float64)
        diff = self.radius - r
        return np.where(r < self.radius, self.spikyGradient * diff * diff, 0.0)

    def viscosityLaplacianWeight(self, r: np.ndarray) -> np.ndarray:
        '''Viscosity laplacian viscosityLaplacian * (h - r), zero beyond h.'''
        r = np.asarray(r, dtype=np.float64)
        return np.where(r < self.radius, self.viscosityLaplacian * (self.radius - r), 0.0)

    def selfDensity(self, particleMass: float) -> float:
        '''
        Density contributed by a particle to itself.

        mass * poly6 * h^6, the lower bound of every summed density.
        '''
        return particleMass * self.poly6 * self.radiusSq ** 3


######################################################################
# -- Coefficient Factory -- #
######################################################################

def createKernelCoefficients(radius: float, kernelForm: str = 'muller') -> KernelCoefficients:
    '''
    Compute kernel coefficients for an effective radius.

    Parameters:
    -----------
    radius : float
        Effective radius h [m]
    kernelForm : str
        'muller' or 'planar'

    Returns:
    --------
    KernelCoefficients : Coefficients for the three kernels

    Raises:
    -------
    ConfigurationError : If the radius is not positive or the form is unknown
    '''
    if not radius > 0.0:
        raise ConfigurationError(f'Effective radius must be positive, got {radius}')

    h = radius
    if kernelForm == 'muller':
        return KernelCoefficients(
            radius=h,
            poly6=315.0 / (64.0 * math.pi * h ** 9),
            spikyGradient=-45.0 / (math.pi * h ** 6),
            viscosityLaplacian=45.0 / (math.pi * h ** 6),
        )
    elif kernelForm == 'planar':
        return KernelCoefficients(
            radius=h,
            poly6=4.0 / (math.pi * h ** 8),
            spikyGradient=-30.0 / (math.pi * h ** 5),
            viscosityLaplacian=40.0 / (math.pi * h ** 5),
        )
    else:
        raise ConfigurationError(f'Unknown kernel form: {kernelForm}')
