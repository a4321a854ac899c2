# -- Packed Grid Keys -- #

'''
Cell transform and packed (cell, particle) key codec.

Positions map to a bounded 256 x 256 cell grid through an affine
transform (scale + offset) and a clamp to [0, 255] per axis. Each
particle's cell and index are packed into one unsigned 32-bit
integer:

    packed = (cellY << 24) | (cellX << 16) | particleIndex

so that sorting the packed values numerically sorts by cell key
(cellY * 256 + cellX) with the particle index as tiebreak. The
packing has no room for wider coordinates or indices above 65535;
anything that would overflow is rejected as a ConfigurationError.

References:
-----------
Green (2010) -- Particle Simulation using CUDA
'''

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from computationalFluids.GridSph import constants as const
from computationalFluids.GridSph.errors import ConfigurationError


#--------------------------------------------------------------------#
# -- Grid Transform -- #
#--------------------------------------------------------------------#

@dataclass(frozen=True)
class GridTransform:
    '''
    Affine map from world positions to cell coordinates.

    cell = clamp(position * scale + offset, 0, 255)

    Parameters:
    -----------
    scale : float
        Cells per unit length (1 / cellSize)
    offsetX : float
        Cell-space offset along x
    offsetY : float
        Cell-space offset along y
    '''

    scale: float
    offsetX: float = 0.0
    offsetY: float = 0.0

    @classmethod
    def fromCellSize(cls, cellSize: float, origin: np.ndarray | tuple = (0.0, 0.0)) -> GridTransform:
        '''
        Build the transform placing cell (0, 0) at the given world origin.

        Parameters:
        -----------
        cellSize : float
            Cell edge length [m]
        origin : np.ndarray | tuple
            World position of the lower corner of cell (0, 0) [m]

        Returns:
        --------
        GridTransform : Transform with scale = 1 / cellSize
        '''
        if not cellSize > 0.0:
            raise ConfigurationError(f'Grid cell size must be positive, got {cellSize}')
        scale = 1.0 / cellSize
        return cls(
            scale=scale,
            offsetX=-float(origin[0]) * scale,
            offsetY=-float(origin[1]) * scale,
        )

    @property
    def cellSize(self) -> float:
        '''Cell edge length in world units [m].'''
        return 1.0 / self.scale

    def cellCoordinates(self, positions: np.ndarray) -> np.ndarray:
        '''
        Continuous cell coordinates, clamped to [0, 255].

        Parameters:
        -----------
        positions : np.ndarray
            World positions, shape (N, 2)

        Returns:
        --------
        np.ndarray : Float cell coordinates, shape (N, 2)
        '''
        coords = positions * self.scale + np.array([self.offsetX, self.offsetY])
        upper = float(const.gridCellsPerAxis - 1)
        return np.clip(coords, 0.0, upper)

    def cellIndices(self, positions: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        '''
        Integer cell coordinates (cellX, cellY) of each position.

        NaN positions are mapped to cell 0; the instability checks
        downstream report them.
        '''
        coords = np.nan_to_num(self.cellCoordinates(positions), nan=0.0)
        cells = coords.astype(np.uint32)
        return (cells[:, 0], cells[:, 1])

    def cellBounds(self, lower: np.ndarray, upper: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        '''
        Unclamped integer cells of the corners of [lower, upper].

        Callers check these against the 256 cell limit; a value
        outside [0, 255] means the region does not fit the grid.
        '''
        offset = np.array([self.offsetX, self.offsetY])
        lo = np.floor(np.asarray(lower, dtype=np.float64) * self.scale + offset).astype(np.int64)
        hi = np.floor(np.asarray(upper, dtype=np.float64) * self.scale + offset).astype(np.int64)
        return (lo, hi)


#--------------------------------------------------------------------#
# -- Structured Key -- #
#--------------------------------------------------------------------#

class GridEntry(NamedTuple):
    '''
    Structured form of a packed grid entry.

    Field order is (cellY, cellX, particleIndex) so that tuple
    comparison matches the numeric order of the packed value.
    '''

    cellY: int
    cellX: int
    particleIndex: int

    @property
    def cellKey(self) -> int:
        '''Cell key cellY * 256 + cellX.'''
        return self.cellY * const.gridCellsPerAxis + self.cellX

    @property
    def packed(self) -> int:
        '''Packed 32-bit value.'''
        return int(packGridEntries(
            np.array([self.cellX]), np.array([self.cellY]), np.array([self.particleIndex])
        )[0])

    @classmethod
    def fromPacked(cls, value: int) -> GridEntry:
        '''Unpack a single 32-bit value.'''
        value = int(value)
        return cls(
            cellY=(value >> 24) & 0xFF,
            cellX=(value >> 16) & 0xFF,
            particleIndex=value & const.gridValueMask,
        )


#--------------------------------------------------------------------#
# -- Packing -- #
#--------------------------------------------------------------------#

def packGridEntries(cellX: np.ndarray, cellY: np.ndarray, particleIndices: np.ndarray) -> np.ndarray:
    '''
    Pack cell coordinates and particle indices into uint32 entries.

    Parameters:
    -----------
    cellX : np.ndarray
        Cell x coordinates in [0, 255]
    cellY : np.ndarray
        Cell y coordinates in [0, 255]
    particleIndices : np.ndarray
        Particle indices in [0, 65535]

    Returns:
    --------
    np.ndarray : Packed entries, dtype uint32
    '''
    cellX = np.asarray(cellX, dtype=np.int64)
    cellY = np.asarray(cellY, dtype=np.int64)
    particleIndices = np.asarray(particleIndices, dtype=np.int64)

    limit = const.gridCellsPerAxis
    if cellX.size and (cellX.min() < 0 or cellX.max() >= limit):
        raise ConfigurationError(f'Cell x coordinate outside [0, {limit - 1}]')
    if cellY.size and (cellY.min() < 0 or cellY.max() >= limit):
        raise ConfigurationError(f'Cell y coordinate outside [0, {limit - 1}]')
    if particleIndices.size and (particleIndices.min() < 0 or particleIndices.max() >= const.maxParticles):
        raise ConfigurationError(f'Particle index outside [0, {const.maxParticles - 1}]')

    cellKey = cellY * limit + cellX
    return ((cellKey << const.gridKeyShift) | particleIndices).astype(np.uint32)


def gridEntryKeys(entries: np.ndarray) -> np.ndarray:
    '''Cell key (cellY * 256 + cellX) of each packed entry.'''
    return np.right_shift(entries, const.gridKeyShift).astype(np.uint32)


def gridEntryValues(entries: np.ndarray) -> np.ndarray:
    '''Particle index of each packed entry.'''
    return np.bitwise_and(entries, const.gridValueMask).astype(np.uint32)


def cellKey(cellX: int | np.ndarray, cellY: int | np.ndarray) -> int | np.ndarray:
    '''Cell key of a cell coordinate pair.'''
    return cellY * const.gridCellsPerAxis + cellX
