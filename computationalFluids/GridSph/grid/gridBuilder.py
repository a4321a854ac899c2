# -- Spatial Hash Grid Construction -- #

'''
Sorted-key spatial hash grid for O(N) neighbor search.

The grid is built in four data-parallel stages, each a kernel over
a [start, stop) chunk of work items that writes only the slots those
items own:

    1. buildGridKernel            one packed (cell, index) entry per particle
       (external sort of the entries, see sorting.py)
    2. clearGridIndicesKernel     reset every (start, end) cell range to (0, 0)
    3. buildGridIndicesKernel     per sorted position, compare the cell key
                                  with its cyclic predecessor and successor;
                                  a change marks a range start / range end
    4. rearrangeParticlesKernel   gather particle state into sorted order

After stage 4 the particles of a cell sit in one contiguous slice
[start, end) of the rearranged arrays, so a neighbor query over the
3x3 cell block reads at most nine contiguous runs.

The module also provides the neighbor-pair sources consumed by the
density and force evaluators: GridNeighbors (9-cell block) and
BruteForceNeighbors (every particle, the O(N^2) reference).

References:
-----------
Green (2010) -- Particle Simulation using CUDA
Ihmsen et al. (2011) -- Parallel Neighbor-Search for SPH
'''

from __future__ import annotations

from typing import Iterator, Protocol

import numpy as np

from computationalFluids.GridSph import constants as const
from computationalFluids.GridSph.executor import StageExecutor
from computationalFluids.GridSph.grid.gridKeys import (
    GridTransform,
    cellKey,
    gridEntryKeys,
    gridEntryValues,
    packGridEntries,
)
from computationalFluids.GridSph.grid.sorting import GridSorter, NumpyGridSorter


#--------------------------------------------------------------------#
# -- Grid Stage Kernels -- #
#--------------------------------------------------------------------#

def buildGridKernel(
    start: int,
    stop: int,
    positions: np.ndarray,
    transform: GridTransform,
    out: np.ndarray,
) -> None:
    '''
    Stage 1: pack the cell and index of particles [start, stop).

    Parameters:
    -----------
    start, stop : int
        Particle index range of this chunk
    positions : np.ndarray
        Particle positions, shape (N, 2)
    transform : GridTransform
        World to cell transform
    out : np.ndarray
        Grid entries, dtype uint32, shape (N,)
    '''
    cellX, cellY = transform.cellIndices(positions[start:stop])
    out[start:stop] = packGridEntries(cellX, cellY, np.arange(start, stop))


def clearGridIndicesKernel(start: int, stop: int, out: np.ndarray) -> None:
    '''Stage 2: reset cell ranges [start, stop) to the empty range (0, 0).'''
    out[start:stop] = 0


def buildGridIndicesKernel(
    start: int,
    stop: int,
    sortedEntries: np.ndarray,
    out: np.ndarray,
) -> None:
    '''
    Stage 3: record cell range boundaries for sorted positions [start, stop).

    Position i starts its cell's range when its key differs from the key
    at i - 1 and ends it (exclusive end i + 1) when the key differs from
    the key at i + 1. Neighbors wrap cyclically; the wrap edge itself
    (i = 0 looking back, i = N - 1 looking forward) always counts as a
    boundary, so a grid whose particles all share one cell still gets
    the range [0, N).

    Each cell has exactly one first and one last sorted position, so no
    two work items ever write the same slot of `out`.

    Parameters:
    -----------
    start, stop : int
        Sorted position range of this chunk
    sortedEntries : np.ndarray
        Packed entries sorted ascending, shape (N,)
    out : np.ndarray
        Cell ranges, dtype uint32, shape (65536, 2)
    '''
    n = sortedEntries.shape[0]
    ids = np.arange(start, stop)
    prevIds = (ids - 1) % n
    nextIds = (ids + 1) % n

    cell = gridEntryKeys(sortedEntries[ids])
    cellPrev = gridEntryKeys(sortedEntries[prevIds])
    cellNext = gridEntryKeys(sortedEntries[nextIds])

    isStart = (cell != cellPrev) | (ids == 0)
    isEnd = (cell != cellNext) | (ids == n - 1)

    out[cell[isStart], 0] = ids[isStart]
    out[cell[isEnd], 1] = ids[isEnd] + 1


def rearrangeParticlesKernel(
    start: int,
    stop: int,
    sortedEntries: np.ndarray,
    srcPositions: np.ndarray,
    srcVelocities: np.ndarray,
    dstPositions: np.ndarray,
    dstVelocities: np.ndarray,
) -> None:
    '''
    Stage 4: gather particle state into sorted order for [start, stop).

    dst[i] = src[particleIndex(sortedEntries[i])]
    '''
    ids = gridEntryValues(sortedEntries[start:stop])
    dstPositions[start:stop] = srcPositions[ids]
    dstVelocities[start:stop] = srcVelocities[ids]


#--------------------------------------------------------------------#
# -- Neighbor Pair Sources -- #
#--------------------------------------------------------------------#

class NeighborSource(Protocol):
    '''Protocol for candidate neighbor pair enumeration.'''

    def iterPairs(self, start: int, stop: int) -> Iterator[tuple[np.ndarray, np.ndarray]]:
        '''
        Yield candidate pairs for particles [start, stop).

        Yields:
        -------
        tuple[np.ndarray, np.ndarray] :
            (localI, j): localI is the particle index minus `start`,
            j the candidate neighbor index. Candidates still need the
            distance cutoff; the particle itself is included.
        '''
        ...


class GridNeighbors:
    '''
    Candidate pairs from the 3x3 cell block around each particle.

    The block is clamped at the grid edge: cells outside [0, 255] are
    skipped, never wrapped. Indices refer to the rearranged (sorted)
    particle arrays.

    Parameters:
    -----------
    sortedEntries : np.ndarray
        Packed entries sorted ascending, shape (N,)
    gridIndices : np.ndarray
        Cell ranges built from sortedEntries, shape (65536, 2)
    '''

    _offsets = [(dx, dy) for dy in (-1, 0, 1) for dx in (-1, 0, 1)]

    def __init__(self, sortedEntries: np.ndarray, gridIndices: np.ndarray) -> None:
        self._sortedEntries = sortedEntries
        self._gridIndices = gridIndices

    def iterPairs(self, start: int, stop: int) -> Iterator[tuple[np.ndarray, np.ndarray]]:
        keys = gridEntryKeys(self._sortedEntries[start:stop]).astype(np.int64)
        cellX = keys & 0xFF
        cellY = keys >> 8
        local = np.arange(stop - start)
        limit = const.gridCellsPerAxis

        for dx, dy in self._offsets:
            nx = cellX + dx
            ny = cellY + dy
            valid = (nx >= 0) & (nx < limit) & (ny >= 0) & (ny < limit)
            if not np.any(valid):
                continue

            neighborKeys = cellKey(nx[valid], ny[valid])
            runStarts = self._gridIndices[neighborKeys, 0].astype(np.int64)
            runEnds = self._gridIndices[neighborKeys, 1].astype(np.int64)
            counts = runEnds - runStarts
            total = int(counts.sum())
            if total == 0:
                continue

            # Expand each (particle, run) into one pair per run element
            pairI = np.repeat(local[valid], counts)
            runOffsets = np.repeat(np.cumsum(counts) - counts, counts)
            pairJ = np.repeat(runStarts, counts) + (np.arange(total) - runOffsets)
            yield (pairI, pairJ)


class BruteForceNeighbors:
    '''
    Every particle is a candidate neighbor of every other.

    The O(N^2) reference used by the 'simple' simulation mode. Pairs are
    yielded in row blocks of at most `maxPairsPerBlock` entries.
    '''

    def __init__(self, nParticles: int, maxPairsPerBlock: int = 1 << 20) -> None:
        self._nParticles = nParticles
        self._maxPairsPerBlock = maxPairsPerBlock

    def iterPairs(self, start: int, stop: int) -> Iterator[tuple[np.ndarray, np.ndarray]]:
        n = self._nParticles
        if n == 0:
            return
        rowsPerBlock = max(1, self._maxPairsPerBlock // n)
        columns = np.arange(n)
        for blockStart in range(start, stop, rowsPerBlock):
            blockStop = min(blockStart + rowsPerBlock, stop)
            rows = np.arange(blockStart - start, blockStop - start)
            yield (np.repeat(rows, n), np.tile(columns, rows.shape[0]))


#--------------------------------------------------------------------#
# -- Spatial Hash Grid -- #
#--------------------------------------------------------------------#

class SpatialHashGrid:
    '''
    Runs grid stages 1 to 4 and answers cell range queries.

    Standalone form of the grid half of the pipeline, for diagnostics
    and for callers that only need neighbor search.

    Parameters:
    -----------
    transform : GridTransform
        World to cell transform
    executor : StageExecutor | None
        Stage executor (defaults to inline execution)
    sorter : GridSorter | None
        Entry sorter (defaults to NumpyGridSorter)
    '''

    def __init__(
        self,
        transform: GridTransform,
        executor: StageExecutor | None = None,
        sorter: GridSorter | None = None,
    ) -> None:
        self._transform = transform
        self._executor = executor or StageExecutor(workerCount=1)
        self._sorter = sorter or NumpyGridSorter()

        self._gridIndices = np.zeros((const.gridCellCount, 2), dtype=np.uint32)
        self._entries: np.ndarray | None = None
        self._sortedEntries: np.ndarray | None = None
        self._sortedPositions: np.ndarray | None = None
        self._sortedVelocities: np.ndarray | None = None

    def build(self, positions: np.ndarray, velocities: np.ndarray | None = None) -> None:
        '''
        Build the grid for the given particle positions.

        Parameters:
        -----------
        positions : np.ndarray
            Particle positions, shape (N, 2)
        velocities : np.ndarray | None
            Particle velocities rearranged alongside positions
        '''
        n = positions.shape[0]
        if velocities is None:
            velocities = np.zeros_like(positions)
        run = self._executor.run

        entries = np.empty(n, dtype=np.uint32)
        run(lambda s, e: buildGridKernel(s, e, positions, self._transform, entries), n)

        sortedEntries = self._sorter.sort(entries)

        run(lambda s, e: clearGridIndicesKernel(s, e, self._gridIndices), const.gridCellCount)
        run(lambda s, e: buildGridIndicesKernel(s, e, sortedEntries, self._gridIndices), n)

        sortedPositions = np.empty_like(positions)
        sortedVelocities = np.empty_like(velocities)
        run(
            lambda s, e: rearrangeParticlesKernel(
                s, e, sortedEntries, positions, velocities, sortedPositions, sortedVelocities
            ),
            n,
        )

        self._entries = entries
        self._sortedEntries = sortedEntries
        self._sortedPositions = sortedPositions
        self._sortedVelocities = sortedVelocities

    @property
    def transform(self) -> GridTransform:
        '''World to cell transform.'''
        return self._transform

    @property
    def sortedEntries(self) -> np.ndarray:
        '''Packed entries sorted ascending.'''
        return self._sortedEntries

    @property
    def gridIndices(self) -> np.ndarray:
        '''Cell ranges, shape (65536, 2).'''
        return self._gridIndices

    @property
    def sortedPositions(self) -> np.ndarray:
        '''Positions in sorted (cell) order.'''
        return self._sortedPositions

    @property
    def sortedVelocities(self) -> np.ndarray:
        '''Velocities in sorted (cell) order.'''
        return self._sortedVelocities

    @property
    def order(self) -> np.ndarray:
        '''Original particle index of each sorted position.'''
        return gridEntryValues(self._sortedEntries)

    @property
    def neighbors(self) -> GridNeighbors:
        '''Neighbor pair source over the sorted arrays.'''
        return GridNeighbors(self._sortedEntries, self._gridIndices)

    def cellRange(self, cellX: int, cellY: int) -> tuple[int, int]:
        '''Half-open range of sorted positions in a cell.'''
        start, end = self._gridIndices[cellKey(cellX, cellY)]
        return (int(start), int(end))

    def neighborCells(self, cellX: int, cellY: int) -> list[tuple[int, int]]:
        '''The 3x3 cell block around a cell, clamped at the grid edge.'''
        upper = const.gridCellsPerAxis - 1
        return [
            (x, y)
            for y in range(max(cellY - 1, 0), min(cellY + 1, upper) + 1)
            for x in range(max(cellX - 1, 0), min(cellX + 1, upper) + 1)
        ]

    def queryNeighbors(self, sortedIndex: int, radius: float) -> np.ndarray:
        '''
        Sorted indices within `radius` of a sorted particle (itself included).

        Parameters:
        -----------
        sortedIndex : int
            Index into the sorted particle arrays
        radius : float
            Search radius [m]; at most the grid cell size

        Returns:
        --------
        np.ndarray : Sorted neighbor indices, ascending
        '''
        found: list[np.ndarray] = []
        positions = self._sortedPositions
        for _, j in self.neighbors.iterPairs(sortedIndex, sortedIndex + 1):
            diff = positions[j] - positions[sortedIndex]
            within = np.einsum('ij,ij->i', diff, diff) < radius * radius
            found.append(j[within])
        if not found:
            return np.array([], dtype=np.int64)
        return np.sort(np.concatenate(found))

    def nonEmptyRanges(self) -> np.ndarray:
        '''
        Non-empty cell ranges as rows (cellKey, start, end), ordered by start.
        '''
        starts = self._gridIndices[:, 0].astype(np.int64)
        ends = self._gridIndices[:, 1].astype(np.int64)
        keys = np.nonzero(ends > starts)[0]
        rows = np.column_stack([keys, starts[keys], ends[keys]])
        return rows[np.argsort(rows[:, 1], kind='stable')]

    def cellOccupancy(self) -> np.ndarray:
        '''Particle count per cell as a (256, 256) array indexed [cellY, cellX].'''
        counts = (self._gridIndices[:, 1].astype(np.int64) - self._gridIndices[:, 0].astype(np.int64))
        size = const.gridCellsPerAxis
        return counts.reshape(size, size)
