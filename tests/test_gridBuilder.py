# -- Spatial Hash Grid Tests -- #

import numpy as np
import pytest
from scipy.spatial import cKDTree

from computationalFluids.GridSph.executor import StageExecutor
from computationalFluids.GridSph.grid.gridBuilder import BruteForceNeighbors, SpatialHashGrid
from computationalFluids.GridSph.grid.gridKeys import GridTransform, gridEntryKeys
from computationalFluids.GridSph.grid.sorting import BitonicGridSorter


H = 0.012


def buildGrid(positions, **kwargs):
    grid = SpatialHashGrid(GridTransform.fromCellSize(H), **kwargs)
    grid.build(positions)
    return grid


def testSingleCellRangeCoversAllParticles():
    positions = np.full((50, 2), 0.5) + np.linspace(0.0, 0.001, 50)[:, None]
    grid = buildGrid(positions)

    occupied = grid.nonEmptyRanges()
    assert occupied.shape == (1, 3)
    key, start, end = occupied[0]
    assert (start, end) == (0, 50)
    assert key == int(gridEntryKeys(grid.sortedEntries)[0])


def testSingleParticleGrid():
    grid = buildGrid(np.array([[0.1, 0.1]]))
    cellX, cellY = int(0.1 / H), int(0.1 / H)
    assert grid.cellRange(cellX, cellY) == (0, 1)


def testRangesPartitionSortedIndices(cloud):
    grid = buildGrid(cloud.positions)
    rows = grid.nonEmptyRanges()
    n = cloud.nParticles

    assert rows[0, 1] == 0
    assert rows[-1, 2] == n
    np.testing.assert_array_equal(rows[1:, 1], rows[:-1, 2])

    keys = gridEntryKeys(grid.sortedEntries)
    for key, start, end in rows:
        assert np.all(keys[start:end] == key)
    assert grid.cellOccupancy().sum() == n


def testParticlesWithinCellKeepIndexOrder(cloud):
    grid = buildGrid(cloud.positions)
    keys = gridEntryKeys(grid.sortedEntries)
    order = grid.order.astype(np.int64)
    for key, start, end in grid.nonEmptyRanges():
        assert np.all(np.diff(order[start:end]) > 0)
        assert np.all(keys[start:end] == key)


def testRearrangeIsPermutation(cloud):
    grid = SpatialHashGrid(GridTransform.fromCellSize(H))
    grid.build(cloud.positions, cloud.velocities)
    order = grid.order.astype(np.int64)

    np.testing.assert_array_equal(np.sort(order), np.arange(cloud.nParticles))
    np.testing.assert_array_equal(grid.sortedPositions, cloud.positions[order])
    np.testing.assert_array_equal(grid.sortedVelocities, cloud.velocities[order])


def testRebuildClearsStaleRanges(cloud):
    grid = buildGrid(cloud.positions)
    moved = cloud.positions + np.array([0.5, 0.5])
    grid.build(moved)
    fresh = buildGrid(moved)

    np.testing.assert_array_equal(grid.gridIndices, fresh.gridIndices)
    np.testing.assert_array_equal(grid.sortedEntries, fresh.sortedEntries)


def testBuildIsIdempotent(cloud):
    grid = buildGrid(cloud.positions)
    first = grid.gridIndices.copy()
    grid.build(cloud.positions)
    np.testing.assert_array_equal(grid.gridIndices, first)


def testChunkedBuildMatchesInline(cloud):
    inline = buildGrid(cloud.positions)
    with StageExecutor(workerCount=4, chunkSize=37) as executor:
        chunked = buildGrid(cloud.positions, executor=executor, sorter=BitonicGridSorter())

    np.testing.assert_array_equal(chunked.sortedEntries, inline.sortedEntries)
    np.testing.assert_array_equal(chunked.gridIndices, inline.gridIndices)


def testQueryMatchesKdTree(cloud):
    grid = buildGrid(cloud.positions)
    tree = cKDTree(grid.sortedPositions)

    for sortedIndex in range(0, cloud.nParticles, 7):
        found = grid.queryNeighbors(sortedIndex, H)
        expected = tree.query_ball_point(grid.sortedPositions[sortedIndex], H * (1.0 - 1e-9))
        assert set(found.tolist()) == set(expected)


def testQueryAtGridEdge():
    positions = np.array([[0.0, 0.0], [0.005, 0.0], [0.0, 0.011], [0.05, 0.05]])
    grid = buildGrid(positions)
    sortedPositions = grid.sortedPositions
    origin = int(np.nonzero(np.all(sortedPositions == 0.0, axis=1))[0][0])

    found = grid.queryNeighbors(origin, H)
    assert len(found) == 3


@pytest.mark.parametrize('cell, expected', [
    ((0, 0), 4),
    ((255, 255), 4),
    ((0, 10), 6),
    ((10, 10), 9),
])
def testNeighborCellsClampedAtEdges(cell, expected):
    grid = SpatialHashGrid(GridTransform.fromCellSize(H))
    cells = grid.neighborCells(*cell)
    assert len(cells) == expected
    assert all(0 <= x <= 255 and 0 <= y <= 255 for x, y in cells)


def testGridNeighborsAreSupersetOfCutoffPairs(cloud):
    grid = buildGrid(cloud.positions)
    positions = grid.sortedPositions
    n = cloud.nParticles

    candidates = set()
    for localI, j in grid.neighbors.iterPairs(0, n):
        candidates.update(zip(localI.tolist(), j.tolist()))

    for i, j in cKDTree(positions).query_pairs(H * (1.0 - 1e-9)):
        assert (i, j) in candidates
        assert (j, i) in candidates
    assert all((i, i) in candidates for i in range(n))


def testBruteForceNeighborsEnumerateAllPairs():
    source = BruteForceNeighbors(5, maxPairsPerBlock=7)
    pairs = set()
    for localI, j in source.iterPairs(2, 5):
        pairs.update(zip((localI + 2).tolist(), j.tolist()))
    assert pairs == {(i, j) for i in range(2, 5) for j in range(5)}
