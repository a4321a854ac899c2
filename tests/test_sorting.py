# -- Grid Sorter Tests -- #

import numpy as np
import pytest

from computationalFluids.GridSph.errors import ConfigurationError
from computationalFluids.GridSph.grid.gridKeys import packGridEntries
from computationalFluids.GridSph.grid.sorting import BitonicGridSorter, NumpyGridSorter, createSorter


@pytest.mark.parametrize('n', [0, 1, 2, 3, 17, 256, 1000, 1024])
def testBitonicMatchesNumpy(n, rng):
    entries = packGridEntries(
        rng.integers(0, 256, size=n),
        rng.integers(0, 256, size=n),
        rng.permutation(n),
    )
    expected = NumpyGridSorter().sort(entries)
    result = BitonicGridSorter().sort(entries)

    np.testing.assert_array_equal(result, expected)
    assert result.dtype == np.uint32


def testBitonicHandlesDuplicatesAndMaximum():
    entries = np.array([5, 0xFFFFFFFF, 5, 0, 7, 0xFFFFFFFF, 1], dtype=np.uint32)
    np.testing.assert_array_equal(BitonicGridSorter().sort(entries), np.sort(entries))


def testSortDoesNotModifyInput(rng):
    entries = rng.integers(0, 2**32, size=100, dtype=np.uint64).astype(np.uint32)
    original = entries.copy()
    BitonicGridSorter().sort(entries)
    NumpyGridSorter().sort(entries)
    np.testing.assert_array_equal(entries, original)


def testCreateSorter():
    assert isinstance(createSorter('numpy'), NumpyGridSorter)
    assert isinstance(createSorter('bitonic'), BitonicGridSorter)
    with pytest.raises(ConfigurationError):
        createSorter('radix')
