# -- Grid Entry Sorting -- #

'''
Ascending sort of packed grid entries between the grid build and
the grid index build.

The pipeline treats the sort as an external collaborator: any sort
that fully orders unsigned 32-bit integers works. Stability is not
needed because ties are already broken by the packed particle index.

Two sorters are provided:
    - NumpyGridSorter: np.sort, the default
    - BitonicGridSorter: a bitonic sorting network run as a sequence
      of data-parallel compare-exchange sweeps, the same structure
      a GPU sort dispatches

References:
-----------
Batcher (1968) -- Sorting networks and their applications
'''

from __future__ import annotations

from typing import Protocol

import numpy as np

from computationalFluids.GridSph.errors import ConfigurationError


#--------------------------------------------------------------------#
# -- Sorter Protocol -- #
#--------------------------------------------------------------------#

class GridSorter(Protocol):
    '''Protocol for grid entry sorters.'''

    def sort(self, entries: np.ndarray) -> np.ndarray:
        '''
        Return the entries sorted ascending as a new uint32 array.

        Parameters:
        -----------
        entries : np.ndarray
            Packed grid entries, dtype uint32, shape (N,)

        Returns:
        --------
        np.ndarray : Sorted copy, dtype uint32
        '''
        ...


#--------------------------------------------------------------------#
# -- NumPy Sorter -- #
#--------------------------------------------------------------------#

class NumpyGridSorter:
    '''Sorts with np.sort.'''

    def sort(self, entries: np.ndarray) -> np.ndarray:
        return np.sort(np.asarray(entries, dtype=np.uint32))


#--------------------------------------------------------------------#
# -- Bitonic Sorter -- #
#--------------------------------------------------------------------#

class BitonicGridSorter:
    '''
    Bitonic sorting network over a power-of-two padded array.

    The input is padded with 0xFFFFFFFF up to the next power of two,
    so padding sorts to the tail and is dropped afterwards. Each
    (blockSize, stride) pass compares every element with its partner
    at index i XOR stride and swaps in place; no element is written
    by more than one comparison in a pass.
    '''

    _padValue = np.uint32(0xFFFFFFFF)

    def sort(self, entries: np.ndarray) -> np.ndarray:
        entries = np.asarray(entries, dtype=np.uint32)
        n = entries.shape[0]
        if n <= 1:
            return entries.copy()

        size = 1 << (n - 1).bit_length()
        data = np.full(size, self._padValue, dtype=np.uint32)
        data[:n] = entries

        indices = np.arange(size)
        blockSize = 2
        while blockSize <= size:
            stride = blockSize // 2
            while stride > 0:
                self._compareExchange(data, indices, blockSize, stride)
                stride //= 2
            blockSize *= 2

        return data[:n].copy()

    @staticmethod
    def _compareExchange(data: np.ndarray, indices: np.ndarray, blockSize: int, stride: int) -> None:
        '''One sweep of the network: every lower partner orders its pair.'''
        partners = indices ^ stride
        lower = indices[partners > indices]
        upper = lower ^ stride
        ascending = (lower & blockSize) == 0

        a = data[lower]
        b = data[upper]
        swap = np.where(ascending, a > b, a < b)
        data[lower[swap]] = b[swap]
        data[upper[swap]] = a[swap]


#--------------------------------------------------------------------#
# -- Factory -- #
#--------------------------------------------------------------------#

def createSorter(sorterType: str = 'numpy') -> GridSorter:
    '''
    Create a grid sorter by name.

    Parameters:
    -----------
    sorterType : str
        'numpy' or 'bitonic'

    Returns:
    --------
    GridSorter : Sorter instance
    '''
    sorters = {
        'numpy': NumpyGridSorter,
        'bitonic': BitonicGridSorter,
    }
    if sorterType not in sorters:
        raise ConfigurationError(f'Unknown sorter type: {sorterType}')
    return sorters[sorterType]()
