# -- Spatial Hash Grid Package -- #

'''
Packed-key spatial hash grid: cell transform, key codec, entry
sorting and the four grid construction stages.

Independent of the SPH physics; the density and force evaluators
only consume its neighbor pair sources.
'''

from computationalFluids.GridSph.grid.gridKeys import GridTransform, GridEntry, packGridEntries
from computationalFluids.GridSph.grid.sorting import NumpyGridSorter, BitonicGridSorter, createSorter
from computationalFluids.GridSph.grid.gridBuilder import SpatialHashGrid, GridNeighbors, BruteForceNeighbors
