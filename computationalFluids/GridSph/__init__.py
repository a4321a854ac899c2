# -- GridSph Package -- #

'''
2-D particle fluid simulation on a packed-key spatial hash grid.

Each step runs as a sequence of race-free data-parallel stages
(grid build, sort, cell ranges, rearrange, density, force,
integration) fanned out over a thread pool, with dam-break
scenarios, JSON frame export and plotly diagnostics on top.
'''

__version__ = '0.1.0'

from computationalFluids.GridSph.runner import GridSphRunner
from computationalFluids.GridSph.scenarios.damBreak import DamBreakConfig
from computationalFluids.GridSph.export.frameExporter import FrameExporter
from computationalFluids.GridSph.sph.pipeline import SphPipeline
