# -- Export Package -- #

'''
Data export utilities for grid SPH simulation results.

Exports frame data as compact JSON for the plotly diagnostics
and external viewers.
'''

from computationalFluids.GridSph.export.frameExporter import FrameExporter
