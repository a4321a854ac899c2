# -- Visualization Package -- #

'''
Plotly diagnostics for grid SPH runs: particle scatter coloured by
density, grid cell occupancy heatmap and energy history.
'''

from computationalFluids.GridSph.visualization.particlePlots import (
    plotParticles,
    plotGridOccupancy,
    plotEnergyHistory,
)
