# -- Visualization Theme -- #

'''
Centralized dark-mode theme for all GridSph Plotly figures.

Change colors or template here to restyle every plot at once.
'''

# Plotly template
TEMPLATE = 'plotly_dark'

# Primary color palette (visible on dark backgrounds)
BLUE = '#42A5F5'
RED = '#EF5350'
GREEN = '#66BB6A'
ORANGE = '#FFA726'

# Neutrals
WHITE = '#E0E0E0'
REFERENCE_LINE = '#888888'

# Continuous scales
DENSITY_SCALE = 'Turbo'
OCCUPANCY_SCALE = 'Viridis'
