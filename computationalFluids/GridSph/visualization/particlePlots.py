# -- Particle and Grid Visualizations -- #

'''
Plotly-based diagnostic plots for grid SPH runs.
'''

from __future__ import annotations

import numpy as np
import plotly.graph_objects as go

from computationalFluids.GridSph import constants as const
from computationalFluids.GridSph.sph.particles import ParticleState
from computationalFluids.GridSph.sph.protocols import SimulationConfig
from computationalFluids.GridSph.visualization import theme


def plotParticles(
    particles: ParticleState,
    densities: np.ndarray | None = None,
    config: SimulationConfig | None = None,
    title: str = 'Particles',
) -> go.Figure:
    '''
    Particle positions coloured by density.

    Parameters:
    -----------
    particles : ParticleState
        Particle state to draw
    densities : np.ndarray | None
        Per-particle densities; speed is used for colour if None
    config : SimulationConfig | None
        If given, the map box is drawn and fixes the axes
    title : str
        Figure title

    Returns:
    --------
    go.Figure : Plotly figure
    '''
    if densities is not None:
        colour = densities
        colourTitle = 'Density (kg/m^3)'
    else:
        colour = np.linalg.norm(particles.velocities, axis=1)
        colourTitle = 'Speed (m/s)'

    fig = go.Figure()
    fig.add_trace(go.Scattergl(
        x=particles.positions[:, 0], y=particles.positions[:, 1], mode='markers',
        marker=dict(
            size=3, color=colour, colorscale=theme.DENSITY_SCALE,
            colorbar=dict(title=colourTitle),
        ),
        showlegend=False,
    ))

    if config is not None:
        (x0, y0), (x1, y1) = config.domainMin, config.domainMax
        fig.add_shape(
            type='rect', x0=x0, y0=y0, x1=x1, y1=y1,
            line=dict(color=theme.REFERENCE_LINE, width=1),
        )

    fig.update_layout(
        title=title,
        xaxis_title='x (m)',
        yaxis_title='y (m)',
        yaxis=dict(scaleanchor='x', scaleratio=1),
        template=theme.TEMPLATE,
        height=500,
    )

    return fig


def plotGridOccupancy(grid: np.ndarray, cropToOccupied: bool = True) -> go.Figure:
    '''
    Heatmap of particles per grid cell.

    Parameters:
    -----------
    grid : np.ndarray
        Either cell ranges (65536, 2) or an occupancy array (256, 256)
        indexed [cellY, cellX]
    cropToOccupied : bool
        Restrict the heatmap to the bounding box of non-empty cells

    Returns:
    --------
    go.Figure : Plotly figure
    '''
    size = const.gridCellsPerAxis
    if grid.shape == (const.gridCellCount, 2):
        counts = grid[:, 1].astype(np.int64) - grid[:, 0].astype(np.int64)
        occupancy = counts.reshape(size, size)
    else:
        occupancy = np.asarray(grid, dtype=np.int64)

    xLo, yLo = 0, 0
    if cropToOccupied and np.any(occupancy):
        ys, xs = np.nonzero(occupancy)
        xLo, xHi = int(xs.min()), int(xs.max()) + 1
        yLo, yHi = int(ys.min()), int(ys.max()) + 1
        occupancy = occupancy[yLo:yHi, xLo:xHi]

    fig = go.Figure()
    fig.add_trace(go.Heatmap(
        z=occupancy,
        x=np.arange(xLo, xLo + occupancy.shape[1]),
        y=np.arange(yLo, yLo + occupancy.shape[0]),
        colorscale=theme.OCCUPANCY_SCALE,
        colorbar=dict(title='Particles'),
    ))

    fig.update_layout(
        title=f'Grid Occupancy (max {int(occupancy.max()) if occupancy.size else 0} per cell)',
        xaxis_title='Cell x',
        yaxis_title='Cell y',
        yaxis=dict(scaleanchor='x', scaleratio=1),
        template=theme.TEMPLATE,
        height=450,
    )

    return fig


def plotEnergyHistory(history: dict[str, list[float]]) -> go.Figure:
    '''
    Kinetic energy and density error over time.

    Parameters:
    -----------
    history : dict[str, list[float]]
        FrameExporter.history ('times', 'kinetic', 'maxDensityError')

    Returns:
    --------
    go.Figure : Plotly figure
    '''
    times = history['times']

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=times, y=history['kinetic'], mode='lines',
        name='Kinetic Energy', line=dict(color=theme.BLUE, width=2),
    ))
    fig.add_trace(go.Scatter(
        x=times, y=np.asarray(history['maxDensityError']) * 100.0, mode='lines',
        name='Max Density Error', line=dict(color=theme.ORANGE, width=2, dash='dash'),
        yaxis='y2',
    ))

    fig.update_layout(
        title='Energy History',
        xaxis_title='Time (s)',
        yaxis=dict(title='Kinetic Energy (J)'),
        yaxis2=dict(title='Density Error (%)', overlaying='y', side='right'),
        template=theme.TEMPLATE,
        height=350,
    )

    return fig
