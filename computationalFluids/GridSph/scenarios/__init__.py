# -- Simulation Scenarios Package -- #

'''
Pre-configured grid SPH scenarios.

Each scenario provides the initial particle layout and the
SimulationConfig (map, walls, timing) for a specific problem.
'''

from computationalFluids.GridSph.scenarios.damBreak import DamBreakConfig, createDamBreak
