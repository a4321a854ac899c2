# -- Computational Fluids Package -- #

'''
Master package for the Computational Fluids toolkit.

Domain-specific sub-packages:
    - GridSph: 2D SPH fluid simulation over a packed-key spatial hash grid
'''
