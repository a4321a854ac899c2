# -- Default Constants for Grid SPH Simulation -- #

'''
Reference parameter set and packed-grid capacity limits.

The fluid parameters are tuned together: particle mass, smoothing
length and initial spacing give a rest-state density close to the
rest density with the Muller kernel normalization. Changing one
of them usually means retuning the others.

References:
-----------
Muller et al. (2003) -- Particle-based fluid simulation for
    interactive applications
Green (2010) -- Particle Simulation using CUDA
'''

#--------------------------------------------------------------------#
# -- Fluid Properties -- #
#--------------------------------------------------------------------#

# Rest density [kg/m^3]
restDensity: float = 1000.0

# Tait pressure coefficient B [Pa]
pressureStiffness: float = 200.0

# Mass of a single particle [kg]
particleMass: float = 0.0002

# Viscosity coefficient
viscosity: float = 0.1

# Vertical gravity component [m/s^2] (scaled down for the small map)
gravity: float = -0.5

#--------------------------------------------------------------------#
# -- SPH Numerical Parameters -- #
#--------------------------------------------------------------------#

# Smoothing length h, also the interaction cutoff [m]
smoothingLength: float = 0.012

# Fixed time step [s]
maxTimeStep: float = 0.005

# Penalty stiffness of the map walls
wallStiffness: float = 3000.0

# Initial lattice spacing of the particle block [m]
initialParticleSpacing: float = 0.0045

# Smallest density a particle may carry after the clamp policy
densityFloor: float = 1.0e-6

#--------------------------------------------------------------------#
# -- Map Geometry -- #
#--------------------------------------------------------------------#

mapHeight: float = 1.2
mapWidth: float = (4.0 / 3.0) * mapHeight

#--------------------------------------------------------------------#
# -- Packed Grid Capacity -- #
#--------------------------------------------------------------------#

# Cells per axis: one byte of the packed key each
gridCellsPerAxis: int = 256

# Total number of cell keys (256 x 256)
gridCellCount: int = gridCellsPerAxis * gridCellsPerAxis

# Particle index field width: 16 bits
maxParticles: int = 1 << 16

# Mask of the particle index field
gridValueMask: int = 0xFFFF

# Bit shift from packed entry to cell key
gridKeyShift: int = 16

#--------------------------------------------------------------------#
# -- Particle Counts -- #
#--------------------------------------------------------------------#

particleCount8K: int = 8 * 1024
particleCount16K: int = 16 * 1024
particleCount32K: int = 32 * 1024
particleCount64K: int = 64 * 1024

#--------------------------------------------------------------------#
# -- Parallel Execution -- #
#--------------------------------------------------------------------#

# Work items per chunk handed to a worker thread
defaultChunkSize: int = 4096

# Worker threads for stage fan-out (1 = run inline)
defaultWorkerCount: int = 4
