"""
Constants for polar parameters, sampling defaults and safeguards.
"""

# Default Cartesian cell size (meters) and half-width of the sampled square
DEFAULT_CELLSIZE = 500.0
DEFAULT_RANGE_MAX = 50000.0

# Composite grid resolution (nx, ny) and parameter
DEFAULT_CELLS_DIM = (100, 100)
DEFAULT_COMPOSITE_PARAM = "DBZH"

# Upper bound on the number of cells of any grid built by the sampler
# or the compositor
MAX_GRID_CELLS = 25_000_000

# Geographic reference system of composites and bounding boxes
WGS84 = "EPSG:4326"

# ODIM quantities read by default when assembling a volume
DEFAULT_PARAMS = ("DBZH", "VRADH", "VRAD", "RHOHV", "ZDR", "PHIDP", "CELL")

# Field name aliases for Py-ART style radar objects
FIELD_ALIASES = {
    "DBZH": ["DBZH", "reflectivity", "corrected_reflectivity_horizontal"],  # Horizontal reflectivity
    "DBZV": ["DBZV", "corrected_reflectivity_vertical"],                    # Vertical reflectivity
    "ZDR": ["ZDR", "zdr", "differential_reflectivity"],                     # Differential reflectivity
    "RHOHV": ["RHOHV", "rhohv", "cross_correlation_ratio"],                 # Cross-correlation coefficient
    "KDP": ["KDP", "kdp"],                                                  # Specific differential phase
    "VRADH": ["VRADH", "velocity", "corrected_velocity"],                   # Radial velocity
    "WRADH": ["WRADH", "spectrum_width"],                                   # Spectrum width
    "PHIDP": ["PHIDP", "differential_phase"],                               # Differential phase
}

# Variable units
VARIABLE_UNITS = {
    "DBZH": "dBZ",
    "DBZV": "dBZ",
    "DBZ": "dBZ",
    "ZDR": "dB",
    "RHOHV": "",
    "KDP": "deg/km",
    "VRADH": "m/s",
    "VRADV": "m/s",
    "VRAD": "m/s",
    "WRADH": "m/s",
    "PHIDP": "deg",
    "CELL": "",
}

# Cache limits
TRANSFORMER_CACHE_SIZE = 64
INDEX_CACHE_BYTES = 256 * 1024 * 1024
