"""Central configuration for barcode image preprocessing.

All tunable parameters are defined here with descriptive names.
These values can be adjusted to trade decode robustness against speed
and memory use.
"""

# =============================================================================
# RESIZING
# =============================================================================

# Longest side allowed before an image is downsampled
MAX_IMAGE_SIZE = 2048

# Ratio above which high quality resizing halves the image in steps
# instead of resizing in one pass (a single large bilinear jump aliases)
MULTI_STEP_RATIO = 2

# =============================================================================
# CONTRAST ENHANCEMENT
# =============================================================================

DEFAULT_CONTRAST_FACTOR = 1.5

# Intensities are stretched around this midpoint
CONTRAST_MIDPOINT = 128

# Accepted range for contrast factors
MIN_CONTRAST_FACTOR = 0.1
MAX_CONTRAST_FACTOR = 10.0

# Exclusive factor range handled by the bulk lookup-table path
FAST_PATH_MIN_FACTOR = 0.1
FAST_PATH_MAX_FACTOR = 5.0

# Block size (rows and columns) for the manual fallback path
MANUAL_CHUNK_SIZE = 1000

# =============================================================================
# MEMORY ESTIMATION
# =============================================================================

# Estimated bytes per decoded pixel (ARGB)
BYTES_PER_PIXEL = 4

# Images whose estimated decoded size exceeds this count as large
LARGE_IMAGE_THRESHOLD_BYTES = 50 * 1024 * 1024

# Multiplier applied to per-image estimates to cover intermediates
MEMORY_SAFETY_MULTIPLIER = 2

# Fraction of available memory a batch may plan to use
MEMORY_BUDGET_FRACTION = 0.5

# Chunks hold at most this many items per worker
PARALLELISM_CHUNK_FACTOR = 2

# =============================================================================
# ANALYSIS
# =============================================================================

# Sampling stride used when measuring overall image contrast
CONTRAST_SAMPLE_STRIDE = 10
