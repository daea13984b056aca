"""
Configuration constants for the FOCT Volume Converter.
All thresholds and configurable parameters are centralized here.
"""

# ==========================================
# FOCT File Format
# ==========================================

# Canonical FOCT volume (depth, width, height), stored as float32
FOCT_STANDARD_SHAPE = (640, 304, 304)
FOCT_ELEMENT_SIZE = 4             # bytes per sample (float32)
FOCT_FILE_EXTENSION = ".foct"

# Canonical volumes are stored upside down along depth
FOCT_FLIP_DEPTH = True

# ==========================================
# Dimension Recovery
# ==========================================

# Neighborhood searched around the cube-root seed (generic recovery)
PROBE_WIDTH_RADIUS = 32
PROBE_HEIGHT_RADIUS = 16

# Common medical imaging sizes used by file diagnostics
DIAGNOSTIC_COMMON_SIZES = (64, 128, 160, 256, 304, 320, 400, 512, 640, 1024)
DIAGNOSTIC_MAX_DEPTH = 1000
DIAGNOSTIC_MAX_FORMATS = 5

# ==========================================
# Contrast Enhancement
# ==========================================

PEAK_SHIFT_MIN = 0.1              # peak must lie strictly inside (MIN, MAX)
PEAK_SHIFT_MAX = 0.9
STRETCH_PERCENTILES = (1.0, 99.0)           # fallback for the standard path
BLEND_STRETCH_PERCENTILES = (2.0, 98.0)     # recovery path
BLEND_STRETCH_WEIGHT = 0.6                  # 0.6 * stretch + 0.4 * peak shift

# ==========================================
# Target Histogram Sampling
# ==========================================

TARGET_SAMPLE_SIZE = 100          # images drawn from each reference corpus
TARGET_SAMPLE_SEED = 42
TARGET_MIN_IMAGE_STD = 5.0        # near-uniform images are skipped
TARGET_IMAGE_PATTERNS = ("*.png",)
TARGET_OUTLIER_SIGMA = 3.0
TARGET_DENSITY_FLOOR = 0.0001     # fraction of total mass per bin

# ==========================================
# Histogram Matching
# ==========================================

HIST_BINS = 256
SMOOTHING_SIGMA = 2.0             # Gaussian sigma for histogram smoothing
MAPPING_SMOOTH_FACTOR = 0.7       # alpha for jump damping
MAPPING_JUMP_THRESHOLD = 10       # levels; larger jumps are damped
MAPPING_SMOOTH_WINDOW = 5         # moving average over the mapping table
MAPPING_RECLAMP = True            # re-enforce monotonicity after smoothing

# ==========================================
# Post Processing
# ==========================================

ENABLE_POST_PROCESSING = True
INTER_SLICE_SMOOTHING = True
MEDIAN_FILTER_SIZE = 3
SLICE_AXIS = 2                    # slices are volume[:, :, k]

# ==========================================
# Execution
# ==========================================

MAX_WORKERS = 4                   # threads for per-slice / per-image work
BATCH_MAX_WORKERS = 2             # files processed concurrently

# ==========================================
# Export
# ==========================================

DEFAULT_EXPORT_FORMATS = ("nii",)   # "nii", "npy", "tiff", "vti"
WRITE_PREVIEW = True
NIFTI_SUFFIX = ".nii"
FALLBACK_SUFFIX = ".npy"
PREVIEW_SUFFIX = ".png"
