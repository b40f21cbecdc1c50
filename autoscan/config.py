# autoscan/config.py
"""
Runtime configuration read from the environment.
"""

import os


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Longest image side processed; larger photos are downsampled first
MAX_IMAGE_DIMENSION = int(os.getenv("AUTOSCAN_MAX_DIMENSION", "2048"))

# Module providing the Canny primitive
ENGINE_MODULE = os.getenv("AUTOSCAN_ENGINE_MODULE", "cv2")

# Per-channel tolerance for color-guided detection (0-255)
DEFAULT_COLOR_TOLERANCE = int(os.getenv("AUTOSCAN_COLOR_TOLERANCE", "60"))

# Attach a base64 PNG of the edge map to debug info
INCLUDE_EDGE_PREVIEW = _env_flag("AUTOSCAN_EDGE_PREVIEW", True)

# Fallback scanning stops at the first preset above this confidence
GOOD_CONFIDENCE = float(os.getenv("AUTOSCAN_GOOD_CONFIDENCE", "0.7"))

# Sensitivity presets tried by the fallback scan, in order
FALLBACK_PRESETS = (
    {"threshold1": 50, "threshold2": 150},  # default
    {"threshold1": 30, "threshold2": 100},  # more sensitive
    {"threshold1": 80, "threshold2": 200},  # less sensitive
    {"threshold1": 20, "threshold2": 80},   # very sensitive
)

# Finished jobs kept in memory for status polling; oldest are evicted first
JOB_HISTORY_LIMIT = int(os.getenv("AUTOSCAN_JOB_HISTORY", "100"))
