"""
Sail AutoScan: trace sail stripes, luff curves and mast outlines on photos.

Given two or more anchor points in normalized [0, 1] coordinates, the
edge between them is found with Canny edge detection and an A* search
over the resulting edge map.

    from autoscan import AutoScanInput, NormalizedPoint, run_autoscan

    result = await run_autoscan(AutoScanInput(
        image="/photos/main-sail.jpg",
        anchor_points=[NormalizedPoint(x=0.1, y=0.3), NormalizedPoint(x=0.8, y=0.35)],
    ))
    if result.success:
        print(result.points, result.confidence)
"""

from .engine import (
    ENGINE,
    EngineLoader,
    EngineState,
    get_engine_status,
    is_engine_ready,
    load_engine,
    with_engine,
)
from .edge_detector import detect_edges, edge_map_to_base64, load_image, resize_if_needed
from .errors import (
    AnchorOutOfRange,
    AutoScanError,
    EngineLoadError,
    EngineNotReady,
    ImageLoadError,
    InsufficientAnchors,
    SegmentPathNotFound,
)
from .geometry import (
    distance,
    line_angle,
    normalized_to_pixel,
    perpendicular_distance_to_line,
    pixel_to_normalized,
    simplify_path,
    smooth_path,
)
from .models import (
    AutoScanInput,
    AutoScanResult,
    CannyParameters,
    DEFAULT_CANNY_PARAMS,
    DEFAULT_PATH_OPTIONS,
    DebugInfo,
    EdgeMap,
    EngineStatus,
    NormalizedPoint,
    PathFinderOptions,
    PixelPoint,
    RGBColor,
)
from .path_finder import PathResult, calculate_path_confidence, find_path
from .scanner import run_autoscan, run_autoscan_with_fallback, validate_autoscan_input

__all__ = [
    "ENGINE",
    "EngineLoader",
    "EngineState",
    "get_engine_status",
    "is_engine_ready",
    "load_engine",
    "with_engine",
    "detect_edges",
    "edge_map_to_base64",
    "load_image",
    "resize_if_needed",
    "AnchorOutOfRange",
    "AutoScanError",
    "EngineLoadError",
    "EngineNotReady",
    "ImageLoadError",
    "InsufficientAnchors",
    "SegmentPathNotFound",
    "distance",
    "line_angle",
    "normalized_to_pixel",
    "perpendicular_distance_to_line",
    "pixel_to_normalized",
    "simplify_path",
    "smooth_path",
    "AutoScanInput",
    "AutoScanResult",
    "CannyParameters",
    "DEFAULT_CANNY_PARAMS",
    "DEFAULT_PATH_OPTIONS",
    "DebugInfo",
    "EdgeMap",
    "EngineStatus",
    "NormalizedPoint",
    "PathFinderOptions",
    "PixelPoint",
    "RGBColor",
    "PathResult",
    "calculate_path_confidence",
    "find_path",
    "run_autoscan",
    "run_autoscan_with_fallback",
    "validate_autoscan_input",
]
