# autoscan/geometry.py
"""
Pure geometry helpers shared by the edge map, path finder and orchestrator.

Functions accept anything with `.x` / `.y` attributes (PixelPoint,
NormalizedPoint); pixel-producing helpers return PixelPoint.
"""

import math
from typing import List, Sequence, Tuple

import numpy as np

from .models import NormalizedPoint, PixelPoint


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ==========================
# COORDINATE SPACES
# ==========================

def normalized_to_pixel(point, width: int, height: int) -> PixelPoint:
    """Map a [0,1] point onto the (width-1, height-1) pixel grid."""
    return PixelPoint(
        _round_half_up(point.x * (width - 1)),
        _round_half_up(point.y * (height - 1)),
    )


def pixel_to_normalized(point, width: int, height: int) -> NormalizedPoint:
    """
    Inverse of normalized_to_pixel up to rounding.

    A 1-pixel wide or tall map has a single column/row, which maps to 0.
    """
    return NormalizedPoint(
        x=point.x / (width - 1) if width > 1 else 0.0,
        y=point.y / (height - 1) if height > 1 else 0.0,
    )


def is_in_bounds(point, width: int, height: int) -> bool:
    return 0 <= point.x < width and 0 <= point.y < height


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


# ==========================
# DISTANCES
# ==========================

def distance(a, b) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


def line_angle(start, end) -> float:
    """Direction of the segment start -> end in degrees, (-180, 180]."""
    return math.degrees(math.atan2(end.y - start.y, end.x - start.x))


def perpendicular_distance_to_line(point, line_start, line_end) -> Tuple[float, float]:
    """
    Distance from `point` to the segment and the clamped projection parameter.

    Returns:
        (distance, t) with t in [0, 1]; a zero-length segment gives the
        point-to-point distance and t = 0.
    """
    dx = line_end.x - line_start.x
    dy = line_end.y - line_start.y
    length_sq = dx * dx + dy * dy

    if length_sq == 0:
        return distance(point, line_start), 0.0

    t = clamp(((point.x - line_start.x) * dx + (point.y - line_start.y) * dy) / length_sq, 0.0, 1.0)
    closest_x = line_start.x + t * dx
    closest_y = line_start.y + t * dy

    return math.hypot(point.x - closest_x, point.y - closest_y), t


def _segment_distances(pts: np.ndarray, start: np.ndarray, end: np.ndarray) -> np.ndarray:
    """Vectorised perpendicular_distance_to_line for an (n, 2) array."""
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return np.hypot(pts[:, 0] - start[0], pts[:, 1] - start[1])

    # elementwise, so a point's distance does not depend on the slice it is in
    t = np.clip(((pts[:, 0] - start[0]) * dx + (pts[:, 1] - start[1]) * dy) / length_sq, 0.0, 1.0)
    return np.hypot(pts[:, 0] - (start[0] + t * dx), pts[:, 1] - (start[1] + t * dy))


# ==========================
# PATH POST-PROCESSING
# ==========================

def simplify_path(points: Sequence, tolerance: float) -> List:
    """
    Douglas-Peucker simplification.

    The farthest point from the chord splits the run whenever its deviation
    exceeds `tolerance`; otherwise the run collapses to its endpoints.
    Runs of the split are walked with an explicit stack so long pixel paths
    do not hit the recursion limit; the kept set is the same as the
    recursive formulation (first maximum wins ties).
    """
    if len(points) <= 2:
        return list(points)

    pts = np.array([(p.x, p.y) for p in points], dtype=np.float64)
    keep = np.zeros(len(points), dtype=bool)
    keep[0] = keep[-1] = True

    stack = [(0, len(points) - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue

        dists = _segment_distances(pts[first + 1:last], pts[first], pts[last])
        idx = int(np.argmax(dists))
        if dists[idx] > tolerance:
            split = first + 1 + idx
            keep[split] = True
            stack.append((split, last))
            stack.append((first, split))

    return [p for p, k in zip(points, keep) if k]


def smooth_path(points: Sequence, window_size: int = 3) -> List:
    """
    Centered moving average, window clamped at the ends.

    Averages are rounded back onto the pixel grid. The first and last
    points are returned untouched so anchors stay pinned. Paths no longer
    than the window are returned as-is.
    """
    n = len(points)
    if n <= window_size:
        return list(points)

    half = window_size // 2
    pts = np.array([(p.x, p.y) for p in points], dtype=np.float64)
    cumsum = np.vstack([np.zeros((1, 2)), np.cumsum(pts, axis=0)])

    idx = np.arange(n)
    lo = np.maximum(0, idx - half)
    hi = np.minimum(n - 1, idx + half)
    sums = cumsum[hi + 1] - cumsum[lo]
    counts = (hi - lo + 1)[:, None]
    averaged = np.floor(sums / counts + 0.5).astype(int)

    result = [PixelPoint(int(x), int(y)) for x, y in averaged]
    result[0] = points[0]
    result[-1] = points[-1]
    return result
