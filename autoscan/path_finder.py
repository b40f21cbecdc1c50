# autoscan/path_finder.py
"""
A* search over an edge map.

Stepping onto an edge pixel costs 1 (orthogonal) or sqrt(2) (diagonal);
stepping onto a non-edge pixel costs that times `non_edge_cost`, so the
cheapest route hugs detected edges. The Euclidean heuristic is admissible
because every step costs at least its length.

The open set is a binary heap with lazy deletion. Entries are ordered by
(f, y, x): equal-f ties go to the smaller row, then the smaller column,
which makes paths reproducible.
"""

import heapq
import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .geometry import is_in_bounds, simplify_path, smooth_path
from .logger import console
from .models import DEFAULT_PATH_OPTIONS, EdgeMap, PathFinderOptions, PixelPoint

# Window used when smoothing a found path
SMOOTHING_WINDOW = 5

_ORTHOGONAL = ((-1, 0), (1, 0), (0, -1), (0, 1))
_DIAGONAL = ((-1, -1), (1, -1), (-1, 1), (1, 1))


@dataclass
class PathResult:
    path: List[PixelPoint] = field(default_factory=list)
    cost: float = math.inf
    raw_point_count: int = 0  # pixels on the route before smoothing/simplifying
    iterations: int = 0
    exhausted: bool = False   # straight-line fallback after the iteration cap


def _reconstruct(parents: np.ndarray, end_idx: int, width: int) -> List[PixelPoint]:
    path = []
    idx = end_idx
    while idx != -1:
        path.append(PixelPoint(idx % width, idx // width))
        idx = int(parents[idx])
    path.reverse()
    return path


def find_path(
    edge_map: EdgeMap,
    start: PixelPoint,
    end: PixelPoint,
    options: Optional[PathFinderOptions] = None,
) -> PathResult:
    """
    Find the cheapest edge-following route from `start` to `end`.

    Returns:
        PathResult with
        - an empty path and inf cost when start or end is out of bounds,
        - [start, end], inf cost and exhausted=True when the search hits
          max_iterations without reaching `end`,
        - otherwise the (optionally smoothed and simplified) route and its
          accumulated cost.
    """
    opts = options or DEFAULT_PATH_OPTIONS
    width, height = edge_map.width, edge_map.height

    if not is_in_bounds(start, width, height):
        console.log(f"[red]Start point {tuple(start)} out of bounds ({width}x{height})[/red]")
        return PathResult()
    if not is_in_bounds(end, width, height):
        console.log(f"[red]End point {tuple(end)} out of bounds ({width}x{height})[/red]")
        return PathResult()

    is_edge = edge_map.data > 128
    g_scores = np.full(width * height, np.inf)
    parents = np.full(width * height, -1, dtype=np.int64)
    closed = np.zeros(width * height, dtype=bool)

    steps = [(dx, dy, 1.0) for dx, dy in _ORTHOGONAL]
    if opts.allow_diagonal:
        steps += [(dx, dy, math.sqrt(2)) for dx, dy in _DIAGONAL]

    end_x, end_y = end.x, end.y
    start_idx = start.y * width + start.x
    end_idx = end_y * width + end_x
    g_scores[start_idx] = 0.0
    open_heap = [(math.hypot(end_x - start.x, end_y - start.y), start.y, start.x)]

    iterations = 0
    while open_heap and iterations < opts.max_iterations:
        _, y, x = heapq.heappop(open_heap)
        idx = y * width + x
        if closed[idx]:
            continue  # stale heap entry

        iterations += 1
        g = g_scores[idx]

        if idx == end_idx:
            path = _reconstruct(parents, idx, width)
            raw_count = len(path)
            if opts.smoothing:
                path = smooth_path(path, SMOOTHING_WINDOW)
            if opts.simplify_tolerance > 0:
                path = simplify_path(path, opts.simplify_tolerance)
            return PathResult(path=path, cost=float(g), raw_point_count=raw_count, iterations=iterations)

        closed[idx] = True

        for dx, dy, base_cost in steps:
            nx, ny = x + dx, y + dy
            if nx < 0 or nx >= width or ny < 0 or ny >= height:
                continue
            n_idx = ny * width + nx
            if closed[n_idx]:
                continue

            move_cost = base_cost if is_edge[n_idx] else base_cost * opts.non_edge_cost
            tentative = g + move_cost
            if tentative < g_scores[n_idx]:
                g_scores[n_idx] = tentative
                parents[n_idx] = idx
                f = tentative + math.hypot(end_x - nx, end_y - ny)
                heapq.heappush(open_heap, (f, ny, nx))

    console.log(
        f"[yellow]A* did not reach {tuple(end)} after {iterations} iterations, "
        f"using straight-line fallback[/yellow]"
    )
    return PathResult(path=[start, end], cost=math.inf, raw_point_count=2, iterations=iterations, exhausted=True)


def calculate_path_confidence(path: List[PixelPoint], edge_map: EdgeMap) -> float:
    """Fraction of path points that land on an edge pixel (0 for an empty path)."""
    if not path:
        return 0.0

    on_edge = 0
    for point in path:
        if is_in_bounds(point, edge_map.width, edge_map.height) and edge_map.is_edge(point):
            on_edge += 1

    return on_edge / len(path)
