# autoscan/scanner.py
"""
AutoScan orchestrator.

run_autoscan() is the public entry point: it validates the anchors, makes
sure the engine is loaded, builds an edge map for the photo and runs the
path finder between every consecutive pair of anchors. It never raises;
every failure comes back as AutoScanResult(success=False, error=...).

Image decoding, edge detection and each A* segment run in worker threads
(asyncio.to_thread), so the event loop keeps serving other requests while
a scan is in progress.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Union

from .config import FALLBACK_PRESETS, GOOD_CONFIDENCE, INCLUDE_EDGE_PREVIEW, MAX_IMAGE_DIMENSION
from .edge_detector import detect_edges, edge_map_to_base64, load_image, resize_if_needed
from .engine import ENGINE, EngineLoader
from .errors import AnchorOutOfRange, InsufficientAnchors, SegmentPathNotFound
from .geometry import normalized_to_pixel, pixel_to_normalized
from .logger import console
from .metrics import FALLBACK_PRESETS_TRIED, SCAN_PROCESSING_SECONDS, SCANS_TOTAL, SEGMENTS_EXHAUSTED
from .models import (
    AutoScanInput,
    AutoScanResult,
    DEFAULT_CANNY_PARAMS,
    DEFAULT_PATH_OPTIONS,
    DebugInfo,
    PixelPoint,
)
from .path_finder import calculate_path_confidence, find_path

ScanRequest = Union[AutoScanInput, Dict[str, Any]]


def _coerce_input(scan_input: ScanRequest) -> AutoScanInput:
    if isinstance(scan_input, AutoScanInput):
        return scan_input
    return AutoScanInput.model_validate(scan_input)


def validate_autoscan_input(scan_input: ScanRequest) -> Optional[str]:
    """Return a description of the first problem with the anchors, or None."""
    if isinstance(scan_input, dict):
        anchors = scan_input.get("anchor_points")
    else:
        anchors = scan_input.anchor_points

    if not anchors or len(anchors) < 2:
        return str(InsufficientAnchors())

    for i, p in enumerate(anchors):
        x, y = (p["x"], p["y"]) if isinstance(p, dict) else (p.x, p.y)
        # written so NaN fails too
        if not (0 <= x <= 1 and 0 <= y <= 1):
            return str(AnchorOutOfRange(i))

    return None


def _prepare_image(reference: Any, max_dimension: int):
    image = load_image(reference)
    return resize_if_needed(image, max_dimension)


def _fail(message: str) -> AutoScanResult:
    SCANS_TOTAL.labels(status="failure").inc()
    return AutoScanResult.failure(message)


async def run_autoscan(scan_input: ScanRequest, engine: Optional[EngineLoader] = None) -> AutoScanResult:
    """
    Trace the edge through the anchor points of `scan_input`.

    Args:
        scan_input: AutoScanInput or an equivalent dict
        engine: engine loader to use, the process-wide one by default

    Returns:
        AutoScanResult with normalized points, confidence and debug info
        on success; success=False and an error message otherwise.
    """
    start_time = time.perf_counter()
    engine = engine or ENGINE

    try:
        request = _coerce_input(scan_input)

        error = validate_autoscan_input(request)
        if error:
            console.log(f"[yellow]AutoScan rejected: {error}[/yellow]")
            return _fail(error)

        # 1. Engine
        if not engine.is_ready():
            console.log("[yellow]Edge detection engine not loaded, loading...[/yellow]")
            await engine.load()

        # 2. Image (decode, resize, Canny and A* all run in worker threads)
        image, scale = await asyncio.to_thread(_prepare_image, request.image, MAX_IMAGE_DIMENSION)
        console.log(f"Image size: {image.width}x{image.height} (scale: {scale:.3f})")

        # 3. Parameters
        canny_params = request.canny_params or DEFAULT_CANNY_PARAMS
        path_options = request.path_options or DEFAULT_PATH_OPTIONS

        # 4. Edge map
        edge_map = await asyncio.to_thread(
            detect_edges,
            image,
            canny_params,
            target_color=request.target_color,
            color_tolerance=request.color_tolerance,
            engine=engine,
        )
        width, height = edge_map.width, edge_map.height

        # 5. Anchors to pixel space
        anchors = [normalized_to_pixel(p, width, height) for p in request.anchor_points]
        if len(anchors) < 2:
            raise InsufficientAnchors()

        console.log(f"[blue]Finding path through {len(anchors)} anchor points[/blue]")

        # 6. Segment by segment, in order
        full_path: List[PixelPoint] = []
        total_cost = 0.0
        raw_count = 0
        exhausted = 0
        segment_count = len(anchors) - 1

        for i in range(segment_count):
            # cancellation takes effect at each segment boundary
            segment = await asyncio.to_thread(find_path, edge_map, anchors[i], anchors[i + 1], path_options)
            if not segment.path:
                raise SegmentPathNotFound(i)

            if segment.exhausted:
                exhausted += 1
                SEGMENTS_EXHAUSTED.inc()

            # consecutive segments share their junction anchor
            if i == 0:
                full_path.extend(segment.path)
                raw_count += segment.raw_point_count
            else:
                full_path.extend(segment.path[1:])
                raw_count += segment.raw_point_count - 1
            total_cost += segment.cost

        # 7. Confidence; straight-line fallback segments count as misses
        confidence = calculate_path_confidence(full_path, edge_map)
        confidence *= (segment_count - exhausted) / segment_count

        # 8. Back to normalized space
        points = [pixel_to_normalized(p, width, height) for p in full_path]
        preview = await asyncio.to_thread(edge_map_to_base64, edge_map) if INCLUDE_EDGE_PREVIEW else None

        elapsed = time.perf_counter() - start_time
        SCAN_PROCESSING_SECONDS.observe(elapsed)
        SCANS_TOTAL.labels(status="success").inc()
        console.log(
            f"[green]AutoScan complete: {len(points)} points, "
            f"confidence: {confidence * 100:.1f}%[/green]"
        )

        return AutoScanResult(
            success=True,
            points=points,
            confidence=confidence,
            debug_info=DebugInfo(
                edge_map_preview=preview,
                path_cost=total_cost,
                raw_point_count=raw_count,
                simplified_point_count=len(points),
                processing_time_ms=elapsed * 1000.0,
                segment_count=segment_count,
                exhausted_segments=exhausted,
                scale=scale,
            ),
        )

    except Exception as exc:
        message = str(exc) or type(exc).__name__
        console.log(f"[red]AutoScan error: {message}[/red]")
        return _fail(message)


async def run_autoscan_with_fallback(
    scan_input: ScanRequest,
    engine: Optional[EngineLoader] = None,
) -> AutoScanResult:
    """
    Retry run_autoscan over increasingly sensitive Canny presets.

    Keeps the most confident successful result and stops at the first one
    above GOOD_CONFIDENCE. Other caller overrides are kept; only the two
    thresholds change per preset.
    """
    try:
        request = _coerce_input(scan_input)
    except ValueError as exc:
        return _fail(str(exc))

    error = validate_autoscan_input(request)
    if error:
        return _fail(error)

    base_params = request.canny_params or DEFAULT_CANNY_PARAMS
    best: Optional[AutoScanResult] = None

    for preset in FALLBACK_PRESETS:
        FALLBACK_PRESETS_TRIED.inc()
        console.log(f"[blue]Trying Canny preset {preset['threshold1']}/{preset['threshold2']}[/blue]")

        attempt = request.model_copy(update={"canny_params": base_params.model_copy(update=preset)})
        result = await run_autoscan(attempt, engine=engine)

        if result.success:
            if best is None or result.confidence > best.confidence:
                best = result
            if result.confidence > GOOD_CONFIDENCE:
                break

    if best is None:
        return AutoScanResult.failure("No valid path found with any sensitivity preset")
    return best
