# autoscan/metrics.py
"""
Prometheus metrics and /metrics endpoint for the AutoScan service.
"""

from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# Count scans by outcome
SCANS_TOTAL = Counter(
    "autoscan_scans_total",
    "Total number of AutoScan runs by outcome",
    ["status"],  # success, failure
)

# Measure processing time per scan
SCAN_PROCESSING_SECONDS = Histogram(
    "autoscan_scan_processing_seconds",
    "Time spent in a single AutoScan run in seconds",
)

# Count presets tried by the fallback scan
FALLBACK_PRESETS_TRIED = Counter(
    "autoscan_fallback_presets_tried_total",
    "Number of Canny presets tried by fallback scans",
)

# Count A* segments that hit the iteration cap
SEGMENTS_EXHAUSTED = Counter(
    "autoscan_segments_exhausted_total",
    "Number of path segments that fell back to a straight line",
)

# Engine loads by outcome
ENGINE_LOADS = Counter(
    "autoscan_engine_loads_total",
    "Edge detection engine load attempts by outcome",
    ["status"],  # ready, error
)

# Track how many jobs are currently in flight (pending or processing)
JOBS_IN_FLIGHT = Gauge(
    "autoscan_jobs_in_flight",
    "Number of AutoScan jobs currently not finished",
)

# Count jobs by final status
JOBS_COMPLETED = Counter(
    "autoscan_jobs_completed_total",
    "Total number of completed AutoScan jobs by status",
    ["status"],  # done, error
)


@router.get("/metrics")
def metrics() -> Response:
    """
    Expose Prometheus metrics in text format.
    """
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
