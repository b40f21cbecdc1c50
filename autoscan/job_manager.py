# autoscan/job_manager.py
"""
Job queue management for background AutoScan runs.
Handles job creation, scheduling, and status tracking.
"""

import asyncio
import uuid
from typing import Any, Dict, Optional

from .config import JOB_HISTORY_LIMIT
from .engine import EngineLoader
from .logger import console
from .metrics import JOBS_COMPLETED, JOBS_IN_FLIGHT
from .models import AutoScanInput
from .scanner import run_autoscan, run_autoscan_with_fallback

# In-memory job store
JOBS: Dict[str, Dict[str, Any]] = {}


async def process_job(
    job_id: str,
    scan_input: AutoScanInput,
    fallback: bool = False,
    engine: Optional[EngineLoader] = None,
):
    """
    Background worker that runs one scan and records its outcome.

    A scan that completes with success=False is still a finished job
    ("done"); "error" is reserved for the worker itself blowing up.

    Args:
        job_id: Unique job identifier
        scan_input: Validated scan request
        fallback: If True, try the Canny sensitivity presets in turn
        engine: Engine loader override (tests)
    """
    console.log(f"[yellow]Starting AutoScan job {job_id} (fallback={fallback})[/yellow]")

    try:
        if fallback:
            result = await run_autoscan_with_fallback(scan_input, engine=engine)
        else:
            result = await run_autoscan(scan_input, engine=engine)

        JOBS[job_id]["status"] = "done"
        JOBS[job_id]["result"] = result
        JOBS_COMPLETED.labels(status="done").inc()
        console.log(f"[green]Job {job_id} done (success={result.success}).[/green]")

    except Exception as e:
        JOBS[job_id]["status"] = "error"
        JOBS[job_id]["error"] = str(e)
        JOBS_COMPLETED.labels(status="error").inc()
        console.log(f"[red]Job {job_id} failed: {e}[/red]")

    finally:
        JOBS[job_id].pop("task", None)
        JOBS_IN_FLIGHT.dec()
        prune_finished_jobs()


def prune_finished_jobs(limit: Optional[int] = None) -> int:
    """
    Drop the oldest finished jobs beyond `limit` (JOB_HISTORY_LIMIT by default).

    Pending jobs are never evicted.

    Returns:
        Number of jobs removed
    """
    limit = JOB_HISTORY_LIMIT if limit is None else limit
    finished = [job_id for job_id, job in JOBS.items() if job.get("status") != "pending"]
    stale = finished[:max(0, len(finished) - limit)]

    for job_id in stale:
        del JOBS[job_id]

    if stale:
        console.log(f"[blue]Evicted {len(stale)} finished job(s)[/blue]")
    return len(stale)


def create_job(
    scan_input: AutoScanInput,
    fallback: bool = False,
    engine: Optional[EngineLoader] = None,
) -> str:
    """
    Create job entry and schedule the scan on the running event loop.

    Returns:
        job_id: Unique identifier for tracking job status
    """
    job_id = uuid.uuid4().hex
    JOBS[job_id] = {"status": "pending"}

    JOBS_IN_FLIGHT.inc()

    loop = asyncio.get_running_loop()
    JOBS[job_id]["task"] = loop.create_task(process_job(job_id, scan_input, fallback=fallback, engine=engine))

    return job_id
