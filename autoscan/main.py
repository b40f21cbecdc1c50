# autoscan/main.py
from typing import Dict

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from .engine import ENGINE, EngineLoader
from .errors import EngineLoadError
from .job_manager import create_job, JOBS
from .logger import console
from .metrics import router as metrics_router
from .models import AutoScanPayload, AutoScanResult, EngineStatus, JobStatus, ValidationResponse
from .scanner import run_autoscan, run_autoscan_with_fallback, validate_autoscan_input

app = FastAPI(title="Sail AutoScan API", version="1.0.0")

# Include /metrics endpoint
app.include_router(metrics_router)


def get_engine() -> EngineLoader:
    return ENGINE


def _result_response(result: AutoScanResult) -> Response:
    # pydantic writes inf path costs as null
    return Response(content=result.model_dump_json(), media_type="application/json")


@app.get("/")
def read_root() -> Dict[str, str]:
    return {"status": "ok", "message": "Sail AutoScan API"}


@app.get("/api/v1/engine/status", response_model=EngineStatus)
def engine_status(engine: EngineLoader = Depends(get_engine)):
    return engine.get_status()


@app.post("/api/v1/engine/load", response_model=EngineStatus)
async def engine_load(engine: EngineLoader = Depends(get_engine)):
    """Load the edge detection engine ahead of the first scan."""
    try:
        await engine.load()
    except EngineLoadError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return engine.get_status()


@app.post("/api/v1/autoscan/validate", response_model=ValidationResponse)
def validate_scan(payload: AutoScanPayload):
    error = validate_autoscan_input(payload.to_input())
    return ValidationResponse(valid=error is None, error=error)


@app.post("/api/v1/autoscan/run")
async def run_scan(
    payload: AutoScanPayload,
    fallback: bool = Query(False, description="Try increasingly sensitive Canny presets"),
    engine: EngineLoader = Depends(get_engine),
):
    """
    Run a scan and wait for its result.

    Body:
      {
        "image": "<path or base64>",
        "anchor_points": [{ "x": ..., "y": ... }, ...],
        "canny_params": { "threshold1": 50, "threshold2": 150 },  # optional
        "path_options": { "non_edge_cost": 100 },                # optional
        "target_color": { "r": 200, "g": 30, "b": 30 },          # optional
        "color_tolerance": 60                                     # optional
      }
    """
    if not payload.image:
        raise HTTPException(status_code=422, detail="image required")

    scan = run_autoscan_with_fallback if fallback else run_autoscan
    result = await scan(payload.to_input(), engine=engine)
    return _result_response(result)


@app.post("/api/v1/autoscan/submit")
async def submit_scan(
    payload: AutoScanPayload,
    fallback: bool = Query(False, description="Try increasingly sensitive Canny presets"),
    engine: EngineLoader = Depends(get_engine),
):
    """Queue a scan and immediately return job id + pending."""
    if not payload.image:
        raise HTTPException(status_code=422, detail="image required")

    job_id = create_job(payload.to_input(), fallback=fallback, engine=engine)
    console.log(f"[blue]Received job {job_id} (fallback={fallback})[/blue]")

    return JSONResponse(status_code=202, content=JobStatus(id=job_id, status="pending").model_dump())


@app.get("/api/v1/autoscan/status/{job_id}")
async def get_job_status(job_id: str):
    job = JOBS.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="job not found")

    status = job.get("status")
    if status == "pending":
        return JobStatus(id=job_id, status="pending")
    if status == "error":
        return {"id": job_id, "status": "error", "error": job.get("error")}

    # status == "done"
    return _result_response(job["result"])
