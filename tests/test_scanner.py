import asyncio
import math
import threading
import time

import numpy as np
import pytest

from autoscan import scanner
from autoscan.engine import EngineLoader, EngineState
from autoscan.models import AutoScanInput, CannyParameters, NormalizedPoint as N, PathFinderOptions
from autoscan.path_finder import PathResult
from autoscan.scanner import run_autoscan, run_autoscan_with_fallback, validate_autoscan_input

from conftest import line_image, step_image, to_data_uri

ACROSS = [N(x=0.1, y=0.5), N(x=0.9, y=0.5)]


def scan(engine, image, anchors=ACROSS, **kwargs):
    return asyncio.run(run_autoscan(AutoScanInput(image=image, anchor_points=anchors, **kwargs), engine=engine))


def failing_loader():
    def importer(name):
        raise ImportError("no engine here")
    return EngineLoader(module_name="missing_cv", importer=importer)


# ==========================
# VALIDATION
# ==========================

@pytest.mark.parametrize(
    "anchors, expected",
    [
        ([], "At least two anchor points are required"),
        ([N(x=0.5, y=0.5)], "At least two anchor points are required"),
        ([N(x=0.1, y=0.1), N(x=1.5, y=0.2)], "Anchor point 1 must have x and y in range [0, 1]"),
        ([N(x=-0.01, y=0.1), N(x=0.5, y=0.2)], "Anchor point 0 must have x and y in range [0, 1]"),
        ([N(x=0.2, y=math.nan), N(x=0.5, y=0.2)], "Anchor point 0 must have x and y in range [0, 1]"),
        ([N(x=0.0, y=0.0), N(x=1.0, y=1.0)], None),
    ],
)
def test_validate_autoscan_input(anchors, expected):
    assert validate_autoscan_input(AutoScanInput(image="unused", anchor_points=anchors)) == expected


def test_validate_accepts_plain_dicts():
    assert validate_autoscan_input({"anchor_points": [{"x": 0.1, "y": 0.1}, {"x": 0.2, "y": 0.3}]}) is None
    assert validate_autoscan_input({"anchor_points": [{"x": 0.1, "y": 0.1}]}) is not None
    assert validate_autoscan_input({}) is not None


# ==========================
# SINGLE SCAN
# ==========================

def test_traces_bright_line(engine):
    result = scan(engine, to_data_uri(line_image()))

    assert result.success
    assert result.error is None
    assert result.confidence >= 0.9
    assert all(abs(p.y * 99 - 50) <= 2 for p in result.points)
    assert abs(result.points[0].x * 99 - 10) <= 1
    assert abs(result.points[-1].x * 99 - 89) <= 1


def test_debug_info(engine):
    result = scan(engine, line_image())
    info = result.debug_info

    assert info.path_cost == pytest.approx(79.0)
    assert info.raw_point_count == 80
    assert info.simplified_point_count == len(result.points) == 2
    assert info.segment_count == 1
    assert info.exhausted_segments == 0
    assert info.scale == 1.0
    assert info.processing_time_ms >= 0
    assert info.edge_map_preview.startswith("data:image/png;base64,")


def test_out_of_range_anchor_rejected_before_any_work(fake_cv):
    loader = EngineLoader(importer=lambda name: fake_cv)
    result = scan(loader, line_image(), anchors=[N(x=0.1, y=0.5), N(x=1.5, y=0.2)])

    assert not result.success
    assert "range" in result.error
    assert result.points == []
    assert result.confidence == 0.0
    assert fake_cv.canny_calls == []
    assert loader.state is EngineState.UNLOADED


def test_single_anchor_rejected(engine):
    result = scan(engine, line_image(), anchors=[N(x=0.5, y=0.5)])
    assert not result.success
    assert result.error == "At least two anchor points are required"


def test_identical_anchors_give_single_point(engine):
    result = scan(engine, line_image(), anchors=[N(x=0.5, y=0.5), N(x=0.5, y=0.5)])

    assert result.success
    assert len(result.points) == 1
    assert result.debug_info.path_cost == 0.0


def test_multi_segment_shares_junctions(engine):
    anchors = [N(x=0.1, y=0.5), N(x=0.5, y=0.5), N(x=0.9, y=0.5)]
    result = scan(engine, line_image(), anchors=anchors)

    assert result.success
    assert result.debug_info.segment_count == 2
    xs = [round(p.x * 99) for p in result.points]
    assert xs == [10, 50, 89]
    assert len(set(xs)) == len(xs)


def test_repeated_scans_are_identical(engine):
    rng = np.random.default_rng(5)
    img = (rng.random((60, 60, 3)) * 255).astype(np.uint8)
    anchors = [N(x=0.05, y=0.1), N(x=0.7, y=0.9), N(x=0.95, y=0.2)]

    first = scan(engine, img, anchors=anchors)
    second = scan(engine, img, anchors=anchors)

    assert first.points == second.points
    assert first.confidence == second.confidence


def test_unreadable_image_is_reported(engine):
    result = scan(engine, "definitely not an image")
    assert not result.success
    assert result.error.startswith("Failed to load image")


def test_engine_failure_is_reported():
    loader = failing_loader()
    result = scan(loader, line_image())

    assert not result.success
    assert "Failed to load missing_cv" in result.error
    assert loader.state is EngineState.ERROR


def test_scan_loads_engine_on_demand(fake_cv):
    loader = EngineLoader(importer=lambda name: fake_cv)
    assert scan(loader, line_image()).success
    assert loader.is_ready()


def test_iteration_cap_marks_segment_exhausted(engine):
    result = scan(engine, line_image(value=0), path_options=PathFinderOptions(max_iterations=1))

    assert result.success
    assert len(result.points) == 2
    assert result.confidence == 0.0
    assert result.debug_info.exhausted_segments == 1
    assert math.isinf(result.debug_info.path_cost)


def test_large_images_are_downsampled(engine, monkeypatch):
    monkeypatch.setattr("autoscan.scanner.MAX_IMAGE_DIMENSION", 50)
    img = np.zeros((100, 100, 3), dtype=np.uint8)
    img[48:53, 10:91] = 255

    result = scan(engine, img)

    assert result.success
    assert result.debug_info.scale == 0.5
    assert result.confidence > 0.5


def test_dict_input(engine):
    result = asyncio.run(run_autoscan(
        {"image": line_image(), "anchor_points": [{"x": 0.1, "y": 0.5}, {"x": 0.9, "y": 0.5}]},
        engine=engine,
    ))
    assert result.success


def test_target_color_scan(engine):
    img = np.zeros((100, 100, 3), dtype=np.uint8)
    img[50, 5:95] = (255, 255, 0)
    img[30, 5:95] = (0, 255, 255)

    result = scan(engine, img, target_color={"r": 255, "g": 255, "b": 0}, color_tolerance=20)
    assert result.success
    assert result.confidence == 1.0


def test_opencv_traces_step_edge():
    pytest.importorskip("cv2")
    loader = EngineLoader()
    result = scan(loader, step_image())

    assert result.success
    assert result.confidence > 0
    assert all(abs(p.y * 99 - 50) <= 3 for p in result.points)


# ==========================
# FALLBACK
# ==========================

def test_fallback_escalates_to_sensitive_preset(engine, fake_cv):
    faint = line_image(value=90)

    plain = scan(engine, faint)
    assert not plain.success or plain.confidence < 0.1

    fake_cv.canny_calls.clear()
    result = asyncio.run(run_autoscan_with_fallback(AutoScanInput(image=faint, anchor_points=ACROSS), engine=engine))

    assert result.success
    assert result.confidence >= 0.9
    assert [c[:2] for c in fake_cv.canny_calls] == [(50, 150), (30, 100), (80, 200), (20, 80)]


def test_fallback_stops_at_first_good_preset(engine, fake_cv):
    result = asyncio.run(run_autoscan_with_fallback(AutoScanInput(image=line_image(), anchor_points=ACROSS), engine=engine))

    assert result.success
    assert len(fake_cv.canny_calls) == 1


def test_fallback_keeps_caller_overrides(engine, fake_cv):
    request = AutoScanInput(
        image=line_image(value=90),
        anchor_points=ACROSS,
        canny_params=CannyParameters(aperture_size=5),
    )
    asyncio.run(run_autoscan_with_fallback(request, engine=engine))

    assert fake_cv.canny_calls
    assert all(aperture == 5 for _, _, aperture in fake_cv.canny_calls)


def test_fallback_rejects_bad_anchors_once(engine, fake_cv):
    request = AutoScanInput(image=line_image(), anchor_points=[N(x=0.5, y=0.5)])
    result = asyncio.run(run_autoscan_with_fallback(request, engine=engine))

    assert not result.success
    assert result.error == "At least two anchor points are required"
    assert fake_cv.canny_calls == []


def test_fallback_reports_when_every_preset_fails():
    result = asyncio.run(run_autoscan_with_fallback(AutoScanInput(image=line_image(), anchor_points=ACROSS), engine=failing_loader()))

    assert not result.success
    assert result.error == "No valid path found with any sensitivity preset"


# ==========================
# SEGMENTS AND THREADING
# ==========================

def test_missing_segment_fails_whole_scan(engine, monkeypatch):
    real_find_path = scanner.find_path
    calls = []

    def find_path(edge_map, start, end, options=None):
        calls.append((start, end))
        if len(calls) == 2:
            return PathResult()
        return real_find_path(edge_map, start, end, options)

    monkeypatch.setattr("autoscan.scanner.find_path", find_path)
    anchors = [N(x=0.1, y=0.5), N(x=0.5, y=0.5), N(x=0.9, y=0.5)]
    result = scan(engine, line_image(), anchors=anchors)

    assert result.success is False
    assert result.points == []
    assert result.confidence == 0.0
    assert result.error == "No path found between anchor 1 and 2"


def test_scan_work_runs_off_the_event_loop(engine, monkeypatch):
    real_find_path = scanner.find_path
    threads = []

    def find_path(*args, **kwargs):
        threads.append(threading.get_ident())
        return real_find_path(*args, **kwargs)

    monkeypatch.setattr("autoscan.scanner.find_path", find_path)

    async def main():
        loop_thread = threading.get_ident()
        result = await run_autoscan(AutoScanInput(image=line_image(), anchor_points=ACROSS), engine=engine)
        return loop_thread, result

    loop_thread, result = asyncio.run(main())

    assert result.success
    assert threads and all(t != loop_thread for t in threads)


def test_loop_stays_responsive_during_scan(engine, monkeypatch):
    release = threading.Event()
    real_find_path = scanner.find_path

    def find_path(*args, **kwargs):
        release.wait(5)
        return real_find_path(*args, **kwargs)

    monkeypatch.setattr("autoscan.scanner.find_path", find_path)

    async def main():
        task = asyncio.create_task(run_autoscan(AutoScanInput(image=line_image(), anchor_points=ACROSS), engine=engine))
        ticks = 0
        started = time.monotonic()
        while time.monotonic() - started < 0.2:
            await asyncio.sleep(0.01)
            ticks += 1
        release.set()
        return ticks, await task

    ticks, result = asyncio.run(main())

    assert ticks >= 5
    assert result.success


def test_scan_after_aborted_engine_load(fake_cv):
    def slow_importer(name):
        time.sleep(0.3)
        return fake_cv

    loader = EngineLoader(module_name="fake_cv", importer=slow_importer)
    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(asyncio.wait_for(loader.load(), 0.05))

    result = scan(loader, line_image())
    assert result.success
