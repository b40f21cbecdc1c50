# autoscan/edge_detector.py
"""
Edge map construction.

Turns an image reference into an RGBA bitmap (Pillow), optionally
downsamples it, and runs grayscale -> Gaussian blur -> Canny through the
loaded engine, optionally restricted to pixels near a target color.
"""

import base64
import binascii
import io
import os
from typing import Any, Optional, Tuple
from urllib.parse import unquote, urlparse

import numpy as np
from PIL import Image, UnidentifiedImageError

from .config import DEFAULT_COLOR_TOLERANCE, MAX_IMAGE_DIMENSION
from .engine import ENGINE, EngineLoader
from .errors import ImageLoadError
from .models import CannyParameters, DEFAULT_CANNY_PARAMS, EdgeMap, RGBColor


# ==========================
# IMAGE LOADING
# ==========================

def base64_to_pil(b64: str) -> Image.Image:
    """
    Accepts either raw base64 or data URI (data:image/png;base64,...)
    Returns a PIL Image in RGBA mode.
    """
    header, _, payload = b64.partition(",")
    if payload == "":
        payload = header
    data = base64.b64decode(payload, validate=True)
    return _open_bytes(data)


def _open_bytes(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img.convert("RGBA")


def _file_url_to_path(url: str) -> str:
    """file:///a/b%20c.png and file://localhost/a/b.png -> local path."""
    parsed = urlparse(url)
    if parsed.netloc not in ("", "localhost"):
        raise ValueError(f"Unsupported file URL host '{parsed.netloc}'")
    return unquote(parsed.path)


def _describe(reference: Any) -> str:
    if isinstance(reference, str):
        return reference if len(reference) <= 80 else reference[:77] + "..."
    return type(reference).__name__


def load_image(reference: Any) -> Image.Image:
    """
    Decode an image reference into an RGBA PIL image.

    Accepted references: PIL image, numpy array (H x W, H x W x 3 RGB,
    H x W x 4 RGBA), encoded bytes, a filesystem path or file:// URL,
    a data URI or raw base64 string.

    Raises:
        ImageLoadError: if the reference cannot be decoded.
    """
    try:
        if isinstance(reference, Image.Image):
            return reference.convert("RGBA")

        if isinstance(reference, np.ndarray):
            return Image.fromarray(image_to_rgba_array(reference), "RGBA")

        if isinstance(reference, (bytes, bytearray)):
            return _open_bytes(bytes(reference))

        if isinstance(reference, (str, os.PathLike)):
            ref = os.fspath(reference)
            if ref.startswith("data:"):
                return base64_to_pil(ref)

            path = _file_url_to_path(ref) if ref.startswith("file://") else ref
            if os.path.isfile(path):
                with Image.open(path) as img:
                    img.load()
                    return img.convert("RGBA")

            return base64_to_pil(ref)

    except (OSError, ValueError, binascii.Error, UnidentifiedImageError, Image.DecompressionBombError) as exc:
        raise ImageLoadError(f"Failed to load image: {_describe(reference)} ({exc})") from exc

    raise ImageLoadError(f"Unsupported image reference type: {_describe(reference)}")


def image_to_rgba_array(image: Any) -> np.ndarray:
    """Return an H x W x 4 uint8 RGBA array for a PIL image or numpy array."""
    if isinstance(image, Image.Image):
        return np.array(image.convert("RGBA"))

    arr = np.asarray(image)
    if arr.dtype != np.uint8:
        arr = np.clip(arr, 0, 255).astype(np.uint8)

    if arr.ndim == 2:
        alpha = np.full(arr.shape, 255, dtype=np.uint8)
        return np.dstack([arr, arr, arr, alpha])
    if arr.ndim == 3 and arr.shape[2] == 3:
        alpha = np.full(arr.shape[:2], 255, dtype=np.uint8)
        return np.dstack([arr, alpha])
    if arr.ndim == 3 and arr.shape[2] == 4:
        return arr

    raise ValueError(f"Unsupported image array shape {arr.shape}")


def resize_if_needed(image: Image.Image, max_dimension: int = MAX_IMAGE_DIMENSION) -> Tuple[Image.Image, float]:
    """
    Downsample so the longest side is at most `max_dimension`.

    Returns:
        (image, scale) where scale = new / old size (1.0 when untouched).
    """
    width, height = image.size
    max_dim = max(width, height)

    if max_dim <= max_dimension:
        return image, 1.0

    scale = max_dimension / max_dim
    new_size = (max(1, round(width * scale)), max(1, round(height * scale)))
    return image.resize(new_size, Image.Resampling.BILINEAR), scale


# ==========================
# EDGE DETECTION
# ==========================

def _color_mask(cv: Any, rgba: np.ndarray, color: RGBColor, tolerance: int) -> np.ndarray:
    """Pixels within `tolerance` of `color` on every channel, dilated 2 px."""
    lower = np.array(
        [max(0, color.r - tolerance), max(0, color.g - tolerance), max(0, color.b - tolerance), 0],
        dtype=np.uint8,
    )
    upper = np.array(
        [min(255, color.r + tolerance), min(255, color.g + tolerance), min(255, color.b + tolerance), 255],
        dtype=np.uint8,
    )
    mask = cv.inRange(rgba, lower, upper)
    kernel = np.ones((3, 3), dtype=np.uint8)
    return cv.dilate(mask, kernel, iterations=2)


def detect_edges(
    image: Any,
    canny_params: Optional[CannyParameters] = None,
    target_color: Optional[RGBColor] = None,
    color_tolerance: Optional[int] = None,
    engine: Optional[EngineLoader] = None,
) -> EdgeMap:
    """
    Build a binary edge map with Canny.

    Args:
        image: PIL image or numpy array (see image_to_rgba_array)
        canny_params: thresholds / aperture / L2 flag, defaults if None
        target_color: keep only edges near this RGB color
        color_tolerance: per-channel tolerance for target_color
        engine: loader whose module provides the OpenCV calls

    Raises:
        EngineNotReady: if the engine has not been loaded.
    """
    cv = (engine or ENGINE).cv
    params = canny_params or DEFAULT_CANNY_PARAMS
    tolerance = DEFAULT_COLOR_TOLERANCE if color_tolerance is None else color_tolerance

    rgba = image_to_rgba_array(image)
    color_mask = gray = blurred = edges = None
    try:
        if target_color is not None:
            color_mask = _color_mask(cv, rgba, target_color, tolerance)

        gray = cv.cvtColor(rgba, cv.COLOR_RGBA2GRAY)
        blurred = cv.GaussianBlur(gray, (5, 5), 0)
        edges = cv.Canny(
            blurred,
            params.threshold1,
            params.threshold2,
            apertureSize=params.aperture_size,
            L2gradient=params.use_l2_gradient,
        )

        if color_mask is not None:
            edges = cv.bitwise_and(edges, color_mask)

        height, width = edges.shape[:2]
        data = np.ascontiguousarray(edges, dtype=np.uint8).reshape(-1).copy()
        return EdgeMap(width=width, height=height, data=data)
    finally:
        # intermediates are dropped on success and error alike
        del rgba, color_mask, gray, blurred, edges


def edge_map_to_base64(edge_map: EdgeMap) -> str:
    """Encode the edge map as data:image/png;base64,... for previews."""
    img = Image.fromarray(edge_map.data.reshape(edge_map.height, edge_map.width), "L")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    b64 = base64.b64encode(buf.getvalue()).decode("ascii")
    return f"data:image/png;base64,{b64}"
