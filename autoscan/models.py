# autoscan/models.py
from dataclasses import dataclass
from typing import Any, List, Literal, NamedTuple, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field


class NormalizedPoint(BaseModel):
    """Point relative to image width/height. Range is checked by validate_autoscan_input."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float


class PixelPoint(NamedTuple):
    x: int
    y: int


@dataclass(frozen=True)
class EdgeMap:
    """Binary edge raster: flat row-major uint8 buffer, >128 means edge."""

    width: int
    height: int
    data: np.ndarray

    def mask(self) -> np.ndarray:
        """Boolean (height, width) view of the edge pixels."""
        return self.data.reshape(self.height, self.width) > 128

    def is_edge(self, point: PixelPoint) -> bool:
        return bool(self.data[point.y * self.width + point.x] > 128)


class CannyParameters(BaseModel):
    model_config = ConfigDict(frozen=True)

    threshold1: float = Field(50, ge=0)    # hysteresis low
    threshold2: float = Field(150, ge=0)   # hysteresis high
    aperture_size: Literal[3, 5, 7] = 3    # Sobel aperture
    use_l2_gradient: bool = False


class PathFinderOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_iterations: int = Field(100000, gt=0)
    smoothing: bool = True
    simplify_tolerance: float = Field(0.5, ge=0)  # 0 disables Douglas-Peucker
    non_edge_cost: float = Field(100, gt=0)
    allow_diagonal: bool = True


DEFAULT_CANNY_PARAMS = CannyParameters()
DEFAULT_PATH_OPTIONS = PathFinderOptions()


class RGBColor(BaseModel):
    model_config = ConfigDict(frozen=True)

    r: int = Field(ge=0, le=255)
    g: int = Field(ge=0, le=255)
    b: int = Field(ge=0, le=255)


class AutoScanInput(BaseModel):
    """
    One scan request.

    `image` is any image reference accepted by edge_detector.load_image:
    a path, file:// URL, base64 / data URI string, encoded bytes,
    a PIL image or a numpy array. Partial canny_params / path_options
    dicts are completed with the defaults.
    """

    image: Any
    anchor_points: List[NormalizedPoint] = []
    canny_params: Optional[CannyParameters] = None
    path_options: Optional[PathFinderOptions] = None
    target_color: Optional[RGBColor] = None
    color_tolerance: Optional[int] = Field(None, ge=0, le=255)


class DebugInfo(BaseModel):
    edge_map_preview: Optional[str] = None  # data:image/png;base64,...
    path_cost: float
    raw_point_count: int
    simplified_point_count: int
    processing_time_ms: float
    segment_count: int = 0
    exhausted_segments: int = 0
    scale: float = 1.0


class AutoScanResult(BaseModel):
    success: bool
    points: List[NormalizedPoint] = []
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    error: Optional[str] = None
    debug_info: Optional[DebugInfo] = None

    @classmethod
    def failure(cls, error: str) -> "AutoScanResult":
        return cls(success=False, points=[], confidence=0.0, error=error)


class EngineStatus(BaseModel):
    loaded: bool = False
    loading: bool = False
    error: Optional[str] = None
    version: Optional[str] = None


# ==========================
# HTTP PAYLOADS
# ==========================

class AutoScanPayload(BaseModel):
    image: str  # file path or base64 image
    anchor_points: List[NormalizedPoint] = []
    canny_params: Optional[CannyParameters] = None
    path_options: Optional[PathFinderOptions] = None
    target_color: Optional[RGBColor] = None
    color_tolerance: Optional[int] = Field(None, ge=0, le=255)

    def to_input(self) -> AutoScanInput:
        return AutoScanInput(**dict(self))


class ValidationResponse(BaseModel):
    valid: bool
    error: Optional[str] = None


class JobStatus(BaseModel):
    id: str
    status: str
