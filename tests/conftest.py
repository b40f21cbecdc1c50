import asyncio
import base64
import io

import numpy as np
import pytest
from PIL import Image

from autoscan.engine import EngineLoader
from autoscan.models import EdgeMap


class FakeCv:
    """
    numpy stand-in for the cv2 calls made by the edge detector.

    Its "Canny" marks every gray pixel >= threshold2 as an edge, so a
    bright line drawn on a black image comes back as exactly that line,
    and a dim line only shows up with low thresholds.
    """

    __version__ = "0.0-fake"
    COLOR_RGBA2GRAY = 11

    def __init__(self):
        self.canny_calls = []

    def cvtColor(self, src, code):
        return src[..., :3].mean(axis=2).astype(np.uint8)

    def GaussianBlur(self, src, ksize, sigma):
        return src.copy()

    def Canny(self, image, threshold1, threshold2, apertureSize=3, L2gradient=False):
        self.canny_calls.append((threshold1, threshold2, apertureSize))
        return np.where(image >= threshold2, 255, 0).astype(np.uint8)

    def inRange(self, src, lower, upper):
        inside = np.all((src >= lower) & (src <= upper), axis=2)
        return inside.astype(np.uint8) * 255

    def dilate(self, mask, kernel, iterations=1):
        out = mask
        for _ in range(iterations):
            padded = np.pad(out, 1)
            h, w = out.shape
            out = np.max(
                [padded[dy:dy + h, dx:dx + w] for dy in range(3) for dx in range(3)],
                axis=0,
            )
        return out

    def bitwise_and(self, a, b):
        return np.bitwise_and(a, b)


@pytest.fixture
def fake_cv():
    return FakeCv()


@pytest.fixture
def engine(fake_cv):
    loader = EngineLoader(module_name="fake_cv", importer=lambda name: fake_cv)
    asyncio.run(loader.load())
    return loader


def line_image(size=100, row=50, x0=10, x1=90, value=255):
    """Black RGB image with one horizontal line of the given gray value."""
    img = np.zeros((size, size, 3), dtype=np.uint8)
    img[row, x0:x1 + 1] = value
    return img


def step_image(size=100, row=50):
    """Black top half, white bottom half."""
    img = np.zeros((size, size, 3), dtype=np.uint8)
    img[row:, :] = 255
    return img


def to_data_uri(img: np.ndarray) -> str:
    buf = io.BytesIO()
    Image.fromarray(img).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def edge_map_from_mask(mask: np.ndarray) -> EdgeMap:
    h, w = mask.shape
    data = np.where(mask, 255, 0).astype(np.uint8).reshape(-1)
    return EdgeMap(width=w, height=h, data=data)
