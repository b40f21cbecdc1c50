# autoscan/errors.py
"""
Exceptions raised inside the AutoScan pipeline.

They never cross `run_autoscan`; the orchestrator turns each of them into a
failed AutoScanResult carrying the message.
"""


class AutoScanError(Exception):
    """Base class for AutoScan failures."""


class EngineNotReady(AutoScanError):
    def __init__(self, message: str = "Edge detection engine is not loaded. Call load_engine() first."):
        super().__init__(message)


class EngineLoadError(AutoScanError):
    pass


class ImageLoadError(AutoScanError):
    pass


class InsufficientAnchors(AutoScanError):
    def __init__(self, message: str = "At least two anchor points are required"):
        super().__init__(message)


class AnchorOutOfRange(AutoScanError):
    def __init__(self, index: int):
        self.index = index
        super().__init__(f"Anchor point {index} must have x and y in range [0, 1]")


class SegmentPathNotFound(AutoScanError):
    def __init__(self, segment: int):
        self.segment = segment
        super().__init__(f"No path found between anchor {segment} and {segment + 1}")
