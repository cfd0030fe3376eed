"""
Off-screen drawing surface mirroring what the user sees on the canvas.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw

from .constants import (
    BACKGROUND_COLOR,
    BOX_OUTLINE_COLOR,
    BOX_OUTLINE_WIDTH,
    DEFAULT_SURFACE_HEIGHT,
    DEFAULT_SURFACE_WIDTH,
    STROKE_COLOR,
    STROKE_WIDTH,
)
from .tracking import BoundingBox


class DrawingSurface:
    """
    RGB raster that records strokes.

    Strokes go onto the ink layer that ``snapshot`` returns. Box outlines
    are kept apart and only drawn by ``render`` so they never leak into the
    patches that get classified.
    """

    def __init__(self, width: int = DEFAULT_SURFACE_WIDTH, height: int = DEFAULT_SURFACE_HEIGHT):
        self.width = int(width)
        self.height = int(height)
        self.image = Image.new('RGB', (self.width, self.height), BACKGROUND_COLOR)
        self.draw = ImageDraw.Draw(self.image)
        self.outlines: List[BoundingBox] = []
        self._last_point: Optional[Tuple[float, float]] = None

    def begin_path(self) -> None:
        self._last_point = None

    def line_to(self, x: float, y: float) -> None:
        """Extend the current path; the first point of a path only moves the pen."""
        if self._last_point is not None:
            self.draw.line([self._last_point, (x, y)], fill=STROKE_COLOR,
                           width=STROKE_WIDTH, joint='curve')
        self._last_point = (x, y)

    def add_outline(self, box: BoundingBox) -> None:
        self.outlines.append(box)

    def snapshot(self) -> np.ndarray:
        """Current ink as an H x W x 3 uint8 RGB array."""
        return np.array(self.image, dtype=np.uint8)

    def render(self) -> np.ndarray:
        """Ink plus box outlines, for display or saving."""
        frame = self.snapshot()
        for box in self.outlines:
            # cv2 wants integer corners in (x, y) order
            top_left = (int(round(box.left)), int(round(box.top)))
            bottom_right = (int(round(box.right)), int(round(box.bottom)))
            cv2.rectangle(frame, top_left, bottom_right, BOX_OUTLINE_COLOR, BOX_OUTLINE_WIDTH)
        return frame

    def save(self, path: str, with_outlines: bool = True) -> None:
        frame = self.render() if with_outlines else self.snapshot()
        if not cv2.imwrite(path, cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)):
            raise ValueError(f"Could not write image to {path}")
