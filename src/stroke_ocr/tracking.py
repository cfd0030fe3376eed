"""
Gesture tracking: turns pointer-drag events into padded bounding boxes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Tuple

from .constants import DEFAULT_SURFACE_HEIGHT, DEFAULT_SURFACE_WIDTH, PAD


@dataclass(frozen=True)
class BoundingBox:
    """Padded box around one gesture, in surface pixels."""

    top: float
    left: float
    bottom: float
    right: float

    @property
    def is_degenerate(self) -> bool:
        return self.top > self.bottom or self.left > self.right

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.top, self.left, self.bottom, self.right)

    def normalized(
        self, width: float, height: float | None = None
    ) -> Tuple[float, float, float, float]:
        """
        Scale the box into [0, 1] fractions of the surface.

        Without ``height`` all four coordinates are divided by ``width``,
        which is how boxes have always been normalised here. Pass the
        surface height to scale the y coordinates by it instead.
        """
        y_scale = float(height) if height is not None else float(width)
        x_scale = float(width)
        return (
            self.top / y_scale,
            self.left / x_scale,
            self.bottom / y_scale,
            self.right / x_scale,
        )


class BoundsAccumulator:
    """Running min/max of the points seen in the current gesture."""

    def __init__(self, width: int, height: int) -> None:
        self.width = int(width)
        self.height = int(height)
        self.reset()

    def reset(self) -> None:
        self.min_x: float = self.width
        self.min_y: float = self.height
        self.max_x: float = 0
        self.max_y: float = 0
        self.points = 0

    def update(self, x: float, y: float) -> None:
        self.max_x = max(self.max_x, x)
        self.max_y = max(self.max_y, y)
        self.min_x = min(self.min_x, x)
        self.min_y = min(self.min_y, y)
        self.points += 1

    def to_box(self, pad: float) -> BoundingBox:
        half = pad / 2
        return BoundingBox(
            top=self.min_y - half,
            left=self.min_x - half,
            bottom=self.max_y + half,
            right=self.max_x + half,
        )


class BoxList:
    """Append-only, ordered collection of gesture boxes."""

    def __init__(self) -> None:
        self._boxes: List[BoundingBox] = []

    def append(self, box: BoundingBox) -> None:
        self._boxes.append(box)

    def snapshot(self) -> Tuple[BoundingBox, ...]:
        return tuple(self._boxes)

    def __len__(self) -> int:
        return len(self._boxes)

    def __iter__(self) -> Iterator[BoundingBox]:
        return iter(self.snapshot())

    def __getitem__(self, index: int) -> BoundingBox:
        return self._boxes[index]


class StrokeTracker:
    """Tracks the bounds of each gesture and records one box per gesture."""

    def __init__(
        self,
        width: int = DEFAULT_SURFACE_WIDTH,
        height: int = DEFAULT_SURFACE_HEIGHT,
        pad: int = PAD,
    ) -> None:
        self.pad = pad
        self.accumulator = BoundsAccumulator(width, height)
        self.boxes = BoxList()

    def on_stroke_start(self) -> None:
        self.accumulator.reset()

    def on_stroke_point(self, x: float, y: float) -> None:
        self.accumulator.update(x, y)

    def on_stroke_end(self) -> BoundingBox:
        """Close the gesture: record its padded box and reset for the next one."""
        box = self.accumulator.to_box(self.pad)
        self.boxes.append(box)
        self.accumulator.reset()
        return box
