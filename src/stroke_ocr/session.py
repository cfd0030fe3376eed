"""
Recognition session: wires pointer events, the surface, the tracker and
the classifier together the same way the drawing window does.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from .classifier import BoxClassifier, ClassificationResult, classify_and_report
from .constants import STATUS_MESSAGES, RecognizerConfig
from .display import ConsoleDisplay, Display
from .models import DigitClassifier
from .surface import DrawingSurface
from .tracking import BoundingBox, StrokeTracker

Point = Tuple[float, float]


class RecognitionSession:
    """One drawing session: strokes in, labelled boxes out."""

    def __init__(
        self,
        config: Optional[RecognizerConfig] = None,
        model: Optional[DigitClassifier] = None,
        display: Optional[Display] = None,
    ) -> None:
        self.config = config or RecognizerConfig()
        self.display = display or ConsoleDisplay()
        self.surface = DrawingSurface(self.config.width, self.config.height)
        self.tracker = StrokeTracker(self.config.width, self.config.height, self.config.pad)
        self.model = model or DigitClassifier(self.config.model_path)
        self.box_classifier = BoxClassifier(
            self.model,
            target_size=self.config.target_size,
            per_axis_normalization=self.config.per_axis_normalization,
            skip_degenerate=self.config.skip_degenerate,
        )
        self.is_drawing = False

    @property
    def boxes(self) -> Tuple[BoundingBox, ...]:
        return self.tracker.boxes.snapshot()

    def initialize_model(self) -> None:
        """Load and warm up the model, reporting progress on the display."""
        self.display.set_status(STATUS_MESSAGES["loading"])
        try:
            self.model.initialize()
        except Exception:
            self.display.set_status(STATUS_MESSAGES["failed"])
            raise
        self.display.set_status(STATUS_MESSAGES["ready"])

    def pointer_down(self, x: float, y: float) -> None:
        self.is_drawing = True
        self.surface.begin_path()
        self.tracker.on_stroke_start()
        self.pointer_move(x, y)

    def pointer_move(self, x: float, y: float) -> None:
        if not self.is_drawing:
            return
        self.surface.line_to(x, y)
        self.tracker.on_stroke_point(x, y)

    def pointer_up(self) -> Optional[BoundingBox]:
        """Finish the gesture; returns its box, or None if no gesture was active."""
        if not self.is_drawing:
            return None
        self.is_drawing = False
        box = self.tracker.on_stroke_end()
        self.surface.add_outline(box)
        return box

    def draw_gesture(self, points: Sequence[Point]) -> Optional[BoundingBox]:
        if not points:
            return None
        first, rest = points[0], points[1:]
        self.pointer_down(*first)
        for x, y in rest:
            self.pointer_move(x, y)
        return self.pointer_up()

    def replay(self, gestures: Iterable[Sequence[Point]]) -> List[BoundingBox]:
        boxes = []
        for gesture in gestures:
            box = self.draw_gesture(gesture)
            if box is not None:
                boxes.append(box)
        return boxes

    def classify(self) -> Optional[List[ClassificationResult]]:
        return classify_and_report(
            self.box_classifier, self.tracker.boxes, self.surface.snapshot(), self.display
        )


def _parse_gesture(raw: Any, index: int) -> List[Point]:
    if not isinstance(raw, list):
        raise ValueError(f"Gesture {index} must be a list of [x, y] points")
    points: List[Point] = []
    for point in raw:
        if not isinstance(point, (list, tuple)) or len(point) != 2:
            raise ValueError(f"Gesture {index} has a malformed point: {point!r}")
        try:
            points.append((float(point[0]), float(point[1])))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Gesture {index} has a non-numeric point: {point!r}") from exc
    return points


def load_gestures(path: str) -> Tuple[Optional[Tuple[int, int]], List[List[Point]]]:
    """
    Read a gesture replay file.

    The file holds either a list of gestures or an object with ``gestures``
    and optional ``width``/``height``. Each gesture is a list of ``[x, y]``.
    Returns ``(size or None, gestures)``.
    """
    with open(path, "r", encoding="utf-8") as handle:
        data = json.load(handle)

    size: Optional[Tuple[int, int]] = None
    if isinstance(data, dict):
        if "gestures" not in data:
            raise ValueError("Replay file object needs a 'gestures' key")
        if "width" in data or "height" in data:
            try:
                size = (int(data["width"]), int(data["height"]))
            except (KeyError, TypeError, ValueError) as exc:
                raise ValueError("Replay file needs both integer 'width' and 'height'") from exc
        raw_gestures = data["gestures"]
    else:
        raw_gestures = data

    if not isinstance(raw_gestures, list):
        raise ValueError("Replay gestures must be a list")
    return size, [_parse_gesture(g, i) for i, g in enumerate(raw_gestures)]
