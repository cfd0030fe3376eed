"""
Box classification: runs every recorded gesture box through the digit model.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence

import numpy as np

from .constants import STATUS_MESSAGES, TARGET_SIZE
from .display import Display
from .models import DigitClassifier
from .preprocessing import prepare_box_input
from .tracking import BoundingBox


class NotReadyError(RuntimeError):
    """Raised when classification is requested before the model is ready."""


@dataclass(frozen=True)
class ClassificationResult:
    label: str
    confidence: float


class BoxClassifier:
    """Crops, normalises and classifies gesture boxes in drawing order."""

    def __init__(
        self,
        model: DigitClassifier,
        target_size: int = TARGET_SIZE,
        per_axis_normalization: bool = False,
        skip_degenerate: bool = False,
    ) -> None:
        self.model = model
        self.target_size = int(target_size)
        self.per_axis_normalization = per_axis_normalization
        self.skip_degenerate = skip_degenerate

    def classify(
        self, boxes: Iterable[BoundingBox], surface_image: np.ndarray
    ) -> Iterator[ClassificationResult]:
        """
        Classify each box against ``surface_image``.

        Readiness is checked immediately; the results themselves are
        produced lazily, one per box, in the order the boxes were recorded.
        The boxes are copied up front, so gestures finished while the
        iterator is being consumed are not picked up.
        """
        if not self.model.is_ready:
            raise NotReadyError(
                f"Digit classifier is {self.model.state.value}; cannot classify yet"
            )
        snapshot = tuple(boxes)
        image = np.asarray(surface_image)
        return self._iter_results(snapshot, image)

    def _iter_results(
        self, boxes: Sequence[BoundingBox], image: np.ndarray
    ) -> Iterator[ClassificationResult]:
        height, width = image.shape[:2]
        for box in boxes:
            if self.skip_degenerate and box.is_degenerate:
                continue
            batch = prepare_box_input(
                image,
                box,
                width,
                height if self.per_axis_normalization else None,
                self.target_size,
            )
            yield self._top_label(self.model.predict(batch)[0])

    def _top_label(self, prob_vec: np.ndarray) -> ClassificationResult:
        labels = self.model.labels
        if len(prob_vec) != len(labels):
            raise ValueError(
                f"Model returned {len(prob_vec)} probabilities for {len(labels)} labels"
            )
        index = int(np.argmax(prob_vec))
        return ClassificationResult(label=labels[index], confidence=float(prob_vec[index]))


def format_result(result: ClassificationResult) -> str:
    return f"Detected: {result.label} (confidence={result.confidence:.3f})"


def classify_and_report(
    classifier: BoxClassifier,
    boxes: Iterable[BoundingBox],
    surface_image: np.ndarray,
    display: Display,
) -> Optional[List[ClassificationResult]]:
    """
    Classify and write human readable lines to ``display``.

    Returns the results, or ``None`` when the model is not ready yet (the
    display then only shows the not-ready status).
    """
    try:
        results_iter = classifier.classify(boxes, surface_image)
    except NotReadyError:
        display.set_status(STATUS_MESSAGES["not_ready"])
        return None

    display.set_status(STATUS_MESSAGES["classifying"])
    results: List[ClassificationResult] = []
    for result in results_iter:
        results.append(result)
        display.append(format_result(result))
    display.append("")
    display.append(f"Final Output: {''.join(r.label for r in results)}")
    return results
