"""
Stroke Digit Recognition

Draw digits on a canvas, one gesture per digit, and classify every gesture's
bounding box with a pretrained MNIST-style CNN.
"""

from .classifier import BoxClassifier, ClassificationResult, NotReadyError
from .models import DigitClassifier, ModelState
from .session import RecognitionSession
from .tracking import BoundingBox, BoxList, StrokeTracker

__version__ = "1.0.0"

__all__ = [
    "BoundingBox",
    "BoxClassifier",
    "BoxList",
    "ClassificationResult",
    "DigitClassifier",
    "ModelState",
    "NotReadyError",
    "RecognitionSession",
    "StrokeTracker",
]
