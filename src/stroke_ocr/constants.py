"""
Label configuration and defaults for the stroke digit recogniser.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, List, Tuple

# Closed label set produced by the digit model, in output-index order.
LABELS: List[str] = ["0", "1", "2", "3", "4", "5", "6", "7", "8", "9"]

# Margin added around every gesture; half of it goes on each side.
PAD: int = 40

# Side length of the square patch fed to the model.
TARGET_SIZE: int = 28
INPUT_SHAPE: Tuple[int, int, int] = (TARGET_SIZE, TARGET_SIZE, 1)

DEFAULT_SURFACE_WIDTH: int = 280
DEFAULT_SURFACE_HEIGHT: int = 280

# Stroke style of the drawing surface. The background stays black so the
# channel maximum of a stroke is bright on dark, like MNIST.
BACKGROUND_COLOR: Tuple[int, int, int] = (0, 0, 0)
STROKE_COLOR: Tuple[int, int, int] = (0, 128, 0)
STROKE_WIDTH: int = 5
BOX_OUTLINE_COLOR: Tuple[int, int, int] = (255, 0, 0)
BOX_OUTLINE_WIDTH: int = 1

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
_PROJECT_ROOT = os.path.dirname(os.path.dirname(_PACKAGE_DIR))
DEFAULT_MODELS_DIR: str = os.path.join(_PROJECT_ROOT, "models")
DEFAULT_MODEL_PATH: str = os.path.join(DEFAULT_MODELS_DIR, "digit_cnn.keras")

# Friendly status strings written to the display.
STATUS_MESSAGES: Dict[str, str] = {
    "loading": "Loading model...",
    "ready": "Ready to classify!",
    "not_ready": "Model still loading...",
    "failed": "Model failed to load.",
    "classifying": "Classifying...",
}


@dataclass(frozen=True)
class RecognizerConfig:
    """Settings shared by the tracker, the surface and the classifier."""

    width: int = DEFAULT_SURFACE_WIDTH
    height: int = DEFAULT_SURFACE_HEIGHT
    pad: int = PAD
    target_size: int = TARGET_SIZE
    model_path: str = DEFAULT_MODEL_PATH
    # Observed behaviour scales y by the surface width as well; set to
    # scale y by the height instead.
    per_axis_normalization: bool = False
    skip_degenerate: bool = False
