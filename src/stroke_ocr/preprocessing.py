"""
Image preprocessing for gesture boxes.

Each box is cut out of the surface snapshot, resampled to a small square and
collapsed to a single intensity channel before it reaches the digit model.
Resampling follows TensorFlow's ``crop_and_resize`` conventions: box
coordinates are fractions of the image, bilinear interpolation, and sample
points that land outside the image take a constant extrapolation value.
"""

from __future__ import annotations

from typing import Sequence, Tuple

import cv2
import numpy as np

from .constants import TARGET_SIZE
from .tracking import BoundingBox


def to_float_image(image: np.ndarray) -> np.ndarray:
    """Scale an 8-bit image to float32 in [0, 1]; float input is passed through."""
    arr = np.asarray(image)
    if arr.dtype == np.uint8:
        return arr.astype(np.float32) / 255.0
    return arr.astype(np.float32)


def ensure_rgb(image: np.ndarray) -> np.ndarray:
    """Return an H x W x 3 array, dropping alpha or expanding grayscale."""
    arr = np.asarray(image)
    if arr.ndim == 2:
        return cv2.cvtColor(arr, cv2.COLOR_GRAY2RGB)
    if arr.ndim == 3 and arr.shape[2] == 4:
        return arr[:, :, :3]
    if arr.ndim == 3 and arr.shape[2] in (1, 3):
        return arr if arr.shape[2] == 3 else np.repeat(arr, 3, axis=2)
    raise ValueError(f"Unexpected image shape: {arr.shape}")


def _sample_positions(start: float, end: float, size: int, out_size: int) -> np.ndarray:
    if out_size > 1:
        scale = (end - start) * (size - 1) / (out_size - 1)
        return start * (size - 1) + np.arange(out_size, dtype=np.float64) * scale
    return np.full(1, 0.5 * (start + end) * (size - 1), dtype=np.float64)


def crop_and_resize(
    image: np.ndarray,
    box: Sequence[float],
    crop_size: Tuple[int, int] = (TARGET_SIZE, TARGET_SIZE),
    extrapolation_value: float = 0.0,
) -> np.ndarray:
    """
    Bilinearly resample a normalised ``(y1, x1, y2, x2)`` region of ``image``.

    Coordinates may fall outside [0, 1] and ``y1 > y2`` flips the crop; in
    both cases nothing is clamped. Returns ``crop_h x crop_w x C`` float32.
    """
    arr = np.asarray(image, dtype=np.float32)
    if arr.ndim == 2:
        arr = arr[:, :, None]
    height, width = arr.shape[:2]
    crop_h, crop_w = int(crop_size[0]), int(crop_size[1])
    y1, x1, y2, x2 = (float(v) for v in box)

    in_y = _sample_positions(y1, y2, height, crop_h)
    in_x = _sample_positions(x1, x2, width, crop_w)
    valid_y = (in_y >= 0) & (in_y <= height - 1)
    valid_x = (in_x >= 0) & (in_x <= width - 1)

    top = np.clip(np.floor(in_y), 0, height - 1).astype(np.intp)
    bottom = np.clip(np.ceil(in_y), 0, height - 1).astype(np.intp)
    left = np.clip(np.floor(in_x), 0, width - 1).astype(np.intp)
    right = np.clip(np.ceil(in_x), 0, width - 1).astype(np.intp)
    y_lerp = (in_y - np.floor(in_y)).astype(np.float32)[:, None, None]
    x_lerp = (in_x - np.floor(in_x)).astype(np.float32)[None, :, None]

    top_left = arr[top][:, left]
    top_right = arr[top][:, right]
    bottom_left = arr[bottom][:, left]
    bottom_right = arr[bottom][:, right]

    upper = top_left + (top_right - top_left) * x_lerp
    lower = bottom_left + (bottom_right - bottom_left) * x_lerp
    crop = upper + (lower - upper) * y_lerp

    mask = valid_y[:, None] & valid_x[None, :]
    crop[~mask] = extrapolation_value
    return crop.astype(np.float32)


def max_channel(image: np.ndarray) -> np.ndarray:
    """Collapse colour channels to one by taking the per-pixel maximum."""
    arr = np.asarray(image)
    if arr.ndim == 2:
        return arr[:, :, None]
    return arr.max(axis=2, keepdims=True)


def prepare_box_input(
    image: np.ndarray,
    box: BoundingBox,
    surface_width: int,
    surface_height: int | None = None,
    target_size: int = TARGET_SIZE,
) -> np.ndarray:
    """
    Full pipeline from a surface snapshot and one box to a model batch.

    Returns a ``(1, target_size, target_size, 1)`` float32 array. The box is
    normalised by ``surface_width`` alone unless ``surface_height`` is given.
    """
    rgb = to_float_image(ensure_rgb(image))
    fractions = box.normalized(surface_width, surface_height)
    cropped = crop_and_resize(rgb, fractions, (target_size, target_size))
    gray = max_channel(cropped)
    return gray.reshape(1, target_size, target_size, 1)
