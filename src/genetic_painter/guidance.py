"""Guidance fields: per-pixel target color, flow direction and importance.

The three arrays are loaded once and shared read-only by the stroke
synthesizer, the renderer and the fitness evaluator (including worker
threads), so they are frozen on construction.

Layout:
    color       (H, W, 3) float32, sRGB [0,1]
    direction   (H, W, 2) float32, unit (dx, dy) in pixel space (+y down),
                zero vectors mean "no flow information"
    importance  (H, W)    float32, [0,1]
    lab         (H, W, 3) torch.float32, Lab of `color` (cached)
    lab_array   (H, W, 3) float64 numpy copy of the same Lab values

Flat pixel index: i = y * width + x
"""

import logging
from typing import Tuple

import numpy as np
import torch

from src.genetic_painter.errors import DegenerateSamplingError, InputMismatchError
from src.utils import color as color_utils

logger = logging.getLogger(__name__)


def _frozen(arr: np.ndarray, dtype) -> np.ndarray:
    out = np.ascontiguousarray(arr, dtype=dtype).copy()
    out.setflags(write=False)
    return out


class GuidanceFields:
    """Immutable color / direction / importance fields of one target image.

    Parameters
    ----------
    color : np.ndarray
        (H, W, 3) sRGB in [0,1]
    direction : np.ndarray
        (H, W, 2) flow vectors; normalized here, zero-length kept as zero
    importance : np.ndarray
        (H, W) weights in [0,1]

    Raises
    ------
    InputMismatchError
        If the three arrays do not share (H, W) or have wrong channel counts
    DegenerateSamplingError
        If importance contains values outside [0, 1] or non-finite values,
        or sums to zero
    """

    def __init__(self, color: np.ndarray, direction: np.ndarray, importance: np.ndarray):
        color = np.asarray(color)
        direction = np.asarray(direction)
        importance = np.asarray(importance)

        if color.ndim != 3 or color.shape[2] != 3:
            raise InputMismatchError(f"color must be (H, W, 3), got {color.shape}")
        if direction.ndim != 3 or direction.shape[2] != 2:
            raise InputMismatchError(f"direction must be (H, W, 2), got {direction.shape}")
        if importance.ndim != 2:
            raise InputMismatchError(f"importance must be (H, W), got {importance.shape}")
        if not (color.shape[:2] == direction.shape[:2] == importance.shape):
            raise InputMismatchError(
                f"Guidance fields differ in size: color={color.shape[:2]}, "
                f"direction={direction.shape[:2]}, importance={importance.shape}"
            )

        if not np.all(np.isfinite(importance)) or np.any(importance < 0.0):
            raise DegenerateSamplingError("importance must be finite and non-negative")
        if np.any(importance > 1.0):
            raise DegenerateSamplingError(
                f"importance must be in [0, 1], got max {float(importance.max()):.4g}"
            )
        total = float(importance.sum(dtype=np.float64))
        if total <= 0.0:
            raise DegenerateSamplingError(
                "importance field is all zero; importance-weighted seed sampling is undefined"
            )

        # Normalize directions, leaving zero vectors at zero instead of NaN
        direction = direction.astype(np.float32)
        norm = np.linalg.norm(direction, axis=-1, keepdims=True)
        safe = norm > 1e-12
        direction = np.where(safe, direction / np.where(safe, norm, 1.0), 0.0)

        self.height, self.width = importance.shape
        self.color = _frozen(np.clip(color, 0.0, 1.0), np.float32)
        self.direction = _frozen(direction, np.float32)
        self.importance = _frozen(importance, np.float32)

        flat = self.importance.reshape(-1).astype(np.float64)
        self.seed_probabilities = _frozen(flat / flat.sum(), np.float64)

        self.lab = color_utils.srgb_to_lab(torch.from_numpy(self.color.copy()))
        # numpy copy for single-pixel lookups in the stroke synthesizer
        self.lab_array = _frozen(self.lab.numpy(), np.float64)

        logger.debug(
            f"GuidanceFields {self.width}x{self.height}: "
            f"importance mean={float(self.importance.mean()):.3f}, "
            f"nonzero={int(np.count_nonzero(self.importance))}"
        )

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width)."""
        return self.height, self.width

    @property
    def size(self) -> int:
        return self.width * self.height

    def index_to_xy(self, index: int) -> Tuple[int, int]:
        return index % self.width, index // self.width

    def contains(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height
