"""Fitness scoring: importance-weighted perceptual loss of a rendered painting.

Per pixel i:

    loss_i = importance_i * (ΔE2000(rendered_i, target_i) + ALPHA_PENALTY * (alpha_i - 1)^2)

and the score is the sum over all pixels. Lower is better. The alpha term
heavily penalizes canvas left uncovered by strokes.

Per-pixel terms are independent and computed as one vectorized torch
expression (spread over torch's intra-op threads); individuals are scored
concurrently by FitnessEvaluator.score_many with a thread pool. Summation
order differences only affect the result at floating-point round-off level.
"""

import logging
import math
from concurrent.futures import Executor
from typing import List, Optional, Sequence

import numpy as np
import torch

from src.genetic_painter.errors import InputMismatchError, NumericInstabilityError, RendererError
from src.genetic_painter.guidance import GuidanceFields
from src.utils import color as color_utils

logger = logging.getLogger(__name__)

ALPHA_PENALTY = 500.0


def evaluate(pixel_buffer: np.ndarray, guidance: GuidanceFields) -> float:
    """Score a rendered RGBA buffer against the guidance fields.

    Parameters
    ----------
    pixel_buffer : np.ndarray
        (H, W, 4) RGBA. Float buffers are read as [0,1]; uint8 buffers are
        divided by 255.
    guidance : GuidanceFields
        Target color (as cached Lab) and importance weights

    Returns
    -------
    float
        Loss (lower is better)

    Raises
    ------
    InputMismatchError
        If the buffer does not match the guidance dimensions
    NumericInstabilityError
        If the loss is NaN or infinite
    """
    buf = np.asarray(pixel_buffer)
    if buf.shape != (guidance.height, guidance.width, 4):
        raise InputMismatchError(
            f"Pixel buffer shape {buf.shape} != expected ({guidance.height}, {guidance.width}, 4)"
        )
    if buf.dtype == np.uint8:
        buf = buf.astype(np.float32) / 255.0

    rgba = torch.from_numpy(np.ascontiguousarray(buf, dtype=np.float32))
    color_loss = color_utils.delta_e2000(color_utils.srgb_to_lab(rgba[..., :3]), guidance.lab)
    alpha_loss = (rgba[..., 3] - 1.0) ** 2 * ALPHA_PENALTY
    weights = torch.from_numpy(guidance.importance.copy())

    score = float(((color_loss + alpha_loss) * weights).sum(dtype=torch.float64))
    if not math.isfinite(score):
        raise NumericInstabilityError(f"Non-finite fitness score: {score}")
    return score


class FitnessEvaluator:
    """Render-then-evaluate scorer bound to one renderer and guidance.

    Parameters
    ----------
    renderer : object
        Anything with `render(individual) -> (H, W, 4) array`
    guidance : GuidanceFields
        Target fields
    """

    def __init__(self, renderer, guidance: GuidanceFields):
        self.renderer = renderer
        self.guidance = guidance

    def score(self, individual) -> float:
        """Render `individual` and return its loss.

        Renderer failures are wrapped in RendererError and not retried.
        """
        try:
            buf = self.renderer.render(individual)
        except Exception as e:
            raise RendererError(f"Renderer failed on {individual!r}: {e}") from e
        return evaluate(buf, self.guidance)

    def score_many(
        self,
        individuals: Sequence,
        executor: Optional[Executor] = None
    ) -> List[float]:
        """Score several individuals, in parallel when an executor is given.

        Returns scores in input order. Blocks until every score is available.
        """
        if executor is None:
            return [self.score(ind) for ind in individuals]
        return list(executor.map(self.score, individuals))
