"""Stroke synthesis: one brush mark grown by "hopping" along the flow field.

A stroke starts at a seed pixel, takes its color from the guidance color at
that pixel, and grows two point chains in opposite directions. Each hop turns
toward the local flow direction (turn-limited and jittered) and a chain stops
when the guidance color under the new point is perceptually too far (ΔE2000)
from the stroke color, or when the combined length reaches a sampled target.

Thickness is driven by the seed importance: important pixels get thin,
detailed strokes, unimportant ones get wide strokes.

Skeleton layout:
    reversed(chain 1 without the seed) + chain 0 (starting at the seed)

so the seed appears exactly once and every skeleton has at least 3 points.
All randomness comes from the numpy Generator passed in.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from src.genetic_painter.guidance import GuidanceFields
from src.utils import color as color_utils

# Thickness regimes (t = importance ** THICKNESS_T_POW)
THICKNESS_MIN_MEAN = 4.0        # thin, high importance (t = 1)
THICKNESS_MIN_STD = 2.0
THICKNESS_MAX_MEAN = 50.0       # thick, low importance (t = 0)
THICKNESS_MAX_STD = 40.0
THICKNESS_MIN = 0.3
THICKNESS_T_POW = 1.0 / 1.8

# Target skeleton length, in units of thickness
LENGTH_FACTOR_MEAN = 8.0
LENGTH_FACTOR_STD = 4.0

# Hop length, in units of thickness
HOP_LENGTH_FACTOR_MEAN = 2.0
HOP_LENGTH_FACTOR_STD = 0.5
HOP_LENGTH_FACTOR_MIN = 0.5

HOP_ANGLE_STD = math.radians(10.0)
HOP_ANGLE_MAX = math.radians(45.0)

# ΔE2000 threshold that ends a chain
HOP_END_COLOR_DISTANCE_MEAN = 5.0
HOP_END_COLOR_DISTANCE_STD = 10.0
HOP_END_COLOR_DISTANCE_MIN = 2.0

# Heading used when the seed has no flow information (+y, image down)
FALLBACK_HEADING = math.pi / 2.0


@dataclass(frozen=True, eq=False)
class Stroke:
    """Immutable brush stroke.

    Equality is identity: strokes are never modified, only replaced, so two
    slots hold "the same stroke" exactly when they hold the same object.
    """
    seed_position: Tuple[int, int]
    color: Tuple[float, float, float, float]
    thickness: float
    skeleton: np.ndarray
    importance: float

    def __post_init__(self):
        skeleton = np.array(self.skeleton, dtype=np.float32)
        if skeleton.ndim != 2 or skeleton.shape[1] != 2:
            raise ValueError(f"skeleton must be (N, 2), got {skeleton.shape}")
        skeleton.setflags(write=False)
        object.__setattr__(self, 'skeleton', skeleton)

    @property
    def length(self) -> float:
        """Polyline length of the skeleton in pixels."""
        return float(np.linalg.norm(np.diff(self.skeleton, axis=0), axis=1).sum())


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def _unit(angle: float) -> np.ndarray:
    return np.array([math.cos(angle), math.sin(angle)], dtype=np.float64)


def _pixel(point: np.ndarray) -> Tuple[int, int]:
    return int(math.floor(point[0] + 0.5)), int(math.floor(point[1] + 0.5))


def _wrap_angle(a: float) -> float:
    """Wrap to (-pi, pi]."""
    a = math.fmod(a + math.pi, 2.0 * math.pi)
    if a <= 0.0:
        a += 2.0 * math.pi
    return a - math.pi


def sample_thickness(importance: float, stroke_thickness: float, rng: np.random.Generator) -> float:
    """Sample a stroke thickness for a seed of the given importance.

    Mean and spread are interpolated on t = importance ** (1/1.8) from the
    thick regime (t=0) to the thin regime (t=1), scaled by `stroke_thickness`
    and clamped to THICKNESS_MIN.
    """
    t = float(importance) ** THICKNESS_T_POW
    mean = _lerp(THICKNESS_MAX_MEAN, THICKNESS_MIN_MEAN, t)
    std = _lerp(THICKNESS_MAX_STD, THICKNESS_MIN_STD, t)
    return max(float(rng.normal(mean, std)) * stroke_thickness, THICKNESS_MIN)


def _hop_length(thickness: float, rng: np.random.Generator) -> float:
    return max(float(rng.normal(HOP_LENGTH_FACTOR_MEAN, HOP_LENGTH_FACTOR_STD)),
               HOP_LENGTH_FACTOR_MIN) * thickness


def _flow_angle(guidance: GuidanceFields, x: int, y: int) -> Optional[float]:
    """Flow angle at pixel (x, y), or None when out of bounds or undefined."""
    if not guidance.contains(x, y):
        return None
    dx, dy = guidance.direction[y, x]
    if dx == 0.0 and dy == 0.0:
        return None
    return math.atan2(float(dy), float(dx))


class _HopContext:
    """Per-stroke state shared by both chains while hopping."""

    def __init__(self, guidance: GuidanceFields, seed_xy: Tuple[int, int],
                 thickness: float, rng: np.random.Generator):
        self.guidance = guidance
        self.thickness = thickness
        self.rng = rng
        self.stroke_lab = guidance.lab_array[seed_xy[1], seed_xy[0]]

    def color_distance(self, point: np.ndarray) -> float:
        """ΔE2000 between the stroke color and the guidance color under `point`.

        Points outside the field read the stroke's own color (distance 0).
        """
        x, y = _pixel(point)
        if not self.guidance.contains(x, y):
            return 0.0
        return color_utils.delta_e2000_scalar(self.stroke_lab, self.guidance.lab_array[y, x])

    def next_hop(self, chain: List[np.ndarray]) -> Optional[float]:
        """Try to extend `chain` by one hop.

        Returns the hop length if a point was appended, None if the chain ends.
        """
        tip = chain[-1]
        prev_angle = math.atan2(*(tip - chain[-2])[::-1])

        flow = _flow_angle(self.guidance, *_pixel(tip))
        if flow is None:
            theta = 0.0
        else:
            # Flow is an orientation: fold the turn into (-90°, 90°)
            theta = _wrap_angle(flow - prev_angle)
            if theta <= -math.pi / 2.0:
                theta += math.pi
            elif theta >= math.pi / 2.0:
                theta -= math.pi
        theta = float(np.clip(theta + self.rng.normal(0.0, HOP_ANGLE_STD),
                              -HOP_ANGLE_MAX, HOP_ANGLE_MAX))

        hop = _hop_length(self.thickness, self.rng)
        point = tip + _unit(prev_angle + theta) * hop

        threshold = max(float(self.rng.normal(HOP_END_COLOR_DISTANCE_MEAN,
                                              HOP_END_COLOR_DISTANCE_STD)),
                        HOP_END_COLOR_DISTANCE_MIN)
        if self.color_distance(point) > threshold:
            return None
        chain.append(point)
        return hop


def grow_skeleton(
    guidance: GuidanceFields,
    seed_xy: Tuple[int, int],
    thickness: float,
    target_length: float,
    rng: np.random.Generator
) -> np.ndarray:
    """Grow the two hopping chains from `seed_xy` and join them.

    Both chains always get one initial hop (opposite headings around the seed
    flow direction), then grow in lock-step until their combined length
    reaches `target_length` or both have terminated on a color edge.

    Returns
    -------
    np.ndarray
        Skeleton points, shape (N, 2), N >= 3
    """
    ctx = _HopContext(guidance, seed_xy, thickness, rng)
    seed = np.array(seed_xy, dtype=np.float64)

    base = _flow_angle(guidance, *seed_xy)
    if base is None:
        base = FALLBACK_HEADING

    chains = []
    total = 0.0
    for heading in (base, base + math.pi):
        jitter = float(np.clip(rng.normal(0.0, HOP_ANGLE_STD) / 2.0,
                               -HOP_ANGLE_MAX / 2.0, HOP_ANGLE_MAX / 2.0))
        hop = _hop_length(thickness, rng)
        chains.append([seed, seed + _unit(heading + jitter) * hop])
        total += hop

    alive = [True, True]
    while total < target_length and any(alive):
        for k, chain in enumerate(chains):
            if not alive[k]:
                continue
            step = ctx.next_hop(chain)
            if step is None:
                alive[k] = False
            else:
                total += step

    return np.array(chains[1][:0:-1] + chains[0], dtype=np.float32)


def synthesize_stroke(
    index: int,
    guidance: GuidanceFields,
    stroke_thickness: float,
    rng: np.random.Generator
) -> Stroke:
    """Build one stroke seeded at flat pixel `index`.

    Parameters
    ----------
    index : int
        Seed pixel, flat index y * width + x
    guidance : GuidanceFields
        Shared read-only guidance
    stroke_thickness : float
        Global thickness scale
    rng : np.random.Generator
        Source of all randomness for this stroke

    Returns
    -------
    Stroke
    """
    if not 0 <= index < guidance.size:
        raise IndexError(f"Seed index {index} outside field of {guidance.size} pixels")

    x, y = guidance.index_to_xy(index)
    r, g, b = (float(c) for c in guidance.color[y, x])
    importance = float(guidance.importance[y, x])

    thickness = sample_thickness(importance, stroke_thickness, rng)
    target_length = max(thickness * float(rng.normal(LENGTH_FACTOR_MEAN, LENGTH_FACTOR_STD)),
                        thickness)
    skeleton = grow_skeleton(guidance, (x, y), thickness, target_length, rng)

    return Stroke(
        seed_position=(x, y),
        color=(r, g, b, 1.0),
        thickness=thickness,
        skeleton=skeleton,
        importance=importance,
    )
