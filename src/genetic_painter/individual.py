"""Individuals: one candidate painting as a fixed-size set of stroke slots.

Construction samples seed pixels (95% importance-weighted, 5% uniform) and
synthesizes one stroke per seed. Slots are initially sorted by ascending
importance; crossover and mutation then exchange strokes slot-by-slot, so the
slot count never changes.

Paint order:
    The renderer always consumes `Individual.paint_order()`, which is the
    strokes sorted by ascending importance (stable). Low-importance, broad
    strokes go down first and detailed strokes land on top, regardless of how
    slots were shuffled by crossover.

Ownership:
    Individuals and strokes are immutable. Every operator returns new
    Individuals, so a parent referenced from several population slots is
    never modified through one of them.
"""

import hashlib
from pathlib import Path
from typing import Any, Dict, Sequence, Tuple, Union

import numpy as np

from src.genetic_painter.errors import InputMismatchError
from src.genetic_painter.guidance import GuidanceFields
from src.genetic_painter.stroke import Stroke, synthesize_stroke
from src.utils import strokes as stroke_utils

WEIGHTED_SEED_RATIO = 0.95


class Individual:
    """Immutable ordered collection of strokes."""

    __slots__ = ('_strokes',)

    def __init__(self, strokes: Sequence[Stroke]):
        self._strokes = tuple(strokes)

    @property
    def strokes(self) -> Tuple[Stroke, ...]:
        return self._strokes

    def __len__(self) -> int:
        return len(self._strokes)

    def __getitem__(self, i: int) -> Stroke:
        return self._strokes[i]

    def __iter__(self):
        return iter(self._strokes)

    def __repr__(self) -> str:
        return f"Individual(strokes={len(self._strokes)})"

    def paint_order(self) -> Tuple[Stroke, ...]:
        """Strokes in rendering order (ascending importance, stable)."""
        return tuple(sorted(self._strokes, key=lambda s: s.importance))

    def replace(self, slots: dict) -> 'Individual':
        """Return a copy with `{index: stroke}` slots replaced."""
        strokes = list(self._strokes)
        for i, stroke in slots.items():
            strokes[i] = stroke
        return Individual(strokes)

    def distance(self, other: 'Individual') -> int:
        """Number of slots holding a different stroke than `other`.

        0 means structurally identical. Individuals of different length are
        incomparable.
        """
        if len(self) != len(other):
            raise InputMismatchError(
                f"Cannot compare individuals with {len(self)} and {len(other)} strokes"
            )
        return sum(1 for a, b in zip(self._strokes, other._strokes) if a is not b)

    def fingerprint(self) -> str:
        """SHA-256 over the stroke contents in slot order.

        Two individuals built from the same seed and guidance produce the
        same fingerprint.
        """
        h = hashlib.sha256()
        for s in self._strokes:
            h.update(np.asarray(s.seed_position, dtype=np.int64).tobytes())
            h.update(np.asarray(s.color, dtype=np.float64).tobytes())
            h.update(np.float64(s.thickness).tobytes())
            h.update(np.float64(s.importance).tobytes())
            h.update(s.skeleton.tobytes())
        return h.hexdigest()


def sample_seed_indices(
    guidance: GuidanceFields,
    stroke_num: int,
    rng: np.random.Generator
) -> np.ndarray:
    """Draw `stroke_num` seed pixel indices.

    `int(stroke_num * 0.95)` are drawn with probability proportional to
    importance (zero-importance pixels are never chosen), the rest uniformly
    over all pixels so low-importance regions still get covered.
    """
    if stroke_num < 1:
        raise ValueError(f"stroke_num must be >= 1, got {stroke_num}")
    weighted_num = int(stroke_num * WEIGHTED_SEED_RATIO)
    uniform_num = stroke_num - weighted_num
    weighted = rng.choice(guidance.size, size=weighted_num, p=guidance.seed_probabilities)
    uniform = rng.integers(0, guidance.size, size=uniform_num)
    return np.concatenate([weighted, uniform]).astype(np.int64)


def create_individual(
    guidance: GuidanceFields,
    stroke_num: int,
    stroke_thickness: float,
    rng: np.random.Generator
) -> Individual:
    """Build a random Individual with exactly `stroke_num` strokes.

    Parameters
    ----------
    guidance : GuidanceFields
        Target fields (importance must be samplable, checked at construction)
    stroke_num : int
        Number of strokes
    stroke_thickness : float
        Global thickness scale
    rng : np.random.Generator
        Seeded generator; the same seed yields bit-identical strokes

    Returns
    -------
    Individual
        Strokes sorted ascending by importance
    """
    indices = sample_seed_indices(guidance, stroke_num, rng)
    strokes = [synthesize_stroke(int(i), guidance, stroke_thickness, rng) for i in indices]
    strokes.sort(key=lambda s: s.importance)
    return Individual(strokes)


def make_crossover_mask(stroke_num: int, rng: np.random.Generator) -> np.ndarray:
    """Boolean mask with exactly `stroke_num // 2` True entries, shuffled."""
    mask = np.zeros(stroke_num, dtype=bool)
    mask[:stroke_num // 2] = True
    rng.shuffle(mask)
    return mask


def crossover(a: Individual, b: Individual, mask: np.ndarray) -> Tuple[Individual, Individual]:
    """Swap the strokes of `a` and `b` at every slot where `mask` is True.

    Parents are left untouched; applying the same mask to the children
    gives back the parents' stroke contents.
    """
    if len(a) != len(b) or len(mask) != len(a):
        raise InputMismatchError(
            f"crossover needs equal lengths, got {len(a)}, {len(b)} and mask {len(mask)}"
        )
    child_a = list(a.strokes)
    child_b = list(b.strokes)
    for i in np.flatnonzero(mask):
        child_a[i], child_b[i] = child_b[i], child_a[i]
    return Individual(child_a), Individual(child_b)


def mutate(
    individual: Individual,
    donor: Individual,
    probability: float,
    rng: np.random.Generator
) -> Individual:
    """Replace each slot with the donor's stroke with probability `probability`.

    One independent Bernoulli draw per slot. probability=0 returns a copy with
    every stroke unchanged; probability=1 returns the donor's strokes.
    """
    if len(individual) != len(donor):
        raise InputMismatchError(
            f"mutation donor has {len(donor)} strokes, expected {len(individual)}"
        )
    if not 0.0 <= probability <= 1.0:
        raise ValueError(f"mutation probability must be in [0, 1], got {probability}")
    flips = rng.random(len(individual)) < probability
    return individual.replace({int(i): donor[i] for i in np.flatnonzero(flips)})


# ============================================================================
# SERIALIZATION
# ============================================================================

def individual_to_yaml_dict(individual: Individual, width: int, height: int) -> Dict[str, Any]:
    """strokes.v1 document for `individual`, strokes in slot order."""
    return stroke_utils.strokes_to_yaml_dict(individual.strokes, width, height)


def individual_from_yaml_dict(doc: Dict[str, Any]) -> Individual:
    """Rebuild an Individual from a strokes.v1 document (not re-validated)."""
    return Individual([Stroke(**stroke_utils.stroke_yaml_dict_to_fields(s)) for s in doc['strokes']])


def save_individual(
    individual: Individual,
    width: int,
    height: int,
    path: Union[str, Path]
) -> Path:
    """Write `individual` as a strokes.v1 YAML file (atomic)."""
    return stroke_utils.save_strokes_yaml(individual.strokes, width, height, path)


def load_individual(path: Union[str, Path]) -> Individual:
    """Load and validate a strokes.v1 YAML file.

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ValueError
        If the file fails strokes.v1 validation
    """
    return Individual([Stroke(**fields) for fields in stroke_utils.load_strokes_yaml(path)])
