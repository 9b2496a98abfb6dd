"""Test fitness scoring.

Tests for src.genetic_painter.fitness:
    - Perfect reproduction scores ~0
    - Uncovered canvas pays ALPHA_PENALTY per unit importance
    - Importance weighting (zero-importance pixels are free)
    - uint8 and float buffers agree
    - Shape mismatch, NaN guard
    - FitnessEvaluator: renderer failures wrapped, parallel == sequential

Run:
    pytest tests/test_fitness.py -v
"""

from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from src.genetic_painter.errors import InputMismatchError, NumericInstabilityError, RendererError
from src.genetic_painter.fitness import ALPHA_PENALTY, FitnessEvaluator, evaluate
from src.genetic_painter.guidance import GuidanceFields
from src.genetic_painter.individual import create_individual
from src.stroke_renderer.cpu_rasterizer import CPUStrokeRenderer


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def guidance():
    rng = np.random.default_rng(7)
    h, w = 8, 10
    return GuidanceFields(
        color=rng.random((h, w, 3), dtype=np.float32),
        direction=rng.normal(size=(h, w, 2)).astype(np.float32),
        importance=rng.uniform(0.1, 1.0, size=(h, w)).astype(np.float32),
    )


def _rgba(rgb, alpha=1.0):
    h, w = rgb.shape[:2]
    return np.concatenate([rgb, np.full((h, w, 1), alpha, dtype=np.float32)], axis=-1)


# ============================================================================
# EVALUATE
# ============================================================================

def test_perfect_match_scores_zero(guidance):
    score = evaluate(_rgba(np.array(guidance.color)), guidance)
    assert score == pytest.approx(0.0, abs=1e-3)


def test_uncovered_canvas_penalty():
    h, w = 4, 4
    importance = np.full((h, w), 0.5, dtype=np.float32)
    g = GuidanceFields(
        color=np.zeros((h, w, 3), dtype=np.float32),
        direction=np.zeros((h, w, 2), dtype=np.float32),
        importance=importance,
    )
    blank = np.zeros((h, w, 4), dtype=np.float32)
    assert evaluate(blank, g) == pytest.approx(ALPHA_PENALTY * 0.5 * h * w, rel=1e-5)


def test_zero_importance_pixels_ignored(guidance):
    importance = np.array(guidance.importance)
    importance[:, :5] = 0.0
    g = GuidanceFields(np.array(guidance.color), np.array(guidance.direction), importance)

    buf = _rgba(np.array(guidance.color))
    buf[:, :5, :3] = 1.0 - buf[:, :5, :3]
    buf[:, :5, 3] = 0.0
    assert evaluate(buf, g) == pytest.approx(0.0, abs=1e-3)


def test_worse_color_scores_higher(guidance):
    good = _rgba(np.array(guidance.color))
    bad = good.copy()
    bad[..., :3] = 1.0 - bad[..., :3]
    assert evaluate(bad, guidance) > evaluate(good, guidance)


def test_uint8_matches_float(guidance):
    buf = np.random.default_rng(0).random((8, 10, 4), dtype=np.float32)
    u8 = np.round(buf * 255).astype(np.uint8)
    assert evaluate(u8, guidance) == pytest.approx(evaluate(u8.astype(np.float32) / 255.0, guidance))


def test_shape_mismatch(guidance):
    with pytest.raises(InputMismatchError):
        evaluate(np.zeros((8, 9, 4), dtype=np.float32), guidance)
    with pytest.raises(InputMismatchError):
        evaluate(np.zeros((8, 10, 3), dtype=np.float32), guidance)


def test_nan_raises(guidance):
    buf = _rgba(np.array(guidance.color))
    buf[2, 3, 0] = np.nan
    with pytest.raises(NumericInstabilityError):
        evaluate(buf, guidance)


def test_numeric_instability_is_arithmetic_error():
    assert issubclass(NumericInstabilityError, ArithmeticError)


# ============================================================================
# EVALUATOR
# ============================================================================

class _BrokenRenderer:
    def render(self, individual):
        raise MemoryError("out of canvas memory")


def test_renderer_failure_wrapped(guidance):
    ind = create_individual(guidance, 3, 0.5, np.random.default_rng(0))
    evaluator = FitnessEvaluator(_BrokenRenderer(), guidance)
    with pytest.raises(RendererError) as excinfo:
        evaluator.score(ind)
    assert isinstance(excinfo.value.__cause__, MemoryError)


def test_score_many_parallel_matches_sequential(guidance):
    renderer = CPUStrokeRenderer(guidance.width, guidance.height)
    evaluator = FitnessEvaluator(renderer, guidance)
    rng = np.random.default_rng(11)
    inds = [create_individual(guidance, 6, 0.3, rng) for _ in range(6)]

    sequential = evaluator.score_many(inds)
    with ThreadPoolExecutor(max_workers=3) as executor:
        parallel = evaluator.score_many(inds, executor)
    assert parallel == pytest.approx(sequential)
    assert all(s >= 0.0 for s in sequential)
