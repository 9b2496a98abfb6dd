"""Test guidance field construction and validation.

Tests for src.genetic_painter.guidance:
    - Shape validation (InputMismatchError)
    - Importance validation (DegenerateSamplingError)
    - Direction normalization, zero vectors preserved
    - Read-only arrays, seed probabilities, cached Lab

Run:
    pytest tests/test_guidance.py -v
"""

import numpy as np
import pytest

from src.genetic_painter.errors import DegenerateSamplingError, InputMismatchError
from src.genetic_painter.guidance import GuidanceFields


@pytest.fixture
def fields():
    rng = np.random.default_rng(0)
    h, w = 6, 8
    return {
        'color': rng.random((h, w, 3), dtype=np.float32),
        'direction': rng.normal(size=(h, w, 2)).astype(np.float32),
        'importance': rng.random((h, w), dtype=np.float32),
    }


# ============================================================================
# VALIDATION
# ============================================================================

def test_dimensions(fields):
    g = GuidanceFields(**fields)
    assert g.shape == (6, 8)
    assert (g.height, g.width, g.size) == (6, 8, 48)


@pytest.mark.parametrize("key,bad", [
    ('color', np.zeros((6, 9, 3), dtype=np.float32)),
    ('direction', np.zeros((5, 8, 2), dtype=np.float32)),
    ('importance', np.ones((6, 7), dtype=np.float32)),
    ('color', np.zeros((6, 8, 4), dtype=np.float32)),
    ('direction', np.zeros((6, 8), dtype=np.float32)),
])
def test_mismatched_fields_rejected(fields, key, bad):
    fields[key] = bad
    with pytest.raises(InputMismatchError):
        GuidanceFields(**fields)


def test_input_mismatch_is_value_error():
    assert issubclass(InputMismatchError, ValueError)


def test_zero_importance_rejected(fields):
    fields['importance'] = np.zeros((6, 8), dtype=np.float32)
    with pytest.raises(DegenerateSamplingError):
        GuidanceFields(**fields)


@pytest.mark.parametrize("value", [-0.1, 1.5, np.nan, np.inf])
def test_invalid_importance_rejected(fields, value):
    fields['importance'][2, 3] = value
    with pytest.raises(DegenerateSamplingError):
        GuidanceFields(**fields)


# ============================================================================
# DERIVED DATA
# ============================================================================

def test_direction_normalized_zero_kept(fields):
    fields['direction'][1, 1] = 0.0
    g = GuidanceFields(**fields)
    norms = np.linalg.norm(g.direction, axis=-1)
    assert norms[1, 1] == 0.0
    mask = np.ones_like(norms, dtype=bool)
    mask[1, 1] = False
    assert np.allclose(norms[mask], 1.0, atol=1e-5)


def test_arrays_read_only(fields):
    g = GuidanceFields(**fields)
    with pytest.raises(ValueError):
        g.importance[0, 0] = 1.0
    with pytest.raises(ValueError):
        g.color[0, 0, 0] = 1.0


def test_inputs_are_copied(fields):
    g = GuidanceFields(**fields)
    fields['importance'][0, 0] = 123.0
    assert g.importance[0, 0] != 123.0


def test_seed_probabilities(fields):
    g = GuidanceFields(**fields)
    p = g.seed_probabilities
    assert p.shape == (48,)
    assert p.sum() == pytest.approx(1.0)
    # Flat index i = y * width + x
    expected = fields['importance'][2, 5] / fields['importance'].sum(dtype=np.float64)
    assert p[2 * 8 + 5] == pytest.approx(expected, rel=1e-5)


def test_lab_cache(fields):
    g = GuidanceFields(**fields)
    assert tuple(g.lab.shape) == (6, 8, 3)
    assert float(g.lab[..., 0].min()) >= 0.0
    assert g.lab_array.dtype == np.float64
    assert np.allclose(g.lab_array, g.lab.numpy(), atol=1e-5)
    assert not g.lab_array.flags.writeable


def test_index_to_xy_and_contains(fields):
    g = GuidanceFields(**fields)
    assert g.index_to_xy(0) == (0, 0)
    assert g.index_to_xy(8 * 3 + 2) == (2, 3)
    assert g.contains(7, 5)
    assert not g.contains(8, 0)
    assert not g.contains(-1, 0)
