"""Test individuals and genetic operators.

Tests for src.genetic_painter.individual:
    - Construction: exact stroke count, importance-sorted slots, seeded determinism
    - Seed sampling: zero-importance pixels excluded from the weighted share
    - Crossover: half mask, self-inverse, parents untouched
    - Mutation: p=0 keeps every stroke, p=1 takes every donor stroke
    - Distance and paint order
    - strokes.v1 YAML round trip

Run:
    pytest tests/test_individual.py -v
"""

import numpy as np
import pytest

from src.genetic_painter.errors import DegenerateSamplingError, InputMismatchError
from src.genetic_painter.guidance import GuidanceFields
from src.genetic_painter.individual import (
    Individual,
    create_individual,
    crossover,
    individual_from_yaml_dict,
    individual_to_yaml_dict,
    load_individual,
    make_crossover_mask,
    mutate,
    sample_seed_indices,
    save_individual,
)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def guidance():
    rng = np.random.default_rng(123)
    h, w = 12, 16
    return GuidanceFields(
        color=rng.random((h, w, 3), dtype=np.float32),
        direction=rng.normal(size=(h, w, 2)).astype(np.float32),
        importance=rng.random((h, w), dtype=np.float32),
    )


@pytest.fixture
def pair(guidance):
    a = create_individual(guidance, 20, 0.2, np.random.default_rng(1))
    b = create_individual(guidance, 20, 0.2, np.random.default_rng(2))
    return a, b


# ============================================================================
# CONSTRUCTION
# ============================================================================

@pytest.mark.parametrize("stroke_num", [1, 7, 40])
def test_create_individual_stroke_count(guidance, stroke_num):
    ind = create_individual(guidance, stroke_num, 0.5, np.random.default_rng(0))
    assert len(ind) == stroke_num


def test_create_individual_sorted_by_importance(guidance):
    ind = create_individual(guidance, 50, 0.5, np.random.default_rng(0))
    importances = [s.importance for s in ind]
    assert importances == sorted(importances)


def test_create_individual_deterministic(guidance):
    a = create_individual(guidance, 25, 0.5, np.random.default_rng(42))
    b = create_individual(guidance, 25, 0.5, np.random.default_rng(42))
    c = create_individual(guidance, 25, 0.5, np.random.default_rng(43))
    assert a.fingerprint() == b.fingerprint()
    assert a.fingerprint() != c.fingerprint()


def test_create_individual_invalid_stroke_num(guidance):
    with pytest.raises(ValueError):
        create_individual(guidance, 0, 1.0, np.random.default_rng(0))


def test_weighted_seeds_skip_zero_importance():
    """With one important pixel, every weighted seed lands on it."""
    importance = np.zeros((4, 4), dtype=np.float32)
    importance[2, 1] = 1.0
    g = GuidanceFields(
        color=np.zeros((4, 4, 3), dtype=np.float32),
        direction=np.zeros((4, 4, 2), dtype=np.float32),
        importance=importance,
    )
    indices = sample_seed_indices(g, 100, np.random.default_rng(0))
    assert len(indices) == 100
    assert np.all(indices[:95] == 2 * 4 + 1)
    assert np.all((indices >= 0) & (indices < 16))


def test_zero_importance_is_degenerate():
    with pytest.raises(DegenerateSamplingError):
        GuidanceFields(
            color=np.zeros((4, 4, 3), dtype=np.float32),
            direction=np.zeros((4, 4, 2), dtype=np.float32),
            importance=np.zeros((4, 4), dtype=np.float32),
        )


# ============================================================================
# CROSSOVER
# ============================================================================

@pytest.mark.parametrize("n", [1, 2, 9, 20])
def test_crossover_mask_half(n):
    mask = make_crossover_mask(n, np.random.default_rng(n))
    assert mask.shape == (n,)
    assert mask.sum() == n // 2


def test_crossover_swaps_masked_slots(pair):
    a, b = pair
    mask = make_crossover_mask(len(a), np.random.default_rng(0))
    c1, c2 = crossover(a, b, mask)
    assert len(c1) == len(c2) == len(a)
    for i, swapped in enumerate(mask):
        if swapped:
            assert c1[i] is b[i] and c2[i] is a[i]
        else:
            assert c1[i] is a[i] and c2[i] is b[i]


def test_crossover_self_inverse(pair):
    a, b = pair
    mask = make_crossover_mask(len(a), np.random.default_rng(5))
    c1, c2 = crossover(a, b, mask)
    r1, r2 = crossover(c1, c2, mask)
    assert r1.distance(a) == 0
    assert r2.distance(b) == 0


def test_crossover_leaves_parents(pair):
    a, b = pair
    before = (a.fingerprint(), b.fingerprint())
    crossover(a, b, np.ones(len(a), dtype=bool))
    assert (a.fingerprint(), b.fingerprint()) == before


def test_crossover_length_mismatch(guidance, pair):
    a, _ = pair
    short = create_individual(guidance, 5, 0.2, np.random.default_rng(9))
    with pytest.raises(InputMismatchError):
        crossover(a, short, make_crossover_mask(len(a), np.random.default_rng(0)))


# ============================================================================
# MUTATION
# ============================================================================

def test_mutate_zero_probability(pair):
    a, b = pair
    m = mutate(a, b, 0.0, np.random.default_rng(0))
    assert m is not a
    assert m.distance(a) == 0


def test_mutate_full_probability(pair):
    a, b = pair
    m = mutate(a, b, 1.0, np.random.default_rng(0))
    assert m.distance(b) == 0
    assert len(m) == len(a)


def test_mutate_partial_probability(pair):
    a, b = pair
    m = mutate(a, b, 0.35, np.random.default_rng(0))
    assert len(m) == len(a)
    for i in range(len(a)):
        assert m[i] is a[i] or m[i] is b[i]


@pytest.mark.parametrize("p", [-0.1, 1.5])
def test_mutate_invalid_probability(pair, p):
    a, b = pair
    with pytest.raises(ValueError):
        mutate(a, b, p, np.random.default_rng(0))


# ============================================================================
# DISTANCE / ORDER
# ============================================================================

def test_distance(pair):
    a, b = pair
    assert a.distance(a) == 0
    assert a.distance(b) == len(a)
    replaced = a.replace({0: b[0], 3: b[3]})
    assert a.distance(replaced) == 2


def test_distance_length_mismatch(pair):
    a, _ = pair
    with pytest.raises(InputMismatchError):
        a.distance(Individual(a.strokes[:-1]))


def test_paint_order_is_sorted_permutation(pair):
    a, b = pair
    mask = make_crossover_mask(len(a), np.random.default_rng(3))
    child, _ = crossover(a, b, mask)
    order = child.paint_order()
    assert sorted(map(id, order)) == sorted(map(id, child.strokes))
    importances = [s.importance for s in order]
    assert importances == sorted(importances)


# ============================================================================
# SERIALIZATION
# ============================================================================

def test_yaml_roundtrip(tmp_path, guidance, pair):
    a, _ = pair
    path = save_individual(a, guidance.width, guidance.height, tmp_path / "ind_strokes.yaml")
    loaded = load_individual(path)
    assert len(loaded) == len(a)
    for s, t in zip(a, loaded):
        assert t.seed_position == s.seed_position
        assert t.thickness == pytest.approx(s.thickness)
        assert t.color == pytest.approx(s.color)
        assert np.allclose(t.skeleton, s.skeleton)


def test_yaml_dict_roundtrip_keeps_slot_order(guidance, pair):
    a, _ = pair
    doc = individual_to_yaml_dict(a, guidance.width, guidance.height)
    assert doc['schema'] == 'strokes.v1'
    restored = individual_from_yaml_dict(doc)
    assert [s.seed_position for s in restored] == [s.seed_position for s in a]
