"""Test stroke serialization.

Tests for src.utils.strokes:
    - stroke → strokes.v1 entry (plain Python types, YAML-safe)
    - strokes.v1 entry → constructor fields
    - Missing keys report the field name
    - File save/load through schema validation

Run:
    pytest tests/test_strokes.py -v
"""

import numpy as np
import pytest
import yaml

from src.genetic_painter.stroke import Stroke
from src.utils import strokes as stroke_utils


@pytest.fixture
def stroke():
    return Stroke(
        seed_position=(3, 2),
        color=(0.25, 0.5, 0.75, 1.0),
        thickness=4.5,
        skeleton=np.array([[1.0, 2.0], [3.0, 2.0], [5.5, 2.25]], dtype=np.float32),
        importance=0.6,
    )


def test_stroke_to_yaml_dict(stroke):
    d = stroke_utils.stroke_to_yaml_dict(stroke)
    assert d['seed'] == [3, 2]
    assert d['color'] == {'r': 0.25, 'g': 0.5, 'b': 0.75, 'a': 1.0}
    assert d['skeleton'][2] == [5.5, 2.25]
    # Only plain types: safe_dump must accept it
    yaml.safe_dump(d)


def test_yaml_dict_to_fields(stroke):
    fields = stroke_utils.stroke_yaml_dict_to_fields(stroke_utils.stroke_to_yaml_dict(stroke))
    rebuilt = Stroke(**fields)
    assert rebuilt.seed_position == (3, 2)
    assert rebuilt.thickness == pytest.approx(4.5)
    assert np.array_equal(rebuilt.skeleton, stroke.skeleton)


def test_yaml_dict_default_alpha(stroke):
    d = stroke_utils.stroke_to_yaml_dict(stroke)
    del d['color']['a']
    assert stroke_utils.stroke_yaml_dict_to_fields(d)['color'][3] == 1.0


def test_yaml_dict_missing_field(stroke):
    d = stroke_utils.stroke_to_yaml_dict(stroke)
    del d['thickness']
    with pytest.raises(KeyError, match="thickness"):
        stroke_utils.stroke_yaml_dict_to_fields(d)


def test_save_and_load(tmp_path, stroke):
    path = stroke_utils.save_strokes_yaml([stroke, stroke], 8, 6, tmp_path / "s.yaml")
    doc = yaml.safe_load(path.read_text())
    assert (doc['schema'], doc['width'], doc['height']) == ('strokes.v1', 8, 6)

    loaded = stroke_utils.load_strokes_yaml(path)
    assert len(loaded) == 2
    assert loaded[0]['seed_position'] == (3, 2)
    assert loaded[0]['importance'] == pytest.approx(0.6)


def test_load_rejects_out_of_bounds_seed(tmp_path, stroke):
    path = stroke_utils.save_strokes_yaml([stroke], 3, 3, tmp_path / "s.yaml")
    with pytest.raises(ValueError):
        stroke_utils.load_strokes_yaml(path)
