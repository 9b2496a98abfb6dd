"""Stroke serialization to and from YAML dictionaries.

Provides:
    - stroke_to_yaml_dict(): stroke object → strokes.v1 entry
    - strokes_to_yaml_dict(): whole painting → strokes.v1 document
    - stroke_yaml_dict_to_fields(): strokes.v1 entry → constructor fields
    - save_strokes_yaml() / load_strokes_yaml(): atomic file round trip

YAML format (strokes.v1 schema):
    schema, width, height,
    strokes: [{seed: [x, y], color: {r, g, b, a}, thickness, importance, skeleton: [[x, y], ...]}]

Stroke objects are read by attribute (seed_position, color, thickness,
importance, skeleton); this module does not import the painter package.
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

import numpy as np


def stroke_to_yaml_dict(stroke) -> Dict[str, Any]:
    """Convert one stroke to a YAML-compatible dictionary."""
    r, g, b, a = (float(c) for c in stroke.color)
    return {
        'seed': [int(stroke.seed_position[0]), int(stroke.seed_position[1])],
        'color': {'r': r, 'g': g, 'b': b, 'a': a},
        'thickness': float(stroke.thickness),
        'importance': float(stroke.importance),
        'skeleton': [[float(x), float(y)] for x, y in np.asarray(stroke.skeleton)],
    }


def strokes_to_yaml_dict(strokes: Iterable, width: int, height: int) -> Dict[str, Any]:
    """Build a strokes.v1 document from strokes in slot order."""
    return {
        'schema': 'strokes.v1',
        'width': int(width),
        'height': int(height),
        'strokes': [stroke_to_yaml_dict(s) for s in strokes],
    }


def stroke_yaml_dict_to_fields(y: Dict) -> Dict[str, Any]:
    """Convert a strokes.v1 entry to Stroke constructor keyword arguments.

    Raises
    ------
    KeyError
        If required keys missing from dictionary
    """
    try:
        c = y['color']
        return {
            'seed_position': (int(y['seed'][0]), int(y['seed'][1])),
            'color': (float(c['r']), float(c['g']), float(c['b']), float(c.get('a', 1.0))),
            'thickness': float(y['thickness']),
            'importance': float(y['importance']),
            'skeleton': np.asarray(y['skeleton'], dtype=np.float32),
        }
    except KeyError as e:
        raise KeyError(f"Missing required stroke field: {e}. Check strokes.v1 schema.") from e


def save_strokes_yaml(strokes: Iterable, width: int, height: int, path: Union[str, Path]) -> Path:
    """Write strokes atomically as a strokes.v1 YAML file."""
    from src.utils import fs

    path = Path(path)
    fs.atomic_yaml_dump(strokes_to_yaml_dict(strokes, width, height), path)
    return path


def load_strokes_yaml(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Load and validate a strokes.v1 file, returning constructor fields per stroke."""
    from src.utils import validators

    doc = validators.validate_strokes_file(path)
    return [
        stroke_yaml_dict_to_fields(s.model_dump())
        for s in doc.strokes
    ]
