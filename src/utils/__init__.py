"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Config validation (validators)
    - Color science, sRGB → Lab → ΔE2000 (color)
    - Atomic I/O (fs)
    - Profiling (profiler)
    - Stroke serialization (strokes)
    - Unified logging (logging_config)

No module in utils/ may import from upper layers (genetic_painter,
stroke_renderer, data_pipeline).

Convenience imports:
    from src.utils import fs, color, validators
    from src.utils.logging_config import setup_logging, get_logger
"""

# Re-export commonly used modules for convenience
from . import color
from . import fs
from . import logging_config
from . import profiler
from . import strokes
from . import validators

# Common functions for direct import
from .logging_config import get_logger, push_context, setup_logging

__all__ = [
    # Modules
    'color',
    'fs',
    'logging_config',
    'profiler',
    'strokes',
    'validators',
    # Direct exports
    'get_logger',
    'push_context',
    'setup_logging',
]
