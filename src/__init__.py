"""Genetic Stroke Painter: evolutionary brush-stroke image approximation.

This package contains the modules for loading guidance maps, synthesizing
flow-following strokes, rasterizing them, and evolving stroke sets with a
genetic algorithm.

Architecture layers (strict one-way dependency):
    scripts/ → src/data_pipeline/ → src/genetic_painter/ → src/stroke_renderer/ → src/utils/

Key invariants:
    - Geometry in guidance-field pixels end-to-end (+x right, +y down)
    - Fixed stroke count per individual
    - YAML-only configs, no JSON
    - Images are sRGB [0,1] unless explicitly noted
"""

__version__ = "1.0.0"
