"""Stroke rasterization.

Modules:
    - cpu_rasterizer: OpenCV anti-aliased polylines, alpha-over compositing

Render contract:
    render(individual, size=None) -> (H, W, 4) float32 RGBA in [0,1]

Used by:
    - genetic_painter.fitness: scoring every individual
    - genetic_painter.genetic: checkpoint images
    - scripts/paint.py: final and scaled output images
"""
