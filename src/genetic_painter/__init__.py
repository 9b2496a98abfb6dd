"""Evolutionary stroke painter.

Approximates a target image with a fixed number of brush strokes, optimized by
a genetic algorithm against importance-weighted ΔE2000 loss.

Modules:
    - guidance: Read-only color / direction / importance fields
    - stroke: Stroke synthesis by hopping along the flow field
    - individual: Stroke collections, crossover, mutation, YAML round trip
    - fitness: Render-then-score loss (ΔE2000 + uncovered-alpha penalty)
    - genetic: Generational loop with elitist merge and stagnation remutation
    - errors: Exception types raised by the modules above

Workflow:
    1. Load guidance images (data_pipeline.guidance_maps)
    2. Seed population: 95% importance-weighted, 5% uniform stroke seeds
    3. Evolve: select → crossover → score → merge → stagnation check
    4. Render the best individual at any output size (stroke_renderer)

Invariants:
    - Every individual holds exactly `stroke_num` strokes
    - Strokes are painted in ascending importance
    - All randomness comes from one seeded numpy Generator
"""
