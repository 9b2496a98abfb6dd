#!/usr/bin/env python3
"""Stroke painting tool set: direction maps, random individuals, genetic evolution.

Subcommands:
    create-dirmap-from-normal   Normal map → direction map image
    create-dirmap-from-edge     Edge map → direction map image
    visualize-dirmap            Direction map → arrow grid image
    create-individual           Guidance maps → one random painting
    ga                          Guidance maps → evolved painting

Refactored architecture:
    - ga_main(...) / create_individual_main(...) → dict
        * Callable functions (used by tests and batch jobs)
    - CLI entry point: if __name__ == "__main__"

CLI:
    python scripts/paint.py create-dirmap-from-normal data/normal.png
    python scripts/paint.py ga -c color.png -d color.dir.png -i importance.png \\
                            -o out/painting.png --generation 200 --save-generation-step 10
    python scripts/paint.py ga ... --width 3840   # final image upscaled, aspect kept

Output structure (ga / create-individual):
    <output>                    final painting (RGBA PNG)
    <output stem>_strokes.yaml  strokes of the painting (strokes.v1)
    <output>.gen-<N>.png        checkpoints (ga only)

Ctrl+C during `ga` finishes the current generation, then saves the best
painting found so far.
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.data_pipeline import guidance_maps
from src.genetic_painter.fitness import FitnessEvaluator
from src.genetic_painter.genetic import GeneticPainter
from src.genetic_painter.guidance import GuidanceFields
from src.genetic_painter.individual import create_individual, save_individual
from src.stroke_renderer.cpu_rasterizer import CPUStrokeRenderer
from src.utils import validators
from src.utils.logging_config import install_excepthook, setup_logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = Path(__file__).parent.parent / "configs" / "genetic_painter_v1.yaml"


def _output_size(
    guidance: GuidanceFields,
    width: Optional[int],
    height: Optional[int]
) -> Optional[Tuple[int, int]]:
    """Saved image size; a single given side keeps the guidance aspect ratio."""
    if width is None and height is None:
        return None
    if width is None:
        width = max(1, round(height * guidance.width / guidance.height))
    if height is None:
        height = max(1, round(width * guidance.height / guidance.width))
    return int(width), int(height)


def strokes_path_for(output_path: Path) -> Path:
    """`out/painting.png` → `out/painting_strokes.yaml`."""
    return output_path.with_name(output_path.stem + "_strokes.yaml")


def create_individual_main(
    color_path: str,
    direction_path: str,
    importance_path: str,
    output_path: str,
    stroke_num: int = 10000,
    stroke_thickness: float = 1.0,
    seed: Optional[int] = None,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> Dict[str, Any]:
    """Build one random individual and save its rendering.

    Returns
    -------
    Dict[str, Any]
        output_path, strokes_path, score (fitness of the random individual)
    """
    guidance = guidance_maps.load_guidance_fields(color_path, direction_path, importance_path)
    rng = np.random.default_rng(seed)
    individual = create_individual(guidance, stroke_num, stroke_thickness, rng)

    renderer = CPUStrokeRenderer(guidance.width, guidance.height)
    score = FitnessEvaluator(renderer, guidance).score(individual)

    out = Path(output_path)
    renderer.render_to_file(individual, out, _output_size(guidance, width, height))
    strokes_path = save_individual(individual, guidance.width, guidance.height,
                                   strokes_path_for(out))
    logger.info(f"Random individual ({len(individual)} strokes, score {score:.4f}) saved to {out}")
    return {'output_path': str(out), 'strokes_path': str(strokes_path), 'score': score}


def ga_main(
    color_path: str,
    direction_path: str,
    importance_path: str,
    output_path: str,
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    width: Optional[int] = None,
    height: Optional[int] = None,
    handle_sigint: bool = False,
) -> Dict[str, Any]:
    """Evolve a painting and save the best individual.

    Parameters
    ----------
    color_path, direction_path, importance_path : str
        Guidance images
    output_path : str
        Final PNG path; checkpoints use it as prefix
    config_path : str, optional
        genetic.v1 YAML; None uses schema defaults
    overrides : dict, optional
        Config values taking precedence over the file (None values ignored)
    width, height : int, optional
        Saved image size (checkpoints and final); defaults to guidance size
    handle_sigint : bool
        Turn Ctrl+C into a graceful stop (main thread only)

    Returns
    -------
    Dict[str, Any]
        output_path, strokes_path, best_score, generations, remutations,
        stopped_early, history
    """
    cfg = validators.load_genetic_config(config_path, overrides)
    guidance = guidance_maps.load_guidance_fields(color_path, direction_path, importance_path)

    renderer = CPUStrokeRenderer(guidance.width, guidance.height)
    size = _output_size(guidance, width, height)
    out = Path(output_path)

    def save(individual, path):
        return renderer.render_to_file(individual, path, size)

    painter = GeneticPainter(guidance, cfg, renderer=renderer, save=save, output_path=out)

    previous_handler = None
    if handle_sigint:
        def on_sigint(signum, frame):
            logger.warning("Interrupt received, stopping after the current generation")
            painter.request_stop()
        previous_handler = signal.signal(signal.SIGINT, on_sigint)
    try:
        result = painter.run()
    finally:
        if handle_sigint:
            signal.signal(signal.SIGINT, previous_handler)

    save(result.best, out)
    strokes_path = save_individual(result.best, guidance.width, guidance.height,
                                   strokes_path_for(out))
    logger.info(f"Best painting saved to {out} (strokes: {strokes_path})")

    return {
        'output_path': str(out),
        'strokes_path': str(strokes_path),
        'best_score': result.best_score,
        'generations': result.generations,
        'remutations': result.remutations,
        'stopped_early': result.stopped_early,
        'history': result.history,
    }


def _add_guidance_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--color-map", required=True, help="Input color map")
    parser.add_argument("-d", "--dir-map", required=True, help="Input direction map")
    parser.add_argument("-i", "--importance-map", required=True, help="Input importance map")
    parser.add_argument("-o", "--output-path", required=True, help="Output image path")
    parser.add_argument("--width", type=int, help="Saved image width (px)")
    parser.add_argument("--height", type=int, help="Saved image height (px)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="paint.py",
        description="A stroke based rendering tool set",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also log to this file (rotated at 50 MB)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-dirmap-from-normal", help="Create direction map from normal map")
    p.add_argument("input", help="Input normal map path")
    p.add_argument("-o", "--output", help="Output file path (default: <input>.dir<ext>)")

    p = sub.add_parser("create-dirmap-from-edge", help="Create direction map from edge map")
    p.add_argument("input", help="Input edge map path")
    p.add_argument("-o", "--output", help="Output file path (default: <input>.dir<ext>)")

    p = sub.add_parser("visualize-dirmap", help="Draw a direction map as an arrow grid")
    p.add_argument("input", help="Input direction map path")
    p.add_argument("-o", "--output", help="Output file path (default: <input>.arrows<ext>)")
    p.add_argument("--grid", type=int, nargs=2, default=(100, 100), metavar=("X", "Y"),
                   help="Arrows along x and y (default: 100 100)")

    p = sub.add_parser("create-individual", help="Create a random individual painting")
    _add_guidance_args(p)
    p.add_argument("-s", "--stroke-num", type=int, default=10000, help="Number of strokes")
    p.add_argument("--stroke-thickness", type=float, default=1.0, help="Stroke thickness scale")
    p.add_argument("--seed", type=int, help="RNG seed")

    p = sub.add_parser("ga", help="Genetic algorithm process")
    _add_guidance_args(p)
    p.add_argument("--config", default=str(DEFAULT_CONFIG),
                   help=f"genetic.v1 config (default: {DEFAULT_CONFIG.name})")
    p.add_argument("--stroke-num", type=int, help="Number of strokes")
    p.add_argument("--stroke-thickness", type=float, help="Stroke thickness scale")
    p.add_argument("-p", "--population-size", type=int, help="Population size")
    p.add_argument("-g", "--generation", type=int, help="Number of generations")
    p.add_argument("-s", "--save-generation", type=int, action="append",
                   help="Save the top individual of this generation (repeatable)")
    p.add_argument("--save-generation-step", type=int, help="Save every N generations")
    p.add_argument("--d-value", type=int, dest="stagnation_countdown",
                   help="Stagnation countdown before remutation")
    p.add_argument("--workers", type=int, help="Worker threads")
    p.add_argument("--seed", type=int, help="RNG seed")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(
        log_level="DEBUG" if args.verbose else "INFO",
        log_file=args.log_file,
        rotate={"mode": "size", "max_bytes": 50_000_000, "backup_count": 5} if args.log_file else None,
        quiet_libs=["PIL"],
        context={"app": args.command},
    )
    install_excepthook()

    if args.command == "create-dirmap-from-normal":
        out = guidance_maps.create_direction_map_from_normal(args.input, args.output)
        print(f">> Output file: {out}")
    elif args.command == "create-dirmap-from-edge":
        out = guidance_maps.create_direction_map_from_edge(args.input, args.output)
        print(f">> Output file: {out}")
    elif args.command == "visualize-dirmap":
        out = guidance_maps.visualize_direction_map_file(args.input, args.output, tuple(args.grid))
        print(f">> Output file: {out}")
    elif args.command == "create-individual":
        result = create_individual_main(
            args.color_map, args.dir_map, args.importance_map, args.output_path,
            stroke_num=args.stroke_num,
            stroke_thickness=args.stroke_thickness,
            seed=args.seed,
            width=args.width,
            height=args.height,
        )
        print(f">> Output file: {result['output_path']}")
    elif args.command == "ga":
        overrides = {
            'stroke_num': args.stroke_num,
            'stroke_thickness': args.stroke_thickness,
            'population_size': args.population_size,
            'generation': args.generation,
            'save_generation': args.save_generation,
            'save_generation_step': args.save_generation_step,
            'stagnation_countdown': args.stagnation_countdown,
            'workers': args.workers,
            'seed': args.seed,
        }
        result = ga_main(
            args.color_map, args.dir_map, args.importance_map, args.output_path,
            config_path=args.config,
            overrides=overrides,
            width=args.width,
            height=args.height,
            handle_sigint=True,
        )
        print("\n=== Painting Complete ===")
        print(f"Image: {result['output_path']}")
        print(f"Strokes: {result['strokes_path']}")
        print(f"Best score: {result['best_score']:.4f} after {result['generations']} generations")
        if result['stopped_early']:
            print("(stopped early)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
