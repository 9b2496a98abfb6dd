"""Evolutionary loop: rank-biased crossover, elitist merge, stagnation remutation.

Each generation:

    select parents (weight 1 / (rank + crossover_bias))
    → half-mask crossover into `population_size` children
    → score children in parallel
    → merge parents + children, stable sort by score, keep the best `population_size`
    → stagnation check on the top individual

When the top individual has not changed for `stagnation_countdown + 1`
consecutive generations the population is remutated: the best individual is
kept and every other slot becomes a mutation of the best against a freshly
built random individual. The countdown then restarts at `stagnation_reset`.

Invariants:
    - The population size stays at `population_size`
    - The best score is non-increasing across generations (merge is elitist,
      remutation keeps the best)
    - The loop owns the only mutable state (population, scores, countdown);
      individuals are immutable and shared freely between slots
    - All randomness flows from one numpy Generator; parallel tasks receive
      child generators spawned on the calling thread, so results do not depend
      on thread scheduling

Usage:
    from src.genetic_painter.genetic import GeneticPainter

    painter = GeneticPainter(guidance, cfg, output_path="out/painting.png")
    result = painter.run()
    renderer.render_to_file(result.best, "out/painting.png")
"""

import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from src.genetic_painter.errors import RendererError
from src.genetic_painter.fitness import FitnessEvaluator
from src.genetic_painter.guidance import GuidanceFields
from src.genetic_painter.individual import (
    Individual,
    create_individual,
    crossover,
    make_crossover_mask,
    mutate,
)
from src.stroke_renderer.cpu_rasterizer import CPUStrokeRenderer
from src.utils.logging_config import pop_context, push_context
from src.utils.profiler import log_sink, timer
from src.utils.validators import GeneticConfigV1

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    """Loop phase, exposed in the logging context as `phase=...`."""
    INITIALIZING = "initializing"
    EVALUATING = "evaluating"
    SELECTING = "selecting"
    RECOMBINING = "recombining"
    SCORING_OFFSPRING = "scoring_offspring"
    MERGING = "merging"
    CHECKING_STAGNATION = "checking_stagnation"
    REMUTATING = "remutating"
    TERMINATING = "terminating"


@dataclass
class EvolutionResult:
    """Outcome of GeneticPainter.run().

    Attributes
    ----------
    best : Individual
        Lowest-loss individual after the final rescoring pass
    best_score : float
        Its loss
    history : list of float
        Best score after initialization (index 0) and after every generation
    generations : int
        Generations completed
    remutations : int
        Number of stagnation remutation events
    stopped_early : bool
        True when request_stop() ended the run before `generation`
    """
    best: Individual
    best_score: float
    history: List[float] = field(default_factory=list)
    generations: int = 0
    remutations: int = 0
    stopped_early: bool = False


# ============================================================================
# SELECTION / MERGE
# ============================================================================

def selection_weights(population_size: int, bias: float) -> np.ndarray:
    """Normalized rank weights 1 / (rank + bias), rank 0 being the best.

    Strictly decreasing in rank for any bias > 0; larger bias flattens the
    distribution toward uniform.
    """
    if population_size < 1:
        raise ValueError(f"population_size must be >= 1, got {population_size}")
    if bias <= 0:
        raise ValueError(f"crossover bias must be > 0, got {bias}")
    w = 1.0 / (np.arange(population_size, dtype=np.float64) + bias)
    return w / w.sum()


def select_parents(weights: np.ndarray, rng: np.random.Generator) -> Tuple[int, int]:
    """Draw two parent ranks with replacement."""
    a, b = rng.choice(len(weights), size=2, replace=True, p=weights)
    return int(a), int(b)


def merge_population(
    parents: Sequence[Individual],
    parent_scores: Sequence[float],
    children: Sequence[Individual],
    child_scores: Sequence[float],
    size: int
) -> Tuple[List[Individual], List[float]]:
    """Keep the `size` lowest-loss individuals of parents + children.

    Stable sort: on equal scores parents rank before children and keep their
    relative order.
    """
    pool = list(parents) + list(children)
    scores = np.asarray(list(parent_scores) + list(child_scores), dtype=np.float64)
    order = np.argsort(scores, kind='stable')[:size]
    return [pool[i] for i in order], [float(scores[i]) for i in order]


def _sort_population(
    population: Sequence[Individual],
    scores: Sequence[float]
) -> Tuple[List[Individual], List[float]]:
    order = np.argsort(np.asarray(scores, dtype=np.float64), kind='stable')
    return [population[i] for i in order], [float(scores[i]) for i in order]


# ============================================================================
# LOOP
# ============================================================================

class GeneticPainter:
    """Generational optimizer for stroke paintings.

    Parameters
    ----------
    guidance : GuidanceFields
        Target fields shared by synthesis and scoring
    config : GeneticConfigV1
        Evolution parameters
    renderer : object, optional
        Render contract implementation; defaults to CPUStrokeRenderer
    evaluator : FitnessEvaluator, optional
        Scorer; defaults to FitnessEvaluator(renderer, guidance)
    save : callable, optional
        `save(individual, path)` used for checkpoints; defaults to
        `renderer.render_to_file`
    output_path : str or Path, optional
        Base output path; checkpoints go to `<output_path>.gen-<gen>.png`.
        None disables checkpoints.
    rng : np.random.Generator, optional
        Defaults to `np.random.default_rng(config.seed)`
    """

    def __init__(
        self,
        guidance: GuidanceFields,
        config: GeneticConfigV1,
        renderer=None,
        evaluator: Optional[FitnessEvaluator] = None,
        save: Optional[Callable[[Individual, Path], object]] = None,
        output_path: Optional[Union[str, Path]] = None,
        rng: Optional[np.random.Generator] = None
    ):
        self.guidance = guidance
        self.config = config
        self.renderer = renderer if renderer is not None else CPUStrokeRenderer(
            guidance.width, guidance.height
        )
        self.evaluator = evaluator if evaluator is not None else FitnessEvaluator(
            self.renderer, guidance
        )
        self.save = save if save is not None else self.renderer.render_to_file
        self.output_path = output_path
        self.rng = rng if rng is not None else np.random.default_rng(config.seed)

        self.population: List[Individual] = []
        self.scores: List[float] = []
        self.countdown = config.stagnation_countdown
        self.remutations = 0
        self.phase: Optional[Phase] = None

        self._weights = selection_weights(config.population_size, config.crossover_bias)
        self._checkpoints = config.checkpoint_generations()
        self._stop = threading.Event()
        self._timing = log_sink(logger)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def request_stop(self) -> None:
        """Ask the loop to finish after the current generation (thread-safe)."""
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def _enter(self, phase: Phase) -> None:
        self.phase = phase
        push_context(phase=phase.value)

    # ------------------------------------------------------------------
    # Population building blocks
    # ------------------------------------------------------------------

    def _random_individuals(self, count: int, executor: Executor) -> List[Individual]:
        """Build `count` random individuals in parallel, one child RNG each."""
        rngs = self.rng.spawn(count)
        cfg = self.config

        def build(rng: np.random.Generator) -> Individual:
            return create_individual(self.guidance, cfg.stroke_num, cfg.stroke_thickness, rng)

        return list(executor.map(build, rngs))

    def _select_pairs(self) -> List[Tuple[int, int]]:
        """Rank-biased parent pairs, enough for `population_size` children."""
        pairs = (self.config.population_size + 1) // 2
        return [select_parents(self._weights, self.rng) for _ in range(pairs)]

    def _recombine(self, pairs: Sequence[Tuple[int, int]]) -> List[Individual]:
        """Cross each pair with a fresh half mask; two children per pair."""
        children: List[Individual] = []
        for i, j in pairs:
            mask = make_crossover_mask(self.config.stroke_num, self.rng)
            children.extend(crossover(self.population[i], self.population[j], mask))
        return children[:self.config.population_size]

    def _remutate(self, executor: Executor) -> None:
        """Keep the best individual, refill the rest with mutations of it."""
        best, best_score = self.population[0], self.scores[0]
        count = self.config.population_size - 1
        donors = self._random_individuals(count, executor)
        mutants = [
            mutate(best, donor, self.config.mutation_probability, self.rng)
            for donor in donors
        ]
        mutant_scores = self.evaluator.score_many(mutants, executor)
        self.population, self.scores = _sort_population(
            [best] + mutants, [best_score] + mutant_scores
        )
        self.remutations += 1
        self.countdown = self.config.stagnation_reset
        logger.info(
            f"Stagnation: remutated {count} individuals "
            f"(event {self.remutations}, top score {self.scores[0]:.4f})"
        )

    def _checkpoint(self, gen: int) -> None:
        if self.output_path is None or gen not in self._checkpoints:
            return
        path = Path(f"{self.output_path}.gen-{gen}.png")
        try:
            self.save(self.population[0], path)
        except Exception as e:
            raise RendererError(f"Failed to save checkpoint {path}: {e}") from e
        logger.info(f"Saved generation {gen} checkpoint to {path}")

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def initialize(self, executor: Executor) -> None:
        """Build, score and sort the initial population (generation 0)."""
        push_context(gen=0)
        self._enter(Phase.INITIALIZING)
        with timer("initialize", sink=self._timing):
            population = self._random_individuals(self.config.population_size, executor)

        self._enter(Phase.EVALUATING)
        with timer("evaluate", sink=self._timing):
            scores = self.evaluator.score_many(population, executor)
        self.population, self.scores = _sort_population(population, scores)
        self.countdown = self.config.stagnation_countdown
        logger.info(
            f"Initial population of {len(self.population)}: top score {self.scores[0]:.4f}"
        )
        self._checkpoint(0)

    def step(self, gen: int, executor: Executor) -> None:
        """Run one generation on the current population."""
        push_context(gen=gen)
        previous_top = self.population[0]

        self._enter(Phase.SELECTING)
        pairs = self._select_pairs()

        self._enter(Phase.RECOMBINING)
        children = self._recombine(pairs)

        self._enter(Phase.SCORING_OFFSPRING)
        with timer("score_offspring", sink=self._timing):
            child_scores = self.evaluator.score_many(children, executor)

        self._enter(Phase.MERGING)
        self.population, self.scores = merge_population(
            self.population, self.scores, children, child_scores,
            self.config.population_size
        )
        logger.info(f"Generation {gen}: top score {self.scores[0]:.4f}")
        self._checkpoint(gen)

        self._enter(Phase.CHECKING_STAGNATION)
        if self.population[0].distance(previous_top) == 0:
            self.countdown -= 1
            logger.debug(f"Top individual unchanged, countdown={self.countdown}")
            if self.countdown < 0:
                self._enter(Phase.REMUTATING)
                with timer("remutate", sink=self._timing):
                    self._remutate(executor)

    def run(self) -> EvolutionResult:
        """Evolve for `config.generation` generations (or until stopped).

        Returns
        -------
        EvolutionResult
            Best individual of a full rescoring pass over the final population

        Raises
        ------
        NumericInstabilityError
            If any score is NaN or infinite
        RendererError
            If rendering or checkpoint saving fails
        """
        cfg = self.config
        logger.info(
            f"Evolving {cfg.population_size} individuals x {cfg.stroke_num} strokes "
            f"for {cfg.generation} generations on {self.guidance.width}x{self.guidance.height}"
        )
        history: List[float] = []
        completed = 0
        try:
            with ThreadPoolExecutor(max_workers=cfg.workers) as executor:
                self.initialize(executor)
                history.append(self.scores[0])

                for gen in range(1, cfg.generation + 1):
                    if self._stop.is_set():
                        logger.warning(f"Stop requested, ending after {completed} generations")
                        break
                    self.step(gen, executor)
                    history.append(self.scores[0])
                    completed = gen

                self._enter(Phase.TERMINATING)
                final_scores = self.evaluator.score_many(self.population, executor)
        finally:
            pop_context(keys=['gen', 'phase'])

        best_idx = int(np.argmin(final_scores))
        result = EvolutionResult(
            best=self.population[best_idx],
            best_score=float(final_scores[best_idx]),
            history=history,
            generations=completed,
            remutations=self.remutations,
            stopped_early=completed < cfg.generation,
        )
        logger.info(
            f"Finished after {result.generations} generations: best score "
            f"{result.best_score:.4f}, {result.remutations} remutations"
        )
        return result
