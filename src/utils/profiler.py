"""Lightweight wall-clock profiling.

Provides:
    - timer(): Context manager for wall-clock timing with optional sink
    - log_sink(): Sink that reports timings through a logger

Used to measure the phases of a generation:
    - Population initialization
    - Offspring scoring (render + ΔE2000)
    - Remutation

No heavy dependencies (no line_profiler, no cProfile overhead during evolution).
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional


@contextmanager
def timer(name: str, sink: Optional[Callable[[str, float], None]] = None):
    """Context manager for wall-clock timing.

    Parameters
    ----------
    name : str
        Timer name (for logging/display)
    sink : Optional[Callable[[str, float], None]]
        Optional callback(name, elapsed_seconds)
        If None, prints to stdout

    Examples
    --------
    >>> with timer("score_offspring", sink=log_sink(logger)):
    ...     scores = evaluator.score_many(children, executor)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if sink is not None:
            sink(name, elapsed)
        else:
            print(f"{name}: {elapsed:.3f} s")


def log_sink(logger: logging.Logger, level: int = logging.DEBUG) -> Callable[[str, float], None]:
    """Build a timer sink that logs "name: 0.123 s" at `level`."""
    def sink(name: str, elapsed: float) -> None:
        logger.log(level, f"{name}: {elapsed:.3f} s")
    return sink
