"""YAML schema validation and config loading.

Provides centralized validation for configuration and artifact files using pydantic:
    - Genetic config (genetic.v1): population, stroke and stagnation parameters
    - Strokes file (strokes.v1): serialized strokes of one painting

All modules load configs through these validators for fail-fast error detection
with actionable messages (offending keys, expected ranges, file path).

Units:
    - Geometry: guidance-field pixels
    - Color: sRGB [0.0, 1.0]

Usage:
    from src.utils import validators

    cfg = validators.load_genetic_config("configs/genetic_painter_v1.yaml")
    strokes = validators.validate_strokes_file("out/painting_strokes.yaml")
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ============================================================================
# GENETIC CONFIG V1
# ============================================================================

class GeneticConfigV1(BaseModel):
    """Evolution parameters (genetic.v1 schema).

    Defaults reproduce the reference painting setup: 10000 strokes,
    250 individuals, 100 generations.
    """
    model_config = ConfigDict(populate_by_name=True, extra='forbid')

    schema_version: str = Field("genetic.v1", alias="schema", description="Schema version")
    stroke_num: int = Field(10000, ge=1, description="Strokes per individual")
    stroke_thickness: float = Field(1.0, gt=0.0, description="Global stroke thickness scale")
    population_size: int = Field(250, ge=1, description="Individuals per generation")
    generation: int = Field(100, ge=0, description="Number of generations")
    crossover_bias: float = Field(
        50.0, gt=0.0, description="Rank-bias constant B in selection weight 1/(rank + B)"
    )
    mutation_probability: float = Field(
        0.35, ge=0.0, le=1.0, description="Per-stroke replacement probability on remutation"
    )
    stagnation_countdown: int = Field(
        50, ge=0, description="Initial stagnation countdown d"
    )
    stagnation_reset: int = Field(
        25, ge=0, description="Countdown value after a remutation event"
    )
    save_generation: List[int] = Field(
        default_factory=list, description="Generations whose top individual is saved"
    )
    save_generation_step: int = Field(
        0, ge=0, description="Also save every N generations (0 disables)"
    )
    workers: Optional[int] = Field(None, ge=1, description="Worker threads (None = CPU count)")
    seed: Optional[int] = Field(None, ge=0, description="RNG seed (None = OS entropy)")

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "genetic.v1":
            raise ValueError(f"Expected schema 'genetic.v1', got '{v}'")
        return v

    @field_validator('save_generation')
    @classmethod
    def validate_save_generation(cls, v: List[int]) -> List[int]:
        bad = [g for g in v if g < 0]
        if bad:
            raise ValueError(f"save_generation entries must be >= 0, got {bad}")
        return v

    def checkpoint_generations(self) -> Set[int]:
        """Explicit save generations ∪ multiples of save_generation_step (≤ generation)."""
        gens = set(self.save_generation)
        if self.save_generation_step > 0:
            gens.update(range(0, self.generation + 1, self.save_generation_step))
        return gens


# ============================================================================
# STROKES SCHEMA V1
# ============================================================================

class ColorRGBA(BaseModel):
    """Stroke color, sRGB with alpha (0.0-1.0)."""
    r: float = Field(..., ge=0.0, le=1.0)
    g: float = Field(..., ge=0.0, le=1.0)
    b: float = Field(..., ge=0.0, le=1.0)
    a: float = Field(1.0, ge=0.0, le=1.0)


class StrokeV1(BaseModel):
    """Single stroke (strokes.v1 schema), guidance pixel coordinates."""
    seed: Tuple[int, int] = Field(..., description="Seed pixel (x, y)")
    color: ColorRGBA
    thickness: float = Field(..., gt=0.0, description="Line width in pixels")
    importance: float = Field(..., ge=0.0, le=1.0, description="Seed importance (paint order)")
    skeleton: List[Tuple[float, float]] = Field(..., min_length=2, description="Polyline points")


class StrokesFileV1(BaseModel):
    """Container for all strokes of one individual, in slot order."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: str = Field("strokes.v1", alias="schema", description="Schema version")
    width: int = Field(..., ge=1, description="Guidance width (px)")
    height: int = Field(..., ge=1, description="Guidance height (px)")
    strokes: List[StrokeV1] = Field(..., description="Strokes in slot order")

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "strokes.v1":
            raise ValueError(f"Expected schema 'strokes.v1', got '{v}'")
        return v

    @model_validator(mode='after')
    def validate_seeds_in_bounds(self) -> 'StrokesFileV1':
        for i, s in enumerate(self.strokes):
            x, y = s.seed
            if not (0 <= x < self.width and 0 <= y < self.height):
                raise ValueError(
                    f"Stroke {i} seed ({x}, {y}) outside {self.width}x{self.height}"
                )
        return self


# ============================================================================
# PUBLIC API
# ============================================================================

def load_genetic_config(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> GeneticConfigV1:
    """Load and validate the genetic config from YAML.

    Parameters
    ----------
    path : Union[str, Path], optional
        Path to a genetic.v1 YAML file; None uses schema defaults
    overrides : dict, optional
        Values that take precedence over the file (e.g. CLI flags);
        None values are ignored

    Returns
    -------
    GeneticConfigV1
        Validated configuration

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ValueError
        If validation fails (with actionable error message)
    """
    from . import fs

    data: Dict[str, Any] = {}
    source = "<defaults>"
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Genetic config not found: {path}")
        data = fs.load_yaml(path) or {}
        source = str(path)
    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return GeneticConfigV1(**data)
    except Exception as e:
        raise ValueError(f"Genetic config validation failed at {source}: {e}") from e


def validate_strokes_file(path: Union[str, Path]) -> StrokesFileV1:
    """Load and validate a strokes YAML file.

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ValueError
        If validation fails
    """
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Strokes file not found: {path}")

    data = fs.load_yaml(path)
    try:
        return StrokesFileV1(**data)
    except Exception as e:
        raise ValueError(f"Strokes file validation failed at {path}: {e}") from e
