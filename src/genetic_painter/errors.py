"""Error taxonomy for the painting engine.

    InputMismatchError       guidance arrays / buffers of differing dimensions
    DegenerateSamplingError  importance field that cannot be sampled
    NumericInstabilityError  NaN or infinite score
    RendererError            render or save collaborator failure

None of these are retried automatically; they propagate to the caller.
"""


class InputMismatchError(ValueError):
    """Arrays that must share dimensions do not."""


class DegenerateSamplingError(ValueError):
    """Importance-weighted seed sampling is undefined (e.g. all-zero importance)."""


class NumericInstabilityError(ArithmeticError):
    """A score or distance computation produced a non-finite value."""


class RendererError(RuntimeError):
    """The external render/save collaborator failed."""
