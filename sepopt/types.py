# sepopt/types.py
from __future__ import annotations
from enum import IntEnum
import numpy as np

Array = np.ndarray


class TermCondType(IntEnum):
    """Which termination cache ``optimize`` builds."""
    CONVERGE = 1
    FIRST_VARS = 2


class TermStatus(IntEnum):
    CONTINUE = 0
    CONVERGED = 1
    NOT_IMPROVING = 2
    MAX_ITERATIONS = 3


class DimensionMismatch(ValueError):
    """Params / Settings / Vars sizes disagree."""


class FactorizationError(RuntimeError):
    """A one-time factorization could not be computed."""
