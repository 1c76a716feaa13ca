# sepopt/cvxpy_bridge.py
from __future__ import annotations
import logging
from typing import Optional

import numpy as np

from .admm import optimize
from .problem import AdmmParams, Settings, Vars

logger = logging.getLogger(__name__)


def solve_into_cvxpy(var, params: AdmmParams, settings: Optional[Settings] = None,
                     vars: Optional[Vars] = None):
    """
    Solve with sepopt and assign the result into a cvxpy.Variable.

    Parameters
    - var: cvxpy.Variable (1-D, length n)
    - params, settings, vars: as for ``sepopt.optimize``

    Returns
    - (vars, stats) from ``optimize``; also sets var.value = vars.x.
    """
    vars, stats = optimize(params, settings, vars)
    assign_solution(var, vars)
    return vars, stats


def assign_solution(var, vars: Vars, key: str = "x") -> None:
    """
    Assign one field of a ``Vars`` (x by default) into a cvxpy.Variable.
    Objects without a settable ``value`` are left alone.
    """
    x = np.asarray(getattr(vars, key), float)
    try:
        var.value = x
    except (AttributeError, ValueError) as e:
        logger.debug("could not assign %s into %r: %s", key, var, e)
