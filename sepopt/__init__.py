"""SEPOPT - ADMM for linearly constrained separable problems"""
from .types import TermCondType, TermStatus, DimensionMismatch, FactorizationError
from .piecewise import BoundedQuadratic, PiecewiseQuadratic, indicator, zero
from .catalog import PENALTY_REGISTRY, make_g_from_gspec
from .problem import (
    AdmmParams, Settings, Vars, Stats,
    get_num_vars, get_num_constrs, assert_valid,
)
from .prox import ProxCache, prox_step
from .kkt import (
    KKTSolver, LDLKKTSolver, MumpsKKTSolver, PetscKKTSolver,
    NormalEqSolver, CholmodNormalSolver, WoodburySolver,
    factorize_kkt, solve_kkt,
)
from .termination import (
    ConvergeTermCache, FirstVarsTermCache,
    get_term_cond_cache, check_term_conds,
)
from .admm import admm_step, compute_stats, optimize
from .qss import solve_qss
from .cvxpy_bridge import solve_into_cvxpy, assign_solution

__version__ = "0.1.0"
__all__ = [
    "optimize", "admm_step", "compute_stats",
    "AdmmParams", "Settings", "Vars", "Stats",
    "get_num_vars", "get_num_constrs", "assert_valid",
    "TermCondType", "TermStatus", "DimensionMismatch", "FactorizationError",
    "BoundedQuadratic", "PiecewiseQuadratic", "indicator", "zero",
    "PENALTY_REGISTRY", "make_g_from_gspec",
    "ProxCache", "prox_step",
    "KKTSolver", "LDLKKTSolver", "MumpsKKTSolver", "PetscKKTSolver",
    "NormalEqSolver", "CholmodNormalSolver", "WoodburySolver",
    "factorize_kkt", "solve_kkt",
    "ConvergeTermCache", "FirstVarsTermCache",
    "get_term_cond_cache", "check_term_conds",
    "solve_qss",
    "solve_into_cvxpy", "assign_solution",
]
