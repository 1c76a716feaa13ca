# sepopt/problem.py
"""Problem data, solver settings, iterates and statistics.

All four are plain dataclasses. ``AdmmParams`` and ``Settings`` stay fixed
for a solve; ``Vars`` is the single mutable iterate that ``admm_step``
updates in place; ``Stats`` only ever grows.
"""
from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Union

import numpy as np
import scipy.sparse as sp

from .piecewise import PiecewiseQuadratic, evaluate
from .types import Array, DimensionMismatch, TermCondType, TermStatus


def _csc(M):
    if sp.issparse(M):
        return sp.csc_matrix(M, dtype=np.float64)
    return sp.csc_matrix(np.atleast_2d(np.asarray(M, dtype=np.float64)))


@dataclass
class AdmmParams:
    """
    Parameters to the ADMM algorithm.

    Attributes:
        P: sparse n x n positive semidefinite matrix.
        q: n-vector.
        A: sparse m x n matrix.
        b: m-vector.
        g: n piecewise-quadratic functions, one per coordinate of x.
    """
    P: Any
    q: Array
    A: Any
    b: Array
    g: List[PiecewiseQuadratic]

    def __post_init__(self):
        self.q = np.asarray(self.q, dtype=np.float64).ravel()
        # no b means no constraints; assert_valid flags an A that has rows
        self.b = np.zeros(0) if self.b is None else np.asarray(self.b, dtype=np.float64).ravel()
        for name in ("q", "b"):
            if not np.all(np.isfinite(getattr(self, name))):
                raise ValueError(f"{name} has non-finite entries")
        self.P = _csc(self.P)
        if self.A is None:
            self.A = sp.csc_matrix((0, self.q.size), dtype=np.float64)
        self.A = _csc(self.A)
        self.g = list(self.g)

    @property
    def n(self) -> int:
        return self.q.size

    @property
    def m(self) -> int:
        return self.b.size


@dataclass
class Settings:
    """
    Settings for the ADMM algorithm.

    Attributes:
        rho: penalty weights for the constraints (m-vector or scalar, > 0).
            ``None`` means all ones.
        sigma: penalty weights for the variables (n-vector or scalar, > 0).
            ``None`` means all ones.
        alpha: over-relaxation parameter in [0, 2], typically in [1.0, 1.8].
        max_iters: maximum number of ADMM iterations.
        eps: convergence threshold for ``TermCondType.CONVERGE``.
        term_cond_freq: check termination every this many iterations.
        compute_stats: record objective and residual on every iteration.
        term_cond_type: ``TermCondType.CONVERGE`` (1) or
            ``TermCondType.FIRST_VARS`` (2).
        obj_tol: minimum objective decrease that counts as an improvement.
        res_tol: maximum residual for an iterate to count as an improvement.
        non_improvement_iters: allowed checks without improvement.
        polish: run one unrelaxed step after the loop.
        kkt_solver: linear-system backend, see ``sepopt.kkt.factorize_kkt``.
        verbose: log progress at every termination check.
        profile: log run information and a timing summary.
    """
    rho: Optional[Union[float, Array]] = None
    sigma: Optional[Union[float, Array]] = None
    alpha: float = 1.0
    max_iters: int = 1000
    eps: float = 1e-4
    term_cond_freq: int = 10
    compute_stats: bool = False
    term_cond_type: TermCondType = TermCondType.CONVERGE
    obj_tol: float = 1e-8
    res_tol: float = 1e-5
    non_improvement_iters: int = 50
    polish: bool = False
    kkt_solver: str = "auto"
    verbose: bool = False
    profile: bool = False

    def __post_init__(self):
        self.rho = self._weights("rho", self.rho)
        self.sigma = self._weights("sigma", self.sigma)
        self.alpha = float(self.alpha)
        if not 0.0 <= self.alpha <= 2.0:
            raise ValueError(f"alpha must be in [0, 2], got {self.alpha}")
        if int(self.max_iters) <= 0:
            raise ValueError("max_iters must be positive")
        if float(self.eps) < 0:
            raise ValueError("eps must be nonnegative")
        if int(self.term_cond_freq) <= 0:
            raise ValueError("term_cond_freq must be positive")
        if int(self.non_improvement_iters) < 0:
            raise ValueError("non_improvement_iters must be nonnegative")
        self.max_iters = int(self.max_iters)
        self.term_cond_freq = int(self.term_cond_freq)
        self.non_improvement_iters = int(self.non_improvement_iters)
        self.eps = float(self.eps)
        self.term_cond_type = TermCondType(self.term_cond_type)

    @staticmethod
    def _weights(name, v):
        if v is None:
            return None
        if np.ndim(v) == 0:
            v = float(v)
            if not v > 0:
                raise ValueError(f"{name} must be positive")
            return v
        v = np.asarray(v, dtype=np.float64).ravel()
        if not np.all(v > 0):
            raise ValueError(f"{name} must be strictly positive")
        return v

    def resolve(self, params: AdmmParams) -> "Settings":
        """Copy with rho / sigma expanded to full vectors for ``params``."""
        def full(v, k):
            if v is None:
                return np.ones(k)
            if np.ndim(v) == 0:
                return np.full(k, v)
            return v
        return replace(self, rho=full(self.rho, params.m), sigma=full(self.sigma, params.n))


@dataclass
class Vars:
    """
    Variables updated on every ADMM iteration.

    x, z are the split variables, xt, zt the KKT-step variables and w, y
    the duals of the constraints x = xt and z = zt. For the whole run
    z = b.
    """
    x: Array
    z: Array
    w: Array
    y: Array
    xt: Array
    zt: Array

    def __post_init__(self):
        for name in ("x", "z", "w", "y", "xt", "zt"):
            setattr(self, name, np.array(getattr(self, name), dtype=np.float64).ravel())

    @classmethod
    def zeros(cls, params: AdmmParams) -> "Vars":
        n, m = params.n, params.m
        return cls(x=np.zeros(n), z=params.b.copy(), w=np.zeros(n),
                   y=np.zeros(m), xt=np.zeros(n), zt=params.b.copy())

    def copy(self) -> "Vars":
        return Vars(self.x, self.z, self.w, self.y, self.xt, self.zt)


@dataclass
class Stats:
    """
    Objective and residual per iteration (when ``compute_stats`` is set),
    number of completed iterations, why the run stopped and wall-clock
    timings.
    """
    obj: List[float] = field(default_factory=list)
    res: List[float] = field(default_factory=list)
    iters: int = 0
    status: TermStatus = TermStatus.CONTINUE
    timing: Dict[str, float] = field(default_factory=dict)


def get_num_vars(obj) -> int:
    """Number of variables of a params, settings or vars object."""
    if isinstance(obj, AdmmParams):
        return obj.n
    if isinstance(obj, Settings):
        if obj.sigma is None or np.ndim(obj.sigma) == 0:
            raise ValueError("settings are not resolved; call Settings.resolve(params)")
        return obj.sigma.size
    if isinstance(obj, Vars):
        return obj.x.size
    raise TypeError(f"cannot count variables of {type(obj).__name__}")


def get_num_constrs(obj) -> int:
    """Number of constraints of a params, settings or vars object."""
    if isinstance(obj, AdmmParams):
        return obj.m
    if isinstance(obj, Settings):
        if obj.rho is None or np.ndim(obj.rho) == 0:
            raise ValueError("settings are not resolved; call Settings.resolve(params)")
        return obj.rho.size
    if isinstance(obj, Vars):
        return obj.y.size
    raise TypeError(f"cannot count constraints of {type(obj).__name__}")


def assert_valid(params: AdmmParams, settings: Settings, vars: Vars) -> None:
    """
    Check that sizes agree across a params-settings-vars combination.
    Raises ``DimensionMismatch`` naming the first offending field.
    """
    n, m = params.n, params.m
    checks = [
        ("P", params.P.shape, (n, n)),
        ("A", params.A.shape, (m, n)),
        ("g", (len(params.g),), (n,)),
        ("sigma", (get_num_vars(settings),), (n,)),
        ("rho", (get_num_constrs(settings),), (m,)),
    ]
    checks += [(f"vars.{k}", getattr(vars, k).shape, (n,)) for k in ("x", "w", "xt")]
    checks += [(f"vars.{k}", getattr(vars, k).shape, (m,)) for k in ("z", "y", "zt")]
    for name, got, want in checks:
        if tuple(got) != want:
            raise DimensionMismatch(
                f"{name} has shape {tuple(got)}, expected {want} (n={n}, m={m})")


def objective(params: AdmmParams, x: Array, pc=None) -> float:
    """0.5 x^T P x + q^T x + sum_i g_i(x_i)"""
    gval = float(np.sum(pc.evaluate(x))) if pc is not None else evaluate(params.g, x)
    return float(0.5 * x @ (params.P @ x) + params.q @ x) + gval


def residual(params: AdmmParams, vars: Vars) -> float:
    """|| [A x - b; x - xt; z - zt] ||_2"""
    r_eq = params.A @ vars.x - params.b
    return float(np.sqrt(r_eq @ r_eq
                         + np.sum((vars.x - vars.xt) ** 2)
                         + np.sum((vars.z - vars.zt) ** 2)))
