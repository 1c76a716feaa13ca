# sepopt/termination.py
from __future__ import annotations
import logging
from typing import Optional

import numpy as np
import scipy.sparse.linalg as spla

from .problem import AdmmParams, Settings, Vars
from .prox import ProxCache
from .types import Array, DimensionMismatch, FactorizationError, TermCondType, TermStatus

logger = logging.getLogger(__name__)


class BaseTermCache:
    def check(self, vars: Vars, params: AdmmParams, settings: Settings, it: int) -> TermStatus:
        raise NotImplementedError

    def finalize(self, vars: Vars, params: AdmmParams, settings: Settings) -> None:
        """Called once after the last iteration."""


class ConvergeTermCache(BaseTermCache):
    """
    Stop once the iterate has settled.

    Keeps the (x, z, w, y) seen at the previous check. The run has converged
    when the consistency residuals ||x - xt||, ||z - zt||, the feasibility
    residual ||A x - b|| and the changes of x, z, w, y since the previous
    check are all at most ``settings.eps``.
    """

    def __init__(self, params: AdmmParams, settings: Settings,
                 vars: Optional[Vars] = None, pc: Optional[ProxCache] = None):
        vars = vars if vars is not None else Vars.zeros(params)
        self.x_last = vars.x.copy()
        self.z_last = vars.z.copy()
        self.w_last = vars.w.copy()
        self.y_last = vars.y.copy()

    def check(self, vars, params, settings, it):
        norms = (
            np.linalg.norm(vars.x - vars.xt),
            np.linalg.norm(vars.z - vars.zt),
            np.linalg.norm(params.A @ vars.x - params.b),
            np.linalg.norm(vars.x - self.x_last),
            np.linalg.norm(vars.z - self.z_last),
            np.linalg.norm(vars.w - self.w_last),
            np.linalg.norm(vars.y - self.y_last),
        )
        worst = max(norms)
        logger.debug("iter %d: converge check max=%.3e", it, worst)
        if worst <= settings.eps:
            return TermStatus.CONVERGED
        self.x_last = vars.x.copy()
        self.z_last = vars.z.copy()
        self.w_last = vars.w.copy()
        self.y_last = vars.y.copy()
        return TermStatus.CONTINUE


class FirstVarsTermCache(BaseTermCache):
    """
    Track the best feasible point rebuilt from the first n - m variables.

    With A = [A1 | A2] and A2 the trailing m x m block, the last m
    coordinates are recovered from the first n1 = n - m ones by solving
    A2 x2 = b - A1 x1, which gives a point with A x = b. Its objective and
    its distance to dom g are compared with the best seen so far.

    Attributes:
        obj_best, res_best: objective and residual of the best candidate.
        x_best, z_best, w_best, y_best: the iterate that produced it, with
            x replaced by the rebuilt candidate.
        n1: n - m.
        A1, A2: leading n1 columns and trailing m columns of A.
        not_improved_count: checks in a row without improvement.
        not_improved_count_req: allowed checks without improvement.
        best_history: obj_best after every check.
    """

    def __init__(self, params: AdmmParams, settings: Settings,
                 vars: Optional[Vars] = None, pc: Optional[ProxCache] = None):
        n, m = params.n, params.m
        if n < m:
            raise DimensionMismatch(f"FirstVarsTermCache needs n >= m, got n={n}, m={m}")
        self.n1 = n - m
        self.A1 = params.A[:, :self.n1].tocsc()
        self.A2 = params.A[:, self.n1:].tocsc()
        self._A2_lu = None
        if m:
            try:
                self._A2_lu = spla.splu(self.A2)
            except RuntimeError as e:
                raise FactorizationError(f"trailing {m}x{m} block of A is singular: {e}") from e
        self.pc = pc if pc is not None else ProxCache(params.g)

        self.obj_best = np.inf
        self.res_best = np.inf
        self.x_best: Optional[Array] = None
        self.z_best: Optional[Array] = None
        self.w_best: Optional[Array] = None
        self.y_best: Optional[Array] = None
        self.not_improved_count = 0
        self.not_improved_count_req = settings.non_improvement_iters
        self.best_history = []

    def _consider(self, vars, params, settings) -> bool:
        obj, res, x = get_obj_and_res_from_first_vars(self, vars, params)
        if res <= settings.res_tol and obj < self.obj_best - settings.obj_tol:
            self.obj_best, self.res_best = obj, res
            self.x_best = x
            self.z_best = vars.z.copy()
            self.w_best = vars.w.copy()
            self.y_best = vars.y.copy()
            return True
        return False

    def check(self, vars, params, settings, it):
        if self._consider(vars, params, settings):
            self.not_improved_count = 0
        else:
            self.not_improved_count += 1
        self.best_history.append(self.obj_best)
        logger.debug("iter %d: best obj=%.6e res=%.3e (no improvement for %d checks)",
                     it, self.obj_best, self.res_best, self.not_improved_count)
        if self.not_improved_count > self.not_improved_count_req:
            return TermStatus.NOT_IMPROVING
        return TermStatus.CONTINUE

    def finalize(self, vars, params, settings):
        # the last (possibly polished) iterate gets one more chance
        self._consider(vars, params, settings)
        self.restore_best(vars)

    def restore_best(self, vars: Vars) -> None:
        """Copy the best iterate into ``vars`` (no-op if none qualified)."""
        if self.x_best is None:
            return
        vars.x = self.x_best.copy()
        vars.z = self.z_best.copy()
        vars.w = self.w_best.copy()
        vars.y = self.y_best.copy()


def get_obj_and_res_from_first_vars(tc: FirstVarsTermCache, vars: Vars, params: AdmmParams):
    """
    Rebuild a feasible point from the first n - m coordinates of ``vars.x``.
    Returns (objective, residual, point); the residual is the distance of
    the point to dom g and g is evaluated at the projection onto dom g.
    """
    x1 = vars.x[:tc.n1]
    if tc._A2_lu is not None:
        x2 = tc._A2_lu.solve(params.b - tc.A1 @ x1)
        x = np.concatenate([x1, x2])
    else:
        x = x1.copy()
    proj = tc.pc.project(x)
    res = float(np.linalg.norm(x - proj))
    obj = float(0.5 * x @ (params.P @ x) + params.q @ x + np.sum(tc.pc.evaluate(proj)))
    return obj, res, x


TERM_CACHES = {
    TermCondType.CONVERGE: ConvergeTermCache,
    TermCondType.FIRST_VARS: FirstVarsTermCache,
}


def get_term_cond_cache(params: AdmmParams, settings: Settings,
                        vars: Optional[Vars] = None, pc: Optional[ProxCache] = None) -> BaseTermCache:
    """Return the termination cache selected by ``settings.term_cond_type``."""
    return TERM_CACHES[settings.term_cond_type](params, settings, vars=vars, pc=pc)


def check_term_conds(tc: BaseTermCache, vars: Vars, params: AdmmParams,
                     settings: Settings, it: int) -> TermStatus:
    """Check termination conditions."""
    return tc.check(vars, params, settings, it)
