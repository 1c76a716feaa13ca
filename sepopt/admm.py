# sepopt/admm.py
"""
ADMM for

    minimize    0.5 x^T P x + q^T x + sum_i g_i(x_i)
    subject to  A x = b

written as

    minimize    0.5 xt^T P xt + q^T xt + I_A(xt, zt) + g(x) + I_B(z)
    subject to  xt = x,  zt = z

where I_A is the indicator of {A xt = zt} and I_B the indicator of
{z = b}. With S = diag(sigma), R = diag(rho) the augmented Lagrangian is

    f + 0.5 ||xt - x + S^{-1} w||_S^2 + 0.5 ||zt - z + R^{-1} y||_R^2.

One iteration minimizes it over (xt, zt) (a KKT solve, see ``sepopt.kkt``),
relaxes, minimizes over (x, z) (n scalar proximal problems and z = b) and
takes a dual ascent step on w and y.
"""
from __future__ import annotations
import logging, time
from typing import Optional, Tuple

from .kkt import factorize_kkt, solve_kkt
from .problem import AdmmParams, Settings, Stats, Vars, assert_valid, objective, residual
from .profiling import log_run_info, log_run_summary, timed
from .prox import ProxCache, prox_step
from .termination import check_term_conds, get_term_cond_cache
from .types import TermStatus

logger = logging.getLogger(__name__)


def admm_step(vars: Vars, params: AdmmParams, kkt, pc: ProxCache, settings: Settings,
              polish: bool = False, timing: Optional[dict] = None) -> None:
    """
    Carry out a single ADMM iteration, updating ``vars`` in place.

    1. Solve the KKT system for xt and zt.
    2. Relax: x_hat = alpha xt + (1 - alpha) x, z_hat likewise
       (alpha = 1 when ``polish`` is set).
    3. x = prox_{g, sigma}(x_hat + w / sigma); z = b.
    4. w += sigma (x_hat - x); y += rho (z_hat - z).
    """
    timing = timing if timing is not None else {}
    sigma, rho = settings.sigma, settings.rho
    alpha = 1.0 if polish else settings.alpha

    with timed(timing, "kkt"):
        solve_kkt(vars, kkt, params, settings)

    x_hat = alpha * vars.xt + (1.0 - alpha) * vars.x
    z_hat = alpha * vars.zt + (1.0 - alpha) * vars.z

    with timed(timing, "prox"):
        vars.x = prox_step(pc, sigma, x_hat + vars.w / sigma)

    with timed(timing, "dual"):
        # prox of I_B: z stays at b for the whole run
        vars.z[:] = params.b
        vars.w += sigma * (x_hat - vars.x)
        vars.y += rho * (z_hat - vars.z)


def compute_stats(vars: Vars, params: AdmmParams, stats: Stats, it: int,
                  pc: Optional[ProxCache] = None) -> None:
    """Update the objective, residual, and iteration fields of ``stats``."""
    stats.obj.append(objective(params, vars.x, pc))
    stats.res.append(residual(params, vars))
    stats.iters = it


def optimize(params: AdmmParams, settings: Optional[Settings] = None,
             vars: Optional[Vars] = None) -> Tuple[Vars, Stats]:
    """
    Run ADMM until a termination condition holds or ``max_iters`` is hit.

    ``vars`` (zeros by default) is updated in place and returned along with
    the run statistics. ``stats.status`` tells why the run stopped:
    CONVERGED, NOT_IMPROVING or MAX_ITERATIONS. With
    ``TermCondType.FIRST_VARS`` the returned x is the best feasible point
    the termination cache has seen, which need not be the last iterate.
    """
    settings = (settings if settings is not None else Settings()).resolve(params)
    if vars is None:
        vars = Vars.zeros(params)
    assert_valid(params, settings, vars)
    vars.z[:] = params.b

    stats = Stats()
    timing = stats.timing
    t_start = time.perf_counter()
    if settings.profile:
        log_run_info(params.n, params.m)

    with timed(timing, "factor"):
        kkt = factorize_kkt(params, settings)
    pc = ProxCache(params.g)
    tc = get_term_cond_cache(params, settings, vars=vars, pc=pc)

    status = TermStatus.MAX_ITERATIONS
    for it in range(1, settings.max_iters + 1):
        admm_step(vars, params, kkt, pc, settings, timing=timing)
        stats.iters = it
        if settings.compute_stats:
            compute_stats(vars, params, stats, it, pc)

        if it % settings.term_cond_freq == 0:
            st = check_term_conds(tc, vars, params, settings, it)
            if settings.verbose:
                logger.info("iter %5d  obj=%.6e  res=%.3e",
                            it, objective(params, vars.x, pc), residual(params, vars))
            if st != TermStatus.CONTINUE:
                status = st
                break

    if settings.polish:
        admm_step(vars, params, kkt, pc, settings, polish=True, timing=timing)
    tc.finalize(vars, params, settings)

    stats.status = status
    timing["total"] = time.perf_counter() - t_start
    logger.debug("stopped after %d iterations: %s", stats.iters, status.name)
    if settings.profile:
        log_run_summary(stats.iters, timing)
    return vars, stats
