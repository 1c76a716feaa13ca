# Run with:  python examples/speed_solvers.py
import logging, time
import numpy as np
import scipy.sparse as sp
from sepopt import solve_qss
from sepopt import kkt as kkt_mod

logging.basicConfig(level=logging.WARNING, format="%(message)s")


def make_problem(n, m, lam=0.05, density=0.01, seed=0):
    """
    QP + equality:
        min 0.5 * x^T P x + q^T x + lam * ||x||_1   s.t. A x = b
    with P = I + G^T G (SPD, not diagonal), random q and b.
    """
    rng = np.random.default_rng(seed)
    k = max(1, int(0.05 * n))
    G = sp.random(k, n, density=0.02, data_rvs=rng.standard_normal, format="csc")
    P = (sp.identity(n, format="csc") + G.T @ G).tocsc()
    q = rng.standard_normal(n)
    A = sp.random(m, n, density=density, data_rvs=rng.standard_normal, format="csc") if m else None
    if m:
        row_norms = np.sqrt((A.multiply(A)).sum(axis=1)).A.ravel() + 1e-12
        A = (sp.diags(1.0 / row_norms) @ A).tocsc()
    b = rng.standard_normal(m) if m else np.zeros(0)
    gspec = [{"g": "abs", "range": (0, n), "args": {"weight": lam}}]
    return {"P": P, "q": q, "A": A, "b": b, "gspec": gspec}


def run_case(tag, data, solver, iters=150):
    t0 = time.perf_counter()
    vars, stats = solve_qss(data, rho=1.0, alpha=1.6, max_iters=iters, eps=0.0,
                            kkt_solver=solver)
    t1 = time.perf_counter()
    eq = np.linalg.norm(data["A"] @ vars.x - data["b"]) if data["A"] is not None else 0.0
    print(f"[{tag:28s}] solver={solver:15s} iters={stats.iters:4d}  "
          f"time={t1-t0:6.3f}s  factor={stats.timing.get('factor', 0.0):6.3f}s  eq={eq:.2e}")


def main():
    optional = {"mumps": kkt_mod._HAVE_MUMPS, "petsc": kkt_mod._HAVE_PETSC,
                "normal_cholmod": kkt_mod.cholmod_cholesky is not None}

    print("\n=== Case A: few equalities (m << n) ===")
    data = make_problem(20000, 400, density=0.01)
    for solver in ("woodbury", "kkt", "normal", "petsc"):
        if optional.get(solver, True):
            run_case("few-eq", data, solver)

    print("\n=== Case B: many equalities ===")
    data = make_problem(15000, 3000, density=0.001)
    for solver in ("kkt", "normal_cholmod", "mumps", "petsc"):
        if optional.get(solver, True):
            run_case("many-eq", data, solver)

    print("\n=== Case C: no equalities (SPD) ===")
    data = make_problem(5000, 0)
    for solver in ("normal", "normal_cholmod", "kkt"):
        if optional.get(solver, True):
            run_case("spd", data, solver)


if __name__ == "__main__":
    main()
