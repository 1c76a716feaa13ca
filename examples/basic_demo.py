import logging
import numpy as np, scipy.sparse as sp
from sepopt import (AdmmParams, Settings, BoundedQuadratic, PiecewiseQuadratic,
                    TermCondType, indicator, optimize)

logging.basicConfig(level=logging.INFO, format="%(message)s")

n, m = 4, 2
rng = np.random.default_rng(0)

# feasible by construction
x0 = rng.random(n)
A = rng.random((m, n))
b = A @ x0
X = rng.random((n, n))
P = X.T @ X
q = rng.random(n)

# x1 in [-1, 2] u [2.5, 3.5]: quadratic on the first piece, linear on the second
g1 = PiecewiseQuadratic([BoundedQuadratic(-1, 2, 1, 0, 0),
                         BoundedQuadratic(2.5, 3.5, 0, 1, 0)])
g2 = indicator(-20, 10)
g3 = indicator(-5, 10)
g4 = indicator(1.2318, 1.2318)   # x4 is pinned

params = AdmmParams(sp.csc_matrix(P), q, sp.csc_matrix(A), b, [g1, g2, g3, g4])
settings = Settings(rho=np.ones(m), sigma=np.ones(n), compute_stats=True,
                    term_cond_type=TermCondType.FIRST_VARS, verbose=True)

vars, stats = optimize(params, settings)

print("optimal x:", vars.x)
print("status   :", stats.status.name, "after", stats.iters, "iterations")
print("final obj:", stats.obj[-1])
print("final res:", stats.res[-1])
