# sepopt/catalog.py
import numpy as np

from .piecewise import BoundedQuadratic, PiecewiseQuadratic, indicator, zero

_INF = np.inf


# --- base penalties (scalar, piecewise-quadratic) ---
def pen_abs(*, weight=1.0):
    """weight * |t|"""
    w = float(weight)
    return PiecewiseQuadratic([BoundedQuadratic(-_INF, 0.0, 0.0, -w, 0.0),
                               BoundedQuadratic(0.0, _INF, 0.0, w, 0.0)])

def pen_is_pos(**_):
    """indicator of t >= 0"""
    return indicator(0.0, _INF)

def pen_is_bound(*, lb=None, ub=None, **_):
    """indicator of lb <= t <= ub"""
    lo = -_INF if lb is None else lb
    hi = _INF if ub is None else ub
    return indicator(lo, hi)

def pen_is_zero(**_):
    """indicator of t = 0"""
    return indicator(0.0, 0.0)

def pen_card(*, weight=1.0):
    """weight * 1[t != 0] -- nonconvex; prox is a hard threshold at sqrt(2 weight / sigma)."""
    w = float(weight)
    return PiecewiseQuadratic([BoundedQuadratic(-_INF, 0.0, 0.0, 0.0, w),
                               BoundedQuadratic(0.0, 0.0, 0.0, 0.0, 0.0),
                               BoundedQuadratic(0.0, _INF, 0.0, 0.0, w)])

def pen_huber(*, delta=1.0, weight=1.0):
    """
    weight * Huber_delta(t)
    Huber(t) = 0.5 t^2                 if |t| <= delta
               delta*(|t| - 0.5*delta) otherwise
    """
    d, w = float(delta), float(weight)
    if d <= 0:
        raise ValueError("huber: delta must be positive")
    return PiecewiseQuadratic([
        BoundedQuadratic(-_INF, -d, 0.0, -w * d, -0.5 * w * d * d),
        BoundedQuadratic(-d, d, 0.5 * w, 0.0, 0.0),
        BoundedQuadratic(d, _INF, 0.0, w * d, -0.5 * w * d * d),
    ])

def pen_quadratic(*, p=0.0, q=0.0, r=0.0):
    """p t^2 + q t + r on the whole line (p >= 0)."""
    return PiecewiseQuadratic([BoundedQuadratic(-_INF, _INF, p, q, r)])

def pen_intervals(*, intervals):
    """
    Union of quadratic pieces given as (lb, ub, p, q, r) tuples, e.g.
    [(-1, 2, 1, 0, 0), (2.5, 3.5, 0, 1, 0)].
    """
    return PiecewiseQuadratic([BoundedQuadratic(*iv) for iv in intervals])

# registry (name -> constructor)
PENALTY_REGISTRY = {
    "abs": pen_abs,               # L1
    "is_pos": pen_is_pos,         # t >= 0
    "is_bound": pen_is_bound,     # lb <= t <= ub
    "is_zero": pen_is_zero,       # t = 0
    "card": pen_card,             # L0 (nonconvex)
    "huber": pen_huber,           # Huber
    "quadratic": pen_quadratic,
    "intervals": pen_intervals,   # explicit pieces
}

def make_g_from_gspec(n, gspec):
    """
    Build the length-n list of g_i from a list of specs.
    Each spec: {"g": <name>, "range": (start, end), "args": {...}}
    Specs covering the same index add up. Unspecified indices get g_i = 0.
    """
    g = [None] * n
    for item in gspec:
        name = item["g"]
        if name not in PENALTY_REGISTRY:
            raise KeyError(f"unknown penalty {name!r}; known: {sorted(PENALTY_REGISTRY)}")
        (start, end) = item.get("range", (0, n))  # Python slice [start:end]
        args = item.get("args", {})
        ctor = PENALTY_REGISTRY[name]
        for i in range(n)[start:end]:
            gi = ctor(**args)
            g[i] = gi if g[i] is None else g[i] + gi

    return [zero() if gi is None else gi for gi in g]
