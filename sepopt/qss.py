# sepopt/qss.py
from .admm import optimize
from .catalog import make_g_from_gspec
from .piecewise import PiecewiseQuadratic
from .problem import AdmmParams, Settings


def solve_qss(data, **settings_kwargs):
    """
    data = {
      "P": <n x n sparse PSD>,
      "q": <n>,
      "A": <m x n sparse> (optional),
      "b": <m> (optional),
      "g": [PiecewiseQuadratic, ...]                              (n entries)
         or
      "gspec": [ {"g": "<name>", "range": (i0, i1), "args": {...}}, ...]
    }
    settings_kwargs are forwarded to ``Settings`` (rho, sigma, alpha,
    max_iters, eps, term_cond_type, kkt_solver, ...).

    Returns (vars, stats) as ``optimize`` does.
    """
    P = data["P"]; q = data["q"]
    A = data.get("A"); b = data.get("b")
    params0 = AdmmParams(P, q, A, b, [])
    if "g" in data:
        g = list(data["g"])
        bad = [gi for gi in g if not isinstance(gi, PiecewiseQuadratic)]
        if bad:
            raise TypeError(f'data["g"] must hold PiecewiseQuadratic functions, got '
                            f'{type(bad[0]).__name__}; pass penalty specs as data["gspec"]')
    else:
        g = make_g_from_gspec(params0.n, data.get("gspec", []))
    params = AdmmParams(params0.P, params0.q, params0.A, params0.b, g)
    return optimize(params, Settings(**settings_kwargs))
