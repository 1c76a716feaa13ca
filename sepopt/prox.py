# sepopt/prox.py
from __future__ import annotations
from typing import Sequence

import numpy as np

from .piecewise import PiecewiseQuadratic
from .types import Array, DimensionMismatch


class ProxCache:
    """
    Store the pieces of every g_i flattened into arrays so that the
    proximal operators

        prox_{g_i, sigma_i}(u_i) = argmin_t g_i(t) + (sigma_i/2) (t - u_i)^2

    of all coordinates are evaluated in one vectorized pass. Pieces are
    grouped by owner in their original order; ``starts[i]`` is the offset
    of the first piece of g_i. Built once, read-only afterwards.
    """

    def __init__(self, g: Sequence[PiecewiseQuadratic]):
        g = list(g)
        counts = np.array([len(gi) for gi in g], dtype=np.int64)
        if np.any(counts == 0):
            raise ValueError("every g_i needs at least one piece")
        pieces = [pc for gi in g for pc in gi]
        self.n = len(g)
        self.g = g
        self.owner = np.repeat(np.arange(self.n), counts)
        self.starts = (np.cumsum(counts) - counts).astype(np.int64)
        self.lb = np.array([pc.lb for pc in pieces], dtype=np.float64)
        self.ub = np.array([pc.ub for pc in pieces], dtype=np.float64)
        self.p = np.array([pc.p for pc in pieces], dtype=np.float64)
        self.q = np.array([pc.q for pc in pieces], dtype=np.float64)
        self.r = np.array([pc.r for pc in pieces], dtype=np.float64)
        self.single_piece = bool(np.all(counts == 1))
        self._order_tie = np.arange(self.lb.size)

        # hull of each domain
        self.dom_lo = np.minimum.reduceat(self.lb, self.starts) if self.n else np.zeros(0)
        self.dom_hi = np.maximum.reduceat(self.ub, self.starts) if self.n else np.zeros(0)

    def _pick(self, key: Array) -> Array:
        # per-owner argmin of key; ties go to the first piece of that owner
        order = np.lexsort((self._order_tie, key, self.owner))
        return order[self.starts]

    def _piece_values(self, t: Array) -> Array:
        inside = (t >= self.lb) & (t <= self.ub)
        with np.errstate(invalid="ignore"):
            v = self.p * t * t + self.q * t + self.r
        return np.where(inside, v, np.inf)

    def evaluate(self, x: Array) -> Array:
        """Per-coordinate values g_i(x_i) (inf outside the domain)."""
        x = np.asarray(x, dtype=np.float64)
        if self.n == 0:
            return np.zeros(0)
        return np.minimum.reduceat(self._piece_values(x[self.owner]), self.starts)

    def project(self, x: Array) -> Array:
        """Nearest point of dom g_i to x_i, coordinate-wise."""
        x = np.asarray(x, dtype=np.float64)
        if self.n == 0:
            return np.zeros(0)
        if self.single_piece:
            # every domain is one interval, equal to its hull
            return np.clip(x, self.dom_lo, self.dom_hi)
        xo = x[self.owner]
        c = np.clip(xo, self.lb, self.ub)
        best = self._pick(np.abs(c - xo))
        return c[best]


def prox_step(pc: ProxCache, sigma, u: Array) -> Array:
    """
    Return argmin_x sum_i g_i(x_i) + (sigma_i/2)(x_i - u_i)^2.

    Per piece: the stationary point of the combined quadratic clipped to the
    piece interval, or the better endpoint when the combined curvature
    p + sigma/2 is not positive. The best piece per coordinate wins.
    """
    u = np.asarray(u, dtype=np.float64)
    if u.shape != (pc.n,):
        raise DimensionMismatch(f"prox_step: u has shape {u.shape}, expected ({pc.n},)")
    sigma = np.broadcast_to(np.asarray(sigma, dtype=np.float64), (pc.n,))
    if pc.n == 0:
        return np.zeros(0)

    s = sigma[pc.owner]
    uu = u[pc.owner]
    a = pc.p + 0.5 * s
    b = pc.q - s * uu
    conv = a > 0
    with np.errstate(divide="ignore", invalid="ignore"):
        t = np.clip(np.where(conv, -b / (2.0 * a), 0.0), pc.lb, pc.ub)

    if not conv.all():
        # nonconvex pieces are bounded, so both endpoints are finite
        idx = np.flatnonzero(~conv)
        lo, hi = pc.lb[idx], pc.ub[idx]
        p, q, r = pc.p[idx], pc.q[idx], pc.r[idx]
        si, ui = s[idx], uu[idx]
        f_lo = p * lo * lo + q * lo + r + 0.5 * si * (lo - ui) ** 2
        f_hi = p * hi * hi + q * hi + r + 0.5 * si * (hi - ui) ** 2
        t[idx] = np.where(f_lo <= f_hi, lo, hi)

    if pc.single_piece:
        return t

    val = pc._piece_values(t) + 0.5 * s * (t - uu) ** 2
    return t[pc._pick(val)]
