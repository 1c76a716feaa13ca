# sepopt/piecewise.py
"""
Scalar piecewise-quadratic functions.

A ``PiecewiseQuadratic`` is a list of ``BoundedQuadratic`` pieces
p*t^2 + q*t + r, each living on a closed interval [lb, ub]. The function
value at t is the smallest value among the pieces whose interval contains t,
and +inf when no piece does, so a function with a single zero piece is the
indicator of its interval.
"""
from __future__ import annotations
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class BoundedQuadratic:
    """p*t^2 + q*t + r on [lb, ub]."""
    lb: float
    ub: float
    p: float = 0.0
    q: float = 0.0
    r: float = 0.0

    def __post_init__(self):
        for name in ("lb", "ub", "p", "q", "r"):
            object.__setattr__(self, name, float(getattr(self, name)))
        if math.isnan(self.lb) or math.isnan(self.ub) or self.lb > self.ub:
            raise ValueError(f"invalid interval [{self.lb}, {self.ub}]")
        if not all(math.isfinite(v) for v in (self.p, self.q, self.r)):
            raise ValueError("piece coefficients must be finite")
        # a concave piece on an unbounded interval has no minimizer
        if self.p < 0 and not (math.isfinite(self.lb) and math.isfinite(self.ub)):
            raise ValueError("pieces with p < 0 need a bounded interval")

    def contains(self, t: float) -> bool:
        return self.lb <= t <= self.ub

    def __call__(self, t: float) -> float:
        if not self.contains(t):
            return math.inf
        return self.p * t * t + self.q * t + self.r

    def prox(self, u: float, sigma: float) -> Tuple[float, float]:
        """
        Minimize p t^2 + q t + r + (sigma/2)(t - u)^2 over [lb, ub].
        Returns (t*, objective at t*).
        """
        a = self.p + 0.5 * sigma
        b = self.q - sigma * u
        if a > 0:
            t = min(max(-b / (2.0 * a), self.lb), self.ub)
        else:
            # concave (or flat) combined objective: best endpoint
            lo = self(self.lb) + 0.5 * sigma * (self.lb - u) ** 2
            hi = self(self.ub) + 0.5 * sigma * (self.ub - u) ** 2
            t = self.lb if lo <= hi else self.ub
        return t, self(t) + 0.5 * sigma * (t - u) ** 2


class PiecewiseQuadratic:
    def __init__(self, pieces: Sequence[BoundedQuadratic]):
        pieces = list(pieces)
        if not pieces:
            raise ValueError("PiecewiseQuadratic needs at least one piece (empty domain).")
        self.pieces: List[BoundedQuadratic] = pieces

    def __len__(self):
        return len(self.pieces)

    def __iter__(self):
        return iter(self.pieces)

    def __repr__(self):
        body = ", ".join(f"[{pc.lb:g}, {pc.ub:g}]: {pc.p:g}t^2+{pc.q:g}t+{pc.r:g}"
                         for pc in self.pieces)
        return f"PiecewiseQuadratic({body})"

    def __call__(self, t: float) -> float:
        t = float(t)
        return min(pc(t) for pc in self.pieces)

    def __add__(self, other: "PiecewiseQuadratic") -> "PiecewiseQuadratic":
        # min_a f_a + min_b h_b == min_{a,b} (f_a + h_b) on the intersections
        pieces = []
        for pa in self.pieces:
            for pb in other.pieces:
                lb, ub = max(pa.lb, pb.lb), min(pa.ub, pb.ub)
                if lb <= ub:
                    pieces.append(BoundedQuadratic(lb, ub, pa.p + pb.p,
                                                   pa.q + pb.q, pa.r + pb.r))
        return PiecewiseQuadratic(pieces)

    def domain_bounds(self) -> Tuple[float, float]:
        """Smallest interval containing the domain."""
        return (min(pc.lb for pc in self.pieces), max(pc.ub for pc in self.pieces))

    def project(self, t: float) -> float:
        """Nearest point of the domain to t (first piece wins ties)."""
        if len(self.pieces) == 1:
            lo, hi = self.domain_bounds()
            return min(max(t, lo), hi)
        best_t, best_d = t, math.inf
        for pc in self.pieces:
            c = min(max(t, pc.lb), pc.ub)
            d = abs(c - t)
            if d < best_d:
                best_t, best_d = c, d
        return best_t

    def prox(self, u: float, sigma: float) -> Tuple[float, float]:
        """Global minimizer of g(t) + (sigma/2)(t - u)^2 across all pieces."""
        if sigma <= 0:
            raise ValueError("sigma must be positive")
        best_t, best_v = None, math.inf
        for pc in self.pieces:
            t, v = pc.prox(u, sigma)
            if best_t is None or v < best_v:
                best_t, best_v = t, v
        return best_t, best_v


def indicator(lb: float, ub: float) -> PiecewiseQuadratic:
    """0 on [lb, ub], +inf elsewhere."""
    return PiecewiseQuadratic([BoundedQuadratic(lb, ub, 0.0, 0.0, 0.0)])


def zero() -> PiecewiseQuadratic:
    return PiecewiseQuadratic([BoundedQuadratic(-np.inf, np.inf, 0.0, 0.0, 0.0)])


def evaluate(g: Sequence[PiecewiseQuadratic], x) -> float:
    """sum_i g_i(x_i)"""
    return float(sum(gi(xi) for gi, xi in zip(g, np.asarray(x, float))))
