"""Tests for the dictionary front end and the cvxpy bridge."""

import numpy as np
import pytest
import scipy.sparse as sp

from sepopt import AdmmParams, Settings, TermStatus, Vars, indicator, solve_qss
from sepopt.cvxpy_bridge import assign_solution, solve_into_cvxpy


def _targets(n=20, seed=0):
    return 2.0 * np.random.default_rng(seed).standard_normal(n)


class TestSolveQSS:
    def test_gspec_without_constraints(self):
        """0.5 ||x - c||^2 with an l1 term on the first half and a box on the second."""
        n = 20
        c = _targets(n)
        data = {
            "P": sp.eye(n, format="csc"),
            "q": -c,
            "gspec": [
                {"g": "abs", "range": (0, 10), "args": {"weight": 0.5}},
                {"g": "is_bound", "range": (10, 20), "args": {"lb": 0.0, "ub": 1.0}},
            ],
        }
        vars, stats = solve_qss(data, eps=1e-9, max_iters=5000)
        expected = np.concatenate([np.sign(c[:10]) * np.maximum(np.abs(c[:10]) - 0.5, 0.0),
                                   np.clip(c[10:], 0.0, 1.0)])
        assert stats.status == TermStatus.CONVERGED
        np.testing.assert_allclose(vars.x, expected, atol=1e-6)

    def test_explicit_g_with_constraint(self):
        """Projection of c onto {sum x = 1, x >= 0}."""
        n = 5
        c = np.array([0.9, 0.6, -0.3, 0.1, 0.0])
        data = {
            "P": sp.eye(n),
            "q": -c,
            "A": sp.csc_matrix(np.ones((1, n))),
            "b": [1.0],
            "g": [indicator(0.0, np.inf)] * n,
        }
        vars, _ = solve_qss(data, eps=1e-10, max_iters=20000, kkt_solver="kkt")
        # shift tau = 0.25 puts the positive part of c - tau on the simplex
        np.testing.assert_allclose(vars.x, np.maximum(c - 0.25, 0.0), atol=1e-6)

    def test_settings_are_forwarded(self):
        data = {"P": sp.eye(3), "q": np.ones(3), "gspec": []}
        _, stats = solve_qss(data, max_iters=3, eps=0.0, term_cond_freq=1)
        assert stats.iters == 3
        assert stats.status == TermStatus.MAX_ITERATIONS

    def test_unknown_penalty(self):
        data = {"P": sp.eye(2), "q": np.zeros(2), "gspec": [{"g": "l3", "range": (0, 2)}]}
        with pytest.raises(KeyError):
            solve_qss(data)

    def test_penalty_specs_under_g_point_to_gspec(self):
        data = {"P": sp.eye(2), "q": np.zeros(2), "g": [{"g": "abs", "range": (0, 2)}]}
        with pytest.raises(TypeError, match="gspec"):
            solve_qss(data)

    def test_missing_b_with_rows(self):
        data = {"P": sp.eye(2), "q": np.zeros(2), "A": np.ones((1, 2)),
                "g": [indicator(0, 1)] * 2}
        with pytest.raises(ValueError, match="A has shape"):
            solve_qss(data)


class _Variable:
    """Stands in for a cvxpy.Variable: a settable ``value``."""
    def __init__(self, n):
        self.shape = (n,)
        self._value = None

    @property
    def value(self):
        return self._value

    @value.setter
    def value(self, v):
        v = np.asarray(v)
        if v.shape != self.shape:
            raise ValueError("Invalid dimensions")
        self._value = v


class _Constant:
    value = property(lambda self: 0.0)


class TestCvxpyBridge:
    def test_solution_lands_in_variable(self):
        n = 4
        params = AdmmParams(sp.eye(n), -np.arange(n, dtype=float), None, [],
                            [indicator(0.0, 2.0)] * n)
        var = _Variable(n)
        vars, _ = solve_into_cvxpy(var, params, Settings(eps=1e-9, max_iters=5000))
        np.testing.assert_allclose(var.value, vars.x)
        np.testing.assert_allclose(var.value, [0.0, 1.0, 2.0, 2.0], atol=1e-6)

    def test_assign_other_field(self):
        params = AdmmParams(sp.eye(2), np.zeros(2), None, [], [indicator(0, 1)] * 2)
        vars = Vars.zeros(params)
        vars.xt = np.array([0.25, 0.75])
        var = _Variable(2)
        assign_solution(var, vars, key="xt")
        np.testing.assert_allclose(var.value, [0.25, 0.75])

    def test_unassignable_targets_are_left_alone(self):
        params = AdmmParams(sp.eye(2), np.zeros(2), None, [], [indicator(0, 1)] * 2)
        vars = Vars.zeros(params)
        assign_solution(_Variable(3), vars)
        const = _Constant()
        assign_solution(const, vars)
        assert const.value == 0.0
