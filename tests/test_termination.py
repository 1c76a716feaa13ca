"""Tests for the termination caches."""

import numpy as np
import pytest
import scipy.sparse as sp

from sepopt.piecewise import indicator
from sepopt.problem import AdmmParams, Settings, Vars
from sepopt.termination import (
    ConvergeTermCache, FirstVarsTermCache, check_term_conds, get_obj_and_res_from_first_vars,
    get_term_cond_cache,
)
from sepopt.types import DimensionMismatch, FactorizationError, TermCondType, TermStatus


def _settled():
    # x = xt, z = zt = b and A x = b
    params = AdmmParams(sp.eye(2), np.zeros(2), [[1.0, 1.0]], [3.0], [indicator(0, 5)] * 2)
    vars = Vars([1.0, 2.0], [3.0], [0.1, 0.2], [0.5], [1.0, 2.0], [3.0])
    return params, vars


class TestConverge:
    def test_settled_iterate_converges(self):
        params, vars = _settled()
        settings = Settings(eps=1e-6).resolve(params)
        tc = ConvergeTermCache(params, settings, vars)
        assert check_term_conds(tc, vars, params, settings, 10) == TermStatus.CONVERGED

    def test_dual_change_keeps_going(self):
        params, vars = _settled()
        settings = Settings(eps=1e-6).resolve(params)
        tc = ConvergeTermCache(params, settings, vars)
        vars.w += 1.0
        assert tc.check(vars, params, settings, 10) == TermStatus.CONTINUE
        # the snapshot moved along with the iterate
        assert tc.check(vars, params, settings, 20) == TermStatus.CONVERGED

    def test_infeasible_iterate_keeps_going(self):
        params, vars = _settled()
        settings = Settings(eps=1e-6).resolve(params)
        vars.x = np.array([1.0, 1.0])
        vars.xt = vars.x.copy()
        tc = ConvergeTermCache(params, settings, vars)
        assert tc.check(vars, params, settings, 10) == TermStatus.CONTINUE

    def test_consistency_gap_keeps_going(self):
        params, vars = _settled()
        settings = Settings(eps=1e-3).resolve(params)
        tc = ConvergeTermCache(params, settings, vars)
        vars.zt = vars.zt + 1e-2
        assert tc.check(vars, params, settings, 10) == TermStatus.CONTINUE


def _first_vars_problem(non_improvement_iters=2, A=((1.0, 1.0, 1.0),)):
    # x2 = 3 - x0 - x1 on the box [0, 2]^3, objective x0 + 2 x1 + 3 x2
    params = AdmmParams(sp.csc_matrix((3, 3)), np.array([1.0, 2.0, 3.0]),
                        np.array(A), [3.0], [indicator(0, 2)] * 3)
    settings = Settings(term_cond_type=TermCondType.FIRST_VARS,
                        non_improvement_iters=non_improvement_iters).resolve(params)
    return params, settings, Vars.zeros(params)


class TestFirstVars:
    def test_rebuilds_last_coordinates(self):
        params, settings, vars = _first_vars_problem()
        tc = FirstVarsTermCache(params, settings)
        vars.x = np.array([1.0, 0.5, 7.0])
        obj, res, x = get_obj_and_res_from_first_vars(tc, vars, params)
        np.testing.assert_allclose(x, [1.0, 0.5, 1.5])
        assert res == 0.0
        assert obj == pytest.approx(1.0 + 1.0 + 4.5)

    def test_residual_is_distance_to_domain(self):
        params, settings, vars = _first_vars_problem()
        tc = FirstVarsTermCache(params, settings)
        vars.x = np.array([2.0, 2.0, 0.0])
        obj, res, x = get_obj_and_res_from_first_vars(tc, vars, params)
        np.testing.assert_allclose(x, [2.0, 2.0, -1.0])
        assert res == pytest.approx(1.0)
        # g is evaluated at the projection, so the objective stays finite
        assert obj == pytest.approx(2.0 + 4.0 - 3.0)

    def test_improvement_then_stall(self):
        params, settings, vars = _first_vars_problem(non_improvement_iters=2)
        tc = FirstVarsTermCache(params, settings)

        vars.x = np.array([1.0, 1.0, 0.0])
        assert tc.check(vars, params, settings, 10) == TermStatus.CONTINUE
        assert tc.obj_best == pytest.approx(6.0)

        vars.x = np.array([2.0, 0.5, 0.0])
        assert tc.check(vars, params, settings, 20) == TermStatus.CONTINUE
        assert tc.obj_best == pytest.approx(4.5)
        assert tc.not_improved_count == 0

        statuses = [tc.check(vars, params, settings, it) for it in (30, 40, 50)]
        assert statuses == [TermStatus.CONTINUE, TermStatus.CONTINUE, TermStatus.NOT_IMPROVING]
        assert tc.best_history == pytest.approx([6.0, 4.5, 4.5, 4.5, 4.5])

    def test_infeasible_candidate_is_not_an_improvement(self):
        params, settings, vars = _first_vars_problem()
        tc = FirstVarsTermCache(params, settings)
        vars.x = np.array([2.0, 2.0, 0.0])
        tc.check(vars, params, settings, 10)
        assert tc.obj_best == np.inf
        assert tc.x_best is None
        assert tc.not_improved_count == 1

    def test_small_gains_are_ignored(self):
        params, settings, vars = _first_vars_problem()
        settings.obj_tol = 0.1
        tc = FirstVarsTermCache(params, settings)
        vars.x = np.array([1.0, 1.0, 0.0])
        tc.check(vars, params, settings, 10)
        # x0 up by 0.01, x2 down by 0.01: objective drops by 0.02
        vars.x = np.array([1.01, 1.0, 0.0])
        tc.check(vars, params, settings, 20)
        assert tc.obj_best == pytest.approx(6.0)
        assert tc.not_improved_count == 1

    def test_restore_best(self):
        params, settings, vars = _first_vars_problem()
        tc = FirstVarsTermCache(params, settings)
        vars.x = np.array([2.0, 0.5, 0.0])
        vars.w = np.array([1.0, 2.0, 3.0])
        tc.check(vars, params, settings, 10)

        vars.x = np.array([0.0, 0.0, 0.0])
        vars.w = np.zeros(3)
        tc.check(vars, params, settings, 20)
        tc.restore_best(vars)
        np.testing.assert_allclose(vars.x, [2.0, 0.5, 0.5])
        np.testing.assert_allclose(vars.w, [1.0, 2.0, 3.0])

    def test_finalize_considers_last_iterate(self):
        params, settings, vars = _first_vars_problem()
        tc = FirstVarsTermCache(params, settings)
        vars.x = np.array([1.0, 1.0, 0.0])
        tc.check(vars, params, settings, 10)
        vars.x = np.array([2.0, 1.0, 0.0])
        tc.finalize(vars, params, settings)
        # objective 2 + 2 + 0 beats 6
        np.testing.assert_allclose(vars.x, [2.0, 1.0, 0.0])
        assert tc.obj_best == pytest.approx(4.0)

    def test_finalize_without_candidates_leaves_vars(self):
        params, settings, vars = _first_vars_problem()
        tc = FirstVarsTermCache(params, settings)
        vars.x = np.array([2.0, 2.0, 0.0])
        tc.finalize(vars, params, settings)
        np.testing.assert_allclose(vars.x, [2.0, 2.0, 0.0])

    def test_singular_trailing_block(self):
        params, settings, _ = _first_vars_problem(A=((1.0, 1.0, 0.0),))
        with pytest.raises(FactorizationError):
            FirstVarsTermCache(params, settings)

    def test_more_constraints_than_variables(self):
        params = AdmmParams(sp.eye(1), np.zeros(1), np.ones((2, 1)), np.ones(2), [indicator(0, 1)])
        settings = Settings(term_cond_type=2).resolve(params)
        with pytest.raises(DimensionMismatch):
            FirstVarsTermCache(params, settings)


class TestDispatch:
    @pytest.mark.parametrize("kind,cls", [(TermCondType.CONVERGE, ConvergeTermCache),
                                          (TermCondType.FIRST_VARS, FirstVarsTermCache),
                                          (1, ConvergeTermCache),
                                          (2, FirstVarsTermCache)])
    def test_cache_follows_settings(self, kind, cls):
        params, _, _ = _first_vars_problem()
        settings = Settings(term_cond_type=kind).resolve(params)
        assert isinstance(get_term_cond_cache(params, settings), cls)

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            Settings(term_cond_type=3)
