import math

import numpy as np
import pytest

import plnfit.optimize as optimize_module
from plnfit.config import OptimConfig
from plnfit.errors import InvalidAlgorithm, NumericalError
from plnfit.objective import create_evaluator
from plnfit.algorithms import available_algorithms
from plnfit.optimize import PLNOptimizer, create_optimizer, fit_pln, optimize_pln
from plnfit.parameters import ParameterLayout
from plnfit.simulation import simulate_pln
from plnfit.types import EvaluationContext, PLNData, Status


def _scenario(n=5, p=3, seed=2024):
    rng = np.random.default_rng(seed)
    Y = rng.integers(0, 6, size=(n, p)).astype(float)
    X = np.ones((n, 1))
    O = np.zeros((n, p))
    layout = ParameterLayout(n, p, 1)
    x0 = layout.pack(np.zeros((p, 1)), np.zeros((n, p)), np.ones((n, p)))
    return Y, X, O, layout, x0


def _control(**overrides):
    control = {
        "ftol_rel": 1e-6,
        "ftol_abs": 1e-6,
        "xtol_rel": 1e-4,
        "xtol_abs": 1e-4,
        "maxeval": 50,
        "lbvar": 1e-3,
        "algorithm": "LBFGS",
    }
    control.update(overrides)
    return OptimConfig.from_dict(control)


def _initial_objective(Y, X, O, layout, x0):
    evaluator = create_evaluator(layout)
    value, _ = evaluator.evaluate(x0, False, EvaluationContext(PLNData(Y, X, O, 0.0)))
    return value


def test_lbfgs_scenario_improves_on_the_starting_point():
    Y, X, O, layout, x0 = _scenario()
    result = optimize_pln(x0, Y, X, O, 0.0, _control())
    assert np.isfinite(result.objective)
    assert result.objective < _initial_objective(Y, X, O, layout, x0)
    assert not result.status.failed
    assert result.solution.shape == (33,)
    assert np.all(result.solution[layout.s_slice] >= 1e-3)
    assert 0 < result.iterations <= 50
    assert len(result.history) == result.iterations


def test_run_converges_before_budget_with_large_maxeval():
    Y, X, O, layout, x0 = _scenario()
    result = optimize_pln(x0, Y, X, O, 0.0, _control(algorithm="CCSAQ", maxeval=10000))
    assert result.status.converged
    assert not result.status.budget_exhausted
    assert result.iterations < 10000


def test_small_budget_reports_maxeval_reached():
    Y, X, O, layout, x0 = _scenario()
    result = optimize_pln(x0, Y, X, O, 0.0, _control(algorithm="CCSAQ", maxeval=3, ftol_rel=0.0, ftol_abs=0.0))
    assert result.status == Status.MAXEVAL_REACHED
    assert result.status.budget_exhausted
    assert result.iterations == 3


@pytest.mark.parametrize("algorithm", ["LBFGS", "VAR2", "TNEWTON", "MMA", "CCSAQ"])
def test_variances_respect_lower_bound(algorithm):
    Y, X, O, layout, x0 = _scenario(seed=11)
    result = optimize_pln(x0, Y, X, O, 0.0, _control(algorithm=algorithm, lbvar=0.01, maxeval=300))
    assert result.solution.shape == (layout.n_param,)
    assert np.all(result.solution[layout.s_slice] >= 0.01 - 1e-12)


def test_longer_budgets_never_return_a_worse_objective():
    Y, X, O, layout, x0 = _scenario()
    evaluator = create_evaluator(layout)
    ctx = EvaluationContext(PLNData(Y, X, O, 0.0))
    objectives = []
    for maxeval in (5, 10, 20, 40, 80):
        result = optimize_pln(x0, Y, X, O, 0.0, _control(algorithm="CCSAQ", maxeval=maxeval, ftol_rel=0.0, ftol_abs=0.0))
        value, _ = evaluator.evaluate(result.solution, False, ctx)
        assert value == pytest.approx(result.objective, rel=1e-10)
        objectives.append(result.objective)
    assert objectives[0] < _initial_objective(Y, X, O, layout, x0)
    assert np.all(np.diff(objectives) <= 1e-10 * np.abs(objectives[:-1]))


def test_result_record_matches_external_interface():
    Y, X, O, layout, x0 = _scenario()
    record = optimize_pln(x0, Y, X, O, 0.0, _control()).to_dict()
    assert set(record) == {"status", "objective", "solution", "iterations"}
    assert isinstance(record["status"], int)
    assert len(record["solution"]) == layout.n_param


def test_invalid_algorithm_fails_before_any_evaluation(monkeypatch):
    Y, X, O, layout, x0 = _scenario()
    calls = []
    monkeypatch.setattr(optimize_module, "create_evaluator", lambda *a, **k: calls.append(a))
    with pytest.raises(InvalidAlgorithm):
        optimize_pln(x0, Y, X, O, 0.0, _control(algorithm="not_an_algorithm"))
    assert calls == []


def test_wrong_initial_length_is_rejected():
    Y, X, O, layout, x0 = _scenario()
    optimizer = create_optimizer(_control())
    with pytest.raises(ValueError):
        optimizer.run(x0[:-1], EvaluationContext(PLNData(Y, X, O, 0.0)))


class _FailingEvaluator:
    """Delegates to the real evaluator, then fails from a given call on."""

    def __init__(self, layout, fail_at):
        self.inner = create_evaluator(layout)
        self.fail_at = fail_at

    def evaluate(self, x, need_gradient, ctx):
        if ctx.evaluation_count + 1 >= self.fail_at:
            ctx.evaluation_count += 1
            raise NumericalError("not positive definite")
        return self.inner.evaluate(x, need_gradient, ctx)


def test_numerical_failure_is_reported_in_status(monkeypatch):
    Y, X, O, layout, x0 = _scenario()
    monkeypatch.setattr(
        optimize_module, "create_evaluator", lambda layout, backend="numpy": _FailingEvaluator(layout, fail_at=4)
    )
    result = optimize_pln(x0, Y, X, O, 0.0, _control(algorithm="CCSAQ", maxeval=100))
    assert result.status == Status.FAILURE
    assert result.status.failed
    assert result.iterations == 4
    assert len(result.history) == 4
    assert math.isnan(result.history[-1])
    assert np.isfinite(result.objective)
    assert result.objective == pytest.approx(min(result.history[:3]))


def test_failure_on_first_evaluation_returns_initial_point(monkeypatch):
    Y, X, O, layout, x0 = _scenario()
    monkeypatch.setattr(
        optimize_module, "create_evaluator", lambda layout, backend="numpy": _FailingEvaluator(layout, fail_at=1)
    )
    result = optimize_pln(x0, Y, X, O, 0.0, _control())
    assert result.status == Status.FAILURE
    assert math.isnan(result.objective)
    assert np.array_equal(result.solution, x0)


def test_column_major_layout_reaches_the_same_optimum():
    Y, X, O, layout, x0 = _scenario()
    control = dict(ftol_rel=1e-10, ftol_abs=0.0, xtol_rel=1e-8, xtol_abs=1e-8, maxeval=20000, lbvar=1e-3, algorithm="CCSAQ")
    res_c = optimize_pln(x0, Y, X, O, 0.0, OptimConfig.from_dict(control))
    start = layout.unpack(x0)
    x0_f = ParameterLayout(5, 3, 1, "F").pack(start.Theta, start.M, start.S)
    res_f = optimize_pln(x0_f, Y, X, O, 0.0, OptimConfig.from_dict(dict(control, order="F")))
    assert res_f.objective == pytest.approx(res_c.objective, rel=1e-5)


def test_fit_pln_on_simulated_counts():
    sim = simulate_pln(n=40, p=3, d=2, seed=5)
    fit = fit_pln(sim["Y"], sim["X"], config={"maxeval": 3000})
    assert not fit.result.status.failed
    assert fit.Theta.shape == (3, 2)
    assert fit.M.shape == fit.S.shape == (40, 3)
    assert np.all(fit.S >= 1e-4)
    np.testing.assert_allclose(fit.Sigma, fit.Sigma.T)
    assert np.all(np.linalg.eigvalsh(fit.Sigma) > 0)
    np.testing.assert_allclose(fit.Omega @ fit.Sigma, np.eye(3), atol=1e-8)
    assert np.isfinite(fit.loglik)
    assert fit.loglik == pytest.approx(-fit.result.objective)
    assert fit.bic < fit.loglik


def test_fit_pln_defaults_to_intercept_and_zero_offset():
    sim = simulate_pln(n=20, p=2, d=1, seed=9)
    fit = fit_pln(sim["Y"], config={"algorithm": "LBFGS", "maxeval": 500})
    assert fit.Theta.shape == (2, 1)
    assert fit.result.iterations > 0


def test_optimizer_keeps_resolved_algorithm():
    optimizer = PLNOptimizer(_control(algorithm="mma"))
    assert optimizer.algorithm.name == "MMA"


@pytest.mark.parametrize("algorithm", available_algorithms())
def test_every_registered_algorithm_returns_a_result(algorithm):
    Y, X, O, layout, x0 = _scenario(seed=3)
    result = optimize_pln(x0, Y, X, O, 0.0, _control(algorithm=algorithm, maxeval=100))
    assert isinstance(result.status, Status)
    assert result.solution.shape == (layout.n_param,)
    assert np.all(result.solution[layout.s_slice] >= 1e-3 - 1e-12)
    assert len(result.history) == result.iterations


def test_nocedal_lbfgs_is_rejected_through_status():
    Y, X, O, layout, x0 = _scenario()
    result = optimize_pln(x0, Y, X, O, 0.0, _control(algorithm="LBFGS_NOCEDAL"))
    assert result.status == Status.INVALID_ARGS
    assert result.iterations == 0
    assert math.isnan(result.objective)
    assert np.array_equal(result.solution, x0)


def test_start_below_variance_bound_is_rejected_through_status():
    Y, X, O, layout, x0 = _scenario()
    start = layout.unpack(x0)
    x_low = layout.pack(start.Theta, start.M, np.full_like(start.S, 1e-5))
    result = optimize_pln(x_low, Y, X, O, 0.0, _control(lbvar=1e-3))
    assert result.status == Status.INVALID_ARGS
    assert result.status.failed
    assert result.iterations == 0
    assert np.array_equal(result.solution, x_low)


class _BrokenEvaluator:
    def __init__(self, layout):
        self.layout = layout

    def evaluate(self, x, need_gradient, ctx):
        ctx.evaluation_count += 1
        raise ValueError("evaluator contract broken")


def test_error_raised_inside_the_objective_propagates(monkeypatch):
    Y, X, O, layout, x0 = _scenario()
    monkeypatch.setattr(optimize_module, "create_evaluator", lambda layout, backend="numpy": _BrokenEvaluator(layout))
    with pytest.raises(ValueError, match="contract broken"):
        optimize_pln(x0, Y, X, O, 0.0, _control())


def test_fit_pln_with_degenerate_start_leaves_omega_undefined():
    sim = simulate_pln(n=10, p=2, d=1, seed=4)
    layout = ParameterLayout(10, 2, 1)
    init = layout.pack(np.zeros((2, 1)), np.zeros((10, 2)), np.zeros((10, 2)))
    fit = fit_pln(sim["Y"], config={"maxeval": 50}, init=init)
    assert fit.result.status.failed
    np.testing.assert_array_equal(fit.Sigma, np.zeros((2, 2)))
    assert np.all(np.isnan(fit.Omega))
    assert math.isnan(fit.loglik)
