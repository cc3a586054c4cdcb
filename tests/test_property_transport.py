import sys
from pathlib import Path
from typing import List, Tuple

import numpy as np
import pytest

hypothesis = pytest.importorskip("hypothesis")
from hypothesis import HealthCheck, given, settings  # type: ignore  # noqa: E402
from hypothesis import strategies as st  # type: ignore  # noqa: E402

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver.data import Objective, SolverOptions, build_problem  # noqa: E402
from transport_solver.solver import (  # noqa: E402
    build_initial_solution,
    optimize_solution,
    solve_transportation,
)
from transport_solver.steps import PotentialsStep, RedistributionStep  # noqa: E402
from transport_solver.utils import count_basis, validate_plan  # noqa: E402

# Generous cap so random instances finish; the default is tuned for hand-sized problems.
PROPERTY_OPTIONS = SolverOptions(max_iterations=500)


@st.composite
def _transport_instances(draw) -> Tuple[List[List[int]], List[int], List[int]]:
    # Small dense instances, balanced or not, with frequent cost ties.
    rows = draw(st.integers(min_value=1, max_value=4))
    cols = draw(st.integers(min_value=1, max_value=4))
    costs = [
        [draw(st.integers(min_value=0, max_value=12)) for _ in range(cols)] for _ in range(rows)
    ]
    supplies = [draw(st.integers(min_value=0, max_value=30)) for _ in range(rows)]
    demands = [draw(st.integers(min_value=0, max_value=30)) for _ in range(cols)]
    if draw(st.booleans()):
        # Balance exactly by topping up the smaller side.
        gap = sum(supplies) - sum(demands)
        if gap > 0:
            demands[-1] += gap
        else:
            supplies[-1] -= gap
    return costs, supplies, demands


def _linprog_optimum(costs: np.ndarray, supplies: np.ndarray, demands: np.ndarray, sign: float) -> float:
    optimize = pytest.importorskip("scipy.optimize")
    rows, cols = costs.shape
    a_eq = np.zeros((rows + cols, rows * cols))
    for i in range(rows):
        a_eq[i, i * cols : (i + 1) * cols] = 1.0
    for j in range(cols):
        a_eq[rows + j, j::cols] = 1.0
    b_eq = np.concatenate([supplies, demands])
    outcome = optimize.linprog(
        sign * costs.ravel(), A_eq=a_eq, b_eq=b_eq, bounds=(0, None), method="highs"
    )
    assert outcome.status == 0
    return sign * float(outcome.fun)


@pytest.mark.parametrize("method", ["double_preference", "vogel"])
@settings(max_examples=60, suppress_health_check=[HealthCheck.too_slow], deadline=None)
@given(instance=_transport_instances())
def test_initial_plan_is_feasible_spanning_basis(method, instance):
    costs, supplies, demands = instance
    problem = build_problem(costs, supplies, demands)

    initial = build_initial_solution(problem, method=method)
    balanced = initial.problem

    assert balanced.is_balanced()
    assert validate_plan(balanced, initial.solution).is_valid
    assert np.all(initial.solution >= 0.0)
    assert count_basis(initial.solution, initial.basic_zero_cells) == balanced.rows + balanced.cols - 1
    # Balancing only adds zero-cost routes
    assert initial.total_cost == pytest.approx(float(np.sum(balanced.costs * initial.solution)))


@pytest.mark.parametrize("objective", [Objective.MINIMIZE, Objective.MAXIMIZE])
@settings(max_examples=60, suppress_health_check=[HealthCheck.too_slow], deadline=None)
@given(instance=_transport_instances())
def test_potentials_method_reaches_lp_optimum(objective, instance):
    costs, supplies, demands = instance
    problem = build_problem(costs, supplies, demands)

    initial = build_initial_solution(problem, objective=objective, options=PROPERTY_OPTIONS)
    result = optimize_solution(initial, options=PROPERTY_OPTIONS)
    balanced = initial.problem

    assert result.status == "optimal", result.final_step.describe()
    assert validate_plan(balanced, result.solution).is_valid
    assert count_basis(result.solution, result.basic_zero_cells) == balanced.rows + balanced.cols - 1

    # Optimality: no non-basic cell improves the objective
    final_potentials = [s for s in result.steps if isinstance(s, PotentialsStep)][-1]
    assert final_potentials.optimal
    if objective is Objective.MINIMIZE:
        assert np.all(final_potentials.evaluations >= -1e-9)
    else:
        assert np.all(final_potentials.evaluations <= 1e-9)

    # Every pivot keeps or improves the objective
    costs_after = [initial.total_cost] + [
        s.total_cost for s in result.steps if isinstance(s, RedistributionStep)
    ]
    for before, after in zip(costs_after, costs_after[1:]):
        if objective is Objective.MINIMIZE:
            assert after <= before + 1e-9
        else:
            assert after >= before - 1e-9

    sign = 1.0 if objective is Objective.MINIMIZE else -1.0
    expected = _linprog_optimum(
        np.array(balanced.costs), np.array(balanced.supplies), np.array(balanced.demands), sign
    )
    assert result.total_cost == pytest.approx(expected, abs=1e-6)


@settings(max_examples=40, suppress_health_check=[HealthCheck.too_slow], deadline=None)
@given(instance=_transport_instances())
def test_methods_agree_on_optimal_cost(instance):
    costs, supplies, demands = instance
    problem = build_problem(costs, supplies, demands)

    by_preference = solve_transportation(problem, method="double_preference", options=PROPERTY_OPTIONS)
    by_vogel = solve_transportation(problem, method="vogel", options=PROPERTY_OPTIONS)

    assert by_preference.total_cost == pytest.approx(by_vogel.total_cost, abs=1e-6)


@settings(max_examples=40, deadline=None)
@given(instance=_transport_instances())
def test_balancing_is_idempotent(instance):
    costs, supplies, demands = instance
    problem = build_problem(costs, supplies, demands)
    once = problem.make_balanced()

    assert once.make_balanced() is once
    assert once.total_cost(np.zeros(once.shape)) == 0.0
    assert problem.original_rows == once.original_rows
    assert problem.original_cols == once.original_cols
