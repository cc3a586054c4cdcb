"""Tests for the public solver entrypoints."""

import sys
from pathlib import Path

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver import (  # noqa: E402
    ConstructionResult,
    Method,
    Objective,
    OptimizationResult,
    Problem,
    TransportResult,
    build_initial_solution,
    optimize_solution,
    solve_transportation,
)
from transport_solver.steps import (  # noqa: E402
    DegeneracyFixStep,
    FinalStep,
    InitialPlanStep,
    TransitionStep,
)


def _textbook_problem() -> Problem:
    return Problem(
        costs=[[8, 6, 10, 9], [9, 12, 13, 7], [14, 9, 16, 5]],
        supplies=[20, 30, 50],
        demands=[10, 40, 30, 20],
    )


def test_build_initial_solution_returns_construction_result():
    result = build_initial_solution(_textbook_problem(), method=Method.VOGEL)
    assert isinstance(result, ConstructionResult)
    assert result.method is Method.VOGEL
    assert result.total_cost == pytest.approx(880.0)


def test_optimize_solution_from_construction_result():
    initial = build_initial_solution(_textbook_problem())
    result = optimize_solution(initial)

    assert isinstance(result, OptimizationResult)
    assert result.status == "optimal"
    assert result.total_cost == pytest.approx(880.0)
    # The construction plan is not touched by the optimizer
    assert initial.total_cost == pytest.approx(910.0)


def test_optimize_solution_with_overriding_plan_ignores_construction_zeros():
    problem = Problem(costs=[[3, 2, 5], [1, 5, 0], [3, 3, 5]], supplies=[2, 5, 4], demands=[5, 1, 5])
    northwest = [[2, 0, 0], [3, 1, 1], [0, 0, 4]]
    construction = build_initial_solution(problem)

    overridden = optimize_solution(construction, solution=northwest)
    direct = optimize_solution(problem, solution=northwest)

    assert overridden.status == "optimal"
    assert overridden.total_cost == pytest.approx(17.0)
    assert overridden.total_cost == pytest.approx(direct.total_cost)
    # Only the plan's own cells seed the basis
    assert overridden.steps[0].basic_zero_cells == ()


def test_optimize_solution_from_problem_and_plan():
    problem = Problem(costs=[[2, 2], [2, 3]], supplies=[5, 5], demands=[5, 5])
    result = optimize_solution(problem, solution=[[5, 0], [0, 5]])

    assert isinstance(result.steps[0], InitialPlanStep)
    assert isinstance(result.steps[1], DegeneracyFixStep)
    assert result.total_cost == pytest.approx(20.0)


def test_optimize_solution_balances_unbalanced_problem():
    problem = Problem(costs=[[1, 2]], supplies=[10], demands=[6, 6])
    result = optimize_solution(problem, solution=[[6, 4], [0, 2]], basic_zero_cells=[])

    assert result.status == "optimal"
    assert result.solution.shape == (2, 2)
    assert result.total_cost == pytest.approx(14.0)


def test_solve_transportation_runs_both_phases():
    result = solve_transportation(_textbook_problem())

    assert isinstance(result, TransportResult)
    assert result.status == "optimal"
    assert result.is_optimal
    assert result.initial_cost == pytest.approx(910.0)
    assert result.total_cost == pytest.approx(880.0)
    assert result.iterations == 1
    assert result.method is Method.DOUBLE_PREFERENCE
    assert result.objective is Objective.MINIMIZE
    assert len(result.construction_steps) == 6
    assert isinstance(result.optimization_steps[-1], FinalStep)


@pytest.mark.parametrize("method", ["double_preference", "vogel"])
def test_both_methods_reach_same_optimum(method):
    problem = Problem(
        costs=[[3, 1, 7, 4], [2, 6, 5, 9], [8, 3, 3, 2]],
        supplies=[300, 400, 500],
        demands=[250, 350, 400, 200],
    )
    result = solve_transportation(problem, method=method)
    assert result.status == "optimal"
    assert result.total_cost == pytest.approx(2850.0)


def test_unbalanced_problem_reports_real_cost():
    problem = Problem(costs=[[1, 2]], supplies=[10], demands=[6, 6])
    result = solve_transportation(problem)

    assert any(isinstance(step, TransitionStep) for step in result.construction_steps)
    assert result.problem.fictive_rows == 1
    assert result.total_cost == pytest.approx(14.0)
    np.testing.assert_allclose(result.solution, [[6.0, 4.0], [0.0, 2.0]])


def test_maximize_end_to_end():
    problem = Problem(costs=[[4, 1], [2, 3]], supplies=[5, 5], demands=[5, 5])
    result = solve_transportation(problem, objective="maximize")

    assert result.status == "optimal"
    assert result.objective is Objective.MAXIMIZE
    assert result.total_cost == pytest.approx(35.0)


def test_step_callback_sees_both_phases():
    seen = []
    result = solve_transportation(_textbook_problem(), step_callback=seen.append)
    assert seen == result.construction_steps + result.optimization_steps


def test_repeated_solves_are_independent():
    problem = _textbook_problem()
    first = solve_transportation(problem)
    second = solve_transportation(problem)

    assert first.solution is not second.solution
    np.testing.assert_allclose(first.solution, second.solution)
    assert problem.costs[0, 0] == 8.0
