"""Tests for SolverOptions configuration."""

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver import (  # noqa: E402
    Problem,
    SolverConfigurationError,
    SolverOptions,
    solve_transportation,
)


def test_solver_options_defaults():
    """Test that SolverOptions has sensible default values."""
    options = SolverOptions()
    assert options.balance_tolerance == 1e-6
    assert options.zero_tolerance == 1e-9
    assert options.max_iterations == 20


def test_solver_options_custom_values():
    options = SolverOptions(balance_tolerance=1e-3, zero_tolerance=1e-12, max_iterations=100)
    assert options.balance_tolerance == 1e-3
    assert options.zero_tolerance == 1e-12
    assert options.max_iterations == 100


@pytest.mark.parametrize(
    "kwargs",
    [
        {"balance_tolerance": 0.0},
        {"balance_tolerance": -1e-6},
        {"zero_tolerance": 0.0},
        {"max_iterations": -1},
    ],
)
def test_solver_options_rejects_invalid_values(kwargs):
    with pytest.raises(SolverConfigurationError):
        SolverOptions(**kwargs)


def test_zero_iteration_limit_still_accepts_optimal_initial_plan():
    """Vogel's plan for the textbook problem needs no pivot at all."""
    problem = Problem(
        costs=[[8, 6, 10, 9], [9, 12, 13, 7], [14, 9, 16, 5]],
        supplies=[20, 30, 50],
        demands=[10, 40, 30, 20],
    )
    result = solve_transportation(problem, method="vogel", options=SolverOptions(max_iterations=0))
    assert result.status == "optimal"
    assert result.total_cost == pytest.approx(880.0)


def test_zero_iteration_limit_stops_before_first_pivot():
    problem = Problem(
        costs=[[8, 6, 10, 9], [9, 12, 13, 7], [14, 9, 16, 5]],
        supplies=[20, 30, 50],
        demands=[10, 40, 30, 20],
    )
    result = solve_transportation(
        problem, method="double_preference", options=SolverOptions(max_iterations=0)
    )
    assert result.status == "iteration_limit"
    assert not result.is_optimal
    assert result.total_cost == pytest.approx(910.0)
    assert result.iterations == 0
