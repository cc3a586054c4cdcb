"""Tests for solver logging."""

import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver import Problem, optimize_solution, solve_transportation  # noqa: E402


def _textbook_problem() -> Problem:
    return Problem(
        costs=[[8, 6, 10, 9], [9, 12, 13, 7], [14, 9, 16, 5]],
        supplies=[20, 30, 50],
        demands=[10, 40, 30, 20],
    )


def test_phase_boundaries_logged_at_info(caplog):
    caplog.set_level(logging.INFO, logger="transport_solver")
    solve_transportation(_textbook_problem())

    messages = [record.message for record in caplog.records]
    assert "Building initial plan with double_preference" in messages
    assert "Starting potentials method" in messages
    assert "Optimal plan found after 1 pivot(s)" in messages


def test_structured_context_passed_through_extra(caplog):
    caplog.set_level(logging.INFO, logger="transport_solver")
    solve_transportation(_textbook_problem(), method="vogel")

    start = next(r for r in caplog.records if r.message.startswith("Building initial plan"))
    assert start.rows == 3
    assert start.cols == 4
    assert start.objective == "minimize"

    built = next(r for r in caplog.records if r.message.startswith("Initial plan built"))
    assert built.total_cost == 880.0
    assert built.basis_size == 6


def test_allocations_logged_only_at_debug(caplog):
    caplog.set_level(logging.INFO, logger="transport_solver")
    solve_transportation(_textbook_problem())
    assert not any(r.levelno == logging.DEBUG for r in caplog.records)

    caplog.clear()
    caplog.set_level(logging.DEBUG, logger="transport_solver")
    solve_transportation(_textbook_problem())
    debug = [r for r in caplog.records if r.levelno == logging.DEBUG]
    assert any("ship 20" in r.message for r in debug)
    assert any(r.message.startswith("Pivot 1") for r in debug)


def test_balancing_and_transition_logged(caplog):
    caplog.set_level(logging.INFO, logger="transport_solver")
    solve_transportation(Problem(costs=[[1, 2]], supplies=[10], demands=[6, 6]))

    messages = [record.message for record in caplog.records]
    assert "Problem is unbalanced, added fictive row 1" in messages
    assert "Real routes saturated, switching to fictive routes" in messages


def test_degeneracy_repair_logged_as_warning(caplog):
    caplog.set_level(logging.WARNING, logger="transport_solver")
    problem = Problem(costs=[[2, 2], [2, 3]], supplies=[5, 5], demands=[5, 5])
    optimize_solution(problem, solution=[[5, 0], [0, 5]])

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert any("Degenerate plan" in r.message for r in warnings)
    repair = next(r for r in warnings if "Degenerate plan" in r.message)
    assert repair.added_cells == [(0, 1)]
