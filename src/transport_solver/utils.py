"""Utility functions for inspecting and validating shipping plans."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np

from .data import Cell, Problem
from .exceptions import InvalidDimensionsError


@dataclass
class Route:
    """One used route of a shipping plan.

    Attributes:
        supplier: Row index of the supplier.
        consumer: Column index of the consumer.
        quantity: Units shipped along the route.
        unit_cost: Cost per unit of the route.
        cost: Total cost of the route (unit_cost times quantity).
        fictive: True when the route touches a dummy supplier or consumer.
    """

    supplier: int
    consumer: int
    quantity: float
    unit_cost: float
    cost: float
    fictive: bool

    @property
    def cell(self) -> Cell:
        return (self.supplier, self.consumer)


@dataclass
class PlanValidation:
    """Results from validating a shipping plan against a problem.

    Attributes:
        is_valid: True if the plan ships exactly every supply and demand.
        errors: List of validation error messages (empty if valid).
        row_residuals: Supply minus shipped quantity, per supplier.
        col_residuals: Demand minus received quantity, per consumer.
        negative_cells: Cells holding a negative allocation.
    """

    is_valid: bool
    errors: list[str]
    row_residuals: np.ndarray
    col_residuals: np.ndarray
    negative_cells: list[Cell]


def _as_plan(problem: Problem, solution: np.ndarray | Sequence[Sequence[float]]) -> np.ndarray:
    plan = np.asarray(solution, dtype=float)
    if plan.shape != problem.shape:
        raise InvalidDimensionsError(
            f"Solution of shape {plan.shape} does not match the cost matrix {problem.shape}.",
            cost_shape=problem.shape,
            supply_count=problem.rows,
            demand_count=problem.cols,
        )
    return plan


def validate_plan(
    problem: Problem,
    solution: np.ndarray | Sequence[Sequence[float]],
    tolerance: float = 1e-6,
) -> PlanValidation:
    """Validate that a plan satisfies every supply and demand exactly.

    Checks:
    - Row sums equal supplies
    - Column sums equal demands
    - No allocation is negative

    Args:
        problem: Problem the plan was built for (balanced when the plan is).
        solution: Allocation matrix shaped like ``problem.costs``.
        tolerance: Numerical tolerance for constraint violations (default: 1e-6).

    Returns:
        PlanValidation with detailed information about any violations.

    Raises:
        InvalidDimensionsError: If the plan is not shaped like the cost matrix.
    """
    plan = _as_plan(problem, solution)
    errors: list[str] = []

    row_residuals = problem.supplies - plan.sum(axis=1)
    col_residuals = problem.demands - plan.sum(axis=0)
    negative_cells = [(int(r), int(c)) for r, c in zip(*np.nonzero(plan < -tolerance))]

    for row, residual in enumerate(row_residuals):
        if abs(residual) > tolerance:
            errors.append(f"Supplier {row}: shipped total off by {residual:.6f}")
    for col, residual in enumerate(col_residuals):
        if abs(residual) > tolerance:
            errors.append(f"Consumer {col}: received total off by {residual:.6f}")
    for cell in negative_cells:
        errors.append(f"Route {cell}: negative allocation {plan[cell]:.6f}")

    return PlanValidation(
        is_valid=not errors,
        errors=errors,
        row_residuals=row_residuals,
        col_residuals=col_residuals,
        negative_cells=negative_cells,
    )


def basis_cells(
    solution: np.ndarray | Sequence[Sequence[float]],
    basic_zero_cells: Iterable[Cell] = (),
    tolerance: float = 1e-9,
) -> list[Cell]:
    """Return the basis of a plan: positive cells plus basic zeros, in row-major order."""
    plan = np.asarray(solution, dtype=float)
    cells = {(int(r), int(c)) for r, c in zip(*np.nonzero(plan > tolerance))}
    cells.update((int(r), int(c)) for r, c in basic_zero_cells)
    return sorted(cells)


def count_basis(
    solution: np.ndarray | Sequence[Sequence[float]],
    basic_zero_cells: Iterable[Cell] = (),
    tolerance: float = 1e-9,
) -> int:
    """Count basis cells; a non-degenerate basis has ``rows + cols - 1`` of them."""
    return len(basis_cells(solution, basic_zero_cells, tolerance))


def extract_routes(
    problem: Problem,
    solution: np.ndarray | Sequence[Sequence[float]],
    tolerance: float = 1e-9,
    include_fictive: bool = True,
) -> list[Route]:
    """List the routes that carry goods, sorted by (supplier, consumer).

    Args:
        problem: Problem the plan was built for.
        solution: Allocation matrix shaped like ``problem.costs``.
        tolerance: Minimum quantity for a route to count as used (default: 1e-9).
        include_fictive: Also report routes through dummy lines (default: True).
            Such routes stand for unmet demand or unused supply.

    Returns:
        List of Route objects.

    Examples:
        >>> routes = extract_routes(problem, result.solution, include_fictive=False)
        >>> for route in routes:
        ...     print(f"{route.supplier} -> {route.consumer}: {route.quantity}")
    """
    plan = _as_plan(problem, solution)
    routes: list[Route] = []
    for row, col in zip(*np.nonzero(plan > tolerance)):
        row, col = int(row), int(col)
        fictive = problem.is_fictive_cell(row, col)
        if fictive and not include_fictive:
            continue
        quantity = float(plan[row, col])
        unit_cost = float(problem.costs[row, col])
        routes.append(
            Route(
                supplier=row,
                consumer=col,
                quantity=quantity,
                unit_cost=unit_cost,
                cost=unit_cost * quantity,
                fictive=fictive,
            )
        )
    return routes
