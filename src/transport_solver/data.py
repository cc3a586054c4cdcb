"""Core data structures for transportation problems."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import numpy as np

from .exceptions import (
    InvalidDimensionsError,
    InvalidProblemError,
    SolverConfigurationError,
    UnsupportedMethodError,
)

DEFAULT_BALANCE_TOLERANCE = 1e-6  # Supply/demand totals closer than this count as balanced.
DEFAULT_ZERO_TOLERANCE = 1e-9  # Allocations and reduced costs within this of zero are zero.
DEFAULT_MAX_ITERATIONS = 20  # Improvement pivots before the optimizer gives up.

Cell = tuple[int, int]


class Method(Enum):
    """Heuristics available for building the initial basic feasible solution."""

    DOUBLE_PREFERENCE = "double_preference"
    VOGEL = "vogel"

    @classmethod
    def parse(cls, value: Method | str) -> Method:
        """Resolve an enum member or a case-insensitive name/alias.

        Raises:
            UnsupportedMethodError: If the value does not name a known method.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            method = _METHOD_ALIASES.get(_normalize_selector(value))
            if method is not None:
                return method
        raise UnsupportedMethodError(
            f"Unsupported construction method {value!r}. "
            f"Expected one of: {', '.join(m.value for m in cls)}.",
            value=value,
        )


class Objective(Enum):
    """Direction of optimization for the shipping plan."""

    MINIMIZE = "minimize"
    MAXIMIZE = "maximize"

    @classmethod
    def parse(cls, value: Objective | str) -> Objective:
        """Resolve an enum member or a case-insensitive name/alias.

        Raises:
            UnsupportedMethodError: If the value does not name a known objective.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            objective = _OBJECTIVE_ALIASES.get(_normalize_selector(value))
            if objective is not None:
                return objective
        raise UnsupportedMethodError(
            f"Unsupported objective {value!r}. "
            f"Expected one of: {', '.join(o.value for o in cls)}.",
            value=value,
        )

    @property
    def is_minimization(self) -> bool:
        return self is Objective.MINIMIZE


def _normalize_selector(value: str) -> str:
    return value.strip().lower().replace("-", "_").replace(" ", "_")


_METHOD_ALIASES: dict[str, Method] = {
    "double_preference": Method.DOUBLE_PREFERENCE,
    "double": Method.DOUBLE_PREFERENCE,
    "dp": Method.DOUBLE_PREFERENCE,
    "vogel": Method.VOGEL,
    "vogel_approximation": Method.VOGEL,
    "vam": Method.VOGEL,
    "fogel": Method.VOGEL,
}

_OBJECTIVE_ALIASES: dict[str, Objective] = {
    "minimize": Objective.MINIMIZE,
    "minimum": Objective.MINIMIZE,
    "min": Objective.MINIMIZE,
    "maximize": Objective.MAXIMIZE,
    "maximum": Objective.MAXIMIZE,
    "max": Objective.MAXIMIZE,
}


@dataclass(frozen=True, eq=False)
class Problem:
    """Encapsulates a transportation problem.

    A problem ships goods from R suppliers to C consumers. Each route (i, j)
    has a non-negative unit cost. Arrays are copied on construction and marked
    read-only, so a Problem never changes once built.

    Attributes:
        costs: R x C matrix of unit costs (or unit profits when maximizing).
        supplies: Capacity of each supplier (length R).
        demands: Requirement of each consumer (length C).
        fictive_rows: Number of trailing dummy supplier rows added by balancing.
        fictive_cols: Number of trailing dummy consumer columns added by balancing.

    Examples:
        >>> problem = Problem(
        ...     costs=[[8, 6, 10, 9], [9, 12, 13, 7], [14, 9, 16, 5]],
        ...     supplies=[20, 30, 50],
        ...     demands=[10, 40, 30, 20],
        ... )
        >>> problem.is_balanced()
        True

        >>> # Demand exceeds supply: balancing appends a zero-cost supplier
        >>> short = Problem(costs=[[1, 2]], supplies=[10], demands=[6, 6])
        >>> balanced = short.make_balanced()
        >>> balanced.supplies.tolist()
        [10.0, 2.0]

    Raises:
        InvalidDimensionsError: If the cost matrix shape does not match the vectors.
        InvalidProblemError: If any value is negative, non-finite, or missing.
    """

    costs: np.ndarray
    supplies: np.ndarray
    demands: np.ndarray
    fictive_rows: int = 0
    fictive_cols: int = 0

    def __post_init__(self) -> None:
        try:
            costs = np.array(self.costs, dtype=float)
            supplies = np.array(self.supplies, dtype=float)
            demands = np.array(self.demands, dtype=float)
        except (TypeError, ValueError) as exc:
            raise InvalidProblemError(
                f"Problem data must be numeric and rectangular: {exc}"
            ) from exc

        if supplies.ndim != 1 or demands.ndim != 1:
            raise InvalidDimensionsError(
                f"Supplies and demands must be one-dimensional, got shapes "
                f"{supplies.shape} and {demands.shape}.",
                cost_shape=costs.shape,
                supply_count=supplies.size,
                demand_count=demands.size,
            )
        if supplies.size == 0 or demands.size == 0:
            raise InvalidProblemError(
                "A transportation problem needs at least one supplier and one consumer."
            )
        if costs.ndim != 2 or costs.shape != (supplies.size, demands.size):
            raise InvalidDimensionsError(
                f"Cost matrix has shape {costs.shape} but {supplies.size} supplies and "
                f"{demands.size} demands were given. Expected shape "
                f"({supplies.size}, {demands.size}).",
                cost_shape=costs.shape,
                supply_count=supplies.size,
                demand_count=demands.size,
            )

        for name, values in (("costs", costs), ("supplies", supplies), ("demands", demands)):
            if not np.all(np.isfinite(values)):
                raise InvalidProblemError(f"All {name} must be finite numbers.")
            if np.any(values < 0):
                raise InvalidProblemError(
                    f"All {name} must be non-negative, got minimum {values.min()}."
                )

        if not 0 <= self.fictive_rows < supplies.size or not 0 <= self.fictive_cols < demands.size:
            raise InvalidProblemError(
                f"Fictive line counts ({self.fictive_rows}, {self.fictive_cols}) must leave at "
                f"least one real supplier and consumer."
            )

        for values in (costs, supplies, demands):
            values.setflags(write=False)
        object.__setattr__(self, "costs", costs)
        object.__setattr__(self, "supplies", supplies)
        object.__setattr__(self, "demands", demands)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Problem):
            return NotImplemented
        return (
            self.fictive_rows == other.fictive_rows
            and self.fictive_cols == other.fictive_cols
            and np.array_equal(self.costs, other.costs)
            and np.array_equal(self.supplies, other.supplies)
            and np.array_equal(self.demands, other.demands)
        )

    def __hash__(self) -> int:
        # Hash values, not bytes, so 0.0 and -0.0 agree with __eq__.
        return hash(
            (
                self.costs.shape,
                tuple(self.costs.ravel().tolist()),
                tuple(self.supplies.tolist()),
                tuple(self.demands.tolist()),
                self.fictive_rows,
                self.fictive_cols,
            )
        )

    @property
    def rows(self) -> int:
        return int(self.supplies.size)

    @property
    def cols(self) -> int:
        return int(self.demands.size)

    @property
    def shape(self) -> tuple[int, int]:
        return (self.rows, self.cols)

    @property
    def original_rows(self) -> int:
        """Number of real (non-dummy) suppliers."""
        return self.rows - self.fictive_rows

    @property
    def original_cols(self) -> int:
        """Number of real (non-dummy) consumers."""
        return self.cols - self.fictive_cols

    @property
    def total_supply(self) -> float:
        return float(self.supplies.sum())

    @property
    def total_demand(self) -> float:
        return float(self.demands.sum())

    def is_fictive_row(self, row: int) -> bool:
        return row >= self.original_rows

    def is_fictive_col(self, col: int) -> bool:
        return col >= self.original_cols

    def is_fictive_cell(self, row: int, col: int) -> bool:
        return self.is_fictive_row(row) or self.is_fictive_col(col)

    def is_balanced(self, tolerance: float = DEFAULT_BALANCE_TOLERANCE) -> bool:
        """Return True when total supply equals total demand within tolerance."""
        return abs(self.total_supply - self.total_demand) < tolerance

    def make_balanced(self, tolerance: float = DEFAULT_BALANCE_TOLERANCE) -> Problem:
        """Return a balanced problem, appending a zero-cost dummy line if needed.

        When demand exceeds supply a fictive supplier row is appended; when
        supply exceeds demand a fictive consumer column is appended. The dummy
        line carries exactly the surplus and costs nothing to ship through.
        A problem that is already balanced is returned unchanged, so the
        operation is idempotent.

        Args:
            tolerance: Imbalance below which the problem counts as balanced.

        Returns:
            A new Problem (or self when already balanced). The source is never modified.
        """
        if self.is_balanced(tolerance):
            return self

        surplus = self.total_demand - self.total_supply
        if surplus > 0:
            # Fictive supplier absorbs the unmet demand.
            costs = np.vstack([self.costs, np.zeros((1, self.cols))])
            supplies = np.append(self.supplies, surplus)
            return Problem(
                costs=costs,
                supplies=supplies,
                demands=self.demands,
                fictive_rows=self.fictive_rows + 1,
                fictive_cols=self.fictive_cols,
            )

        # Fictive consumer absorbs the unused supply.
        costs = np.hstack([self.costs, np.zeros((self.rows, 1))])
        demands = np.append(self.demands, -surplus)
        return Problem(
            costs=costs,
            supplies=self.supplies,
            demands=demands,
            fictive_rows=self.fictive_rows,
            fictive_cols=self.fictive_cols + 1,
        )

    def total_cost(self, solution: np.ndarray | Sequence[Sequence[float]]) -> float:
        """Compute the cost of a plan over the real (non-dummy) routes only.

        The solution may be shaped like this problem or like its balanced
        counterpart; cells beyond the original bounds are ignored.

        Raises:
            InvalidDimensionsError: If the solution does not cover the real routes.
        """
        plan = np.asarray(solution, dtype=float)
        rows, cols = self.original_rows, self.original_cols
        if plan.ndim != 2 or plan.shape[0] < rows or plan.shape[1] < cols:
            raise InvalidDimensionsError(
                f"Solution of shape {plan.shape} does not cover the {rows}x{cols} real routes.",
                cost_shape=self.costs.shape,
                supply_count=self.rows,
                demand_count=self.cols,
            )
        return float(np.sum(self.costs[:rows, :cols] * plan[:rows, :cols]))


@dataclass
class SolverOptions:
    """Configuration options for the transportation solver.

    Attributes:
        balance_tolerance: Imbalance below which total supply and demand count as
                          equal (default: 1e-6).
        zero_tolerance: Magnitude below which allocations, remaining quantities and
                       reduced costs are treated as zero (default: 1e-9).
        max_iterations: Maximum number of improvement pivots performed by the
                       potentials method (default: 20). Reaching the cap ends the
                       solve with status "iteration_limit" and the best plan found.

    Examples:
        >>> # Default options
        >>> options = SolverOptions()

        >>> # Allow more pivots on a larger instance
        >>> options = SolverOptions(max_iterations=100)

    Raises:
        SolverConfigurationError: If a tolerance is not positive or the iteration
                                  limit is negative.
    """

    balance_tolerance: float = DEFAULT_BALANCE_TOLERANCE
    zero_tolerance: float = DEFAULT_ZERO_TOLERANCE
    max_iterations: int = DEFAULT_MAX_ITERATIONS

    def __post_init__(self) -> None:
        if self.balance_tolerance <= 0:
            raise SolverConfigurationError(
                f"balance_tolerance must be positive, got {self.balance_tolerance}."
            )
        if self.zero_tolerance <= 0:
            raise SolverConfigurationError(
                f"zero_tolerance must be positive, got {self.zero_tolerance}. "
                f"It controls when allocations and reduced costs count as zero."
            )
        if self.max_iterations < 0:
            raise SolverConfigurationError(
                f"max_iterations must be non-negative, got {self.max_iterations}."
            )


def build_problem(
    costs: Sequence[Sequence[float]],
    supplies: Sequence[float],
    demands: Sequence[float],
    balance: bool = False,
    tolerance: float = DEFAULT_BALANCE_TOLERANCE,
) -> Problem:
    """Factory helper that assembles a Problem from plain nested sequences.

    When balance is True the returned problem already carries the fictive
    supplier or consumer needed to equalize supply and demand.
    """
    problem = Problem(
        costs=[list(row) for row in costs],
        supplies=list(supplies),
        demands=list(demands),
    )
    return problem.make_balanced(tolerance) if balance else problem
