"""Custom exceptions for the transportation solver library."""

from __future__ import annotations


class TransportSolverError(Exception):
    """Base exception for all transportation solver errors.

    All custom exceptions in the transport_solver package inherit from this class,
    allowing users to catch all solver-related errors with a single except clause.

    Example:
        try:
            result = solve_transportation(problem)
        except TransportSolverError as e:
            print(f"Solver error: {e}")
    """


class InvalidProblemError(TransportSolverError):
    """Raised when a problem definition is invalid or malformed.

    This includes:
    - Empty cost matrix, supplies or demands
    - Negative or non-finite costs, supplies or demands
    - Ragged cost matrices

    Example:
        InvalidProblemError("Supply of supplier 2 is negative (-5.0)")
    """


class InvalidDimensionsError(InvalidProblemError):
    """Raised when the cost matrix does not match the supply/demand vectors.

    The cost matrix must have exactly one row per supplier and one column per
    consumer. A mismatch is a programming error on the caller's side and is
    rejected before any solve attempt.

    Example:
        InvalidDimensionsError(
            "Cost matrix has 3 rows but 2 supplies were given",
            cost_shape=(3, 4),
            supply_count=2,
            demand_count=4,
        )
    """

    def __init__(
        self,
        message: str,
        cost_shape: tuple[int, ...] | None = None,
        supply_count: int | None = None,
        demand_count: int | None = None,
    ):
        """Initialize with message and the offending sizes."""
        super().__init__(message)
        self.cost_shape = cost_shape
        self.supply_count = supply_count
        self.demand_count = demand_count


class UnsupportedMethodError(TransportSolverError):
    """Raised when a method or objective selector is not recognized.

    Example:
        UnsupportedMethodError("Unknown construction method 'northwest'", value="northwest")
    """

    def __init__(self, message: str, value: object = None):
        """Initialize with message and the rejected selector value."""
        super().__init__(message)
        self.value = value


class SolverConfigurationError(TransportSolverError):
    """Raised when solver configuration or options are invalid.

    This includes:
    - Non-positive tolerances
    - Negative iteration limits

    Example:
        SolverConfigurationError("max_iterations must be non-negative, got -1")
    """


class StructuralSolveError(TransportSolverError):
    """Raised inside the optimizer when the basis cannot support a pivot.

    This occurs when:
    - The positive cells of the plan form a cycle (the plan is not basic)
    - Potentials cannot be resolved (the basis graph is disconnected)
    - No stepping-stone cycle closes through the entering cell
    - The shift amount (theta) along the cycle is invalid

    The optimizer never lets this error escape its public entrypoint. It is
    recorded on a terminal FailureStep together with the best plan found, and
    can be re-raised with OptimizationResult.raise_for_status().

    Example:
        StructuralSolveError(
            "No closed cycle through entering cell (1, 2)",
            state="build_cycle",
            iteration=3,
        )
    """

    def __init__(self, message: str, state: str | None = None, iteration: int = 0):
        """Initialize with message and the optimizer state that failed."""
        super().__init__(message)
        self.state = state
        self.iteration = iteration


class MaxIterationsExceededError(TransportSolverError):
    """Raised when the optimizer reaches its iteration cap before optimality.

    This is a soft failure: the optimizer returns the current (possibly
    suboptimal) plan with status "iteration_limit" instead of raising. The
    exception is provided for users who want to treat the limit as an error.

    Example:
        MaxIterationsExceededError(
            "Iteration limit reached: 20 improvement iterations completed",
            iterations=20,
            total_cost=812.0,
        )
    """

    def __init__(self, message: str, iterations: int = 0, total_cost: float | None = None):
        """Initialize with message and solution state."""
        super().__init__(message)
        self.iterations = iterations
        self.total_cost = total_cost
