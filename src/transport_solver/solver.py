"""Public solver entrypoints."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np

from .construction import ConstructionResult, create_builder
from .data import Cell, Method, Objective, Problem, SolverOptions
from .potentials import OptimizationResult, PotentialsOptimizer
from .steps import OptimizationStep, SolutionStep, StepCallback
from .utils import Route, extract_routes


@dataclass
class TransportResult:
    """Combined outcome of construction and optimization.

    Attributes:
        construction: Initial plan and its construction trace.
        optimization: Improved plan and its improvement trace.
    """

    construction: ConstructionResult
    optimization: OptimizationResult

    @property
    def problem(self) -> Problem:
        """Balanced problem both phases worked on."""
        return self.construction.problem

    @property
    def method(self) -> Method:
        return self.construction.method

    @property
    def objective(self) -> Objective:
        return self.optimization.objective

    @property
    def solution(self) -> np.ndarray:
        return self.optimization.solution

    @property
    def total_cost(self) -> float:
        return self.optimization.total_cost

    @property
    def initial_cost(self) -> float:
        return self.construction.total_cost

    @property
    def status(self) -> str:
        return self.optimization.status

    @property
    def is_optimal(self) -> bool:
        return self.optimization.is_optimal

    @property
    def iterations(self) -> int:
        return self.optimization.iterations

    @property
    def construction_steps(self) -> list[SolutionStep]:
        return self.construction.steps

    @property
    def optimization_steps(self) -> list[OptimizationStep]:
        return self.optimization.steps

    def routes(self, include_fictive: bool = False) -> list[Route]:
        """Routes used by the final plan; dummy routes are left out by default."""
        return extract_routes(self.problem, self.solution, include_fictive=include_fictive)

    def raise_for_status(self) -> None:
        self.optimization.raise_for_status()


def build_initial_solution(
    problem: Problem,
    method: Method | str = Method.DOUBLE_PREFERENCE,
    objective: Objective | str = Objective.MINIMIZE,
    options: SolverOptions | None = None,
    step_callback: StepCallback | None = None,
) -> ConstructionResult:
    """Build an initial basic feasible plan with a preference heuristic.

    Unbalanced problems are balanced first by appending a zero-cost fictive
    supplier or consumer; the returned result carries the balanced problem.

    Args:
        problem: Transportation problem to solve.
        method: Heuristic to use, ``Method.DOUBLE_PREFERENCE`` (default) or
               ``Method.VOGEL``. Case-insensitive names are accepted too.
        objective: ``Objective.MINIMIZE`` (default) or ``Objective.MAXIMIZE``.
        options: Tolerances and limits. If None, uses defaults.
        step_callback: Optional callable invoked with every step as it is recorded.

    Returns:
        ConstructionResult containing:
        - solution: Allocation matrix over the balanced problem
        - steps: Balance, allocation and transition steps in order
        - basic_zero_cells: Basis cells that carry zero flow
        - total_cost: Cost over the real routes

    Raises:
        UnsupportedMethodError: If method or objective is not recognized.

    Examples:
        >>> from transport_solver import Problem, build_initial_solution
        >>> problem = Problem(
        ...     costs=[[8, 6, 10, 9], [9, 12, 13, 7], [14, 9, 16, 5]],
        ...     supplies=[20, 30, 50],
        ...     demands=[10, 40, 30, 20],
        ... )
        >>> initial = build_initial_solution(problem, method="vogel")
        >>> initial.total_cost
        880.0
    """
    # Fresh builder per call; builders keep their working state on the instance.
    builder = create_builder(
        problem,
        method=method,
        objective=objective,
        options=options,
        step_callback=step_callback,
    )
    return builder.build()


def optimize_solution(
    source: ConstructionResult | Problem,
    solution: np.ndarray | Sequence[Sequence[float]] | None = None,
    basic_zero_cells: Iterable[Cell] = (),
    objective: Objective | str | None = None,
    options: SolverOptions | None = None,
    step_callback: StepCallback | None = None,
) -> OptimizationResult:
    """Improve a basic feasible plan to optimality with the potentials method.

    Structural failures and the iteration limit never raise here: the result
    has status "failed" or "iteration_limit", its trace ends with a
    FailureStep, and ``result.raise_for_status()`` re-raises the cause.

    Args:
        source: Either a ConstructionResult (its problem, plan, basic zeros and
               objective are reused) or a Problem together with ``solution``.
               An unbalanced Problem is balanced first, so ``solution`` must be
               shaped like the balanced cost matrix.
        solution: Plan to improve. Overrides the plan of a ConstructionResult,
                  in which case the construction's basic zeros are not reused.
        basic_zero_cells: Zero-flow cells that belong to the basis.
        objective: Defaults to the construction objective, else MINIMIZE.
        options: Tolerances and limits. If None, uses defaults.
        step_callback: Optional callable invoked with every step as it is recorded.

    Returns:
        OptimizationResult with status 'optimal', 'failed' or 'iteration_limit'.

    Raises:
        ValueError: If a Problem is given without a solution.
        InvalidDimensionsError: If the solution does not match the cost matrix.
        UnsupportedMethodError: If the objective is not recognized.
    """
    options = options if options is not None else SolverOptions()
    if isinstance(source, ConstructionResult):
        problem = source.problem
        if solution is None or solution is source.solution:
            plan = source.solution
            zeros = list(basic_zero_cells) or list(source.basic_zero_cells)
        else:
            # The construction's basic zeros belong to its own plan only.
            plan = solution
            zeros = list(basic_zero_cells)
        chosen = source.objective if objective is None else objective
    else:
        if solution is None:
            raise ValueError("optimize_solution() needs a solution when given a Problem")
        problem = source.make_balanced(options.balance_tolerance)
        plan = solution
        zeros = list(basic_zero_cells)
        chosen = Objective.MINIMIZE if objective is None else objective

    optimizer = PotentialsOptimizer(
        problem,
        plan,
        basic_zero_cells=zeros,
        objective=chosen,
        options=options,
        step_callback=step_callback,
    )
    return optimizer.run()


def solve_transportation(
    problem: Problem,
    method: Method | str = Method.DOUBLE_PREFERENCE,
    objective: Objective | str = Objective.MINIMIZE,
    options: SolverOptions | None = None,
    step_callback: StepCallback | None = None,
) -> TransportResult:
    """Solve a transportation problem end to end.

    Builds an initial plan with the chosen heuristic, then improves it with
    the potentials method. Both traces are kept on the result.

    Args:
        problem: Transportation problem to solve; balanced automatically.
        method: Initial-plan heuristic (default: double preference).
        objective: ``Objective.MINIMIZE`` (default) or ``Objective.MAXIMIZE``.
        options: Tolerances and limits. If None, uses defaults.
        step_callback: Optional callable invoked with every step of both phases.

    Returns:
        TransportResult exposing the final solution, total_cost, status and
        both step traces.

    Raises:
        UnsupportedMethodError: If method or objective is not recognized.

    Examples:
        >>> from transport_solver import build_problem, solve_transportation
        >>> problem = build_problem(
        ...     costs=[[8, 6, 10, 9], [9, 12, 13, 7], [14, 9, 16, 5]],
        ...     supplies=[20, 30, 50],
        ...     demands=[10, 40, 30, 20],
        ... )
        >>> result = solve_transportation(problem)
        >>> print(f"Status: {result.status}, Cost: {result.total_cost:.0f}")
        Status: optimal, Cost: 880
    """
    options = options if options is not None else SolverOptions()
    construction = build_initial_solution(
        problem,
        method=method,
        objective=objective,
        options=options,
        step_callback=step_callback,
    )
    optimization = optimize_solution(
        construction,
        options=options,
        step_callback=step_callback,
    )
    return TransportResult(construction=construction, optimization=optimization)
