"""Potentials (MODI) method with stepping-stone pivots.

Starting from a basic feasible plan, the optimizer repeats:

1. Solve ``u[i] + v[j] = cost[i, j]`` over the basis cells (``u[0] = 0``).
2. Evaluate every cell as ``cost[i, j] - u[i] - v[j]``.
3. Stop when no non-basic cell improves the objective; otherwise pick the most
   improving cell, close a cycle through it that alternates between its row and
   column neighbours in the basis, and shift ``theta`` units around the cycle.

The loop is written as an explicit state machine so every sub-step emits one
immutable step record. Structural problems (a cyclic or disconnected basis,
a cycle that cannot be closed, an invalid shift) and the iteration cap never
escape ``run()``: they end the trace with a FailureStep and the best plan
reached.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from .data import Cell, Objective, Problem, SolverOptions
from .diagnostics import BasisHistory, ConvergenceMonitor
from .exceptions import (
    InvalidDimensionsError,
    MaxIterationsExceededError,
    StructuralSolveError,
    TransportSolverError,
)
from .steps import (
    CycleStep,
    DegeneracyFixStep,
    FailureReason,
    FailureStep,
    FinalStep,
    InitialPlanStep,
    OptimizationStep,
    PotentialsStep,
    RedistributionStep,
    StepCallback,
    freeze_cells,
    snapshot,
)
from .utils import validate_plan


class OptimizerState(Enum):
    COMPUTE_INITIAL_STEP = "compute_initial_step"
    FIX_DEGENERACY = "fix_degeneracy"
    COMPUTE_POTENTIALS = "compute_potentials"
    COMPUTE_EVALUATIONS = "compute_evaluations"
    CHECK_OPTIMALITY = "check_optimality"
    BUILD_CYCLE = "build_cycle"
    COMPUTE_THETA = "compute_theta"
    REDISTRIBUTE = "redistribute"
    FINISHED = "finished"
    FAILED = "failed"


TERMINAL_STATES = frozenset({OptimizerState.FINISHED, OptimizerState.FAILED})

_FAILURE_REASONS = {
    OptimizerState.FIX_DEGENERACY.value: FailureReason.INVALID_BASIS,
    OptimizerState.COMPUTE_POTENTIALS.value: FailureReason.POTENTIALS_UNRESOLVED,
    OptimizerState.BUILD_CYCLE.value: FailureReason.CYCLE_NOT_FOUND,
    OptimizerState.COMPUTE_THETA.value: FailureReason.INVALID_THETA,
}


@dataclass
class OptimizationResult:
    """Outcome of the potentials method.

    Attributes:
        status: "optimal", "failed" (structural error) or "iteration_limit".
        solution: Final plan; the best plan reached when the solve failed.
        total_cost: Cost of ``solution`` over the real routes.
        iterations: Number of pivots performed.
        objective: Objective the plan was optimized for.
        steps: Ordered improvement trace, ending with a FinalStep or FailureStep.
        basic_zero_cells: Basis cells carrying zero flow in the final plan.
        error: The failure that stopped the solve, if any.
        diagnostics: Convergence summary (pivot counts, degeneracy, cycling).
    """

    status: str
    solution: np.ndarray
    total_cost: float
    iterations: int
    objective: Objective
    steps: list[OptimizationStep] = field(default_factory=list)
    basic_zero_cells: list[Cell] = field(default_factory=list)
    error: TransportSolverError | None = None
    diagnostics: dict[str, Any] = field(default_factory=dict)

    @property
    def is_optimal(self) -> bool:
        return self.status == "optimal"

    @property
    def final_step(self) -> OptimizationStep | None:
        return self.steps[-1] if self.steps else None

    def raise_for_status(self) -> None:
        """Re-raise the recorded failure, if the solve did not reach optimality.

        Raises:
            StructuralSolveError: If the basis could not support a pivot.
            MaxIterationsExceededError: If the iteration cap was reached.
        """
        if self.error is not None:
            raise self.error


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


def compute_potentials(
    costs: np.ndarray,
    basis: Iterable[Cell],
    max_sweeps: int | None = None,
) -> tuple[np.ndarray, np.ndarray, bool]:
    """Propagate row and column potentials over the basis cells.

    Fixes ``u[0] = 0`` and sweeps the basis (in row-major order) until no
    potential changes, at most ``max_sweeps`` times (default ``2 * (rows + cols)``).
    Potentials that no basis cell connects to row 0 stay NaN.

    Returns:
        Tuple ``(u, v, resolved)`` where ``resolved`` is False if any potential is NaN.
    """
    rows, cols = costs.shape
    u = np.full(rows, np.nan)
    v = np.full(cols, np.nan)
    u[0] = 0.0
    cells = sorted(basis)
    sweeps = max_sweeps if max_sweeps is not None else 2 * (rows + cols)

    for _ in range(sweeps):
        changed = False
        for row, col in cells:
            known_u = not np.isnan(u[row])
            known_v = not np.isnan(v[col])
            if known_u and not known_v:
                v[col] = costs[row, col] - u[row]
                changed = True
            elif known_v and not known_u:
                u[row] = costs[row, col] - v[col]
                changed = True
        if not changed:
            break

    resolved = not (np.isnan(u).any() or np.isnan(v).any())
    return u, v, resolved


def compute_evaluations(
    costs: np.ndarray,
    u: np.ndarray,
    v: np.ndarray,
    basis: Iterable[Cell],
) -> np.ndarray:
    """Return the reduced cost of every cell; basis cells are reported as 0."""
    evaluations = costs - u[:, np.newaxis] - v[np.newaxis, :]
    for cell in basis:
        evaluations[cell] = 0.0
    return evaluations


def select_pivot(
    evaluations: np.ndarray,
    basis: Iterable[Cell],
    objective: Objective = Objective.MINIMIZE,
    tolerance: float = 1e-9,
) -> Cell | None:
    """Pick the non-basic cell that improves the objective the most.

    Minimizing looks for the most negative evaluation, maximizing for the
    most positive one. Ties keep the first cell in row-major order.

    Returns:
        The entering cell, or None when the plan is optimal.
    """
    basis_set = set(basis)
    gains = -evaluations if objective.is_minimization else evaluations
    best: Cell | None = None
    best_gain = tolerance
    rows, cols = evaluations.shape
    for row in range(rows):
        for col in range(cols):
            if (row, col) in basis_set:
                continue
            if gains[row, col] > best_gain:
                best_gain = gains[row, col]
                best = (row, col)
    return best


def find_cycle(basis: Iterable[Cell], pivot: Cell) -> list[Cell] | None:
    """Find a closed stepping-stone cycle through ``pivot``.

    The cycle starts at the pivot, moves along its row to a basis cell, then
    alternates column and row moves between basis cells until a cell in the
    pivot's column is reached, from which a column move closes the loop.
    Even positions (starting with the pivot) gain theta; odd positions lose it.

    The depth-first search crosses every row and column at most once, so no
    other cycle cell lies between two consecutive cells on the same line. It
    explores every such path, including each rectangle
    ``pivot -> row-mate -> corner -> column-mate``, so when it fails no
    rectangle closes either. For a spanning-tree basis it finds the unique
    cycle.

    Returns:
        The cycle as an ordered list of cells, or None if no cycle closes.
    """
    cells = sorted(set(basis) - {pivot})
    by_row: dict[int, list[Cell]] = {}
    by_col: dict[int, list[Cell]] = {}
    for cell in cells:
        by_row.setdefault(cell[0], []).append(cell)
        by_col.setdefault(cell[1], []).append(cell)

    path = [pivot]
    on_path = {pivot}
    # (horizontal, index) of every row or column already moved along
    used_lines: set[tuple[bool, int]] = set()

    def search(cell: Cell, horizontal: bool) -> bool:
        if not horizontal and len(path) >= 4 and cell[1] == pivot[1]:
            return True
        line = (horizontal, cell[0] if horizontal else cell[1])
        if line in used_lines:
            return False
        used_lines.add(line)
        neighbours = by_row.get(cell[0], []) if horizontal else by_col.get(cell[1], [])
        for nxt in neighbours:
            if nxt in on_path:
                continue
            path.append(nxt)
            on_path.add(nxt)
            if search(nxt, not horizontal):
                return True
            path.pop()
            on_path.discard(nxt)
        used_lines.discard(line)
        return False

    if search(pivot, horizontal=True):
        return path
    return None


def compute_theta(solution: np.ndarray, cycle: Sequence[Cell]) -> float:
    """Return the largest shift the cycle allows: the minimum over its odd positions.

    Raises:
        StructuralSolveError: If the cycle is too short or theta is not a
                              finite non-negative number.
    """
    if len(cycle) < 2:
        raise StructuralSolveError(
            f"Cycle {list(cycle)} is too short to redistribute along.",
            state=OptimizerState.COMPUTE_THETA.value,
        )
    theta = min(float(solution[cell]) for cell in cycle[1::2])
    if not np.isfinite(theta) or theta < 0:
        raise StructuralSolveError(
            f"Invalid shift amount theta={theta} along cycle {list(cycle)}.",
            state=OptimizerState.COMPUTE_THETA.value,
        )
    return theta


def redistribute(
    solution: np.ndarray,
    cycle: Sequence[Cell],
    theta: float,
    tolerance: float = 1e-9,
) -> Cell:
    """Shift ``theta`` units around the cycle in place.

    Returns:
        The leaving cell: the first odd-position cell that carried exactly theta.
    """
    minus_cells = cycle[1::2]
    leaving = next(
        (cell for cell in minus_cells if abs(solution[cell] - theta) <= tolerance),
        minus_cells[0],
    )
    for position, cell in enumerate(cycle):
        if position % 2 == 0:
            solution[cell] += theta
        else:
            solution[cell] -= theta
        if abs(solution[cell]) <= tolerance:
            solution[cell] = 0.0
    return leaving


class _DisjointSet:
    """Union-find over the row and column nodes of the basis graph."""

    def __init__(self, size: int) -> None:
        self.parent = list(range(size))

    def find(self, node: int) -> int:
        while self.parent[node] != node:
            self.parent[node] = self.parent[self.parent[node]]
            node = self.parent[node]
        return node

    def union(self, a: int, b: int) -> bool:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return False
        self.parent[root_b] = root_a
        return True


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class PotentialsOptimizer:
    """Improve a basic feasible plan to optimality with the potentials method.

    The optimizer owns a private copy of the plan and an explicit basis (every
    positive cell plus the recorded basic zeros). Each call to ``run()`` drives
    the state machine from COMPUTE_INITIAL_STEP to FINISHED or FAILED and
    returns an OptimizationResult; a fresh optimizer is needed per solve.

    Attributes:
        problem: Problem whose costs drive the potentials (usually balanced).
        objective: MINIMIZE pivots on negative evaluations, MAXIMIZE on positive.
        solution: Working plan, updated in place by each pivot.
        basis: Current set of basis cells.
        state: Current state of the machine.
        iteration: Number of pivots performed so far.

    Raises:
        InvalidDimensionsError: If the plan is not shaped like the cost matrix.
    """

    def __init__(
        self,
        problem: Problem,
        solution: np.ndarray | Sequence[Sequence[float]],
        basic_zero_cells: Iterable[Cell] = (),
        objective: Objective | str = Objective.MINIMIZE,
        options: SolverOptions | None = None,
        step_callback: StepCallback | None = None,
    ) -> None:
        self.options = options if options is not None else SolverOptions()
        self.logger = logging.getLogger(__name__)
        self.problem = problem
        self.objective = Objective.parse(objective)
        self.tolerance = self.options.zero_tolerance
        self.step_callback = step_callback

        plan = np.array(solution, dtype=float)
        if plan.shape != problem.shape:
            raise InvalidDimensionsError(
                f"Solution of shape {plan.shape} does not match the cost matrix {problem.shape}.",
                cost_shape=problem.shape,
                supply_count=problem.rows,
                demand_count=problem.cols,
            )
        plan[np.abs(plan) <= self.tolerance] = 0.0
        self.solution = plan
        self.costs = np.array(problem.costs, dtype=float)

        self.basic_zeros: list[Cell] = []
        for row, col in basic_zero_cells:
            cell = (int(row), int(col))
            if self.solution[cell] == 0.0 and cell not in self.basic_zeros:
                self.basic_zeros.append(cell)
        positive = {(int(r), int(c)) for r, c in zip(*np.nonzero(self.solution > 0.0))}
        self.basis: set[Cell] = positive | set(self.basic_zeros)

        self.state = OptimizerState.COMPUTE_INITIAL_STEP
        self.iteration = 0
        self.steps: list[OptimizationStep] = []
        self.error: TransportSolverError | None = None
        self.monitor = ConvergenceMonitor(window_size=max(self.options.max_iterations, 2))
        self.basis_history = BasisHistory()

        self.u = np.zeros(problem.rows)
        self.v = np.zeros(problem.cols)
        self.potentials_resolved = True
        self.evaluations = np.zeros(problem.shape)
        # CHECK_OPTIMALITY seeds the cycle with the entering cell; it stays at cycle[0].
        self.cycle: list[Cell] = []
        self.theta = 0.0

        self._handlers = {
            OptimizerState.COMPUTE_INITIAL_STEP: self._compute_initial_step,
            OptimizerState.FIX_DEGENERACY: self._fix_degeneracy,
            OptimizerState.COMPUTE_POTENTIALS: self._compute_potentials,
            OptimizerState.COMPUTE_EVALUATIONS: self._compute_evaluations,
            OptimizerState.CHECK_OPTIMALITY: self._check_optimality,
            OptimizerState.BUILD_CYCLE: self._build_cycle,
            OptimizerState.COMPUTE_THETA: self._compute_theta,
            OptimizerState.REDISTRIBUTE: self._redistribute,
        }

    @property
    def required_basis_size(self) -> int:
        return self.problem.rows + self.problem.cols - 1

    @property
    def total_cost(self) -> float:
        return self.problem.total_cost(self.solution)

    def run(self) -> OptimizationResult:
        """Drive the state machine to a terminal state and return the result."""
        if self.state is not OptimizerState.COMPUTE_INITIAL_STEP:
            raise RuntimeError("PotentialsOptimizer.run() may only be called once.")

        self.logger.info(
            "Starting potentials method",
            extra={
                "rows": self.problem.rows,
                "cols": self.problem.cols,
                "objective": self.objective.value,
                "max_iterations": self.options.max_iterations,
            },
        )
        while self.state not in TERMINAL_STATES:
            handler = self._handlers[self.state]
            try:
                self.state = handler()
            except StructuralSolveError as exc:
                exc.iteration = self.iteration
                reason = _FAILURE_REASONS.get(exc.state or "", FailureReason.CYCLE_NOT_FOUND)
                self._fail(reason, exc)
            except MaxIterationsExceededError as exc:
                self._fail(FailureReason.MAX_ITERATIONS, exc)

        return self._result()

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    def _compute_initial_step(self) -> OptimizerState:
        validation = validate_plan(self.problem, self.solution, self.options.balance_tolerance)
        if not validation.is_valid:
            self.logger.warning(
                "Initial plan does not satisfy supplies and demands",
                extra={"errors": validation.errors},
            )
        self._record(InitialPlanStep, **self._common())
        self.basis_history.record_basis(self.basis)
        return OptimizerState.FIX_DEGENERACY

    def _fix_degeneracy(self) -> OptimizerState:
        rows, cols = self.problem.shape
        components = _DisjointSet(rows + cols)
        for row, col in sorted(self.basis - set(self.basic_zeros)):
            if not components.union(row, rows + col):
                raise StructuralSolveError(
                    f"Positive cells of the plan form a cycle through {(row, col)}; "
                    f"the plan is not a basic solution.",
                    state=OptimizerState.FIX_DEGENERACY.value,
                )

        # A basic zero that closes a cycle cannot belong to a tree basis.
        dropped: list[Cell] = []
        for row, col in self.basic_zeros:
            if not components.union(row, rows + col):
                dropped.append((row, col))
        if dropped:
            self.logger.warning(
                f"Dropped {len(dropped)} basic zero(s) that close a cycle in the basis",
                extra={"dropped_cells": dropped},
            )
            self.basic_zeros = [cell for cell in self.basic_zeros if cell not in dropped]
            self.basis.difference_update(dropped)

        missing = self.required_basis_size - len(self.basis)
        if missing <= 0:
            return OptimizerState.COMPUTE_POTENTIALS

        added: list[Cell] = []
        for row in range(rows):
            for col in range(cols):
                if len(added) == missing:
                    break
                if (row, col) in self.basis:
                    continue
                # Only cells that join two separate parts keep the basis a tree.
                if components.union(row, rows + col):
                    added.append((row, col))
            if len(added) == missing:
                break

        for cell in added:
            self.solution[cell] = 0.0
            self.basis.add(cell)
            self.basic_zeros.append(cell)

        self.logger.warning(
            f"Degenerate plan: added {len(added)} basic zero(s)",
            extra={"added_cells": added, "basis_size": len(self.basis)},
        )
        self._record(DegeneracyFixStep, added_cells=freeze_cells(added), **self._common())
        return OptimizerState.COMPUTE_POTENTIALS

    def _compute_potentials(self) -> OptimizerState:
        u, v, resolved = compute_potentials(self.costs, self.basis)
        self.potentials_resolved = resolved
        if not resolved:
            self.logger.warning(
                "Potentials could not be resolved from the basis, defaulting to 0",
                extra={
                    "unresolved_rows": np.flatnonzero(np.isnan(u)).tolist(),
                    "unresolved_cols": np.flatnonzero(np.isnan(v)).tolist(),
                    "iteration": self.iteration,
                },
            )
            u = np.nan_to_num(u, nan=0.0)
            v = np.nan_to_num(v, nan=0.0)
        self.u, self.v = u, v
        return OptimizerState.COMPUTE_EVALUATIONS

    def _compute_evaluations(self) -> OptimizerState:
        self.evaluations = compute_evaluations(self.costs, self.u, self.v, self.basis)
        return OptimizerState.CHECK_OPTIMALITY

    def _check_optimality(self) -> OptimizerState:
        if not self.potentials_resolved:
            self._record_potentials(optimal=False, pivot=None)
            raise StructuralSolveError(
                "Basis does not connect every row and column; potentials are undetermined.",
                state=OptimizerState.COMPUTE_POTENTIALS.value,
            )

        pivot = select_pivot(self.evaluations, self.basis, self.objective, self.tolerance)
        self._record_potentials(optimal=pivot is None, pivot=pivot)
        if pivot is None:
            self.logger.info(
                f"Optimal plan found after {self.iteration} pivot(s)",
                extra={"total_cost": self.total_cost, "iterations": self.iteration},
            )
            self._record(FinalStep, iteration=self.iteration, **self._common())
            return OptimizerState.FINISHED

        if self.iteration >= self.options.max_iterations:
            raise MaxIterationsExceededError(
                f"Iteration limit reached: {self.iteration} improvement iterations "
                f"completed without proving optimality.",
                iterations=self.iteration,
                total_cost=self.total_cost,
            )
        self.cycle = [pivot]
        return OptimizerState.BUILD_CYCLE

    def _build_cycle(self) -> OptimizerState:
        pivot = self.cycle[0]
        cycle = find_cycle(self.basis, pivot)
        if cycle is None:
            raise StructuralSolveError(
                f"No closed cycle through entering cell {pivot}.",
                state=OptimizerState.BUILD_CYCLE.value,
            )
        self.cycle = cycle
        return OptimizerState.COMPUTE_THETA

    def _compute_theta(self) -> OptimizerState:
        self.theta = compute_theta(self.solution, self.cycle)
        pivot = self.cycle[0]
        self.iteration += 1
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                f"Pivot {self.iteration}: entering {pivot}",
                extra={"cycle": self.cycle, "theta": self.theta},
            )
        self._record(
            CycleStep,
            iteration=self.iteration,
            cycle=freeze_cells(self.cycle),
            pivot_cell=pivot,
            theta=self.theta,
            **self._common(),
        )
        return OptimizerState.REDISTRIBUTE

    def _redistribute(self) -> OptimizerState:
        entering = self.cycle[0]
        leaving = redistribute(self.solution, self.cycle, self.theta, self.tolerance)
        self.basis.add(entering)
        self.basis.discard(leaving)
        self._refresh_basic_zeros(self.cycle)

        total_cost = self.total_cost
        self._record(
            RedistributionStep,
            iteration=self.iteration,
            entering=entering,
            leaving=leaving,
            theta=self.theta,
            **self._common(),
        )

        self.monitor.record_iteration(
            total_cost,
            is_degenerate=self.theta <= self.tolerance,
            iteration=self.iteration,
        )
        self.basis_history.record_basis(self.basis)
        if self.monitor.is_stalled():
            self.logger.warning(
                "No cost improvement over recent pivots",
                extra={
                    "consecutive_no_improvement": self.monitor.consecutive_no_improvement,
                    "last_significant_improvement_iter": (
                        self.monitor.last_significant_improvement_iter
                    ),
                    "iteration": self.iteration,
                },
            )
        if self.basis_history.visits(self.basis) > 1:
            self.logger.warning(
                "Basis revisited, the method may be cycling",
                extra={
                    "visits": self.basis_history.visits(self.basis),
                    "iteration": self.iteration,
                },
            )

        self.cycle = []
        self.theta = 0.0
        return OptimizerState.COMPUTE_POTENTIALS

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _refresh_basic_zeros(self, cycle: Sequence[Cell]) -> None:
        kept = [c for c in self.basic_zeros if c in self.basis and self.solution[c] == 0.0]
        for cell in cycle:
            if cell in self.basis and self.solution[cell] == 0.0 and cell not in kept:
                kept.append(cell)
        self.basic_zeros = kept

    def _common(self) -> dict[str, Any]:
        return {
            "solution": snapshot(self.solution),
            "total_cost": self.total_cost,
            "basic_zero_cells": freeze_cells(self.basic_zeros),
        }

    def _record(self, step_type: type, **fields: Any) -> None:
        step = step_type(index=len(self.steps) + 1, **fields)
        self.steps.append(step)
        if self.step_callback is not None:
            self.step_callback(step)

    def _record_potentials(self, optimal: bool, pivot: Cell | None) -> None:
        self._record(
            PotentialsStep,
            iteration=self.iteration,
            u=snapshot(self.u),
            v=snapshot(self.v),
            evaluations=snapshot(self.evaluations),
            optimal=optimal,
            pivot_cell=pivot,
            **self._common(),
        )

    def _fail(self, reason: FailureReason, error: TransportSolverError) -> None:
        self.error = error
        self.logger.warning(
            f"Potentials method stopped: {error}",
            extra={"reason": reason.value, "iteration": self.iteration},
        )
        self._record(
            FailureStep,
            iteration=self.iteration,
            reason=reason,
            message=str(error),
            **self._common(),
        )
        self.state = OptimizerState.FAILED

    def _result(self) -> OptimizationResult:
        if self.state is OptimizerState.FINISHED:
            status = "optimal"
        elif isinstance(self.error, MaxIterationsExceededError):
            status = "iteration_limit"
        else:
            status = "failed"

        diagnostics: dict[str, Any] = dict(self.monitor.get_diagnostic_summary())
        diagnostics["max_basis_visits"] = self.basis_history.get_most_frequent_basis_count()
        diagnostics["is_cycling"] = self.basis_history.is_cycling()
        diagnostics["cycle_length"] = self.basis_history.get_cycle_length()

        return OptimizationResult(
            status=status,
            solution=self.solution,
            total_cost=self.total_cost,
            iterations=self.iteration,
            objective=self.objective,
            steps=self.steps,
            basic_zero_cells=list(self.basic_zeros),
            error=self.error,
            diagnostics=diagnostics,
        )
