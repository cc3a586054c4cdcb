"""Initial basic feasible solutions for the transportation problem.

Two interchangeable heuristics are provided:

- DoublePreferenceBuilder: repeatedly ships along the cheapest route that is the
  minimum of both its row and its column, falling back to routes that are the
  minimum of one of them, then to the cheapest open route.
- VogelBuilder: Vogel's approximation method. Ships along the cheapest route of
  the row or column whose two cheapest routes differ the most.

Both fill real routes first. When a fictive supplier or consumer was added by
balancing, the fictive routes are filled in a second phase, after a
TransitionStep marks the switch. Every allocation closes exactly one row or
column (both for the very last cell), so a balanced problem always ends with
``rows + cols - 1`` basis cells; zero-quantity allocations are kept as basic
zeros rather than skipped.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar

import numpy as np

from .data import Cell, Method, Objective, Problem, SolverOptions
from .steps import (
    AllocationStep,
    Axis,
    BalanceStep,
    PreferenceAllocationStep,
    PreferenceKind,
    SolutionStep,
    StepCallback,
    TransitionStep,
    VogelAllocationStep,
    freeze_cells,
    snapshot,
)


@dataclass
class ConstructionResult:
    """Output of an initial-solution heuristic.

    Attributes:
        problem: The balanced problem the plan was built for.
        method: Heuristic that produced the plan.
        objective: Objective the heuristic ranked routes for.
        solution: Allocation matrix shaped like ``problem.costs``.
        steps: Ordered trace of balance, allocation and transition steps.
        basic_zero_cells: Basis cells that carry zero flow, in allocation order.
    """

    problem: Problem
    method: Method
    objective: Objective
    solution: np.ndarray
    steps: list[SolutionStep] = field(default_factory=list)
    basic_zero_cells: list[Cell] = field(default_factory=list)

    @property
    def total_cost(self) -> float:
        return self.problem.total_cost(self.solution)

    @property
    def basis_size(self) -> int:
        """Number of positive allocations plus recorded basic zeros."""
        positive = {
            (int(row), int(col)) for row, col in zip(*np.nonzero(self.solution > 0.0))
        }
        return len(positive | set(self.basic_zero_cells))


class InitialSolutionBuilder:
    """Shared allocation machinery for the construction heuristics.

    Subclasses decide which open cell receives the next allocation by
    implementing ``_select``; the base class owns balancing, the allocation
    itself, row/column closing, basic-zero detection, phase handling and step
    recording. A builder keeps all working state on the instance, so each
    ``build()`` call must use its own builder.

    Attributes:
        problem: Balanced problem being solved.
        source: Problem as supplied by the caller.
        objective: MINIMIZE ranks routes by cost; MAXIMIZE by ``max(costs) - cost``.
        rank_costs: Matrix the heuristic minimizes when ranking routes.
    """

    method: ClassVar[Method]
    step_type: ClassVar[type[AllocationStep]] = AllocationStep

    def __init__(
        self,
        problem: Problem,
        objective: Objective | str = Objective.MINIMIZE,
        options: SolverOptions | None = None,
        step_callback: StepCallback | None = None,
    ) -> None:
        self.options = options if options is not None else SolverOptions()
        self.logger = logging.getLogger(__name__)
        self.objective = Objective.parse(objective)
        self.source = problem
        self.problem = problem.make_balanced(self.options.balance_tolerance)
        self.tolerance = self.options.zero_tolerance
        self.step_callback = step_callback

        costs = np.array(self.problem.costs, dtype=float)
        if self.objective.is_minimization:
            self.rank_costs = costs
        else:
            # Regret form: the most profitable route ranks as the cheapest.
            self.rank_costs = costs.max() - costs

        rows, cols = self.problem.shape
        self.solution = np.zeros((rows, cols))
        self.remaining_supplies = np.array(self.problem.supplies, dtype=float)
        self.remaining_demands = np.array(self.problem.demands, dtype=float)
        self.row_open = np.ones(rows, dtype=bool)
        self.col_open = np.ones(cols, dtype=bool)
        self.basic_zero_cells: list[Cell] = []
        self.steps: list[SolutionStep] = []

    def build(self) -> ConstructionResult:
        """Run the heuristic and return the initial plan with its trace."""
        if self.steps:
            raise RuntimeError("InitialSolutionBuilder.build() may only be called once.")

        self.logger.info(
            f"Building initial plan with {self.method.value}",
            extra={
                "rows": self.problem.rows,
                "cols": self.problem.cols,
                "fictive_rows": self.problem.fictive_rows,
                "fictive_cols": self.problem.fictive_cols,
                "objective": self.objective.value,
            },
        )
        self._record_balance_step()

        self._run_phase(real_only=True)
        if self._has_open_lines(real_only=False):
            self.logger.info("Real routes saturated, switching to fictive routes")
            self._record(
                TransitionStep(
                    index=len(self.steps) + 1,
                    solution=snapshot(self.solution),
                    remaining_supplies=snapshot(self.remaining_supplies),
                    remaining_demands=snapshot(self.remaining_demands),
                    basic_zero_cells=freeze_cells(self.basic_zero_cells),
                )
            )
            self._run_phase(real_only=False)

        result = ConstructionResult(
            problem=self.problem,
            method=self.method,
            objective=self.objective,
            solution=self.solution,
            steps=self.steps,
            basic_zero_cells=list(self.basic_zero_cells),
        )
        self.logger.info(
            f"Initial plan built in {len(self.steps)} steps",
            extra={
                "total_cost": result.total_cost,
                "basis_size": result.basis_size,
                "basic_zeros": len(self.basic_zero_cells),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Phase handling
    # ------------------------------------------------------------------

    def _run_phase(self, real_only: bool) -> None:
        self._enter_phase(real_only)
        while self._has_open_lines(real_only):
            selection = self._select(real_only)
            if selection is None:
                self.logger.warning(
                    "No selectable cell although rows and columns remain open",
                    extra={"real_only": real_only},
                )
                break
            cell, details = selection
            self._allocate(cell, details)

    def _enter_phase(self, real_only: bool) -> None:
        """Hook called once when a phase starts."""

    def _select(self, real_only: bool) -> tuple[Cell, dict[str, Any]] | None:
        raise NotImplementedError

    def _bounds(self, real_only: bool) -> tuple[int, int]:
        if real_only:
            return self.problem.original_rows, self.problem.original_cols
        return self.problem.rows, self.problem.cols

    def _open_rows(self, real_only: bool) -> np.ndarray:
        rows, _ = self._bounds(real_only)
        return np.flatnonzero(self.row_open[:rows])

    def _open_cols(self, real_only: bool) -> np.ndarray:
        _, cols = self._bounds(real_only)
        return np.flatnonzero(self.col_open[:cols])

    def _has_open_lines(self, real_only: bool) -> bool:
        return self._open_rows(real_only).size > 0 and self._open_cols(real_only).size > 0

    def _open_cells(self, real_only: bool) -> list[Cell]:
        return [
            (int(row), int(col))
            for row in self._open_rows(real_only)
            for col in self._open_cols(real_only)
        ]

    def _is_open(self, cell: Cell) -> bool:
        row, col = cell
        return bool(self.row_open[row] and self.col_open[col])

    def _cheapest(self, cells: Sequence[Cell]) -> Cell:
        """Lowest ranked cost; ties go to the lowest row, then the lowest column."""
        best = min(self.rank_costs[cell] for cell in cells)
        return min(cell for cell in cells if self.rank_costs[cell] <= best + self.tolerance)

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def _allocate(self, cell: Cell, details: dict[str, Any]) -> None:
        row, col = cell
        quantity = max(min(self.remaining_supplies[row], self.remaining_demands[col]), 0.0)
        self.remaining_supplies[row] -= quantity
        self.remaining_demands[col] -= quantity

        is_basic_zero = quantity <= self.tolerance
        if is_basic_zero:
            # Either side was already exhausted: the cell keeps the basis spanning.
            quantity = 0.0
            self.basic_zero_cells.append(cell)
        self.solution[row, col] = quantity
        self._close_lines(row, col)

        step = self.step_type(
            index=len(self.steps) + 1,
            solution=snapshot(self.solution),
            cell=cell,
            unit_cost=float(self.problem.costs[row, col]),
            quantity=float(quantity),
            remaining_supplies=snapshot(self.remaining_supplies),
            remaining_demands=snapshot(self.remaining_demands),
            is_fictive=self.problem.is_fictive_cell(row, col),
            is_basic_zero=is_basic_zero,
            basic_zero_cells=freeze_cells(self.basic_zero_cells),
            **details,
        )
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(step.describe(), extra={"cell": cell, "quantity": quantity})
        self._record(step)

    def _close_lines(self, row: int, col: int) -> None:
        row_done = self.remaining_supplies[row] <= self.tolerance
        col_done = self.remaining_demands[col] <= self.tolerance
        if row_done:
            self.remaining_supplies[row] = 0.0
        if col_done:
            self.remaining_demands[col] = 0.0

        if row_done and col_done:
            # Cross out a single line so the other one still receives a basic zero.
            if np.count_nonzero(self.row_open) > 1:
                self.row_open[row] = False
            elif np.count_nonzero(self.col_open) > 1:
                self.col_open[col] = False
            else:
                self.row_open[row] = False
                self.col_open[col] = False
        elif row_done:
            self.row_open[row] = False
        elif col_done:
            self.col_open[col] = False

    # ------------------------------------------------------------------
    # Step recording
    # ------------------------------------------------------------------

    def _record(self, step: SolutionStep) -> None:
        self.steps.append(step)
        if self.step_callback is not None:
            self.step_callback(step)

    def _record_balance_step(self) -> None:
        if self.problem is self.source:
            return
        if self.problem.fictive_rows > self.source.fictive_rows:
            axis, line = Axis.ROW, self.problem.rows - 1
            quantity = float(self.problem.supplies[line])
        else:
            axis, line = Axis.COLUMN, self.problem.cols - 1
            quantity = float(self.problem.demands[line])
        self.logger.info(
            f"Problem is unbalanced, added fictive {axis.value} {line}",
            extra={"quantity": quantity},
        )
        self._record(
            BalanceStep(
                index=len(self.steps) + 1,
                solution=snapshot(self.solution),
                axis=axis,
                line=line,
                quantity=quantity,
                remaining_supplies=snapshot(self.remaining_supplies),
                remaining_demands=snapshot(self.remaining_demands),
            )
        )


class DoublePreferenceBuilder(InitialSolutionBuilder):
    """Double-preference heuristic.

    At the start of each phase every open row and column marks its cheapest
    open cells (ties within the zero tolerance all count). Cells marked by both
    their row and their column are double-preferred; cells marked once are
    single-preferred. The classification is kept for the whole phase and only
    filtered down to still-open cells on each pick.
    """

    method: ClassVar[Method] = Method.DOUBLE_PREFERENCE
    step_type: ClassVar[type[AllocationStep]] = PreferenceAllocationStep

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.double_preferred: list[Cell] = []
        self.single_preferred: list[Cell] = []

    def _enter_phase(self, real_only: bool) -> None:
        rows = self._open_rows(real_only)
        cols = self._open_cols(real_only)
        if rows.size == 0 or cols.size == 0:
            self.double_preferred, self.single_preferred = [], []
            return
        row_minima: set[Cell] = set()
        col_minima: set[Cell] = set()

        for row in rows:
            values = self.rank_costs[row, cols]
            hits = np.flatnonzero(values <= values.min() + self.tolerance)
            row_minima.update((int(row), int(cols[k])) for k in hits)
        for col in cols:
            values = self.rank_costs[rows, col]
            hits = np.flatnonzero(values <= values.min() + self.tolerance)
            col_minima.update((int(rows[k]), int(col)) for k in hits)

        double = row_minima & col_minima
        self.double_preferred = sorted(double)
        self.single_preferred = sorted((row_minima | col_minima) - double)

        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(
                f"Preference classification ({'real' if real_only else 'full'} phase)",
                extra={
                    "double_preferred": self.double_preferred,
                    "single_preferred": self.single_preferred,
                },
            )

    def _select(self, real_only: bool) -> tuple[Cell, dict[str, Any]] | None:
        tiers = (
            (PreferenceKind.DOUBLE, self.double_preferred),
            (PreferenceKind.SINGLE, self.single_preferred),
            (PreferenceKind.MINIMUM, self._open_cells(real_only)),
        )
        for kind, candidates in tiers:
            open_candidates = [cell for cell in candidates if self._is_open(cell)]
            if open_candidates:
                details = {
                    "preference": kind,
                    "double_preferred": tuple(self.double_preferred),
                    "single_preferred": tuple(self.single_preferred),
                }
                return self._cheapest(open_candidates), details
        return None


class VogelBuilder(InitialSolutionBuilder):
    """Vogel's approximation method.

    The penalty of an open line is the gap between its two cheapest open
    cells. A line with a single open cell gets the negated cost of that cell,
    so it is still chosen (cheapest first) once no real gap is left; a line
    with no open cell gets -inf. Penalties are recomputed before every pick.
    """

    method: ClassVar[Method] = Method.VOGEL
    step_type: ClassVar[type[AllocationStep]] = VogelAllocationStep

    @staticmethod
    def _line_penalty(values: np.ndarray) -> float:
        if values.size == 0:
            return -np.inf
        if values.size == 1:
            return -float(values[0])
        ordered = np.sort(values)
        return float(ordered[1] - ordered[0])

    def penalties(self, real_only: bool) -> tuple[np.ndarray, np.ndarray]:
        """Return row and column penalties over the open cells of a phase."""
        rows = self._open_rows(real_only)
        cols = self._open_cols(real_only)
        row_penalties = np.full(self.problem.rows, -np.inf)
        col_penalties = np.full(self.problem.cols, -np.inf)
        for row in rows:
            row_penalties[row] = self._line_penalty(self.rank_costs[row, cols])
        for col in cols:
            col_penalties[col] = self._line_penalty(self.rank_costs[rows, col])
        return row_penalties, col_penalties

    def _select(self, real_only: bool) -> tuple[Cell, dict[str, Any]] | None:
        row_penalties, col_penalties = self.penalties(real_only)
        best_row = int(np.argmax(row_penalties))
        best_col = int(np.argmax(col_penalties))

        # Rows win ties against columns; argmax already prefers the lowest index.
        if row_penalties[best_row] >= col_penalties[best_col]:
            axis, line, penalty = Axis.ROW, best_row, row_penalties[best_row]
            candidates = [(line, int(col)) for col in self._open_cols(real_only)]
        else:
            axis, line, penalty = Axis.COLUMN, best_col, col_penalties[best_col]
            candidates = [(int(row), line) for row in self._open_rows(real_only)]

        if np.isneginf(penalty) or not candidates:
            return None

        details = {
            "row_penalties": snapshot(row_penalties),
            "col_penalties": snapshot(col_penalties),
            "selected_axis": axis,
            "selected_line": line,
        }
        return self._cheapest(candidates), details


BUILDERS: dict[Method, type[InitialSolutionBuilder]] = {
    Method.DOUBLE_PREFERENCE: DoublePreferenceBuilder,
    Method.VOGEL: VogelBuilder,
}


def create_builder(
    problem: Problem,
    method: Method | str = Method.DOUBLE_PREFERENCE,
    objective: Objective | str = Objective.MINIMIZE,
    options: SolverOptions | None = None,
    step_callback: StepCallback | None = None,
) -> InitialSolutionBuilder:
    """Instantiate the builder registered for ``method``.

    Raises:
        UnsupportedMethodError: If method or objective is not recognized.
    """
    builder_cls = BUILDERS[Method.parse(method)]
    return builder_cls(
        problem,
        objective=objective,
        options=options,
        step_callback=step_callback,
    )
