"""Step records describing how a shipping plan was built and improved.

Every record is an immutable snapshot: arrays are copied when the step is
created and marked read-only, so later work on the live plan never leaks into
the recorded history. Records carry structured facts only (cells, quantities,
penalties, potentials, cycles); turning them into user-facing text is left to
the caller. ``describe()`` gives a short technical sentence for logs.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union

import numpy as np

from .data import Cell


def snapshot(values: np.ndarray | Sequence[float] | Sequence[Sequence[float]]) -> np.ndarray:
    """Return an independent, read-only float copy of ``values``."""
    copy = np.array(values, dtype=float, copy=True)
    copy.setflags(write=False)
    return copy


def freeze_cells(cells: Iterable[Cell]) -> tuple[Cell, ...]:
    return tuple((int(row), int(col)) for row, col in cells)


class Axis(Enum):
    """Orientation of a matrix line (supplier row or consumer column)."""

    ROW = "row"
    COLUMN = "column"


class PreferenceKind(Enum):
    """How the double-preference heuristic justified a pick."""

    DOUBLE = "double"  # Minimum of both its row and its column.
    SINGLE = "single"  # Minimum of its row or its column.
    MINIMUM = "minimum"  # No preferred cell left; cheapest open cell.


class FailureReason(Enum):
    """Why the potentials method stopped before proving optimality."""

    INVALID_BASIS = "invalid_basis"
    POTENTIALS_UNRESOLVED = "potentials_unresolved"
    CYCLE_NOT_FOUND = "cycle_not_found"
    INVALID_THETA = "invalid_theta"
    MAX_ITERATIONS = "max_iterations"


@dataclass(frozen=True, eq=False)
class Step:
    """Common fields of every recorded step.

    Attributes:
        index: 1-based position of the step within its trace.
        solution: Read-only snapshot of the plan after the step.
    """

    kind: ClassVar[str] = "step"

    index: int
    solution: np.ndarray

    def describe(self) -> str:
        return f"Step {self.index}: {self.kind}"


# ---------------------------------------------------------------------------
# Construction phase
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class BalanceStep(Step):
    """A fictive supplier or consumer was added to balance the problem.

    Attributes:
        axis: ROW for a fictive supplier, COLUMN for a fictive consumer.
        line: Index of the fictive row/column in the balanced matrix.
        quantity: Supply (or demand) assigned to the fictive line.
        remaining_supplies: Supplies of the balanced problem.
        remaining_demands: Demands of the balanced problem.
    """

    kind: ClassVar[str] = "balance"

    axis: Axis
    line: int
    quantity: float
    remaining_supplies: np.ndarray
    remaining_demands: np.ndarray

    def describe(self) -> str:
        who = "supplier" if self.axis is Axis.ROW else "consumer"
        return (
            f"Step {self.index}: added fictive {who} {self.line} "
            f"absorbing {self.quantity:g} units at zero cost"
        )


@dataclass(frozen=True, eq=False)
class AllocationStep(Step):
    """Quantity assigned to one route while building the initial plan.

    Attributes:
        cell: (row, col) of the route that received the allocation.
        unit_cost: Cost of the route.
        quantity: Amount shipped; 0.0 for a basic zero.
        remaining_supplies: Supplies left after the allocation.
        remaining_demands: Demands left after the allocation.
        is_fictive: True when the route touches a fictive row or column.
        is_basic_zero: True when the cell joins the basis with zero flow.
        basic_zero_cells: All basic zeros recorded so far, in order.
    """

    kind: ClassVar[str] = "allocation"

    cell: Cell
    unit_cost: float
    quantity: float
    remaining_supplies: np.ndarray
    remaining_demands: np.ndarray
    is_fictive: bool
    is_basic_zero: bool
    basic_zero_cells: tuple[Cell, ...]

    @property
    def row(self) -> int:
        return self.cell[0]

    @property
    def col(self) -> int:
        return self.cell[1]

    def describe(self) -> str:
        label = "basic zero" if self.is_basic_zero else f"ship {self.quantity:g}"
        route = "fictive route" if self.is_fictive else "route"
        return (
            f"Step {self.index}: {label} on {route} {self.cell} "
            f"at unit cost {self.unit_cost:g}"
        )


@dataclass(frozen=True, eq=False)
class PreferenceAllocationStep(AllocationStep):
    """Allocation chosen by the double-preference heuristic.

    Attributes:
        preference: Rule that selected the cell.
        double_preferred: Cells that were both row and column minima at phase entry.
        single_preferred: Cells that were row or column minima at phase entry.
    """

    kind: ClassVar[str] = "preference_allocation"

    preference: PreferenceKind
    double_preferred: tuple[Cell, ...]
    single_preferred: tuple[Cell, ...]

    def describe(self) -> str:
        return f"{super().describe()} ({self.preference.value} preference)"


@dataclass(frozen=True, eq=False)
class VogelAllocationStep(AllocationStep):
    """Allocation chosen by Vogel's approximation method.

    Attributes:
        row_penalties: Penalty of every row when the pick was made (-inf when closed).
        col_penalties: Penalty of every column when the pick was made (-inf when closed).
        selected_axis: Whether a row or a column carried the largest penalty.
        selected_line: Index of that row or column.
    """

    kind: ClassVar[str] = "vogel_allocation"

    row_penalties: np.ndarray
    col_penalties: np.ndarray
    selected_axis: Axis
    selected_line: int

    @property
    def selected_penalty(self) -> float:
        penalties = self.row_penalties if self.selected_axis is Axis.ROW else self.col_penalties
        return float(penalties[self.selected_line])

    def describe(self) -> str:
        return (
            f"{super().describe()} (max penalty {self.selected_penalty:g} "
            f"in {self.selected_axis.value} {self.selected_line})"
        )


@dataclass(frozen=True, eq=False)
class TransitionStep(Step):
    """Real routes are saturated; allocation continues over fictive routes."""

    kind: ClassVar[str] = "transition"

    remaining_supplies: np.ndarray
    remaining_demands: np.ndarray
    basic_zero_cells: tuple[Cell, ...]

    def describe(self) -> str:
        return f"Step {self.index}: real routes saturated, continuing with fictive routes"


# ---------------------------------------------------------------------------
# Improvement phase
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class ImprovementStep(Step):
    """Common fields of potentials-method steps.

    Attributes:
        total_cost: Cost of the plan over the real routes.
        basic_zero_cells: Basis cells currently carrying zero flow.
    """

    kind: ClassVar[str] = "improvement"

    total_cost: float
    basic_zero_cells: tuple[Cell, ...]

    @property
    def is_optimal(self) -> bool:
        return False


@dataclass(frozen=True, eq=False)
class InitialPlanStep(ImprovementStep):
    kind: ClassVar[str] = "initial_plan"

    def describe(self) -> str:
        return f"Step {self.index}: initial plan with total cost {self.total_cost:g}"


@dataclass(frozen=True, eq=False)
class DegeneracyFixStep(ImprovementStep):
    """Basic zeros were added so the basis spans every row and column."""

    kind: ClassVar[str] = "degeneracy_fix"

    added_cells: tuple[Cell, ...]

    def describe(self) -> str:
        return f"Step {self.index}: degenerate plan, added basic zeros at {list(self.added_cells)}"


@dataclass(frozen=True, eq=False)
class PotentialsStep(ImprovementStep):
    """Potentials and reduced costs of the current basis.

    Attributes:
        iteration: Number of pivots performed before this computation.
        u: Row potentials.
        v: Column potentials.
        evaluations: Reduced cost ``c - u - v`` of every cell (0 for basis cells).
        optimal: True when no non-basic cell can improve the objective.
        pivot_cell: Entering cell chosen when the plan is not optimal.
    """

    kind: ClassVar[str] = "potentials"

    iteration: int
    u: np.ndarray
    v: np.ndarray
    evaluations: np.ndarray
    optimal: bool
    pivot_cell: Cell | None

    def describe(self) -> str:
        verdict = "optimal" if self.optimal else f"entering cell {self.pivot_cell}"
        return f"Step {self.index}: potentials computed, {verdict}"


@dataclass(frozen=True, eq=False)
class CycleStep(ImprovementStep):
    """Stepping-stone cycle through the entering cell.

    Attributes:
        iteration: 1-based pivot number.
        cycle: Cells in order; even positions gain theta, odd positions lose it.
        pivot_cell: Entering cell (always ``cycle[0]``).
        theta: Amount shifted around the cycle.
    """

    kind: ClassVar[str] = "cycle"

    iteration: int
    cycle: tuple[Cell, ...]
    pivot_cell: Cell
    theta: float

    @property
    def plus_cells(self) -> tuple[Cell, ...]:
        return self.cycle[0::2]

    @property
    def minus_cells(self) -> tuple[Cell, ...]:
        return self.cycle[1::2]

    def describe(self) -> str:
        path = " -> ".join(str(cell) for cell in self.cycle)
        return f"Step {self.index}: cycle {path}, theta={self.theta:g}"


@dataclass(frozen=True, eq=False)
class RedistributionStep(ImprovementStep):
    kind: ClassVar[str] = "redistribution"

    iteration: int
    entering: Cell
    leaving: Cell
    theta: float

    def describe(self) -> str:
        return (
            f"Step {self.index}: shifted {self.theta:g} units, {self.entering} entered, "
            f"{self.leaving} left, total cost {self.total_cost:g}"
        )


@dataclass(frozen=True, eq=False)
class FinalStep(ImprovementStep):
    kind: ClassVar[str] = "final"

    iteration: int

    @property
    def is_optimal(self) -> bool:
        return True

    def describe(self) -> str:
        return f"Step {self.index}: optimal plan found, total cost {self.total_cost:g}"


@dataclass(frozen=True, eq=False)
class FailureStep(ImprovementStep):
    """The potentials method stopped early; ``solution`` is the best plan reached."""

    kind: ClassVar[str] = "failure"

    iteration: int
    reason: FailureReason
    message: str

    def describe(self) -> str:
        return f"Step {self.index}: stopped ({self.reason.value}): {self.message}"


SolutionStep = Union[BalanceStep, AllocationStep, TransitionStep]
OptimizationStep = Union[
    InitialPlanStep,
    DegeneracyFixStep,
    PotentialsStep,
    CycleStep,
    RedistributionStep,
    FinalStep,
    FailureStep,
]

# Type alias for the per-step callback accepted by the solver entrypoints
StepCallback = Callable[[Step], None]
