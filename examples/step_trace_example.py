"""Example printing the step trace of a solve with solver logging enabled."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver import (  # noqa: E402
    CycleStep,
    PotentialsStep,
    Step,
    VogelAllocationStep,
    build_problem,
    solve_transportation,
)


def print_step(step: Step) -> None:
    """Callback invoked with every recorded step, in order."""
    print(f"  {step.describe()}")
    if isinstance(step, VogelAllocationStep):
        print(f"      row penalties: {step.row_penalties.tolist()}")
        print(f"      col penalties: {step.col_penalties.tolist()}")
    elif isinstance(step, PotentialsStep):
        print(f"      u = {step.u.tolist()}, v = {step.v.tolist()}")
    elif isinstance(step, CycleStep):
        print(f"      gains: {list(step.plus_cells)}, loses: {list(step.minus_cells)}")


def main() -> None:
    """Solve an unbalanced problem and show every step of both phases."""

    # Solver messages go through the standard logging module
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 70)
    print("STEP TRACE DEMONSTRATION")
    print("=" * 70)

    # Demand (38) exceeds supply (34): a fictive supplier covers the gap
    problem = build_problem(
        costs=[[19, 30, 50, 10], [70, 30, 40, 60], [40, 8, 70, 20]],
        supplies=[7, 9, 18],
        demands=[5, 8, 7, 18],
    )

    result = solve_transportation(problem, method="vogel", step_callback=print_step)

    print("=" * 70)
    print(f"Status: {result.status}")
    print(f"Initial cost: {result.initial_cost:g}")
    print(f"Final cost:   {result.total_cost:g} after {result.iterations} pivot(s)")
    print(f"Diagnostics:  {result.optimization.diagnostics}")


if __name__ == "__main__":
    main()
