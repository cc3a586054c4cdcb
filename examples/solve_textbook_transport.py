"""Solve the textbook transportation example with both initial-plan heuristics."""

from __future__ import annotations

from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver import build_problem, solve_transportation  # noqa: E402


def main() -> None:
    problem = build_problem(
        costs=[[8, 6, 10, 9], [9, 12, 13, 7], [14, 9, 16, 5]],
        supplies=[20, 30, 50],
        demands=[10, 40, 30, 20],
    )

    for method in ("double_preference", "vogel"):
        result = solve_transportation(problem, method=method)
        print(
            f"{method}: initial cost={result.initial_cost:g}, "
            f"final cost={result.total_cost:g}, pivots={result.iterations}, "
            f"status={result.status}"
        )
        print(f"  routes ({method}):")
        for route in result.routes():
            print(
                f"    plant {route.supplier} -> warehouse {route.consumer}: "
                f"{route.quantity:g} units at {route.unit_cost:g} = {route.cost:g}"
            )


if __name__ == "__main__":
    main()
