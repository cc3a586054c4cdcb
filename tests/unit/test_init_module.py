"""Unit tests for __init__.py module public API."""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

import transport_solver  # noqa: E402


class TestPublicApi:
    """Tests for names re-exported from the package root."""

    def test_version(self):
        assert transport_solver.__version__ == "0.1.0"

    def test_all_names_resolve(self):
        for name in transport_solver.__all__:
            assert hasattr(transport_solver, name), name

    def test_entrypoints_are_callable(self):
        assert callable(transport_solver.solve_transportation)
        assert callable(transport_solver.build_initial_solution)
        assert callable(transport_solver.optimize_solution)
        assert callable(transport_solver.build_problem)

    def test_all_has_no_duplicates(self):
        assert len(transport_solver.__all__) == len(set(transport_solver.__all__))
