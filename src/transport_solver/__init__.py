"""High-level entrypoints for the transportation problem solver library."""

from .construction import (
    ConstructionResult,
    DoublePreferenceBuilder,
    InitialSolutionBuilder,
    VogelBuilder,
    create_builder,
)
from .data import Cell, Method, Objective, Problem, SolverOptions, build_problem
from .diagnostics import BasisHistory, ConvergenceMonitor
from .exceptions import (
    InvalidDimensionsError,
    InvalidProblemError,
    MaxIterationsExceededError,
    SolverConfigurationError,
    StructuralSolveError,
    TransportSolverError,
    UnsupportedMethodError,
)
from .potentials import (
    OptimizationResult,
    OptimizerState,
    PotentialsOptimizer,
    compute_evaluations,
    compute_potentials,
    compute_theta,
    find_cycle,
    redistribute,
    select_pivot,
)
from .solver import (
    TransportResult,
    build_initial_solution,
    optimize_solution,
    solve_transportation,
)
from .steps import (
    AllocationStep,
    Axis,
    BalanceStep,
    CycleStep,
    DegeneracyFixStep,
    FailureReason,
    FailureStep,
    FinalStep,
    InitialPlanStep,
    OptimizationStep,
    PotentialsStep,
    PreferenceAllocationStep,
    PreferenceKind,
    RedistributionStep,
    SolutionStep,
    Step,
    StepCallback,
    TransitionStep,
    VogelAllocationStep,
)
from .utils import PlanValidation, Route, basis_cells, count_basis, extract_routes, validate_plan

__version__ = "0.1.0"

__all__ = [
    # Main API
    "build_problem",
    "solve_transportation",
    "build_initial_solution",
    "optimize_solution",
    "TransportResult",
    # Problem model and configuration
    "Problem",
    "Method",
    "Objective",
    "SolverOptions",
    "Cell",
    # Initial solutions
    "InitialSolutionBuilder",
    "DoublePreferenceBuilder",
    "VogelBuilder",
    "ConstructionResult",
    "create_builder",
    # Potentials method
    "PotentialsOptimizer",
    "OptimizerState",
    "OptimizationResult",
    "compute_potentials",
    "compute_evaluations",
    "select_pivot",
    "find_cycle",
    "compute_theta",
    "redistribute",
    # Step records
    "Step",
    "StepCallback",
    "SolutionStep",
    "OptimizationStep",
    "BalanceStep",
    "AllocationStep",
    "PreferenceAllocationStep",
    "VogelAllocationStep",
    "TransitionStep",
    "InitialPlanStep",
    "DegeneracyFixStep",
    "PotentialsStep",
    "CycleStep",
    "RedistributionStep",
    "FinalStep",
    "FailureStep",
    "Axis",
    "PreferenceKind",
    "FailureReason",
    # Utilities
    "validate_plan",
    "basis_cells",
    "count_basis",
    "extract_routes",
    "PlanValidation",
    "Route",
    # Diagnostics
    "ConvergenceMonitor",
    "BasisHistory",
    # Exceptions
    "TransportSolverError",
    "InvalidProblemError",
    "InvalidDimensionsError",
    "UnsupportedMethodError",
    "SolverConfigurationError",
    "StructuralSolveError",
    "MaxIterationsExceededError",
    # Version
    "__version__",
]
