"""Tests for immutable step records."""

import dataclasses
import sys
from pathlib import Path

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from transport_solver.steps import (  # noqa: E402
    Axis,
    BalanceStep,
    CycleStep,
    FailureReason,
    FailureStep,
    FinalStep,
    PreferenceAllocationStep,
    PreferenceKind,
    VogelAllocationStep,
    freeze_cells,
    snapshot,
)


def test_snapshot_copies_and_freezes():
    live = np.array([[1.0, 2.0], [3.0, 4.0]])
    frozen = snapshot(live)
    live[0, 0] = 99.0

    assert frozen[0, 0] == 1.0
    assert not frozen.flags.writeable
    with pytest.raises(ValueError):
        frozen[0, 0] = 5.0


def test_freeze_cells_converts_numpy_integers():
    cells = freeze_cells([(np.int64(1), np.int64(2)), (0, 3)])
    assert cells == ((1, 2), (0, 3))
    assert all(type(value) is int for cell in cells for value in cell)


def test_steps_are_frozen():
    step = FinalStep(
        index=3,
        solution=snapshot(np.zeros((1, 1))),
        total_cost=0.0,
        basic_zero_cells=(),
        iteration=0,
    )
    with pytest.raises(dataclasses.FrozenInstanceError):
        step.index = 4


def test_kind_tags_are_distinct():
    kinds = {
        BalanceStep.kind,
        PreferenceAllocationStep.kind,
        VogelAllocationStep.kind,
        CycleStep.kind,
        FinalStep.kind,
        FailureStep.kind,
    }
    assert len(kinds) == 6


def test_preference_step_describe():
    step = PreferenceAllocationStep(
        index=1,
        solution=snapshot(np.zeros((2, 2))),
        cell=(0, 1),
        unit_cost=6.0,
        quantity=20.0,
        remaining_supplies=snapshot([0.0, 5.0]),
        remaining_demands=snapshot([5.0, 0.0]),
        is_fictive=False,
        is_basic_zero=False,
        basic_zero_cells=(),
        preference=PreferenceKind.DOUBLE,
        double_preferred=((0, 1),),
        single_preferred=(),
    )
    assert step.row == 0
    assert step.col == 1
    assert step.describe() == "Step 1: ship 20 on route (0, 1) at unit cost 6 (double preference)"


def test_vogel_step_selected_penalty():
    step = VogelAllocationStep(
        index=2,
        solution=snapshot(np.zeros((2, 2))),
        cell=(1, 0),
        unit_cost=2.0,
        quantity=0.0,
        remaining_supplies=snapshot([0.0, 0.0]),
        remaining_demands=snapshot([0.0, 5.0]),
        is_fictive=False,
        is_basic_zero=True,
        basic_zero_cells=((1, 0),),
        row_penalties=snapshot([-np.inf, 1.0]),
        col_penalties=snapshot([3.0, -np.inf]),
        selected_axis=Axis.COLUMN,
        selected_line=0,
    )
    assert step.selected_penalty == 3.0
    assert "basic zero" in step.describe()
    assert "column 0" in step.describe()


def test_cycle_step_plus_and_minus_cells():
    step = CycleStep(
        index=3,
        solution=snapshot(np.zeros((2, 2))),
        total_cost=25.0,
        basic_zero_cells=((1, 0),),
        iteration=1,
        cycle=((0, 1), (0, 0), (1, 0), (1, 1)),
        pivot_cell=(0, 1),
        theta=5.0,
    )
    assert step.plus_cells == ((0, 1), (1, 0))
    assert step.minus_cells == ((0, 0), (1, 1))
    assert not step.is_optimal
    assert "theta=5" in step.describe()


def test_failure_step_describe_includes_reason():
    step = FailureStep(
        index=9,
        solution=snapshot(np.zeros((1, 1))),
        total_cost=0.0,
        basic_zero_cells=(),
        iteration=2,
        reason=FailureReason.CYCLE_NOT_FOUND,
        message="No closed cycle through entering cell (1, 1).",
    )
    assert not step.is_optimal
    assert "cycle_not_found" in step.describe()
