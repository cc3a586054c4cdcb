"""Convergence diagnostics for the potentials method.

The potentials optimizer records every pivot here so that long runs of
degenerate pivots (theta = 0) and revisited bases can be reported. Neither
monitor changes the course of the solve; they only feed warnings and the
summary attached to the optimization result.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from .data import Cell


@dataclass
class ConvergenceMonitor:
    """Tracks total cost across pivots and detects stalling.

    A pivot is degenerate when it shifts zero units around its cycle: the
    basis changes but the plan and its cost do not. Many consecutive pivots
    without a cost change mean the optimizer is walking between equivalent
    degenerate bases.

    Attributes:
        window_size: Number of recent costs kept for improvement statistics
        stall_threshold: Relative cost change below which a pivot counts as no progress
        degeneracy_threshold: Degenerate-pivot ratio above which the run is flagged

    Examples:
        >>> monitor = ConvergenceMonitor(window_size=20)
        >>> monitor.record_iteration(910.0, is_degenerate=False, iteration=0)
        >>> monitor.record_iteration(880.0, is_degenerate=False, iteration=1)
        >>> monitor.is_stalled()
        False
    """

    window_size: int = 20
    stall_threshold: float = 1e-9
    degeneracy_threshold: float = 0.5

    # History tracking
    cost_history: deque[float] = field(default_factory=lambda: deque(maxlen=20))
    degenerate_pivots: int = 0
    total_pivots: int = 0

    # Stalling detection
    consecutive_no_improvement: int = 0
    last_significant_improvement_iter: int = 0

    def __post_init__(self) -> None:
        """Initialize history with correct maxlen."""
        self.cost_history = deque(maxlen=self.window_size)

    def record_iteration(
        self,
        total_cost: float,
        is_degenerate: bool = False,
        iteration: int = 0,
    ) -> None:
        """Record the plan cost after a pivot.

        Args:
            total_cost: Cost of the plan after the pivot
            is_degenerate: Whether the pivot moved zero units
            iteration: Pivot number
        """
        self.cost_history.append(total_cost)
        self.total_pivots += 1
        if is_degenerate:
            self.degenerate_pivots += 1

        if len(self.cost_history) >= 2:
            previous = self.cost_history[-2]
            current = self.cost_history[-1]

            # Relative change, absolute when the previous cost is zero
            if abs(previous) > 1e-12:
                change = abs(current - previous) / abs(previous)
            else:
                change = abs(current - previous)

            if change < self.stall_threshold:
                self.consecutive_no_improvement += 1
            else:
                self.consecutive_no_improvement = 0
                self.last_significant_improvement_iter = iteration

    def is_stalled(self, min_consecutive: int = 5) -> bool:
        """Return True after ``min_consecutive`` pivots without a cost change."""
        return self.consecutive_no_improvement >= min_consecutive

    def is_highly_degenerate(self, min_pivots: int = 4) -> bool:
        """Check if the share of degenerate pivots is above the threshold.

        Args:
            min_pivots: Pivots required before the ratio is trusted
        """
        if self.total_pivots < min_pivots:
            return False
        return self.get_degeneracy_ratio() > self.degeneracy_threshold

    def get_degeneracy_ratio(self) -> float:
        if self.total_pivots == 0:
            return 0.0
        return self.degenerate_pivots / self.total_pivots

    def get_recent_improvement(self) -> float | None:
        """Get relative cost change over the monitoring window.

        Returns:
            Change from oldest to newest recorded cost, or None with fewer than two pivots
        """
        if len(self.cost_history) < 2:
            return None

        oldest = self.cost_history[0]
        newest = self.cost_history[-1]
        if abs(oldest) > 1e-12:
            return abs(newest - oldest) / abs(oldest)
        return abs(newest - oldest)

    def get_diagnostic_summary(self) -> dict[str, float | bool | int]:
        """Get summary of convergence diagnostics.

        Returns:
            Dictionary with diagnostic metrics
        """
        return {
            "total_pivots": self.total_pivots,
            "degenerate_pivots": self.degenerate_pivots,
            "degeneracy_ratio": self.get_degeneracy_ratio(),
            "is_stalled": self.is_stalled(),
            "is_highly_degenerate": self.is_highly_degenerate(),
            "consecutive_no_improvement": self.consecutive_no_improvement,
            "last_significant_improvement_iter": self.last_significant_improvement_iter,
            "recent_improvement": self.get_recent_improvement() or 0.0,
        }


@dataclass
class BasisHistory:
    """Tracks visited bases to detect cycling between degenerate pivots.

    A basis is identified by its sorted set of cells, so two plans with the
    same basic cells (including basic zeros) hash the same way.

    Attributes:
        max_history: Maximum number of basis states to track

    Examples:
        >>> history = BasisHistory(max_history=50)
        >>> history.record_basis({(0, 1), (1, 0), (1, 1)})
        >>> history.is_cycling()
        False
    """

    max_history: int = 100
    history: deque[int] = field(default_factory=lambda: deque(maxlen=100))
    visit_counts: dict[int, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Initialize history with correct maxlen."""
        self.history = deque(maxlen=self.max_history)

    @staticmethod
    def _hash_basis(cells: Iterable[Cell]) -> int:
        return hash(tuple(sorted(cells)))

    def record_basis(self, cells: Iterable[Cell]) -> None:
        """Record the current set of basis cells."""
        basis_hash = self._hash_basis(cells)
        self.history.append(basis_hash)
        self.visit_counts[basis_hash] = self.visit_counts.get(basis_hash, 0) + 1

        # Drop counts for bases that fell out of the window
        if len(self.visit_counts) > self.max_history * 2:
            current_hashes = set(self.history)
            for key in [k for k in self.visit_counts if k not in current_hashes]:
                del self.visit_counts[key]

    def visits(self, cells: Iterable[Cell]) -> int:
        """Return how many times a basis has been recorded."""
        return self.visit_counts.get(self._hash_basis(cells), 0)

    def is_cycling(self, min_revisits: int = 2) -> bool:
        """Return True if any recently recorded basis was visited ``min_revisits`` times."""
        if not self.history:
            return False
        recent = list(self.history)[-20:]
        return any(self.visit_counts.get(h, 0) >= min_revisits for h in recent)

    def get_cycle_length(self) -> int | None:
        """Estimate the period of a repeating basis sequence, or None if there is none."""
        if len(self.history) < 4:
            return None

        recent = list(self.history)[-20:]
        for pattern_len in range(2, len(recent) // 2 + 1):
            pattern = recent[-pattern_len:]
            previous = recent[-2 * pattern_len : -pattern_len]
            if pattern == previous:
                return pattern_len
        return None

    def get_most_frequent_basis_count(self) -> int:
        if not self.visit_counts:
            return 0
        return max(self.visit_counts.values())
