"""
Hungarian Assignment Module for Partial Tracking
=================================================
Rectangular minimum-cost bipartite matching used by the optimal strategy.

- scipy's linear_sum_assignment does the solving (shortest augmenting
  path, O(n^3), deterministic for identical input)
- init(n_rows, n_cols) declares the problem size for the next frame
- Unmatched rows/columns are reported explicitly (UNMATCHED = -1), never
  as out-of-range indices
"""

import logging
from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment

from sinetrack.exceptions import InvalidParameterError

logger = logging.getLogger(__name__)

UNMATCHED = -1


@dataclass
class MatchResult:
    matches: List[Tuple[int, int]]
    unmatched_rows: List[int]
    unmatched_cols: List[int]
    row_to_col: np.ndarray
    cost_matrix: np.ndarray
    total_cost: float = 0.0
    col_to_row: np.ndarray = field(default=None, repr=False)


class HungarianMatcher:
    """
    Minimum-cost matching of an N x M non-negative cost matrix.

    Every row is matched when N <= M, every column when N > M; whatever is
    left over shows up in unmatched_rows / unmatched_cols.
    """

    def __init__(self):
        self._n_rows = 0
        self._n_cols = 0
        self.solve_count = 0

    @property
    def shape(self) -> Tuple[int, int]:
        return self._n_rows, self._n_cols

    def init(self, n_rows: int, n_cols: int):
        """Declare an n_rows x n_cols problem for the next match()."""
        if n_rows < 0 or n_cols < 0:
            raise InvalidParameterError("shape", (n_rows, n_cols), "dimensions must be non-negative")
        self._n_rows = n_rows
        self._n_cols = n_cols

    @staticmethod
    def _check_costs(cost_matrix: np.ndarray):
        if cost_matrix.ndim != 2:
            raise InvalidParameterError("cost_matrix", cost_matrix.shape, "expected a 2-D matrix")
        if cost_matrix.size and not np.all(np.isfinite(cost_matrix)):
            raise InvalidParameterError("cost_matrix", "non-finite", "costs must be finite")
        if cost_matrix.size and cost_matrix.min() < 0:
            raise InvalidParameterError("cost_matrix", float(cost_matrix.min()), "costs must be non-negative")

    def match(self, cost_matrix) -> MatchResult:
        cost_matrix = np.asarray(cost_matrix, dtype=float)
        self._check_costs(cost_matrix)

        n_rows, n_cols = cost_matrix.shape
        if (n_rows, n_cols) != self.shape:
            logger.debug(f"Matcher declared {self.shape}, got {n_rows}x{n_cols}; re-initialising")
            self.init(n_rows, n_cols)
        self.solve_count += 1

        row_to_col = np.full(n_rows, UNMATCHED, dtype=np.intp)
        col_to_row = np.full(n_cols, UNMATCHED, dtype=np.intp)
        if n_rows and n_cols:
            row_ind, col_ind = linear_sum_assignment(cost_matrix)
            row_to_col[row_ind] = col_ind
            col_to_row[col_ind] = row_ind

        matches = [(int(r), int(c)) for r, c in enumerate(row_to_col) if c != UNMATCHED]
        unmatched_rows = [int(r) for r in np.flatnonzero(row_to_col == UNMATCHED)]
        unmatched_cols = [int(c) for c in np.flatnonzero(col_to_row == UNMATCHED)]
        total = float(sum(cost_matrix[r, c] for r, c in matches))

        logger.debug(f"Matched {len(matches)} pairs on {n_rows}x{n_cols} problem, cost={total:.6f}")
        return MatchResult(matches, unmatched_rows, unmatched_cols, row_to_col,
                           cost_matrix, total, col_to_row)
