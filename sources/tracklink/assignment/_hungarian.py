"""
Linear assignment with the SciPy implementation of the Hungarian algorithm.
"""

from __future__ import annotations

import numpy as np
import scipy.optimize
import typing_extensions as TX

from ._base import Assignment
from ._matrix import SparseCostMatrix

__all__ = ["Hungarian", "hungarian_assignment"]


class Hungarian(Assignment):
    r"""
    Implements the Hungarian algorithm for solving a linear assignment problem.
    Missing links are infinite costs rather than blocked finite costs.
    """

    @TX.override
    def _assign(self, matrix: SparseCostMatrix) -> np.ndarray:
        return hungarian_assignment(matrix.to_block_dense(fill=np.inf))


def hungarian_assignment(cost_matrix: np.ndarray) -> np.ndarray:
    """
    Perform linear assignment using the SciPy implementation
    """

    row_ind, col_ind = scipy.optimize.linear_sum_assignment(cost_matrix)
    row_to_col = np.full(cost_matrix.shape[0], -1, dtype=np.int64)
    row_to_col[row_ind] = col_ind
    return row_to_col
