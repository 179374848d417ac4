"""
Linear assignment over a sparse matrix, without densifying it.
"""

from __future__ import annotations

import numpy as np
import typing_extensions as TX
from scipy.sparse.csgraph import min_weight_full_bipartite_matching

from ._base import Assignment
from ._matrix import SparseCostMatrix

__all__ = ["SparseJonker"]


class SparseJonker(Assignment):
    """
    Solves the block matrix as a minimum weight full bipartite matching, using
    the LAPJVsp algorithm of SciPy. Memory grows with the number of links
    instead of with the square of the number of spots.
    """

    @TX.override
    def _assign(self, matrix: SparseCostMatrix) -> np.ndarray:
        block = matrix.to_block_sparse()
        row_ind, col_ind = min_weight_full_bipartite_matching(block)
        row_to_col = np.full(block.shape[0], -1, dtype=np.int64)
        row_to_col[row_ind] = col_ind
        return row_to_col
