from __future__ import annotations

import numpy as np
import typing_extensions as TX

from ._base import Assignment
from ._matrix import SparseCostMatrix

__all__ = ["Jonker", "jonker_volgenant_assignment"]


class Jonker(Assignment):
    """
    Uses the Jonker-Volgenant algorithm to solve the linear assignment problem.
    """

    @TX.override
    def _assign(self, matrix: SparseCostMatrix) -> np.ndarray:
        return jonker_volgenant_assignment(matrix.to_block_dense())


def jonker_volgenant_assignment(cost_matrix: np.ndarray) -> np.ndarray:
    """
    Perform linear assignment on a square matrix of finite costs.

    Returns
    -------
        Column assigned to each row.
    """

    from lap import lapjv

    cost_matrix = np.ascontiguousarray(cost_matrix, dtype=np.float64)
    if cost_matrix.shape[0] != cost_matrix.shape[1]:
        msg = f"Expected a square matrix, got {cost_matrix.shape}"
        raise ValueError(msg)
    if not np.isfinite(cost_matrix).all():
        msg = "Cost matrix contains non-finite values"
        raise ValueError(msg)

    _, x, _ = lapjv(cost_matrix, extend_cost=False)
    if (x < 0).any():
        msg = "No complete assignment was found"
        raise RuntimeError(msg)
    return np.asarray(x, dtype=np.int64)
