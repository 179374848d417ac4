r"""
Various utilities for working with assignment problems.
"""

from __future__ import annotations

from torch import Tensor

from ._matrix import SparseCostMatrix

__all__ = ["gather_total_cost"]


def gather_total_cost(matrix: SparseCostMatrix, matches: Tensor) -> float:
    """
    Gather the total linking cost of an assignment, i.e. the sum of the costs
    of all matched pairs. Alternative costs are not included.

    Parameters
    ----------
    matrix
        The sparse cost matrix.
    matches: Tensor[K, 2]
        The assignment tensor of row-column pairs.

    Returns
    -------
    float
        The total cost of the assignment.
    """

    return sum(matrix.cost_of(i, j) or 0.0 for i, j in matches.tolist())
