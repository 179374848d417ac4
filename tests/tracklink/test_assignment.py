r"""
Tests for ``tracklink.assignment``.
"""

from __future__ import annotations

import logging

import numpy as np
import pytest
import torch

from tracklink import Spot, SolverError, assignment
from tracklink.assignment import SparseCostMatrix


def dense_matrix(costs, alternative: float) -> SparseCostMatrix:
    """
    Matrix over fresh spots from a dense array, where ``nan`` marks a missing
    link.
    """
    costs = np.asarray(costs, dtype=np.float64)
    n, m = costs.shape
    rows, cols = np.nonzero(~np.isnan(costs))
    return SparseCostMatrix(
        sources=[Spot(0, i, 0) for i in range(n)],
        targets=[Spot(1, j, 0) for j in range(m)],
        rows=rows,
        cols=cols,
        costs=costs[rows, cols],
        alt_rows=np.full(n, alternative),
        alt_cols=np.full(m, alternative),
    )


def objective(matrix: SparseCostMatrix, matches, unmatched_rows, unmatched_cols) -> float:
    """
    Total cost of a solution of the block matrix.
    """
    cmin = matrix.costs.min()
    return (
        assignment.gather_total_cost(matrix, matches)
        + len(matches) * cmin
        + matrix.alt_rows[unmatched_rows.numpy()].sum()
        + matrix.alt_cols[unmatched_cols.numpy()].sum()
    )


def test_assignment_invoke(solver):
    matrix = dense_matrix([[1.0, 10.0], [10.0, 1.0]], 100.0)

    matches, unmatched_rows, unmatched_cols = solver(matrix)

    assert matches.dtype == torch.long
    assert matches.tolist() == [[0, 0], [1, 1]]
    assert unmatched_rows.numel() == 0
    assert unmatched_cols.numel() == 0


def test_assignment_trace_follows_log_level(solver, caplog):
    matrix = dense_matrix([[1.0, 10.0], [10.0, 1.0]], 100.0)

    with caplog.at_level(logging.INFO, logger="tracklink"):
        solver(matrix)
    assert "match:" not in caplog.text

    with caplog.at_level(logging.DEBUG, logger="tracklink"):
        solver(matrix)
    assert caplog.text.count("- match:") == 2


def test_assignment_global_optimum(solver):
    # a greedy choice of the cheapest pair (1, 0) leads to a worse total
    matrix = dense_matrix([[3.61, 16.0], [0.01, 4.0]], 27.5625)

    matches, _, _ = solver(matrix)

    assert matches.tolist() == [[0, 0], [1, 1]]


def test_assignment_alternative(solver):
    # linking costs 1 + 1 (auxiliary) while leaving both unlinked costs 0.5 + 0.5
    matrix = dense_matrix([[1.0]], 0.5)

    matches, unmatched_rows, unmatched_cols = solver(matrix)

    assert matches.shape == (0, 2)
    assert unmatched_rows.tolist() == [0]
    assert unmatched_cols.tolist() == [0]


def test_assignment_zero_cost(solver):
    matrix = dense_matrix([[0.0, np.nan], [np.nan, 0.0]], 1.0)

    matches, _, _ = solver(matrix)

    assert matches.tolist() == [[0, 0], [1, 1]]


def test_assignment_sparse_pattern(solver):
    matrix = dense_matrix([[np.nan, 1.0, np.nan], [2.0, np.nan, np.nan], [np.nan, np.nan, np.nan]], 10.0)

    matches, unmatched_rows, unmatched_cols = solver(matrix)

    assert matches.tolist() == [[0, 1], [1, 0]]
    assert unmatched_rows.tolist() == [2]
    assert unmatched_cols.tolist() == [2]


def test_assignment_empty(solver):
    matrix = dense_matrix(np.full((2, 3), np.nan), 1.0)

    matches, unmatched_rows, unmatched_cols = solver(matrix)

    assert matches.shape == (0, 2)
    assert unmatched_rows.tolist() == [0, 1]
    assert unmatched_cols.tolist() == [0, 1, 2]


@pytest.mark.parametrize("seed", range(5))
@pytest.mark.parametrize("shape", [(6, 6), (4, 9), (9, 4)])
def test_assignment_solvers_agree(seed, shape):
    rng = np.random.default_rng(seed)
    costs = rng.uniform(0.0, 10.0, size=shape)
    costs[rng.uniform(size=shape) < 0.5] = np.nan
    costs[0, 0] = 1.0
    matrix = dense_matrix(costs, 6.0)

    totals = [
        objective(matrix, *solver(matrix))
        for solver in (assignment.Jonker(), assignment.Hungarian(), assignment.SparseJonker())
    ]

    assert totals == pytest.approx([totals[0]] * 3)


def test_solver_error():
    class Failing(assignment.Assignment):
        def _assign(self, matrix):
            msg = "infeasible"
            raise ValueError(msg)

    with pytest.raises(SolverError, match="infeasible"):
        Failing()(dense_matrix([[1.0]], 1.0))


def test_matrix_from_links():
    a, b = Spot(0, 0, 0), Spot(0, 1, 0)
    c, d = Spot(1, 0, 0), Spot(1, 1, 0)

    matrix = SparseCostMatrix.from_links([(b, d, 1.0), (a, c, 2.0), (a, d, 3.0)], 5.0)

    assert matrix.sources == [a, b]
    assert matrix.targets == [c, d]
    assert matrix.shape == (2, 2)
    assert matrix.nnz == 3
    assert matrix.cost_of(1, 1) == 1.0
    assert matrix.cost_of(0, 1) == 3.0
    assert matrix.cost_of(1, 0) is None
    assert (1, 1) in matrix
    assert matrix.alt_rows.tolist() == [5.0, 5.0]

    dense = matrix.to_dense()
    assert dense[1, 0] == torch.inf
    assert dense[0, 0] == 2.0


def test_matrix_block():
    matrix = dense_matrix([[1.0, np.nan], [np.nan, 2.0]], 5.0)

    block = matrix.to_block_dense(fill=np.inf)

    assert block.shape == (4, 4)
    assert block[0, 0] == 1.0
    assert block[0, 2] == 5.0
    assert block[2, 0] == 5.0
    assert block[2, 2] == 1.0
    assert block[3, 3] == 1.0
    assert np.isinf(block[0, 1])

    sparse = matrix.to_block_sparse()
    assert sparse.shape == (4, 4)
    assert sparse.nnz == 8


def test_matrix_validation():
    with pytest.raises(ValueError):
        SparseCostMatrix([Spot(0, 0, 0)], [Spot(1, 0, 0)], [0, 0], [0, 0], [1.0, 2.0], [1.0], [1.0])
    with pytest.raises(ValueError):
        SparseCostMatrix([Spot(0, 0, 0)], [Spot(1, 0, 0)], [0], [0], [1.0], [1.0, 1.0], [1.0])
    with pytest.raises(ValueError):
        SparseCostMatrix([Spot(0, 0, 0)], [Spot(1, 0, 0)], [0], [0, 0], [1.0], [1.0], [1.0])
