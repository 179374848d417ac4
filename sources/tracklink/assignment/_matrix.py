r"""
Sparse linking cost matrices with alternative (non-linking) costs.

A linking problem between N sources and M targets is solved as a square
assignment over the block matrix of size :math:`(N + M) \times (M + N)`:

.. code-block:: text

    +-----------------+-----------------+
    | linking costs   | source          |
    | (N x M)         | alternatives    |
    |                 | (N x N, diag)   |
    +-----------------+-----------------+
    | target          | auxiliary       |
    | alternatives    | (M x N)         |
    | (M x M, diag)   |                 |
    +-----------------+-----------------+

The auxiliary block holds the transposed sparsity pattern of the linking costs,
filled with the minimal linking cost, so that every accepted link frees exactly
the two alternatives it replaces.
"""

from __future__ import annotations

import dataclasses
import typing as T

import numpy as np
import scipy.sparse
import torch

from tracklink._spot import Spot

__all__ = ["SparseCostMatrix"]


@dataclasses.dataclass
class SparseCostMatrix:
    """
    Linking costs as ``(row, col, cost)`` triples over unique source and target
    spots, plus one alternative cost per row and per column.
    """

    sources: list[Spot]
    targets: list[Spot]
    rows: np.ndarray
    cols: np.ndarray
    costs: np.ndarray
    alt_rows: np.ndarray
    alt_cols: np.ndarray

    def __post_init__(self):
        self.rows = np.asarray(self.rows, dtype=np.int64)
        self.cols = np.asarray(self.cols, dtype=np.int64)
        self.costs = np.asarray(self.costs, dtype=np.float64)
        self.alt_rows = np.asarray(self.alt_rows, dtype=np.float64)
        self.alt_cols = np.asarray(self.alt_cols, dtype=np.float64)
        if not (len(self.rows) == len(self.cols) == len(self.costs)):
            msg = (
                f"Triples must have equal lengths, got {len(self.rows)} rows, "
                f"{len(self.cols)} cols and {len(self.costs)} costs"
            )
            raise ValueError(msg)
        if self.alt_rows.shape != (len(self.sources),) or self.alt_cols.shape != (len(self.targets),):
            msg = (
                f"Expected {len(self.sources)} row and {len(self.targets)} column "
                f"alternative costs, got {self.alt_rows.shape} and {self.alt_cols.shape}"
            )
            raise ValueError(msg)
        self._lookup = {(int(i), int(j)): k for k, (i, j) in enumerate(zip(self.rows, self.cols))}
        if len(self._lookup) != len(self.rows):
            msg = "Triples contain duplicate (row, col) pairs"
            raise ValueError(msg)

    @classmethod
    def from_links(
        cls,
        links: T.Sequence[tuple[Spot, Spot, float]],
        alternative_cost: float,
    ) -> SparseCostMatrix:
        """
        Build a matrix from ``(source, target, cost)`` links, with the same
        alternative cost for every row and column. Sources and targets are
        listed in spot order.
        """
        sources = sorted({s for s, _, _ in links})
        targets = sorted({t for _, t, _ in links})
        src_idx = {s: i for i, s in enumerate(sources)}
        tgt_idx = {t: j for j, t in enumerate(targets)}
        return cls(
            sources=sources,
            targets=targets,
            rows=[src_idx[s] for s, _, _ in links],
            cols=[tgt_idx[t] for _, t, _ in links],
            costs=[c for _, _, c in links],
            alt_rows=np.full(len(sources), alternative_cost),
            alt_cols=np.full(len(targets), alternative_cost),
        )

    @property
    def shape(self) -> tuple[int, int]:
        return (len(self.sources), len(self.targets))

    @property
    def nnz(self) -> int:
        return len(self.costs)

    def cost_of(self, row: int, col: int) -> float | None:
        k = self._lookup.get((int(row), int(col)))
        return None if k is None else float(self.costs[k])

    def __contains__(self, pair: tuple[int, int]) -> bool:
        return (int(pair[0]), int(pair[1])) in self._lookup

    def to_dense(self, fill: float = np.inf) -> torch.Tensor:
        """
        The N x M linking cost matrix, with ``fill`` where no link exists.
        """
        dense = torch.full(self.shape, fill, dtype=torch.float64)
        dense[torch.from_numpy(self.rows), torch.from_numpy(self.cols)] = torch.from_numpy(self.costs)
        return dense

    def _block_entries(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        n, m = self.shape
        cmin = float(self.costs.min()) if self.nnz > 0 else 0.0
        rn, rm = np.arange(n), np.arange(m)
        rows = np.concatenate([self.rows, rn, n + rm, n + self.cols])
        cols = np.concatenate([self.cols, m + rn, rm, m + self.rows])
        data = np.concatenate([self.costs, self.alt_rows, self.alt_cols, np.full(self.nnz, cmin)])
        return rows, cols, data

    def blocked_cost(self) -> float:
        """
        A cost larger than that of any complete assignment over the block
        matrix, used where dense solvers need a finite value for missing links.
        """
        return float(np.abs(self.costs).sum() + np.abs(self.alt_rows).sum() + np.abs(self.alt_cols).sum()) + 1.0

    def to_block_dense(self, fill: float | None = None) -> np.ndarray:
        """
        The square block matrix as a dense array. Missing entries hold ``fill``,
        by default :meth:`blocked_cost`.
        """
        n, m = self.shape
        if fill is None:
            fill = self.blocked_cost()
        block = np.full((n + m, m + n), fill, dtype=np.float64)
        rows, cols, data = self._block_entries()
        block[rows, cols] = data
        return block

    def to_block_sparse(self) -> scipy.sparse.csr_matrix:
        """
        The square block matrix as a sparse array. Zero costs are stored as the
        smallest positive float, as explicit zeros read as missing entries.
        """
        n, m = self.shape
        rows, cols, data = self._block_entries()
        data = np.where(data == 0.0, np.nextafter(0.0, 1.0), data)
        return scipy.sparse.csr_matrix((data, (rows, cols)), shape=(n + m, m + n))

    def decode(self, row_to_col: np.ndarray) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
        """
        Convert a solution of the block matrix into matches of the linking
        block. Only pairs that are actual links are kept.

        Parameters
        ----------
        row_to_col
            Column assigned to each row of the block matrix.

        Returns
        -------
            Tuple of matches (K x 2), unmatched rows and unmatched columns.
        """
        n, m = self.shape
        matches = []
        for i in range(n):
            j = int(row_to_col[i])
            if 0 <= j < m and (i, j) in self._lookup:
                matches.append((i, j))
        matched_rows = {i for i, _ in matches}
        matched_cols = {j for _, j in matches}
        return (
            torch.tensor(matches, dtype=torch.long).reshape(-1, 2),
            torch.tensor([i for i in range(n) if i not in matched_rows], dtype=torch.long),
            torch.tensor([j for j in range(m) if j not in matched_cols], dtype=torch.long),
        )
