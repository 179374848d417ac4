from __future__ import annotations

import logging
from abc import abstractmethod
from typing import Tuple

import numpy as np
import torch

from tracklink._errors import SolverError

from ._matrix import SparseCostMatrix

__all__ = ["Assignment"]

logger = logging.getLogger(__name__)


class Assignment(torch.nn.Module):
    """
    Solves a linear assignment problem (LAP) over a sparse cost matrix, where
    every row and column may instead resolve to its alternative cost.
    """

    def forward(
        self, matrix: SparseCostMatrix
    ) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
        """
        Solve the cost matrix

        Parameters
        ----------
        matrix
            Sparse cost matrix (NxM) to solve

        Returns
        -------
            Tuple of matches (K x 2), unmatched rows and unmatched columns

        Raises
        ------
        SolverError
            When the solver fails to produce an assignment.
        """

        if matrix.nnz == 0:
            return self._no_match(matrix)

        try:
            row_to_col = self._assign(matrix)
        except (ValueError, RuntimeError) as err:
            msg = f"{type(self).__name__} failed to solve a {matrix.shape} matrix with {matrix.nnz} links: {err}"
            raise SolverError(msg) from err

        matches, unmatched_rows, unmatched_cols = matrix.decode(row_to_col)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "%s: %d matches, %d unmatched rows, %d unmatched cols",
                type(self).__name__,
                len(matches),
                len(unmatched_rows),
                len(unmatched_cols),
            )
            for i, j in matches.tolist():
                logger.debug("- match: %s -> %s (cost: %g)", matrix.sources[i], matrix.targets[j], matrix.cost_of(i, j))

        return matches, unmatched_rows, unmatched_cols

    @staticmethod
    def _no_match(
        matrix: SparseCostMatrix,
    ) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
        n, m = matrix.shape
        return (
            torch.empty((0, 2), dtype=torch.long),
            torch.arange(n, dtype=torch.long),
            torch.arange(m, dtype=torch.long),
        )

    @abstractmethod
    def _assign(self, matrix: SparseCostMatrix) -> np.ndarray:
        """
        Solve the block matrix of ``matrix``, returning the column assigned to
        each of its rows.
        """
        raise NotImplementedError
