from __future__ import annotations

from abc import abstractmethod
from typing import Iterable

import torch
from tensordict import TensorDictBase

from tracklink._spot import Spot, collate_spots

__all__ = ["Cost", "FieldCost"]


class Cost(torch.nn.Module):
    """
    A cost module computes a linking cost matrix between source spots and
    target spots.
    """

    required_fields: torch.jit.Final[list[str]]

    def __init__(self, required_fields: Iterable[str]):
        super().__init__()

        self.required_fields = sorted(set(required_fields))

    @property
    def features(self) -> list[str]:
        """
        Names of the spot features read by this cost, i.e. the required fields
        that are not collated by default.
        """
        return [f for f in self.required_fields if not f.startswith("_")]

    @abstractmethod
    def forward(self, cs: TensorDictBase, ds: TensorDictBase) -> torch.Tensor:
        """
        Computes the linking costs between sources and targets.

        This is an abstract method that should be overwritten.

        Parameters
        ----------
        cs
            Source spots (N).
        ds
            Target spots (M).
        Returns
        -------
            Cost matrix (N x M).
        """
        raise NotImplementedError

    def collate(self, spots: list[Spot]) -> TensorDictBase:
        return collate_spots(spots, self.features)

    def cost_matrix(self, sources: list[Spot], targets: list[Spot]) -> torch.Tensor:
        """
        Collate both spot lists and compute their cost matrix.
        """
        if len(sources) == 0 or len(targets) == 0:
            return torch.empty((len(sources), len(targets)), dtype=torch.float64)
        return self(self.collate(sources), self.collate(targets))

    def linking_cost(self, a: Spot, b: Spot) -> float:
        """
        Cost of linking a single pair of spots.
        """
        return float(self.cost_matrix([a], [b])[0, 0])


class FieldCost(Cost):
    field: torch.jit.Final[str]

    def __init__(self, field: str):
        super().__init__(required_fields=[field])

        self.field = field

    def forward(self, cs: TensorDictBase, ds: TensorDictBase) -> torch.Tensor:
        return self.compute(cs.get(self.field), ds.get(self.field))

    @abstractmethod
    def compute(self, cs: torch.Tensor, ds: torch.Tensor) -> torch.Tensor:
        """
        Computes the linking costs from the values of a single field.

        Parameters
        ----------
        cs
            Source (N) values for a single field.
        ds
            Target (M) values for a single field.

        Returns
        -------
            Cost matrix (N x M).
        """
        raise NotImplementedError
