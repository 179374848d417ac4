r"""
Distance-based linking costs.
"""

from __future__ import annotations

import typing as T

import torch
import typing_extensions as TX
from tensordict import TensorDictBase

from tracklink.consts import KEY_POSITION

from .base_cost import Cost, FieldCost

__all__ = ["SquareDistance", "FeaturePenalty", "build_cost"]


class SquareDistance(FieldCost):
    """
    Squared Euclidean distance between spot positions.
    """

    def __init__(self, field: str = KEY_POSITION):
        super().__init__(field=field)

    @TX.override
    def compute(self, cs: torch.Tensor, ds: torch.Tensor) -> torch.Tensor:
        delta = cs[:, None, :] - ds[None, :, :]
        return (delta * delta).sum(dim=-1)


class FeaturePenalty(Cost):
    r"""
    Scales a base cost by penalties on diverging features:

    .. math::
        C = C_{base} \cdot \left(1 + \sum_f 1.5\, w_f\, \frac{|a_f - b_f|}{(a_f + b_f) / 2}\right)^2

    Pairs where a feature value is missing (``nan``) do not receive a penalty
    for that feature.
    """

    scale: torch.jit.Final[float] = 1.5

    def __init__(self, cost: Cost, penalties: T.Mapping[str, float]):
        super().__init__(required_fields=[*cost.required_fields, *penalties])

        self.cost = cost
        self.penalties = {str(k): float(v) for k, v in penalties.items()}

    @TX.override
    def extra_repr(self) -> str:
        return ", ".join(f"{k}={v:g}" for k, v in self.penalties.items())

    @TX.override
    def forward(self, cs: TensorDictBase, ds: TensorDictBase) -> torch.Tensor:
        base = self.cost(cs, ds)
        penalty = torch.ones_like(base)
        for name, weight in self.penalties.items():
            a = cs.get(name).to(base.dtype)[:, None]
            b = ds.get(name).to(base.dtype)[None, :]
            ndiff = (a - b).abs() / ((a + b) / 2)
            ndiff = torch.where(a == -b, torch.zeros_like(ndiff), ndiff)
            ndiff = torch.nan_to_num(ndiff, nan=0.0)
            penalty = penalty + self.scale * weight * ndiff
        return base * penalty * penalty


def build_cost(feature_penalties: T.Mapping[str, float] | None = None) -> Cost:
    """
    Select the cost strategy for a pass: the squared distance, penalized by the
    given features when any are configured.
    """
    cost = SquareDistance()
    if feature_penalties:
        return FeaturePenalty(cost, feature_penalties)
    return cost
