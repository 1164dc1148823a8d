"""Округление expansion к целому: floor, ceil, aint и nint.

Компоненты обрабатываются от старшего к младшему; пока очередной
компонент уже целый, округляется следующий, остальные обнуляются.
"""

from __future__ import annotations

from typing import Callable

import torch

from ._renorm import canonicalize

__all__ = ["floor", "ceil", "aint", "nint", "nint_double"]


def nint_double(d: torch.Tensor) -> torch.Tensor:
    """Ближайшее целое для double; половины округляются к +∞."""
    f = torch.floor(d)
    return torch.where(d == f, d, torch.floor(d + 0.5))


def _round(components: torch.Tensor, f: Callable, tie_break: bool = False) -> torch.Tensor:
    k = components.shape[-1]
    active = torch.ones(components.shape[:-1], dtype=torch.bool, device=components.device)
    out = []
    for i in range(k):
        x = components[..., i]
        r = f(x)
        if tie_break and i < k - 1:
            # Половина: знак следующего компонента решает направление
            tie = (torch.abs(r - x) == 0.5) & (components[..., i + 1] < 0)
            r = torch.where(tie, r - 1.0, r)
        out.append(torch.where(active, r, torch.zeros_like(r)))
        active = active & (r == x)
    return canonicalize(torch.stack(out, dim=-1))


def floor(components: torch.Tensor) -> torch.Tensor:
    return _round(components, torch.floor)


def ceil(components: torch.Tensor) -> torch.Tensor:
    return _round(components, torch.ceil)


def aint(components: torch.Tensor) -> torch.Tensor:
    """Усечение к нулю: floor для неотрицательных, ceil для отрицательных."""
    positive = components[..., 0] >= 0
    return _round(components, lambda x: torch.where(positive, torch.floor(x), torch.ceil(x)))


def nint(components: torch.Tensor) -> torch.Tensor:
    return _round(components, nint_double, tie_break=True)
