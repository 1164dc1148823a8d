"""qdfx._policy
=============
Политика арифметики: какой вариант ядер (sloppy / accurate)
используют операторы. Выбирается один раз — из ``QDFX_ACCURATE``
при первом обращении или явно через `select_policy` на старте
программы. Ядра сами флаг не проверяют.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import torch

from . import _dd, _qd
from ._config import get_settings
from ._errors import ConfigurationError

logger = logging.getLogger(__name__)

Kernel = Callable[[torch.Tensor, torch.Tensor], torch.Tensor]


@dataclass(frozen=True)
class ArithmeticPolicy:
    """Набор ядер для операций, у которых есть два исполнения."""

    name: str
    dd_add: Kernel
    dd_div: Kernel
    qd_add: Kernel
    qd_mul: Kernel
    qd_div: Kernel

    def add(self, k: int) -> Kernel:
        return self.dd_add if k == 2 else self.qd_add

    def mul(self, k: int) -> Kernel:
        return _dd.mul if k == 2 else self.qd_mul

    def div(self, k: int) -> Kernel:
        return self.dd_div if k == 2 else self.qd_div


SLOPPY = ArithmeticPolicy(
    name="sloppy",
    dd_add=_dd.add_sloppy,
    dd_div=_dd.div_sloppy,
    qd_add=_qd.add_sloppy,
    qd_mul=_qd.mul_sloppy,
    qd_div=_qd.div_sloppy,
)

ACCURATE = ArithmeticPolicy(
    name="accurate",
    dd_add=_dd.add_ieee,
    dd_div=_dd.div_accurate,
    qd_add=_qd.add_ieee,
    qd_mul=_qd.mul_accurate,
    qd_div=_qd.div_accurate,
)

POLICIES = {p.name: p for p in (SLOPPY, ACCURATE)}

_active: Optional[ArithmeticPolicy] = None


def active_policy() -> ArithmeticPolicy:
    """Текущая политика; при первом вызове берётся из настроек."""
    global _active
    if _active is None:
        _active = ACCURATE if get_settings().accurate else SLOPPY
        logger.debug("Arithmetic policy resolved from environment: %s", _active.name)
    return _active


def select_policy(name: str) -> ArithmeticPolicy:
    """Явно выбирает политику. Вызывать до начала вычислений."""
    global _active
    try:
        policy = POLICIES[name]
    except KeyError:
        raise ConfigurationError.invalid_value("policy", name, f"Expected one of {sorted(POLICIES)}") from None
    _active = policy
    logger.debug("Arithmetic policy selected: %s", policy.name)
    return policy


__all__ = ["ArithmeticPolicy", "SLOPPY", "ACCURATE", "active_policy", "select_policy"]
