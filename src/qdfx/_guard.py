"""qdfx._guard
=============
Режим вычислений, при котором ядра EFT дают точные результаты:
float64 по умолчанию и денормалы без сброса в ноль (flush-to-zero
ломает two_sum / two_prod около MIN_VALUE).

`acquire` запоминает текущее состояние в `PrecisionToken` и включает
нужный режим; `restore` возвращает запомненное. Токены вкладываются
в порядке LIFO. `precision_mode()` — контекстный менеджер поверх пары.
"""

from __future__ import annotations

import logging
import platform
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

import torch

logger = logging.getLogger(__name__)

__all__ = ["PrecisionToken", "acquire", "restore", "precision_mode"]

_SMALLEST_NORMAL = 2.2250738585072014e-308
_X87_MACHINES = frozenset({"i386", "i486", "i586", "i686", "x86"})

_x87_warned = False


@dataclass(frozen=True)
class PrecisionToken:
    """Состояние, сохранённое `acquire`."""

    default_dtype: torch.dtype
    flush_denormal: bool
    machine: str


def _flush_denormal_enabled() -> bool:
    probe = torch.tensor(_SMALLEST_NORMAL, dtype=torch.float64) * 0.5
    return bool(probe == 0)


def _warn_x87(machine: str) -> None:
    global _x87_warned
    if _x87_warned:
        return
    _x87_warned = True
    logger.warning(
        "Running on %s: the x87 rounding precision cannot be changed from Python, "
        "double-double results may lose their last bits.",
        machine,
    )


def acquire() -> PrecisionToken:
    token = PrecisionToken(
        default_dtype=torch.get_default_dtype(),
        flush_denormal=_flush_denormal_enabled(),
        machine=platform.machine().lower(),
    )
    torch.set_default_dtype(torch.float64)
    torch.set_flush_denormal(False)
    if token.machine in _X87_MACHINES:
        _warn_x87(token.machine)
    logger.debug(
        "Precision mode acquired (was dtype=%s, flush_denormal=%s)",
        token.default_dtype,
        token.flush_denormal,
    )
    return token


def restore(token: PrecisionToken) -> None:
    torch.set_default_dtype(token.default_dtype)
    torch.set_flush_denormal(token.flush_denormal)
    logger.debug(
        "Precision mode restored (dtype=%s, flush_denormal=%s)",
        token.default_dtype,
        token.flush_denormal,
    )


@contextmanager
def precision_mode() -> Iterator[PrecisionToken]:
    """
    Пример::

        with precision_mode():
            y = qdfx.exp(x)
    """
    token = acquire()
    try:
        yield token
    finally:
        restore(token)
