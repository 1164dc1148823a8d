from __future__ import annotations

"""qdfx._core
=============
Примитивы «error-free transformation» (EFT), на которых строятся
оба движка — double-double и quad-double.

* two_sum / quick_two_sum — точное представление суммы
* two_diff / quick_two_diff — точное представление разности
* split — разбиение мантиссы на две половины (Dekker)
* two_prod / two_sqr — точное представление произведения и квадрата

Все операции работают покомпонентно на `torch.float64` тензорах
(с broadcasting) и возвращают пару (value, error) одинаковой формы.
Если округлённый результат бесконечен, ошибка равна 0; NaN
распространяется в обе части пары.
"""

from typing import Tuple

import torch

__all__ = [
    "two_sum",
    "quick_two_sum",
    "two_diff",
    "quick_two_diff",
    "split",
    "two_prod",
    "two_sqr",
    "SPLITTER",
    "SPLIT_THRESHOLD",
]

Pair = Tuple[torch.Tensor, torch.Tensor]

SPLITTER = 134217729.0  # 2^27 + 1
SPLIT_THRESHOLD = 6.69692879491417e299  # 2^996
_SPLIT_DOWN = 3.7252902984619140625e-09  # 2^-28
_SPLIT_UP = 268435456.0  # 2^28


def _check_float64(name: str, *tensors: torch.Tensor) -> None:
    for t in tensors:
        if not isinstance(t, torch.Tensor) or t.dtype != torch.float64:
            raise TypeError(f"{name} expects float64 tensors")


def _finite_error(s: torch.Tensor, e: torch.Tensor) -> torch.Tensor:
    # У бесконечного результата нет осмысленной ошибки округления
    return torch.where(torch.isinf(s), torch.zeros_like(e), e)


def two_sum(a: torch.Tensor, b: torch.Tensor) -> Pair:
    """Двойная сумма (Knuth).

    Возвращает `(s, e)` такие, что `a + b == s + e` *точно*,
    где `s` — округлённая сумма. Порядок величин не важен.
    """
    _check_float64("two_sum", a, b)
    s = a + b
    bb = s - a
    e = (a - (s - bb)) + (b - bb)
    return s, _finite_error(s, e)


def quick_two_sum(a: torch.Tensor, b: torch.Tensor) -> Pair:
    """Быстрая двойная сумма (Dekker). Требует `|a| >= |b|`."""
    _check_float64("quick_two_sum", a, b)
    s = a + b
    e = b - (s - a)
    return s, _finite_error(s, e)


def two_diff(a: torch.Tensor, b: torch.Tensor) -> Pair:
    """Точная разность: `a - b == s + e`."""
    _check_float64("two_diff", a, b)
    s = a - b
    bb = s - a
    e = (a - (s - bb)) - (b + bb)
    return s, _finite_error(s, e)


def quick_two_diff(a: torch.Tensor, b: torch.Tensor) -> Pair:
    """Быстрая точная разность. Требует `|a| >= |b|`."""
    _check_float64("quick_two_diff", a, b)
    s = a - b
    e = (a - s) - b
    return s, _finite_error(s, e)


def split(a: torch.Tensor) -> Pair:
    """Разбивает `a` на `(hi, lo)` по 26 значащих бит в каждой части.

    Значения по модулю больше `SPLIT_THRESHOLD` сначала масштабируются
    на 2^-28, а половинки затем обратно на 2^28 — иначе `SPLITTER * a`
    переполняется.
    """
    _check_float64("split", a)
    big = torch.abs(a) > SPLIT_THRESHOLD
    scaled = torch.where(big, a * _SPLIT_DOWN, a)
    temp = SPLITTER * scaled
    hi = temp - (temp - scaled)
    lo = scaled - hi
    hi = torch.where(big, hi * _SPLIT_UP, hi)
    lo = torch.where(big, lo * _SPLIT_UP, lo)
    return hi, lo


def two_prod(a: torch.Tensor, b: torch.Tensor) -> Pair:
    """Двойное произведение (Dekker, Hida–Li–Bailey 2001).

    Возвращает `(p, e)` такие, что `a * b == p + e` *точно*.
    Используется разбиение через `split`, поэтому результат
    детерминирован и не зависит от наличия FMA на устройстве.
    """
    _check_float64("two_prod", a, b)
    p = a * b
    a_hi, a_lo = split(a)
    b_hi, b_lo = split(b)
    e = ((a_hi * b_hi - p) + a_hi * b_lo + a_lo * b_hi) + a_lo * b_lo
    return p, _finite_error(p, e)


def two_sqr(a: torch.Tensor) -> Pair:
    """Точный квадрат: `a * a == p + e`."""
    _check_float64("two_sqr", a)
    p = a * a
    hi, lo = split(a)
    e = ((hi * hi - p) + 2.0 * hi * lo) + lo * lo
    return p, _finite_error(p, e)
