"""qdfx._dd
==========
Ядра double-double: каждое принимает тензоры компонентов `[..., 2]`
(broadcast-совместимые) и возвращает новый канонический `[..., 2]`.

Варианты сложения и деления существуют в двух исполнениях
(«sloppy» и «accurate»); выбор между ними делает политика
арифметики (`qdfx._policy`), а не сами ядра.
"""

from __future__ import annotations

import torch

from ._core import quick_two_sum, two_diff, two_prod, two_sqr, two_sum
from ._renorm import renormalize_dd, settle_infinite

__all__ = [
    "add_sloppy",
    "add_ieee",
    "mul",
    "mul_double",
    "sqr",
    "sqr_double",
    "div_sloppy",
    "div_accurate",
    "div_double",
]


def add_sloppy(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """Быстрое сложение: младшие компоненты складываются без EFT.

    Теряет точность при сильном сокращении старших компонентов
    (ошибка — несколько ULP), зато примерно на 30% дешевле.
    """
    a0, a1 = a.unbind(-1)
    b0, b1 = b.unbind(-1)
    s, e = two_sum(a0, b0)
    e = e + (a1 + b1)
    return settle_infinite(renormalize_dd(s, e), a0 + b0)


def add_ieee(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """Сложение с IEEE-подобной границей ошибки (все ошибки учтены)."""
    a0, a1 = a.unbind(-1)
    b0, b1 = b.unbind(-1)
    s1, s2 = two_sum(a0, b0)
    t1, t2 = two_sum(a1, b1)
    s2 = s2 + t1
    s1, s2 = quick_two_sum(s1, s2)
    s2 = s2 + t2
    return settle_infinite(renormalize_dd(s1, s2), a0 + b0)


def mul(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    a0, a1 = a.unbind(-1)
    b0, b1 = b.unbind(-1)
    p1, p2 = two_prod(a0, b0)
    p2 = p2 + (a0 * b1 + a1 * b0)
    return settle_infinite(renormalize_dd(p1, p2), p1)


def mul_double(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """double-double × double."""
    a0, a1 = a.unbind(-1)
    p1, p2 = two_prod(a0, b)
    p2 = p2 + a1 * b
    return settle_infinite(renormalize_dd(p1, p2), p1)


def sqr(a: torch.Tensor) -> torch.Tensor:
    a0, a1 = a.unbind(-1)
    p1, p2 = two_sqr(a0)
    p2 = p2 + 2.0 * a0 * a1
    p2 = p2 + a1 * a1
    return settle_infinite(renormalize_dd(p1, p2), p1)


def sqr_double(a: torch.Tensor) -> torch.Tensor:
    """Точный квадрат обычного double в виде double-double."""
    p, e = two_sqr(a)
    return torch.stack((p, e), dim=-1)


def div_sloppy(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """Деление с одной поправкой к частному q1 = a.hi / b.hi.

    Деление на точный ноль даёт NaN: остаток a - q1·b не определён.
    """
    a0, a1 = a.unbind(-1)
    b0 = b[..., 0]
    q1 = a0 / b0
    r0, r1 = mul_double(b, q1).unbind(-1)
    s1, s2 = two_diff(a0, r0)
    s2 = s2 - r1
    s2 = s2 + a1
    q2 = (s1 + s2) / b0
    return renormalize_dd(q1, q2)


def div_accurate(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """Деление с тремя частичными частными (точная граница ошибки)."""
    b0 = b[..., 0]
    q1 = a[..., 0] / b0
    r = add_ieee(a, -mul_double(b, q1))
    q2 = r[..., 0] / b0
    r = add_ieee(r, -mul_double(b, q2))
    q3 = r[..., 0] / b0
    q1, q2 = quick_two_sum(q1, q2)
    tail = torch.stack((q3, torch.zeros_like(q3)), dim=-1)
    return add_ieee(torch.stack((q1, q2), dim=-1), tail)


def div_double(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """double-double / double — одинаково для обеих политик."""
    a0, a1 = a.unbind(-1)
    q1 = a0 / b
    p1, p2 = two_prod(q1, b)
    s, e = two_diff(a0, p1)
    e = e + a1
    e = e - p2
    q2 = (s + e) / b
    return renormalize_dd(q1, q2)
