"""qdfx._qd
==========
Ядра quad-double на тензорах компонентов `[..., 4]`.

Сложение, умножение и деление есть в двух исполнениях:

* sloppy — младшие перекрёстные члены учитываются в родной точности;
* accurate — все значимые ошибки переносятся через EFT.

Каждое ядро заканчивается каскадом `renorm`, поэтому результат всегда
каноничен. Выбор исполнения — забота `qdfx._policy`.
"""

from __future__ import annotations

from typing import Tuple

import torch

from ._core import quick_two_sum, two_prod, two_sum
from ._renorm import renorm, settle_infinite

__all__ = [
    "add_sloppy",
    "add_ieee",
    "mul_sloppy",
    "mul_accurate",
    "mul_double",
    "div_sloppy",
    "div_accurate",
]


def _three_sum(a, b, c) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    t1, t2 = two_sum(a, b)
    a, t3 = two_sum(c, t1)
    b, c = two_sum(t2, t3)
    return a, b, c


def _three_sum2(a, b, c) -> Tuple[torch.Tensor, torch.Tensor]:
    t1, t2 = two_sum(a, b)
    a, t3 = two_sum(c, t1)
    return a, t2 + t3


def add_sloppy(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """Покомпонентный two_sum с накоплением переносов через three_sum."""
    a, b = torch.broadcast_tensors(a, b)
    s0, t0 = two_sum(a[..., 0], b[..., 0])
    s1, t1 = two_sum(a[..., 1], b[..., 1])
    s2, t2 = two_sum(a[..., 2], b[..., 2])
    s3, t3 = two_sum(a[..., 3], b[..., 3])

    s1, t0 = two_sum(s1, t0)
    s2, t0, t1 = _three_sum(s2, t0, t1)
    s3, t0 = _three_sum2(s3, t0, t2)
    t0 = t0 + t1 + t3
    return settle_infinite(renorm(s0, s1, s2, s3, t0), s0)


def _quick_three_accum(u, v, t):
    """Добавляет `t` к аккумулятору двойной длины `(u, v)`.

    Возвращает `(s, u, v)`: `s` — вытолкнутый полный компонент или 0,
    если аккумулятор ещё не заполнен.
    """
    s, v = two_sum(v, t)
    s, u = two_sum(u, s)
    zu = u != 0
    zv = v != 0
    full = zu & zv
    # Аккумулятор не полон: сдвигаем значения вверх, наружу ничего не отдаём
    new_u = torch.where(full, u, s)
    new_v = torch.where(full | zv, v, u)
    out = torch.where(full, s, torch.zeros_like(s))
    return out, new_u, new_v


def add_ieee(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """Сложение слиянием: все восемь компонентов по убыванию модуля
    проходят через аккумулятор двойной длины; полностью накопленные
    значения выталкиваются в результат, остаток идёт в последний слот.
    """
    a, b = torch.broadcast_tensors(a, b)
    # Слияние двух убывающих по модулю списков = устойчивая сортировка;
    # при равных модулях первым берётся компонент b
    merged = torch.cat((b, a), dim=-1)
    order = torch.sort(torch.abs(merged), dim=-1, descending=True, stable=True).indices
    terms = merged.gather(-1, order).unbind(-1)

    u, v = quick_two_sum(terms[0], terms[1])
    out = torch.zeros_like(a)
    slot = torch.zeros(u.shape, dtype=torch.long, device=u.device)
    for t in terms[2:]:
        active = slot < 4
        s, nu, nv = _quick_three_accum(u, v, t)
        u = torch.where(active, nu, u)
        v = torch.where(active, nv, v)
        emit = active & (s != 0)
        idx = slot.clamp(max=3).unsqueeze(-1)
        out = torch.where(emit.unsqueeze(-1), out.scatter(-1, idx, s.unsqueeze(-1)), out)
        # Аккумулятор заполнен: остальные слагаемые идут в последний слот
        spill = torch.where(active, torch.zeros_like(t), t)
        out = out + torch.stack((torch.zeros_like(t),) * 3 + (spill,), dim=-1)
        slot = slot + emit.long()

    # Всё слито, а слотов хватило: дописываем содержимое аккумулятора
    rest = slot < 4
    idx = slot.clamp(max=3).unsqueeze(-1)
    out = torch.where(rest.unsqueeze(-1), out.scatter(-1, idx, u.unsqueeze(-1)), out)
    rest = slot < 3
    idx = (slot + 1).clamp(max=3).unsqueeze(-1)
    out = torch.where(rest.unsqueeze(-1), out.scatter(-1, idx, v.unsqueeze(-1)), out)

    result = renorm(*out.unbind(-1))
    return settle_infinite(result, a[..., 0] + b[..., 0])


def _products(a, b, pairs):
    return [two_prod(a[..., i], b[..., j]) for i, j in pairs]


def mul_sloppy(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """Умножение: точные произведения порядков 1, ε, ε²;
    члены порядка ε³ складываются в родной точности, ε⁴ отброшены.
    """
    a, b = torch.broadcast_tensors(a, b)
    (p0, q0), (p1, q1), (p2, q2), (p3, q3), (p4, q4), (p5, q5) = _products(
        a, b, [(0, 0), (0, 1), (1, 0), (0, 2), (1, 1), (2, 0)]
    )

    p1, p2, q0 = _three_sum(p1, p2, q0)

    # (p2, q1, q2) + (p3, p4, p5)
    p2, q1, q2 = _three_sum(p2, q1, q2)
    p3, p4, p5 = _three_sum(p3, p4, p5)
    s0, t0 = two_sum(p2, p3)
    s1, t1 = two_sum(q1, p4)
    s2 = q2 + p5
    s1, t0 = two_sum(s1, t0)
    s2 = s2 + (t0 + t1)

    # Члены порядка ε³
    s1 = s1 + (
        a[..., 0] * b[..., 3] + a[..., 1] * b[..., 2] + a[..., 2] * b[..., 1] + a[..., 3] * b[..., 0]
        + q0 + q3 + q4 + q5
    )
    return settle_infinite(renorm(p0, p1, s0, s1, s2), p0)


def mul_accurate(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """Умножение: члены порядка ε³ точно через two_prod,
    порядка ε⁴ — в родной точности.
    """
    a, b = torch.broadcast_tensors(a, b)
    (p0, q0), (p1, q1), (p2, q2), (p3, q3), (p4, q4), (p5, q5) = _products(
        a, b, [(0, 0), (0, 1), (1, 0), (0, 2), (1, 1), (2, 0)]
    )

    p1, p2, q0 = _three_sum(p1, p2, q0)

    p2, q1, q2 = _three_sum(p2, q1, q2)
    p3, p4, p5 = _three_sum(p3, p4, p5)
    s0, t0 = two_sum(p2, p3)
    s1, t1 = two_sum(q1, p4)
    s2 = q2 + p5
    s1, t0 = two_sum(s1, t0)
    s2 = s2 + (t0 + t1)

    (p6, q6), (p7, q7), (p8, q8), (p9, q9) = _products(a, b, [(0, 3), (1, 2), (2, 1), (3, 0)])

    # Девять слагаемых порядка ε³: q0, s1, q3, q4, q5, p6, p7, p8, p9
    q0, q3 = two_sum(q0, q3)
    q4, q5 = two_sum(q4, q5)
    p6, p7 = two_sum(p6, p7)
    p8, p9 = two_sum(p8, p9)
    t0, t1 = two_sum(q0, q4)
    t1 = t1 + (q3 + q5)
    r0, r1 = two_sum(p6, p8)
    r1 = r1 + (p7 + p9)
    q3, q4 = two_sum(t0, r0)
    q4 = q4 + (t1 + r1)
    t0, t1 = two_sum(q3, s1)
    t1 = t1 + q4

    # Порядок ε⁴
    t1 = t1 + (
        a[..., 1] * b[..., 3] + a[..., 2] * b[..., 2] + a[..., 3] * b[..., 1]
        + q6 + q7 + q8 + q9 + s2
    )
    return settle_infinite(renorm(p0, p1, s0, t0, t1), p0)


def mul_double(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """quad-double × double (используется делением)."""
    p0, q0 = two_prod(a[..., 0], b)
    p1, q1 = two_prod(a[..., 1], b)
    p2, q2 = two_prod(a[..., 2], b)
    p3 = a[..., 3] * b

    s0 = p0
    s1, s2 = two_sum(q0, p1)
    s2, q1, p2 = _three_sum(s2, q1, p2)
    q1, q2 = _three_sum2(q1, q2, p3)
    s3 = q1
    s4 = q2 + p2
    return settle_infinite(renorm(s0, s1, s2, s3, s4), p0)


def _long_division(a: torch.Tensor, b: torch.Tensor, digits: int, add) -> torch.Tensor:
    b0 = b[..., 0]
    q = [a[..., 0] / b0]
    r = add(a, -mul_double(b, q[0]))
    for _ in range(digits - 1):
        q.append(r[..., 0] / b0)
        if len(q) < digits:
            r = add(r, -mul_double(b, q[-1]))
    return renorm(*q)


def div_sloppy(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """Деление «в столбик»: четыре частичных частных q0..q3."""
    a, b = torch.broadcast_tensors(a, b)
    return _long_division(a, b, 4, add_sloppy)


def div_accurate(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """Деление с пятым частичным частным и точным сложением."""
    a, b = torch.broadcast_tensors(a, b)
    return _long_division(a, b, 5, add_ieee)
