"""qdfx._transcendental
======================
Элементарные функции для DoubleDouble и QuadDouble.

Одна реализация обслуживает оба ранга; различаются только параметры
из `traits_for(k)` (ε, таблицы, число шагов Ньютона, предел ряда).

Все функции поэлементные. Ветвления исходных скалярных алгоритмов
выражены масками: общая ветвь считается на «санированном» входе,
а особые случаи подставляются через `where`. Итерации рядов Тейлора
идут, пока хотя бы один элемент не сошёлся; сошедшиеся элементы
больше не меняются, так что результат не зависит от состава batch.

Ошибки области определения дают NaN или бесконечность, исключений нет.
"""

from __future__ import annotations

from typing import Tuple

import torch

from ._constants import traits_for
from ._expansion import Expansion, implements
from ._ops import (
    _require_expansion,
    _unify_args,
    absolute,
    mul_pwr2,
    nint,
    npwr,
    ldexp,
    sqrt,
    square,
    where,
)

__all__ = [
    "exp",
    "log",
    "log10",
    "pow",
    "sin",
    "cos",
    "sincos",
    "tan",
    "atan2",
    "atan",
    "asin",
    "acos",
    "sinh",
    "cosh",
    "sincosh",
    "tanh",
    "asinh",
    "acosh",
    "atanh",
]

# exp: аргумент делится на 2⁹, затем девять раз возводится в квадрат
_EXP_K = 512.0
_EXP_SQUARINGS = 9
_EXP_UNDERFLOW = -709.0
_EXP_OVERFLOW = 709.0
# Граница перехода с ряда Тейлора на формулы через exp
_HYPERBOLIC_TAYLOR_LIMIT = 0.05
# tanh за этой границей равен ±1 во всех разрядах
_TANH_SATURATION = 350.0
_SINH_TAYLOR_MAX_TERMS = 64


def _table_entry(x: Expansion, table: torch.Tensor, index) -> Expansion:
    return type(x)(table.to(x.device)[index])


def _any(mask: torch.Tensor) -> bool:
    return bool(mask.any())


# -----------------------------------------------------------------------------
# Экспонента и логарифм
# -----------------------------------------------------------------------------

@implements(torch.exp, torch.Tensor.exp)
def exp(a: Expansion) -> Expansion:
    """
    exp(a) = 2^m · exp(r)^512, где m = round(a / ln 2), а
    |512·r| <= ln(2)/2. exp(r) - 1 считается рядом Тейлора, затем
    s ↦ 2s + s² девять раз и ldexp на m.
    """
    _require_expansion(a, "exp")
    cls = type(a)
    traits = traits_for(a.precision_k)
    hi = a.components[..., 0]

    underflow = hi <= _EXP_UNDERFLOW
    overflow = hi >= _EXP_OVERFLOW
    zero = a.is_zero()
    one = a.is_one()
    nan = a.is_nan()
    regular = ~(underflow | overflow | zero | one | nan)
    x = where(regular, a, cls.ZERO)

    m = torch.floor(x.components[..., 0] / cls.LOG2.components[0] + 0.5)
    r = mul_pwr2(x - cls.LOG2 * m, 1.0 / _EXP_K)

    p = square(r)
    s = r + mul_pwr2(p, 0.5)
    p = p * r
    t = p * _table_entry(a, traits.inv_fact, 0)
    thresh = (1.0 / _EXP_K) * traits.eps
    active = torch.ones_like(regular)
    i = 0
    while True:
        s = where(active, s + t, s)
        p = where(active, p * r, p)
        i += 1
        t = where(active, p * _table_entry(a, traits.inv_fact, i), t)
        active = active & (torch.abs(t.components[..., 0]) > thresh) & (i < traits.exp_terms)
        if not _any(active):
            break
    s = s + t

    for _ in range(_EXP_SQUARINGS):
        s = mul_pwr2(s, 2.0) + square(s)
    s = s + 1.0
    result = ldexp(s, m.to(torch.int64))

    result = where(underflow, cls.ZERO, result)
    result = where(overflow, cls.INF, result)
    result = where(zero, cls.ONE, result)
    result = where(one, cls.E, result)
    return where(nan, cls.NAN, result)


@implements(torch.log, torch.Tensor.log)
def log(a: Expansion) -> Expansion:
    """
    Натуральный логарифм: шаги Ньютона для f(x) = exp(x) - a,
    x' = x + a·exp(-x) - 1, от начального log(a.hi) в double.
    """
    _require_expansion(a, "log")
    cls = type(a)
    traits = traits_for(a.precision_k)
    hi = a.components[..., 0]

    one = a.is_one()
    regular = (hi > 0) & torch.isfinite(hi) & ~one
    x_in = where(regular, a, cls.ONE)

    x = cls.from_float(torch.log(x_in.components[..., 0]))
    for _ in range(traits.log_passes):
        x = x + x_in * exp(-x) - 1.0

    result = where(one, cls.ZERO, x)
    result = where(torch.isposinf(hi), cls.INF, result)
    return where(~regular & ~one & ~torch.isposinf(hi), cls.NAN, result)


@implements(torch.log10, torch.Tensor.log10)
def log10(a: Expansion) -> Expansion:
    return log(a) / type(a).LOG10


@implements(torch.pow, torch.Tensor.pow)
def pow(a, b) -> Expansion:
    """
    a^b. Целый показатель (int Python) — бинарное возведение `npwr`,
    иначе exp(b·log a).
    """
    if isinstance(a, Expansion) and isinstance(b, int) and not isinstance(b, bool):
        return npwr(a, b)
    ac, bc, cls = _unify_args(a, b)
    return exp(cls(bc) * log(cls(ac)))


# -----------------------------------------------------------------------------
# Тригонометрия
# -----------------------------------------------------------------------------

def _sin_taylor(a: Expansion) -> Expansion:
    """sin(a) рядом Тейлора, |a| <= π/32."""
    traits = traits_for(a.precision_k)
    n = traits.inv_fact.shape[0]
    thresh = 0.5 * torch.abs(a.components[..., 0]) * traits.eps

    x = -square(a)
    s = a
    r = a
    i = 0
    active = torch.ones(a.shape, dtype=torch.bool, device=a.device)
    while True:
        r = where(active, r * x, r)
        t = r * _table_entry(a, traits.inv_fact, i)
        s = where(active, s + t, s)
        i += 2
        active = active & (torch.abs(t.components[..., 0]) > thresh)
        if i >= n or not _any(active):
            break
    return where(a.is_zero(), type(a).ZERO, s)


def _cos_taylor(a: Expansion) -> Expansion:
    """cos(a) рядом Тейлора, |a| <= π/32."""
    cls = type(a)
    traits = traits_for(a.precision_k)
    n = traits.inv_fact.shape[0]
    thresh = 0.5 * traits.eps

    x = -square(a)
    r = x
    s = 1.0 + mul_pwr2(r, 0.5)
    i = 1
    active = torch.ones(a.shape, dtype=torch.bool, device=a.device)
    while True:
        r = where(active, r * x, r)
        t = r * _table_entry(a, traits.inv_fact, i)
        s = where(active, s + t, s)
        i += 2
        active = active & (torch.abs(t.components[..., 0]) > thresh)
        if i >= n or not _any(active):
            break
    return where(a.is_zero(), cls.ONE, s)


def _sincos_taylor(a: Expansion) -> Tuple[Expansion, Expansion]:
    sin_a = _sin_taylor(a)
    cos_a = sqrt(1.0 - square(sin_a))
    return sin_a, where(a.is_zero(), type(a).ONE, cos_a)


def _reduce(a: Expansion):
    """
    Приводит аргумент: a = t + j·π/2 + k·π/16 (по модулю 2π), |t| <= π/32.
    Возвращает (t, j, k, failed); failed — приведение не удалось.
    """
    cls = type(a)
    z = nint(a / cls.TWO_PI)
    r = a - cls.TWO_PI * z

    q = torch.floor(r.components[..., 0] / cls.PI_OVER_2.components[0] + 0.5)
    t = r - cls.PI_OVER_2 * q
    j = q
    q = torch.floor(t.components[..., 0] / cls.PI_OVER_16.components[0] + 0.5)
    t = t - cls.PI_OVER_16 * q
    k = q

    failed = ~(torch.abs(j) <= 2) | ~(torch.abs(k) <= 4)
    j = torch.where(failed, torch.zeros_like(j), j)
    k = torch.where(failed, torch.zeros_like(k), k)
    t = where(failed, cls.ZERO, t)
    return t, j, k, failed


def _rotate(t: Expansion, k: torch.Tensor) -> Tuple[Expansion, Expansion]:
    """sin и cos от (t + k·π/16) по таблицам sin/cos(|k|·π/16)."""
    traits = traits_for(t.precision_k)
    sin_t, cos_t = _sincos_taylor(t)
    idx = (torch.abs(k) - 1).clamp(min=0).to(torch.int64)
    u = _table_entry(t, traits.cos_table, idx)
    v = _table_entry(t, traits.sin_table, idx)

    positive = k > 0
    s = where(positive, u * sin_t + v * cos_t, u * sin_t - v * cos_t)
    c = where(positive, u * cos_t - v * sin_t, u * cos_t + v * sin_t)
    no_shift = k == 0
    return where(no_shift, sin_t, s), where(no_shift, cos_t, c)


def _quadrant(j: torch.Tensor, s: Expansion, c: Expansion) -> Tuple[Expansion, Expansion]:
    """Поворот на j·π/2: возвращает (sin, cos)."""
    sin_a = where(j == 0, s, where(j == 1, c, where(j == -1, -c, -s)))
    cos_a = where(j == 0, c, where(j == 1, -s, where(j == -1, s, -c)))
    return sin_a, cos_a


@implements(torch.sin, torch.Tensor.sin)
def sin(a: Expansion) -> Expansion:
    _require_expansion(a, "sin")
    cls = type(a)
    t, j, k, failed = _reduce(a)

    # k == 0: прямые ряды для sin и cos
    sin_direct, _ = _quadrant(j, _sin_taylor(t), _cos_taylor(t))
    sin_shifted, _ = _quadrant(j, *_rotate(t, k))

    result = where(k == 0, sin_direct, sin_shifted)
    result = where(failed, cls.NAN, result)
    return where(a.is_zero(), cls.ZERO, result)


@implements(torch.cos, torch.Tensor.cos)
def cos(a: Expansion) -> Expansion:
    _require_expansion(a, "cos")
    cls = type(a)
    t, j, k, failed = _reduce(a)

    _, cos_direct = _quadrant(j, _sin_taylor(t), _cos_taylor(t))
    _, cos_shifted = _quadrant(j, *_rotate(t, k))

    result = where(k == 0, cos_direct, cos_shifted)
    result = where(failed, cls.NAN, result)
    return where(a.is_zero(), cls.ONE, result)


def sincos(a: Expansion) -> Tuple[Expansion, Expansion]:
    """(sin a, cos a) за одно приведение; cos = sqrt(1 - sin²) всегда."""
    _require_expansion(a, "sincos")
    cls = type(a)
    t, j, k, failed = _reduce(a)
    sin_a, cos_a = _quadrant(j, *_rotate(t, k))

    sin_a = where(failed, cls.NAN, sin_a)
    cos_a = where(failed, cls.NAN, cos_a)
    zero = a.is_zero()
    return where(zero, cls.ZERO, sin_a), where(zero, cls.ONE, cos_a)


@implements(torch.tan, torch.Tensor.tan)
def tan(a: Expansion) -> Expansion:
    s, c = sincos(a)
    return s / c


@implements(torch.atan2, torch.arctan2, torch.Tensor.atan2)
def atan2(y, x) -> Expansion:
    """
    Угол точки (x, y). Шаги Ньютона для sin(z) = y/r (если |x| > |y|)
    или cos(z) = x/r, r = sqrt(x² + y²), от начального atan2 в double.
    atan2(0, 0) даёт NaN.
    """
    yc, xc, cls = _unify_args(y, x)
    y, x = cls(yc), cls(xc)
    traits = traits_for(y.precision_k)

    x_zero = x.is_zero()
    y_zero = y.is_zero()
    diagonal = x == y
    anti_diagonal = x == -y
    special = x_zero | y_zero | diagonal | anti_diagonal

    y_safe = where(special, cls.ONE, y)
    x_safe = where(special, 2.0, x)
    r = sqrt(square(x_safe) + square(y_safe))
    xx = x_safe / r
    yy = y_safe / r

    z = cls.from_float(torch.atan2(y_safe.components[..., 0], x_safe.components[..., 0]))
    use_sin = torch.abs(xx.components[..., 0]) > torch.abs(yy.components[..., 0])
    for _ in range(traits.atan2_passes):
        sin_z, cos_z = sincos(z)
        z = where(use_sin, z + (yy - sin_z) / cos_z, z - (xx - cos_z) / sin_z)

    y_positive = y.is_positive()
    result = where(anti_diagonal, where(y_positive, cls.THREE_PI_OVER_4, -cls.PI_OVER_4), z)
    result = where(diagonal, where(y_positive, cls.PI_OVER_4, -cls.THREE_PI_OVER_4), result)
    result = where(y_zero, where(x.is_positive(), cls.ZERO, cls.PI), result)
    result = where(x_zero, where(y_positive, cls.PI_OVER_2, -cls.PI_OVER_2), result)
    return where(x_zero & y_zero, cls.NAN, result)


@implements(torch.atan, torch.arctan, torch.Tensor.atan)
def atan(a: Expansion) -> Expansion:
    return atan2(a, type(a).ONE)


@implements(torch.asin, torch.arcsin, torch.Tensor.asin)
def asin(a: Expansion) -> Expansion:
    """arcsin; |a| > 1 даёт NaN."""
    cls = type(a)
    abs_a = absolute(a)
    outside = abs_a > 1.0
    edge = abs_a.is_one()
    inner = where(outside | edge, cls.ZERO, a)

    result = atan2(inner, sqrt(1.0 - square(inner)))
    result = where(edge, where(a.is_positive(), cls.PI_OVER_2, -cls.PI_OVER_2), result)
    return where(outside, cls.NAN, result)


@implements(torch.acos, torch.arccos, torch.Tensor.acos)
def acos(a: Expansion) -> Expansion:
    """arccos; |a| > 1 даёт NaN."""
    cls = type(a)
    abs_a = absolute(a)
    outside = abs_a > 1.0
    edge = abs_a.is_one()
    inner = where(outside | edge, cls.ZERO, a)

    result = atan2(sqrt(1.0 - square(inner)), inner)
    result = where(edge, where(a.is_positive(), cls.ZERO, cls.PI), result)
    return where(outside, cls.NAN, result)


# -----------------------------------------------------------------------------
# Гиперболические функции
# -----------------------------------------------------------------------------

def _sinh_taylor(a: Expansion) -> Expansion:
    eps = traits_for(a.precision_k).eps
    s = a
    t = a
    r = square(t)
    m = 1.0
    thresh = torch.abs(a.components[..., 0] * eps)
    active = torch.ones(a.shape, dtype=torch.bool, device=a.device)
    for _ in range(_SINH_TAYLOR_MAX_TERMS):
        m += 2.0
        t = where(active, t * r / ((m - 1) * m), t)
        s = where(active, s + t, s)
        active = active & (absolute(t) > thresh)
        if not _any(active):
            break
    return s


@implements(torch.sinh, torch.Tensor.sinh)
def sinh(a: Expansion) -> Expansion:
    """sinh; при |a| <= 0.05 — ряд Тейлора (без сокращения)."""
    _require_expansion(a, "sinh")
    cls = type(a)
    large = absolute(a) > _HYPERBOLIC_TAYLOR_LIMIT

    ea = exp(where(large, a, cls.ONE))
    via_exp = mul_pwr2(ea - 1.0 / ea, 0.5)
    via_series = _sinh_taylor(where(large, cls.ZERO, a))

    result = where(large, via_exp, via_series)
    return where(a.is_zero(), cls.ZERO, result)


@implements(torch.cosh, torch.Tensor.cosh)
def cosh(a: Expansion) -> Expansion:
    _require_expansion(a, "cosh")
    cls = type(a)
    ea = exp(a)
    result = mul_pwr2(ea + 1.0 / ea, 0.5)
    return where(a.is_zero(), cls.ONE, result)


@implements(torch.tanh, torch.Tensor.tanh)
def tanh(a: Expansion) -> Expansion:
    _require_expansion(a, "tanh")
    cls = type(a)
    hi = a.components[..., 0]
    large = torch.abs(hi) > _HYPERBOLIC_TAYLOR_LIMIT
    saturated = torch.abs(hi) > _TANH_SATURATION

    ea = exp(where(large & ~saturated, a, cls.ONE))
    inv_ea = 1.0 / ea
    via_exp = (ea - inv_ea) / (ea + inv_ea)

    small = where(large, cls.ZERO, a)
    s = sinh(small)
    via_sinh = s / sqrt(1.0 + square(s))

    result = where(large, via_exp, via_sinh)
    result = where(saturated, where(hi > 0, cls.ONE, -cls.ONE), result)
    return where(a.is_zero(), cls.ZERO, result)


def sincosh(a: Expansion) -> Tuple[Expansion, Expansion]:
    """(sinh a, cosh a) за одну экспоненту."""
    _require_expansion(a, "sincosh")
    cls = type(a)
    small = torch.abs(a.components[..., 0]) <= _HYPERBOLIC_TAYLOR_LIMIT

    s_small = sinh(where(small, a, cls.ZERO))
    c_small = sqrt(1.0 + square(s_small))

    ea = exp(where(small, cls.ONE, a))
    inv_ea = 1.0 / ea
    s_large = mul_pwr2(ea - inv_ea, 0.5)
    c_large = mul_pwr2(ea + inv_ea, 0.5)
    return where(small, s_small, s_large), where(small, c_small, c_large)


@implements(torch.asinh, torch.arcsinh, torch.Tensor.asinh)
def asinh(a: Expansion) -> Expansion:
    return log(a + sqrt(square(a) + 1.0))


@implements(torch.acosh, torch.arccosh, torch.Tensor.acosh)
def acosh(a: Expansion) -> Expansion:
    """acosh; a < 1 даёт NaN."""
    cls = type(a)
    below = a < 1.0
    x = where(below, cls.ONE, a)
    return where(below, cls.NAN, log(x + sqrt(square(x) - 1.0)))


@implements(torch.atanh, torch.arctanh, torch.Tensor.atanh)
def atanh(a: Expansion) -> Expansion:
    """atanh; |a| >= 1 даёт NaN."""
    cls = type(a)
    outside = absolute(a) >= 1.0
    x = where(outside, cls.ZERO, a)
    result = mul_pwr2(log((1.0 + x) / (1.0 - x)), 0.5)
    return where(outside, cls.NAN, result)
