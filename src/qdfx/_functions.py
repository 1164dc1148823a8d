"""qdfx._functions
================
Производные функции поверх основной библиотеки: обратные
тригонометрические и гиперболические функции, логарифмы по другим
основаниям, hypot, перевод углов и сравнение с допуском.
"""

from __future__ import annotations

from functools import lru_cache

import torch

from ._expansion import Expansion, implements
from ._ops import _unify_args, absolute, clamp, maximum, minimum, sqrt, square, where
from ._transcendental import acos, acosh, asin, asinh, atan, cos, log, sin, sinh, cosh, tan, tanh

__all__ = [
    "cot",
    "sec",
    "csc",
    "coth",
    "sech",
    "csch",
    "acot",
    "asec",
    "acsc",
    "acoth",
    "asech",
    "acsch",
    "log1p",
    "log2",
    "logn",
    "hypot",
    "rad_to_deg",
    "rad_to_grad",
    "rad_to_cycle",
    "deg_to_rad",
    "deg_to_grad",
    "deg_to_cycle",
    "grad_to_rad",
    "grad_to_deg",
    "grad_to_cycle",
    "cycle_to_rad",
    "cycle_to_deg",
    "cycle_to_grad",
    "same_value",
    "in_range",
    "ensure_range",
]


def cot(x: Expansion) -> Expansion:
    return 1.0 / tan(x)


def sec(x: Expansion) -> Expansion:
    return 1.0 / cos(x)


def csc(x: Expansion) -> Expansion:
    return 1.0 / sin(x)


def coth(x: Expansion) -> Expansion:
    return 1.0 / tanh(x)


def sech(x: Expansion) -> Expansion:
    return 1.0 / cosh(x)


def csch(x: Expansion) -> Expansion:
    return 1.0 / sinh(x)


def acot(x: Expansion) -> Expansion:
    """arccot; в нуле π/2."""
    cls = type(x)
    zero = x.is_zero()
    return where(zero, cls.PI_OVER_2, atan(1.0 / where(zero, cls.ONE, x)))


def asec(x: Expansion) -> Expansion:
    """arcsec; в нуле +∞."""
    cls = type(x)
    zero = x.is_zero()
    return where(zero, cls.INF, acos(1.0 / where(zero, cls.ONE, x)))


def acsc(x: Expansion) -> Expansion:
    """arccsc; в нуле +∞."""
    cls = type(x)
    zero = x.is_zero()
    return where(zero, cls.INF, asin(1.0 / where(zero, cls.ONE, x)))


def acoth(x: Expansion) -> Expansion:
    """arcoth = ½·ln((x+1)/(x-1)); в ±1 даёт ±∞."""
    cls = type(x)
    plus_one = x == 1.0
    minus_one = x == -1.0
    safe = where(plus_one | minus_one, 2.0, x)
    result = 0.5 * log((safe + 1.0) / (safe - 1.0))
    result = where(plus_one, cls.INF, result)
    return where(minus_one, cls.NEG_INF, result)


def asech(x: Expansion) -> Expansion:
    """arsech = arcosh(1/x); в нуле +∞."""
    cls = type(x)
    zero = x.is_zero()
    return where(zero, cls.INF, acosh(1.0 / where(zero, cls.ONE, x)))


def acsch(x: Expansion) -> Expansion:
    """arcsch = arsinh(1/x); в нуле +∞."""
    cls = type(x)
    zero = x.is_zero()
    return where(zero, cls.INF, asinh(1.0 / where(zero, cls.ONE, x)))


@implements(torch.log1p, torch.Tensor.log1p)
def log1p(x: Expansion) -> Expansion:
    return log(1.0 + x)


@implements(torch.log2, torch.Tensor.log2)
def log2(x: Expansion) -> Expansion:
    return log(x) / type(x).LOG2


def logn(base, x) -> Expansion:
    """Логарифм x по основанию base."""
    bc, xc, cls = _unify_args(base, x)
    return log(cls(xc)) / log(cls(bc))


@implements(torch.hypot, torch.Tensor.hypot)
def hypot(x, y) -> Expansion:
    """sqrt(x² + y²) как |y|·sqrt(1 + (x/y)²) при |x| <= |y|."""
    xc, yc, cls = _unify_args(x, y)
    ax = absolute(cls(xc))
    ay = absolute(cls(yc))
    swap = ax > ay
    ax, ay = where(swap, ay, ax), where(swap, ax, ay)

    zero = ax.is_zero()
    ratio = ax / where(zero, cls.ONE, ay)
    return where(zero, ay, ay * sqrt(1.0 + square(ratio)))


# -----------------------------------------------------------------------------
# Перевод углов: радианы, градусы, грады и обороты
# -----------------------------------------------------------------------------

@implements(torch.rad2deg, torch.Tensor.rad2deg)
def rad_to_deg(radians: Expansion) -> Expansion:
    return radians * type(radians).DEG_PER_RAD


def rad_to_grad(radians: Expansion) -> Expansion:
    return radians * (200.0 / type(radians).PI)


def rad_to_cycle(radians: Expansion) -> Expansion:
    return radians / type(radians).TWO_PI


@implements(torch.deg2rad, torch.Tensor.deg2rad)
def deg_to_rad(degrees: Expansion) -> Expansion:
    return degrees * type(degrees).PI_OVER_180


def deg_to_grad(degrees: Expansion) -> Expansion:
    return rad_to_grad(deg_to_rad(degrees))


def deg_to_cycle(degrees: Expansion) -> Expansion:
    return rad_to_cycle(deg_to_rad(degrees))


def grad_to_rad(grads: Expansion) -> Expansion:
    return grads * (type(grads).PI / 200.0)


def grad_to_deg(grads: Expansion) -> Expansion:
    return rad_to_deg(grad_to_rad(grads))


def grad_to_cycle(grads: Expansion) -> Expansion:
    return rad_to_cycle(grad_to_rad(grads))


def cycle_to_rad(cycles: Expansion) -> Expansion:
    return cycles * type(cycles).TWO_PI


def cycle_to_deg(cycles: Expansion) -> Expansion:
    return rad_to_deg(cycle_to_rad(cycles))


def cycle_to_grad(cycles: Expansion) -> Expansion:
    return rad_to_grad(cycle_to_rad(cycles))


# -----------------------------------------------------------------------------
# Сравнение с допуском и диапазоны
# -----------------------------------------------------------------------------

@lru_cache(maxsize=None)
def _resolution(cls) -> Expansion:
    from ._constants import traits_for
    from ._text import parse

    return parse(repr(traits_for(cls.COMPONENTS).resolution), cls)


def same_value(a, b, epsilon=0) -> torch.Tensor:
    """
    |a - b| <= epsilon. При epsilon = 0 допуск выбирается по
    величине операндов: max(min(|a|, |b|)·res, res), где res —
    1e-28 для DoubleDouble и 1e-59 для QuadDouble.
    """
    ac, bc, cls = _unify_args(a, b)
    a, b = cls(ac), cls(bc)
    if isinstance(epsilon, (int, float)) and epsilon == 0:
        res = _resolution(cls)
        epsilon = maximum(minimum(absolute(a), absolute(b)) * res, res)
    return absolute(a - b) <= epsilon


def in_range(value, low, high) -> torch.Tensor:
    """low <= value <= high."""
    vc, lc, cls = _unify_args(value, low)
    return (cls(lc) <= cls(vc)) & (cls(vc) <= high)


def ensure_range(value, low, high) -> Expansion:
    """Ближайшее к value значение из [low, high]."""
    return clamp(value, min=low, max=high)
