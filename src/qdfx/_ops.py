from __future__ import annotations

"""qdfx._ops
===========
Арифметика expansion, перехватываемая через ``__torch_function__``.

Каждая функция принимает Expansion, float64-тензоры или числа Python
(хотя бы один аргумент — Expansion) и возвращает новое значение.
Операнды разных рангов приводятся к старшему рангу расширением нулями
(double = 1, DoubleDouble = 2, QuadDouble = 4).
"""

from typing import Tuple, Union

import torch

from . import _dd, _qd, _rounding
from ._constants import traits_for
from ._core import two_sum
from ._expansion import Expansion, expansion_type, implements
from ._policy import active_policy
from ._renorm import renormalize

__all__ = [
    "neg",
    "absolute",
    "add",
    "sub",
    "mul",
    "div",
    "square",
    "reciprocal",
    "sqrt",
    "npwr",
    "nroot",
    "mul_pwr2",
    "ldexp",
    "floor",
    "ceil",
    "aint",
    "nint",
    "rem",
    "divrem",
    "fmod",
    "remainder",
    "floor_divide",
    "eq",
    "ne",
    "lt",
    "le",
    "gt",
    "ge",
    "minimum",
    "maximum",
    "clamp",
    "where",
    "isnan",
    "isinf",
    "isfinite",
    "sign",
]

Operand = Union[Expansion, torch.Tensor, float, int]


# -----------------------------------------------------------------------------
# Вспомогательные утилиты
# -----------------------------------------------------------------------------

def _rank(x: Operand) -> int:
    return x.precision_k if isinstance(x, Expansion) else 1


def _native(x, device) -> torch.Tensor:
    if isinstance(x, bool) or not isinstance(x, (torch.Tensor, int, float)):
        raise TypeError(f"Unsupported operand type: {type(x).__name__}")
    return torch.as_tensor(x, dtype=torch.float64, device=device)


def _components_of(x: Operand, k: int, device) -> torch.Tensor:
    if isinstance(x, Expansion):
        return x.components if x.precision_k == k else renormalize(x.components, k)
    return renormalize(_native(x, device).unsqueeze(-1), k)


def _unify_args(x: Operand, y: Operand) -> Tuple[torch.Tensor, torch.Tensor, type]:
    """Приводит оба аргумента к тензорам компонентов одного ранга и формы."""
    if not isinstance(x, Expansion) and not isinstance(y, Expansion):
        raise TypeError("At least one argument must be an Expansion.")
    k = max(_rank(x), _rank(y))
    device = (x if isinstance(x, Expansion) else y).device
    xc = _components_of(x, k, device)
    yc = _components_of(y, k, device)

    final_shape = torch.broadcast_shapes(xc.shape[:-1], yc.shape[:-1])
    return xc.expand(final_shape + (k,)), yc.expand(final_shape + (k,)), expansion_type(k)


def _require_expansion(x, name: str) -> Expansion:
    if not isinstance(x, Expansion):
        raise TypeError(f"{name} expects a DoubleDouble or QuadDouble, got {type(x).__name__}")
    return x


def _square_components(c: torch.Tensor) -> torch.Tensor:
    if c.shape[-1] == 2:
        return _dd.sqr(c)
    return active_policy().mul(4)(c, c)


def _full_like(x: Expansion, value: float) -> Expansion:
    return type(x).from_float(torch.full(x.shape, value, dtype=torch.float64, device=x.device))


# -----------------------------------------------------------------------------
# Сложение, умножение, деление
# -----------------------------------------------------------------------------

@implements(torch.neg, torch.negative, torch.Tensor.neg)
def neg(x: Expansion) -> Expansion:
    return type(x)(-x.components)


@implements(torch.abs, torch.absolute, torch.Tensor.abs)
def absolute(x: Expansion) -> Expansion:
    negative = (x.components[..., 0] < 0).unsqueeze(-1)
    return type(x)(torch.where(negative, -x.components, x.components))


@implements(torch.add, torch.Tensor.add, torch.Tensor.__add__)
def add(x: Operand, y: Operand, *, alpha=1) -> Expansion:
    """Сложение по текущей политике (sloppy или accurate)."""
    if alpha != 1:
        y = mul(y, alpha)
    xc, yc, cls = _unify_args(x, y)
    return cls(active_policy().add(xc.shape[-1])(xc, yc))


@implements(torch.sub, torch.subtract, torch.Tensor.sub, torch.Tensor.__sub__)
def sub(x: Operand, y: Operand, *, alpha=1) -> Expansion:
    if alpha != 1:
        y = mul(y, alpha)
    xc, yc, cls = _unify_args(x, y)
    return cls(active_policy().add(xc.shape[-1])(xc, -yc))


def _mul_native(x: Expansion, d) -> Expansion:
    d = _native(d, x.device)
    shape = torch.broadcast_shapes(x.shape, d.shape)
    k = x.precision_k
    kernel = _dd.mul_double if k == 2 else _qd.mul_double
    return type(x)(kernel(x.components.expand(shape + (k,)), d.expand(shape)))


@implements(torch.mul, torch.multiply, torch.Tensor.mul, torch.Tensor.__mul__)
def mul(x: Operand, y: Operand) -> Expansion:
    """Умножение; на обычный double — специализированное ядро."""
    if isinstance(x, Expansion) and not isinstance(y, Expansion):
        return _mul_native(x, y)
    if isinstance(y, Expansion) and not isinstance(x, Expansion):
        return _mul_native(y, x)
    xc, yc, cls = _unify_args(x, y)
    return cls(active_policy().mul(xc.shape[-1])(xc, yc))


@implements(torch.div, torch.divide, torch.true_divide, torch.Tensor.div, torch.Tensor.__truediv__)
def div(x: Operand, y: Operand, *, rounding_mode=None) -> Expansion:
    """Деление. Деление на точный ноль даёт NaN."""
    if rounding_mode == "floor":
        return floor_divide(x, y)
    if rounding_mode == "trunc":
        return aint(div(x, y))
    if rounding_mode is not None:
        raise ValueError(f"Unsupported rounding_mode: {rounding_mode!r}")

    if isinstance(x, Expansion) and x.precision_k == 2 and not isinstance(y, Expansion):
        d = _native(y, x.device)
        shape = torch.broadcast_shapes(x.shape, d.shape)
        xc = x.components.expand(shape + (2,))
        yc = renormalize(d.expand(shape).unsqueeze(-1), 2)
        quotient = _dd.div_double(xc, d.expand(shape))
        cls = type(x)
    else:
        xc, yc, cls = _unify_args(x, y)
        quotient = active_policy().div(xc.shape[-1])(xc, yc)

    # Конечное / бесконечное: ±0 вместо NaN из остатка q·b
    vanishing = (torch.isfinite(xc[..., 0]) & torch.isinf(yc[..., 0])).unsqueeze(-1)
    return cls(torch.where(vanishing, torch.zeros_like(quotient), quotient))


@implements(torch.square, torch.Tensor.square)
def square(x: Expansion) -> Expansion:
    return type(x)(_square_components(x.components))


@implements(torch.reciprocal, torch.Tensor.reciprocal)
def reciprocal(x: Expansion) -> Expansion:
    return div(1.0, x)


def mul_pwr2(x: Expansion, d) -> Expansion:
    """Умножение на степень двойки `d` (точно, покомпонентно)."""
    d = _native(d, x.device)
    return type(x)(x.components * d.unsqueeze(-1))


@implements(torch.ldexp, torch.Tensor.ldexp)
def ldexp(x: Expansion, n) -> Expansion:
    """x · 2ⁿ. Показатель делится пополам, чтобы 2ⁿ не переполнялся."""
    n = torch.as_tensor(n, dtype=torch.int64, device=x.device).unsqueeze(-1)
    half = torch.div(n, 2, rounding_mode="floor")
    scaled = x.components * torch.pow(2.0, half.to(torch.float64))
    return type(x)(scaled * torch.pow(2.0, (n - half).to(torch.float64)))


# -----------------------------------------------------------------------------
# Корни и степени
# -----------------------------------------------------------------------------

@implements(torch.sqrt, torch.Tensor.sqrt)
def sqrt(x: Expansion) -> Expansion:
    """
    Квадратный корень. Отрицательный аргумент даёт NaN, ±0 — тот же ноль.

    DoubleDouble: один шаг Карпа  sqrt(a) ≈ a·x + [a - (a·x)²]·x/2,
    где x = 1/sqrt(a.hi). QuadDouble: итерации Ньютона для 1/sqrt(a).
    """
    _require_expansion(x, "sqrt")
    cls = type(x)
    k = x.precision_k
    hi = x.components[..., 0]
    valid = (hi > 0) & torch.isfinite(hi)
    safe = where(valid, x, cls.ONE)
    safe_hi = safe.components[..., 0]

    r = 1.0 / torch.sqrt(safe_hi)
    if k == 2:
        ax = safe_hi * r
        residual = sub(safe, cls(_dd.sqr_double(ax)))
        s, e = two_sum(ax, residual.components[..., 0] * (r * 0.5))
        result = cls(torch.stack((s, e), dim=-1))
    else:
        h = mul_pwr2(safe, 0.5)
        r = cls.from_float(r)
        for _ in range(traits_for(k).sqrt_passes):
            r = r + (0.5 - h * square(r)) * r
        result = r * safe

    result = where(hi == 0, x, result)
    result = where(torch.isposinf(hi), cls.INF, result)
    return where(~valid & ~(hi == 0) & ~torch.isposinf(hi), cls.NAN, result)


def npwr(x: Expansion, n: int) -> Expansion:
    """Целая степень бинарным возведением; 0⁰ даёт NaN."""
    _require_expansion(x, "npwr")
    cls = type(x)
    if n == 0:
        return where(x.is_zero(), cls.NAN, cls.ONE.expand(x.shape))

    r = x
    s = None
    big_n = abs(n)
    if big_n > 1:
        while big_n > 0:
            if big_n % 2 == 1:
                s = r if s is None else s * r
            big_n //= 2
            if big_n > 0:
                r = square(r)
    else:
        s = r

    if n < 0:
        return 1.0 / s
    return s


def nroot(x: Expansion, n: int) -> Expansion:
    """
    Корень n-й степени: итерация Ньютона для x⁻¹ᐟⁿ
    x' = x + x·(1 - a·xⁿ)/n, затем обращение.

    n <= 0 или чётный n при отрицательном аргументе дают NaN.
    """
    _require_expansion(x, "nroot")
    cls = type(x)
    if n <= 0:
        return _full_like(x, float("nan"))
    if n == 1:
        return x
    if n == 2:
        return sqrt(x)

    r = absolute(x)
    hi = r.components[..., 0]
    regular = (hi > 0) & torch.isfinite(hi)
    r = where(regular, r, cls.ONE)
    guess = torch.exp(-torch.log(r.components[..., 0]) / n)
    y = cls.from_float(guess)
    for _ in range(traits_for(x.precision_k).nroot_passes):
        y = y + y * (1.0 - r * npwr(y, n)) / float(n)
    y = where(x.is_negative(), -y, y)
    result = 1.0 / y

    result = where(x.is_infinite(), x, result)
    result = where(x.is_zero(), cls.ZERO, result)
    invalid = x.is_nan()
    if n % 2 == 0:
        invalid = invalid | x.is_negative()
    return where(invalid, cls.NAN, result)


# -----------------------------------------------------------------------------
# Округление и остатки
# -----------------------------------------------------------------------------

@implements(torch.floor, torch.Tensor.floor)
def floor(x: Expansion) -> Expansion:
    return type(x)(_rounding.floor(x.components))


@implements(torch.ceil, torch.Tensor.ceil)
def ceil(x: Expansion) -> Expansion:
    return type(x)(_rounding.ceil(x.components))


@implements(torch.trunc, torch.fix, torch.Tensor.trunc)
def aint(x: Expansion) -> Expansion:
    """Усечение к нулю."""
    return type(x)(_rounding.aint(x.components))


@implements(torch.round, torch.Tensor.round)
def nint(x: Expansion) -> Expansion:
    """Ближайшее целое; половины к +∞ (floor(x + 0.5))."""
    return type(x)(_rounding.nint(x.components))


def rem(x: Operand, y: Operand) -> Expansion:
    """x - nint(x/y)·y."""
    return sub(x, mul(nint(div(x, y)), y))


def divrem(x: Operand, y: Operand) -> Tuple[Expansion, Expansion]:
    """Пара (nint(x/y), x - nint(x/y)·y)."""
    n = nint(div(x, y))
    return n, sub(x, mul(n, y))


@implements(torch.fmod, torch.Tensor.fmod)
def fmod(x: Operand, y: Operand) -> Expansion:
    """x - aint(x/y)·y: знак остатка совпадает со знаком x."""
    return sub(x, mul(y, aint(div(x, y))))


@implements(torch.remainder, torch.Tensor.remainder)
def remainder(x: Operand, y: Operand) -> Expansion:
    """x - floor(x/y)·y: знак остатка совпадает со знаком y."""
    return sub(x, mul(y, floor(div(x, y))))


@implements(torch.floor_divide, torch.Tensor.floor_divide, torch.Tensor.__floordiv__)
def floor_divide(x: Operand, y: Operand) -> Expansion:
    return floor(div(x, y))


# -----------------------------------------------------------------------------
# Сравнения (лексикографически по компонентам)
# -----------------------------------------------------------------------------

def _lexicographic(x: Operand, y: Operand, strict_op, or_equal: bool) -> torch.Tensor:
    xc, yc, _ = _unify_args(x, y)
    result = torch.full(xc.shape[:-1], or_equal, dtype=torch.bool, device=xc.device)
    for i in range(xc.shape[-1] - 1, -1, -1):
        a, b = xc[..., i], yc[..., i]
        result = strict_op(a, b) | ((a == b) & result)
    return result


@implements(torch.eq, torch.Tensor.eq, torch.Tensor.__eq__)
def eq(x: Operand, y: Operand) -> torch.Tensor:
    xc, yc, _ = _unify_args(x, y)
    return (xc == yc).all(dim=-1)


@implements(torch.ne, torch.not_equal, torch.Tensor.ne, torch.Tensor.__ne__)
def ne(x: Operand, y: Operand) -> torch.Tensor:
    return ~eq(x, y)


@implements(torch.lt, torch.less, torch.Tensor.lt, torch.Tensor.__lt__)
def lt(x: Operand, y: Operand) -> torch.Tensor:
    return _lexicographic(x, y, torch.lt, False)


@implements(torch.le, torch.less_equal, torch.Tensor.le, torch.Tensor.__le__)
def le(x: Operand, y: Operand) -> torch.Tensor:
    return _lexicographic(x, y, torch.lt, True)


@implements(torch.gt, torch.greater, torch.Tensor.gt, torch.Tensor.__gt__)
def gt(x: Operand, y: Operand) -> torch.Tensor:
    return _lexicographic(x, y, torch.gt, False)


@implements(torch.ge, torch.greater_equal, torch.Tensor.ge, torch.Tensor.__ge__)
def ge(x: Operand, y: Operand) -> torch.Tensor:
    return _lexicographic(x, y, torch.gt, True)


@implements(torch.minimum, torch.Tensor.minimum)
def minimum(x: Operand, y: Operand) -> Expansion:
    """x, если x < y, иначе y."""
    xc, yc, cls = _unify_args(x, y)
    return cls(torch.where(lt(cls(xc), cls(yc)).unsqueeze(-1), xc, yc))


@implements(torch.maximum, torch.Tensor.maximum)
def maximum(x: Operand, y: Operand) -> Expansion:
    """x, если x > y, иначе y."""
    xc, yc, cls = _unify_args(x, y)
    return cls(torch.where(gt(cls(xc), cls(yc)).unsqueeze(-1), xc, yc))


@implements(torch.clamp, torch.clip, torch.Tensor.clamp)
def clamp(x: Expansion, min=None, max=None) -> Expansion:
    if min is not None:
        x = maximum(x, min)
    if max is not None:
        x = minimum(x, max)
    return x


@implements(torch.where)
def where(condition: torch.Tensor, x: Operand, y: Operand) -> Expansion:
    """Поэлементный выбор между x и y по bool-тензору."""
    xc, yc, cls = _unify_args(x, y)
    condition = torch.as_tensor(condition, dtype=torch.bool, device=xc.device)
    return cls(torch.where(condition.unsqueeze(-1), xc, yc))


# -----------------------------------------------------------------------------
# Классификация
# -----------------------------------------------------------------------------

@implements(torch.isnan, torch.Tensor.isnan)
def isnan(x: Expansion) -> torch.Tensor:
    return x.is_nan()


@implements(torch.isinf, torch.Tensor.isinf)
def isinf(x: Expansion) -> torch.Tensor:
    return x.is_infinite()


@implements(torch.isfinite, torch.Tensor.isfinite)
def isfinite(x: Expansion) -> torch.Tensor:
    return x.is_finite()


@implements(torch.sign, torch.Tensor.sign)
def sign(x: Expansion) -> torch.Tensor:
    return x.sign()
