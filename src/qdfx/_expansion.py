"""qdfx._expansion
=================
Типы значений: базовый `Expansion` и его ранги `DoubleDouble` (2
компонента) и `QuadDouble` (4 компонента), а также их интеграция с
PyTorch через протокол ``__torch_function__``.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import torch
from mpmath import mp

from ._renorm import canonicalize, renormalize

# Глобальный диспатчер операций над expansion.
# Заполняется декоратором @implements в _ops.py и _transcendental.py
HANDLED_FUNCTIONS: Dict[Any, Any] = {}


def implements(*torch_functions):
    """Декоратор для регистрации реализаций функций torch."""
    def decorator(func):
        for torch_function in torch_functions:
            HANDLED_FUNCTIONS[torch_function] = func
        return func
    return decorator


def as_operand(value):
    """Приводит число Python/numpy к 0-мерному float64 тензору.

    Expansion и тензоры возвращаются как есть; для неподдерживаемых
    типов возвращается ``NotImplemented``.
    """
    if isinstance(value, (Expansion, torch.Tensor)):
        return value
    if isinstance(value, bool):
        return NotImplemented
    if isinstance(value, (int, float, np.integer, np.floating)):
        return torch.tensor(float(value), dtype=torch.float64)
    if isinstance(value, np.ndarray):
        return torch.as_tensor(value, dtype=torch.float64)
    return NotImplemented


_FORMAT_SPEC = re.compile(r"^(?:\.(?P<precision>\d+))?(?P<style>[fFeE])?$")


class Expansion:
    """
    Число повышенной точности: неперекрывающаяся сумма
    `COMPONENTS` чисел double, старший компонент первым.

    Это класс-обёртка вокруг torch.Tensor, а не его подкласс.
    Значение хранится как тензор компонентов [..., k]; все измерения,
    кроме последнего, — обычное поэлементное «batch»-измерение.
    Экземпляры неизменяемы: каждая операция возвращает новый объект.
    """

    COMPONENTS = 0
    NUM_DIGITS = 0

    __hash__ = None  # сравнения возвращают тензоры, как у torch

    def __init__(self, components: torch.Tensor):
        if not isinstance(components, torch.Tensor):
            raise TypeError("components must be a torch.Tensor")
        if components.dtype != torch.float64:
            raise TypeError("components tensor must be of type torch.float64")
        if components.ndim == 0 or components.shape[-1] != self.COMPONENTS:
            raise ValueError(
                f"{type(self).__name__} expects components of shape [..., {self.COMPONENTS}], "
                f"got {tuple(components.shape)}"
            )
        self.components = components

    # --- свойства ---
    @property
    def shape(self) -> torch.Size:
        """Форма значения без измерения компонентов."""
        return self.components.shape[:-1]

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def dtype(self):
        return self.components.dtype

    @property
    def device(self):
        return self.components.device

    @property
    def precision_k(self) -> int:
        """Количество компонентов (ранг)."""
        return self.components.shape[-1]

    @property
    def hi(self) -> torch.Tensor:
        """Старший компонент."""
        return self.components[..., 0]

    def numel(self) -> int:
        return self.hi.numel()

    # --- конструкторы ---
    @classmethod
    def from_float(cls, value, device=None) -> "Expansion":
        """Точное расширение нулями обычного double (или тензора double)."""
        tensor = torch.as_tensor(value, dtype=torch.float64, device=device)
        return cls(renormalize(tensor.unsqueeze(-1), cls.COMPONENTS))

    @classmethod
    def from_components(cls, *components, device=None) -> "Expansion":
        """Собирает значение из явного списка компонентов (старший первым).

        Недостающие младшие компоненты заполняются нулями, затем
        результат приводится к канонической форме: перекрывающиеся
        компоненты вроде ``(1.0, 1.0)`` дают ``[2.0, 0.0]``.
        """
        if not 1 <= len(components) <= cls.COMPONENTS:
            raise ValueError(f"{cls.__name__} takes 1..{cls.COMPONENTS} components, got {len(components)}")
        parts = torch.broadcast_tensors(
            *(torch.as_tensor(c, dtype=torch.float64, device=device) for c in components)
        )
        return cls(canonicalize(renormalize(torch.stack(parts, dim=-1), cls.COMPONENTS)))

    @classmethod
    def from_dirty(cls, tensor: torch.Tensor) -> "Expansion":
        """Создаёт значение из «грязного» потока слагаемых с ренормализацией."""
        if tensor.dtype != torch.float64:
            tensor = tensor.to(torch.float64)
        return cls(canonicalize(renormalize(tensor, cls.COMPONENTS)))

    @classmethod
    def from_mpmath(cls, values, mp_ctx=None, device=None) -> "Expansion":
        """
        Создаёт значение из mpmath.mpf (или последовательности mpf).
        Компоненты извлекаются жадно: каждый — ближайший double к
        остатку, который затем вычитается в точности контекста.
        """
        ctx = mp if mp_ctx is None else mp_ctx
        scalar = not isinstance(values, (list, tuple, np.ndarray))
        items = [values] if scalar else list(values)

        rows = []
        for x in items:
            residue = ctx.mpf(x)
            comps = []
            for _ in range(cls.COMPONENTS):
                c = float(residue)
                comps.append(c)
                if ctx.isfinite(residue):
                    residue -= ctx.mpf(c)
            rows.append(comps)

        target_device = device if device is not None else torch.device("cpu")
        components = torch.tensor(rows, dtype=torch.float64, device=target_device)
        if scalar:
            components = components.squeeze(0)
        return cls(canonicalize(components))

    @classmethod
    def from_string(cls, text: str, decimal_separator: Optional[str] = None) -> "Expansion":
        """Разбирает десятичную строку; некорректный ввод даёт NaN."""
        from ._text import parse

        return parse(text, cls, decimal_separator=decimal_separator)

    @classmethod
    def zeros(cls, *shape, device=None) -> "Expansion":
        return cls(torch.zeros(*shape, cls.COMPONENTS, dtype=torch.float64, device=device))

    @classmethod
    def ones(cls, *shape, device=None) -> "Expansion":
        return cls.from_float(torch.ones(*shape, dtype=torch.float64, device=device))

    # --- преобразования ---
    def to_float(self) -> torch.Tensor:
        """Старший компонент (ближайший double к значению)."""
        return self.components[..., 0].clone()

    def to_int(self) -> torch.Tensor:
        """Усечение старшего компонента к целому (int64)."""
        return torch.trunc(self.components[..., 0]).to(torch.int64)

    def to_mpmath(self, mp_ctx=None):
        """
        Точная сумма компонентов в mpmath. Для скаляра возвращает mpf,
        для batch — плоский список mpf.
        """
        ctx = mp if mp_ctx is None else mp_ctx
        rows = self.components.reshape(-1, self.precision_k).tolist()
        values = [ctx.fsum(ctx.mpf(c) for c in row) for row in rows]
        if self.ndim == 0:
            return values[0]
        return values

    def to_double_double(self) -> "Expansion":
        return DoubleDouble(canonicalize(renormalize(self.components, 2)))

    def to_quad_double(self) -> "Expansion":
        return QuadDouble(renormalize(self.components, 4))

    def item(self) -> float:
        return self.components[..., 0].item()

    def __float__(self) -> float:
        return float(self.components[..., 0])

    def __int__(self) -> int:
        return int(self.to_int())

    def __bool__(self) -> bool:
        return bool(~self.is_zero())

    # --- предикаты (поэлементно, bool-тензоры) ---
    def is_zero(self) -> torch.Tensor:
        return self.components[..., 0] == 0

    def is_one(self) -> torch.Tensor:
        return (self.components[..., 0] == 1) & (self.components[..., 1:] == 0).all(dim=-1)

    def is_positive(self) -> torch.Tensor:
        return self.components[..., 0] > 0

    def is_negative(self) -> torch.Tensor:
        return self.components[..., 0] < 0

    def is_nan(self) -> torch.Tensor:
        return torch.isnan(self.components).any(dim=-1)

    def is_infinite(self) -> torch.Tensor:
        return torch.isinf(self.components[..., 0])

    def is_finite(self) -> torch.Tensor:
        return torch.isfinite(self.components).all(dim=-1)

    def sign(self) -> torch.Tensor:
        """-1, 0 или 1 по знаку старшего компонента (NaN для NaN)."""
        return torch.sign(self.components[..., 0])

    # --- формы ---
    def reshape(self, *shape) -> "Expansion":
        if len(shape) == 1 and isinstance(shape[0], (tuple, list, torch.Size)):
            shape = tuple(shape[0])
        return type(self)(self.components.reshape(tuple(shape) + (self.precision_k,)))

    def view(self, *shape) -> "Expansion":
        # reshape вместо view: после transpose view может не сработать
        return self.reshape(*shape)

    def unsqueeze(self, dim: int) -> "Expansion":
        if dim < 0:
            dim += self.ndim + 1
        return type(self)(self.components.unsqueeze(dim))

    def squeeze(self, dim: int) -> "Expansion":
        if dim < 0:
            dim += self.ndim
        if not 0 <= dim < self.ndim:
            raise ValueError(f"Cannot squeeze the component dimension of {type(self).__name__}.")
        return type(self)(self.components.squeeze(dim))

    def transpose(self, dim0: int, dim1: int) -> "Expansion":
        if dim0 < 0:
            dim0 += self.ndim
        if dim1 < 0:
            dim1 += self.ndim
        return type(self)(self.components.transpose(dim0, dim1))

    def flatten(self) -> "Expansion":
        return self.reshape(-1)

    def expand(self, *shape) -> "Expansion":
        if len(shape) == 1 and isinstance(shape[0], (tuple, list, torch.Size)):
            shape = tuple(shape[0])
        return type(self)(self.components.expand(tuple(shape) + (self.precision_k,)))

    def __getitem__(self, index) -> "Expansion":
        if not isinstance(index, tuple):
            index = (index,)
        if any(i is Ellipsis for i in index):
            index = index + (slice(None),)
        return type(self)(self.components[index])

    def __len__(self) -> int:
        if self.ndim == 0:
            raise TypeError("len() of a 0-d value")
        return self.shape[0]

    def __iter__(self):
        for i in range(len(self)):
            yield self[i]

    # --- текстовое представление ---
    def __repr__(self) -> str:
        name = type(self).__name__
        if self.ndim == 0:
            return f"{name}('{self.format('scientific')}')"
        val_str = repr(self.to_float()).replace("tensor", name)
        return f"{val_str[:-1]}, k={self.precision_k})"

    def __str__(self) -> str:
        if self.ndim == 0:
            return self.format()
        return repr(self)

    def __format__(self, spec: str) -> str:
        if not spec:
            return str(self)
        match = _FORMAT_SPEC.match(spec)
        if match is None:
            raise ValueError(f"Invalid format specifier {spec!r} for {type(self).__name__}")
        style = "scientific" if (match.group("style") or "f").lower() == "e" else "fixed"
        precision = match.group("precision")
        return self.format(style, None if precision is None else int(precision))

    def format(self, style: str = "fixed", precision: Optional[int] = None,
               decimal_separator: Optional[str] = None) -> str:
        from ._text import format_value

        return format_value(self, style=style, precision=precision, decimal_separator=decimal_separator)

    # --- torch dispatch ---
    @classmethod
    def __torch_function__(cls, func, types, args=(), kwargs=None):
        if kwargs is None:
            kwargs = {}
        impl = HANDLED_FUNCTIONS.get(func)
        if impl is None:
            name = getattr(func, "__name__", repr(func))
            raise NotImplementedError(f"{cls.__name__}: PyTorch function {name} is not implemented.")
        return impl(*args, **kwargs)

    # --- Магические методы для операторов ---
    def __add__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.add(self, other)

    def __radd__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.add(other, self)

    def __sub__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.sub(self, other)

    def __rsub__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.sub(other, self)

    def __mul__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.mul(self, other)

    def __rmul__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.mul(other, self)

    def __truediv__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.div(self, other)

    def __rtruediv__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.div(other, self)

    def __floordiv__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.floor_divide(self, other)

    def __rfloordiv__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.floor_divide(other, self)

    def __mod__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.remainder(self, other)

    def __rmod__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.remainder(other, self)

    def __pow__(self, exponent):
        if isinstance(exponent, int) and not isinstance(exponent, bool):
            return torch.pow(self, exponent)
        exponent = as_operand(exponent)
        return NotImplemented if exponent is NotImplemented else torch.pow(self, exponent)

    def __rpow__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.pow(other, self)

    def __neg__(self):
        return torch.neg(self)

    def __pos__(self):
        return self

    def __abs__(self):
        return torch.abs(self)

    def __eq__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.eq(self, other)

    def __ne__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.ne(self, other)

    def __lt__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.lt(self, other)

    def __le__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.le(self, other)

    def __gt__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.gt(self, other)

    def __ge__(self, other):
        other = as_operand(other)
        return NotImplemented if other is NotImplemented else torch.ge(self, other)


class DoubleDouble(Expansion):
    """Double-double: [hi, lo], около 106 бит мантиссы (~31 цифра)."""

    COMPONENTS = 2
    NUM_DIGITS = 31


class QuadDouble(Expansion):
    """Quad-double: 4 компонента, около 212 бит мантиссы (~62 цифры)."""

    COMPONENTS = 4
    NUM_DIGITS = 62


EXPANSION_TYPES = {DoubleDouble.COMPONENTS: DoubleDouble, QuadDouble.COMPONENTS: QuadDouble}


def expansion_type(k: int):
    """Тип значения по числу компонентов."""
    try:
        return EXPANSION_TYPES[k]
    except KeyError:
        raise ValueError(f"Unsupported component count: {k}") from None


__all__ = [
    "Expansion",
    "DoubleDouble",
    "QuadDouble",
    "HANDLED_FUNCTIONS",
    "implements",
    "as_operand",
    "expansion_type",
]
