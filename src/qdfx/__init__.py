"""qdfx — double-double и quad-double арифметика поверх PyTorch.

Значения `DoubleDouble` (≈31 десятичная цифра) и `QuadDouble`
(≈62 цифры) хранятся как неперекрывающиеся суммы 2 или 4 float64
в последней оси тензора и перехватывают операции torch через
``__torch_function__``: ``torch.sqrt(x)``, ``torch.exp(x)``,
``x + y``, ``x < y`` и т.д. работают поэлементно и с broadcasting.
"""

import torch
import warnings

# Устанавливаем float64 как дефолтный dtype для всех новых тензоров
if torch.get_default_dtype() != torch.float64:
    warnings.warn(
        "qdfx: Принудительно устанавливаю torch.set_default_dtype(torch.float64). "
        "Все новые тензоры будут float64. Если вы явно создаете float32, это может привести к неожиданным ошибкам.",
        stacklevel=2
    )
    torch.set_default_dtype(torch.float64)

from ._core import quick_two_diff, quick_two_sum, split, two_diff, two_prod, two_sqr, two_sum  # noqa: F401
from ._renorm import renorm, renormalize  # noqa: F401
from ._errors import ConfigurationError, ConversionError  # noqa: F401
from ._config import Settings, get_settings, reload_settings  # noqa: F401
from ._policy import ACCURATE, SLOPPY, ArithmeticPolicy, active_policy, select_policy  # noqa: F401
from ._expansion import DoubleDouble, Expansion, QuadDouble  # noqa: F401

# Импортируем ради побочных эффектов: константы классов и HANDLED_FUNCTIONS
from . import _constants  # noqa: F401
from ._ops import (  # noqa: F401
    absolute,
    aint,
    ceil,
    divrem,
    fmod,
    floor,
    ldexp,
    maximum,
    minimum,
    mul_pwr2,
    nint,
    npwr,
    nroot,
    rem,
    sqrt,
    square,
)
from ._transcendental import (  # noqa: F401
    acos,
    acosh,
    asin,
    asinh,
    atan,
    atan2,
    atanh,
    cos,
    cosh,
    exp,
    log,
    log10,
    pow,
    sin,
    sincos,
    sincosh,
    sinh,
    tan,
    tanh,
)
from ._functions import (  # noqa: F401
    acot,
    acoth,
    acsc,
    acsch,
    asec,
    asech,
    cot,
    coth,
    csc,
    csch,
    cycle_to_deg,
    cycle_to_grad,
    cycle_to_rad,
    deg_to_cycle,
    deg_to_grad,
    deg_to_rad,
    ensure_range,
    grad_to_cycle,
    grad_to_deg,
    grad_to_rad,
    hypot,
    in_range,
    log1p,
    log2,
    logn,
    rad_to_cycle,
    rad_to_deg,
    rad_to_grad,
    same_value,
    sec,
    sech,
)
from ._text import format_value as format  # noqa: F401,A001
from ._text import parse, parse_strict, to_digits, try_parse  # noqa: F401
from ._guard import PrecisionToken, acquire, precision_mode, restore  # noqa: F401

__all__ = [
    # EFT-примитивы
    "two_sum",
    "quick_two_sum",
    "two_diff",
    "quick_two_diff",
    "two_prod",
    "two_sqr",
    "split",
    "renorm",
    "renormalize",
    # типы
    "Expansion",
    "DoubleDouble",
    "QuadDouble",
    # конфигурация и ошибки
    "ConversionError",
    "ConfigurationError",
    "Settings",
    "get_settings",
    "reload_settings",
    "ArithmeticPolicy",
    "SLOPPY",
    "ACCURATE",
    "active_policy",
    "select_policy",
    # арифметика
    "absolute",
    "square",
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
    "minimum",
    "maximum",
    # элементарные функции
    "exp",
    "log",
    "log10",
    "log1p",
    "log2",
    "logn",
    "pow",
    "sin",
    "cos",
    "sincos",
    "tan",
    "atan",
    "atan2",
    "asin",
    "acos",
    "sinh",
    "cosh",
    "sincosh",
    "tanh",
    "asinh",
    "acosh",
    "atanh",
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
    # текст
    "parse",
    "try_parse",
    "parse_strict",
    "format",
    "to_digits",
    # режим точности
    "PrecisionToken",
    "acquire",
    "restore",
    "precision_mode",
]
