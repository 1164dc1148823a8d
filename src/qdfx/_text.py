"""qdfx._text
============
Десятичный текст <-> DoubleDouble / QuadDouble.

* parse / try_parse / parse_strict — разбор за один проход: цифры
  накапливаются в точное целое R = 10·R + d, затем R·10^E
  округляется к ближайшему значению типа (масштабирование в mpmath
  с запасом точности).
* format_value — форматы «fixed» и «scientific». Fixed извлекает
  с запасом 60 (DD) или 120 (QD) цифр и округляет в нужной позиции.
* to_digits — цифры мантиссы и десятичный порядок. Значение берётся
  как точная двоичная дробь (сумма компонентов в целых числах), так
  что печатаются истинные цифры хранимого значения.

Работают только со скалярными (0-мерными) значениями.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple, Type

from mpmath import mp

from ._config import get_settings
from ._constants import traits_for
from ._errors import ConversionError
from ._expansion import DoubleDouble, Expansion
from ._ops import absolute, floor
from ._transcendental import log10

logger = logging.getLogger(__name__)

__all__ = [
    "parse",
    "try_parse",
    "parse_strict",
    "format_value",
    "to_digits",
    "SAFETY_NET_RATIO",
]

# Fixed-строка, перечитанная как double, не должна отличаться от
# старшего компонента больше чем во столько раз
SAFETY_NET_RATIO = 3.0

FIXED = "fixed"
SCIENTIFIC = "scientific"
_STYLES = (FIXED, SCIENTIFIC)


def _separator(decimal_separator: Optional[str]) -> str:
    if decimal_separator is None:
        return get_settings().decimal_separator
    if decimal_separator not in (".", ","):
        raise ValueError(f"decimal_separator must be '.' or ',', got {decimal_separator!r}")
    return decimal_separator


def _scalar(value, name: str) -> Expansion:
    if not isinstance(value, Expansion):
        raise TypeError(f"{name} expects a DoubleDouble or QuadDouble, got {type(value).__name__}")
    if value.ndim != 0:
        raise ValueError(f"{name} requires a scalar value, got shape {tuple(value.shape)}")
    return value


def _is_digit(c: str) -> bool:
    return "0" <= c <= "9"


# -----------------------------------------------------------------------------
# Разбор
# -----------------------------------------------------------------------------

def parse(text: str, kind: Type[Expansion] = DoubleDouble,
          decimal_separator: Optional[str] = None) -> Expansion:
    """
    Разбирает десятичную запись вида ``[+|-]digits[.digits][(E|e)[+|-]digits]``.

    Пробельные символы в начале и в конце допускаются. Оба символа
    ``.`` и ``,`` считаются точкой (допустима только одна), но позицию
    дробной части задаёт только настроенный разделитель. Результат —
    ближайшее к записи значение типа. Некорректный ввод даёт NaN.
    """
    sep = _separator(decimal_separator)
    nan = kind.NAN
    n = len(text)
    i = 0
    while i < n and text[i] <= " ":
        i += 1

    sign = 0
    point = -1
    seen_point = False
    nd = 0
    e = 0
    has_digits = False
    mantissa = 0

    while i < n:
        c = text[i]
        if c <= " ":
            break
        if _is_digit(c):
            mantissa = mantissa * 10 + (ord(c) - ord("0"))
            nd += 1
            has_digits = True
        elif c in ".,":
            if seen_point:
                return nan
            seen_point = True
            if c == sep:
                point = nd
        elif c in "+-":
            if sign != 0 or nd > 0:
                return nan
            sign = -1 if c == "-" else 1
        elif c in "Ee":
            if not has_digits:
                return nan
            has_digits = False
            i += 1
            e_sign = 1
            if i < n and text[i] == "-":
                e_sign = -1
                i += 1
            elif i < n and text[i] == "+":
                i += 1
            while i < n and _is_digit(text[i]):
                e = e * 10 + (ord(text[i]) - ord("0"))
                i += 1
                has_digits = True
            if not has_digits:
                return nan
            e *= e_sign
            break
        else:
            return nan
        i += 1

    # После числа допускаются только пробельные символы
    if any(c > " " for c in text[i:]):
        return nan
    if not has_digits:
        return nan

    if point >= 0:
        e -= nd - point
    r = _nearest(mantissa, e, kind)
    return -r if sign == -1 else r


def _nearest(mantissa: int, e: int, kind: Type[Expansion]) -> Expansion:
    """Ближайшее к mantissa·10^e неотрицательное значение типа kind."""
    if mantissa == 0:
        return kind.ZERO
    # 64 бита сверх точности всех компонентов
    prec = mantissa.bit_length() + 53 * kind.COMPONENTS + 64
    with mp.workprec(prec):
        v = mp.mpf(mantissa)
        if e > 0:
            v *= mp.mpf(10) ** e
        elif e < 0:
            v /= mp.mpf(10) ** -e
        if math.isinf(float(v)):
            return kind.INF
        return kind.from_mpmath(v)


def try_parse(text: str, kind: Type[Expansion] = DoubleDouble,
              decimal_separator: Optional[str] = None) -> Tuple[bool, Expansion]:
    """Пара (успех, значение); при неудаче значение — NaN."""
    value = parse(text, kind, decimal_separator)
    return not bool(value.is_nan()), value


def parse_strict(text: str, kind: Type[Expansion] = DoubleDouble,
                 decimal_separator: Optional[str] = None) -> Expansion:
    """Как `parse`, но некорректный ввод вызывает `ConversionError`."""
    ok, value = try_parse(text, kind, decimal_separator)
    if not ok:
        raise ConversionError(text, kind.__name__)
    return value


# -----------------------------------------------------------------------------
# Извлечение цифр
# -----------------------------------------------------------------------------

def _exact_ratio(x: Expansion) -> Tuple[int, int]:
    """|x| как точная дробь num / den (den — степень двойки)."""
    num, den = 0, 1
    for c in x.components.tolist():
        n, d = c.as_integer_ratio()
        common = max(den, d)
        num = num * (common // den) + n * (common // d)
        den = common
    return abs(num), den


def _below_power(num: int, den: int, e: int) -> bool:
    """num / den < 10^e"""
    if e >= 0:
        return num < 10 ** e * den
    return num * 10 ** -e < den


def to_digits(value: Expansion, precision: int) -> Tuple[str, int]:
    """
    Возвращает `precision` значащих десятичных цифр |value| и порядок E
    (value ≈ d1.d2d3... · 10^E). Цифры точные, последняя округлена
    (половина — вверх).
    """
    x = _scalar(value, "to_digits")
    hi = float(x.components[0])
    if hi == 0:
        return "0" * precision, 0
    if not math.isfinite(hi):
        raise ValueError(f"to_digits requires a finite value, got {hi!r}")

    num, den = _exact_ratio(x)
    e = math.floor(math.log10(abs(hi)))

    # Порядок по старшему компоненту может ошибаться на единицу
    while _below_power(num, den, e):
        e -= 1
    while not _below_power(num, den, e + 1):
        e += 1

    # num / den = |x| / 10^e лежит в [1, 10)
    if e >= 0:
        den *= 10 ** e
    else:
        num *= 10 ** -e

    digits: List[int] = []
    for _ in range(precision + 1):
        d = num // den
        digits.append(d)
        num = (num - d * den) * 10

    # Округление по последней (лишней) цифре
    if precision > 0 and digits[precision] >= 5:
        i = precision - 1
        digits[i] += 1
        while i > 0 and digits[i] > 9:
            digits[i] -= 10
            i -= 1
            digits[i] += 1
        if digits[0] > 9:
            e += 1
            digits = [1] + [0] * (precision - 1)

    return "".join(str(d) for d in digits[:precision]), e


def _round_string(text: str, count: int, offset: int) -> Tuple[str, int]:
    """Округляет строку цифр до `count` знаков (половина — вверх)."""
    digits = [ord(c) - ord("0") for c in text]
    digits.extend([0] * max(0, count + 2 - len(digits)))

    if 0 < count < len(text) and digits[count] >= 5:
        digits[count - 1] += 1
        i = count - 1
        while i > 0 and digits[i] > 9:
            digits[i] -= 10
            i -= 1
            digits[i] += 1

    if digits[0] > 9:
        for i in range(count, 0, -1):
            digits[i + 1] = digits[i]
        digits[0] = 1
        digits[1] = 0
        offset += 1
        count += 1

    return "".join(str(d) for d in digits[:count]), offset


def _exponent_text(e: int) -> str:
    parts = ["-" if e < 0 else "+"]
    e = abs(e)
    if e >= 100:
        parts.append(str(e // 100))
        e %= 100
    parts.append(str(e // 10))
    parts.append(str(e % 10))
    return "".join(parts)


def _safety_net(text: str, hi: float, sep: str) -> str:
    """Сдвигает точку на разряд влево, если строка явно не та по величине."""
    from_string = float(text.replace(sep, "."))
    if abs(from_string / hi) <= SAFETY_NET_RATIO:
        return text
    for i in range(1, len(text)):
        if text[i] == sep:
            logger.debug("Decimal point shifted left in %r", text)
            return text[:i - 1] + sep + text[i - 1] + text[i + 1:]
    return text


# -----------------------------------------------------------------------------
# Форматирование
# -----------------------------------------------------------------------------

def format_value(value: Expansion, style: str = FIXED, precision: Optional[int] = None,
                 decimal_separator: Optional[str] = None) -> str:
    """
    Десятичная запись скалярного значения.

    style: ``"fixed"`` (``-123.456``) или ``"scientific"``
    (``-1.23456E+02``). precision — цифр после точки; по умолчанию
    31 для DoubleDouble и 62 для QuadDouble. Особые значения:
    ``NAN``, ``INF``, ``-INF``.
    """
    x = _scalar(value, "format")
    if style not in _STYLES:
        raise ValueError(f"style must be one of {_STYLES}, got {style!r}")
    if precision is None:
        precision = type(x).NUM_DIGITS
    if precision < 0:
        raise ValueError(f"precision must be non-negative, got {precision}")
    fixed = style == FIXED
    sep = _separator(decimal_separator)

    if bool(x.is_nan()):
        return "NAN"

    hi = float(x.components[0])
    out: List[str] = []
    if hi < 0:
        out.append("-")
    if math.isinf(hi):
        out.append("INF")
        return "".join(out)

    exponent = 0
    if hi == 0:
        out.append("0")
        if precision > 0:
            out.append(sep + "0" * precision)
    else:
        abs_x = absolute(x)
        off = 1 + int(floor(log10(abs_x)).to_int()) if fixed else 1
        d = precision + off
        guard_digits = traits_for(x.precision_k).fixed_digits
        d_extra = guard_digits if fixed and d < guard_digits else d

        # |x| < 1 при нулевой точности: 0.9 должно стать 1, а не 0
        if fixed and precision == 0 and bool(abs_x < 1.0):
            out.append("1" if bool(abs_x >= 0.5) else "0")
            return "".join(out)

        if fixed and d <= 0:
            out.append("0")
            if precision > 0:
                out.append(sep + "0" * precision)
        else:
            digits, exponent = to_digits(x, d_extra if fixed else d)
            off = exponent + 1
            if fixed:
                digits, off = _round_string(digits, d, off)
                if off > 0:
                    out.append(digits[:off].ljust(off, "0"))
                    if precision > 0:
                        out.append(sep + digits[off:off + precision].ljust(precision, "0"))
                else:
                    out.append("0" + sep)
                    if off < 0:
                        out.append("0" * -off)
                    out.append(digits[:d])
            else:
                out.append(digits[0])
                if precision > 0:
                    out.append(sep)
                out.append(digits[1:precision + 1])

    text = "".join(out)
    if fixed and precision > 0 and hi != 0:
        text = _safety_net(text, hi, sep)
    if not fixed:
        text += "E" + _exponent_text(exponent)
    return text
