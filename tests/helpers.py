import torch
from mpmath import mp
from typing import List, Union

from qdfx import DoubleDouble, QuadDouble
from qdfx._expansion import Expansion

mp.dps = 200 # Повысим точность для надежности

# Допуски сравнения с эталоном mpmath (относительные)
DD_TOL = mp.mpf("1e-28")
QD_TOL = mp.mpf("1e-56")

TYPES = {"dd": DoubleDouble, "qd": QuadDouble}


def tol_for(value: Union[Expansion, type]) -> mp.mpf:
    k = value.COMPONENTS if isinstance(value, type) else value.precision_k
    return DD_TOL if k == 2 else QD_TOL


def to_mp(value: Expansion) -> mp.mpf:
    """Точное значение скалярного expansion в mpmath."""
    return mp.fsum(mp.mpf(c) for c in value.components.tolist())


def to_mp_list(value: Expansion) -> List[mp.mpf]:
    """
    Конвертирует КАЖДЫЙ элемент expansion в его mpmath значение.
    Возвращает плоский список значений.
    """
    flat_components = value.components.reshape(-1, value.precision_k)
    return [mp.fsum(mp.mpf(c) for c in row) for row in flat_components.tolist()]


def _mp_sum(tensor: torch.Tensor) -> mp.mpf:
    """Вычисляет точную сумму всех элементов обычного тензора с помощью mpmath."""
    return mp.fsum(mp.mpf(x) for x in tensor.flatten().tolist())


def assert_close(actual: Expansion, expected, tol=None) -> None:
    """|actual - expected| <= tol · max(1, |expected|) для каждого элемента."""
    if tol is None:
        tol = tol_for(actual)
    values = to_mp_list(actual)
    if not isinstance(expected, (list, tuple)):
        expected = [expected] * len(values)
    for got, ref in zip(values, expected):
        ref = mp.mpf(ref)
        bound = tol * max(mp.mpf(1), abs(ref))
        assert abs(got - ref) <= bound, f"{mp.nstr(got, 70)} != {mp.nstr(ref, 70)}"


def assert_canonical(value: Expansion) -> None:
    """Компоненты не перекрываются: |x[i+1]| <= ulp(x[i]) / 2."""
    c = value.components.reshape(-1, value.precision_k)
    for row in c.tolist():
        for hi, lo in zip(row, row[1:]):
            if hi == 0:
                assert lo == 0
                continue
            assert abs(lo) <= abs(hi) * 2.0 ** -52


def reference_format(value: Expansion, style: str, places: int) -> str:
    """Правильно округлённая (половина — от нуля) запись точного значения."""
    v = to_mp(value)
    sign = "-" if v < 0 else ""
    v = abs(v)
    half = mp.mpf("0.5")
    if style == "fixed":
        n = int(mp.floor(v * mp.mpf(10) ** places + half))
        digits = str(n).rjust(places + 1, "0")
        head, tail = digits[:len(digits) - places], digits[len(digits) - places:]
        return sign + head + ("." + tail if places else "")

    e = int(mp.floor(mp.log10(v)))
    n = int(mp.floor(v * mp.mpf(10) ** (places - e) + half))
    if n < 10 ** places:
        e -= 1
        n = int(mp.floor(v * mp.mpf(10) ** (places - e) + half))
    if n >= 10 ** (places + 1):
        e += 1
        n = int(mp.floor(v * mp.mpf(10) ** (places - e) + half))
    digits = str(n)
    mantissa = digits[0] + ("." + digits[1:] if places else "")
    return f"{sign}{mantissa}E{'-' if e < 0 else '+'}{abs(e):02d}"


def assert_formatted(value: Expansion, expected: str, style: str = "fixed", places: int = None) -> None:
    """
    Запись совпадает с правильным округлением точного значения и
    отличается от эталонной строки не больше чем на 1e-30 (относительно).
    """
    if places is None:
        places = type(value).NUM_DIGITS
    text = value.format(style, places, decimal_separator=".")
    assert text == reference_format(value, style, places)
    ref = mp.mpf(expected)
    assert abs(mp.mpf(text) - ref) <= mp.mpf("1e-30") * max(mp.mpf(1), abs(ref)), f"{text} != {expected}"
