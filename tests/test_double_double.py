"""
Тесты DoubleDouble с эталонными строками.

Эталоны — десятичная запись результата в формате fixed с 31 знаком
после точки. Печатаются истинные цифры значения, поэтому строка
сверяется с точным округлением (mpmath), а с эталоном — до 1e-30.
"""

import math

import hypothesis.strategies as st
import pytest
import torch
from hypothesis import given, settings

from qdfx import (
    ConversionError,
    DoubleDouble,
    aint,
    ceil,
    divrem,
    floor,
    ldexp,
    nint,
    npwr,
    nroot,
    parse,
    parse_strict,
    rem,
    sqrt,
    square,
)
from qdfx._dd import sqr_double
from tests.helpers import assert_formatted

DD = DoubleDouble


def dd(text: str) -> DoubleDouble:
    return parse(text, DD)


def fixed(value: DoubleDouble) -> str:
    return value.format("fixed", decimal_separator=".")


@pytest.mark.parametrize(
    "name, expected",
    [
        ("PI", "3.1415926535897932384626433832795"),
        ("TWO_PI", "6.2831853071795864769252867665590"),
        ("PI_OVER_2", "1.5707963267948966192313216916398"),
        ("PI_OVER_4", "0.7853981633974483096156608458199"),
        ("THREE_PI_OVER_4", "2.3561944901923449288469825374596"),
        ("PI_OVER_180", "0.0174532925199432957692369076849"),
        ("DEG_PER_RAD", "57.2957795130823208767981548141053"),
        ("E", "2.7182818284590452353602874713527"),
        ("LOG2", "0.6931471805599453094172321214582"),
        ("LOG10", "2.3025850929940456840179914546844"),
        ("ZERO", "0.0000000000000000000000000000000"),
        ("ONE", "1.0000000000000000000000000000000"),
        ("NAN", "NAN"),
        ("INF", "INF"),
        ("NEG_INF", "-INF"),
    ],
    ids=lambda v: v if isinstance(v, str) and v.isupper() else None,
)
def test_constants(name, expected):
    value = getattr(DD, name)
    if bool(value.is_finite()):
        assert_formatted(value, expected)
    else:
        assert fixed(value) == expected


def test_init_variants():
    """Нули, точный double, явные компоненты и разбор строки."""
    a = DD.zeros()
    assert a.components.tolist() == [0.0, 0.0]
    assert fixed(a) == "0.0000000000000000000000000000000"

    a = DD.from_float(1.5)
    assert a.components.tolist() == [1.5, 0.0]
    assert fixed(a) == "1.5000000000000000000000000000000"

    a = DD.from_components(math.pi, 1.224646799147353207e-16)
    assert a.components.tolist() == [math.pi, 1.224646799147353207e-16]
    assert fixed(a) == "3.1415926535897932384626433832795"

    # Запись лежит в 1.43 ulp младшего компонента выше DD.E, ближайшее
    # значение: DD.E + 1 ulp
    a = dd("2.7182818284590452353602874713527")
    assert fixed(a) == "2.7182818284590452353602874713527"
    assert a.components[0].item() == DD.E.components[0].item()
    assert abs(a.components[1].item() - DD.E.components[1].item()) <= 2 * 2.0 ** -105

    a = DD.from_components(1.0, 1.0)
    assert a.components.tolist() == [2.0, 0.0]
    assert a == 2.0


# --- сложение и вычитание ----------------------------------------------------

def test_add_variants():
    # double + double даёт точную сумму
    assert_formatted(DD.from_float(1.1) + math.pi, "4.2415926535897932048158054385567")
    assert_formatted(DD.PI + 1.1, "4.2415926535897933272804853532921")
    assert_formatted(1.1 + DD.PI, "4.2415926535897933272804853532921")
    assert_formatted(torch.add(DD.PI, torch.tensor(1.1)), "4.2415926535897933272804853532921")
    assert_formatted(DD.PI + DD.E, "5.8598744820488384738229308546321")


def test_subtract_variants():
    assert_formatted(DD.from_float(1.1) - math.pi, "-2.0415926535897930271801214985317")
    assert_formatted(1.1 - DD.PI, "-2.0415926535897931496448014132670")
    assert_formatted(DD.PI - 1.1, "2.0415926535897931496448014132670")
    assert_formatted(DD.PI - DD.E, "0.4233108251307480031023559119268")


def test_multiply_variants():
    assert_formatted(DD.from_float(1.1) * math.pi, "3.4557519189487727066272396560891")
    assert_formatted(1.3 * DD.PI, "4.0840704496667313495161763186086")
    assert_formatted(DD.PI * 1.2, "3.7699111843077517466404321395901")
    assert_formatted(DD.PI * DD.E, "8.5397342226735670654635508695467")


def test_divide_variants():
    assert_formatted(DD.from_float(1.1) / math.pi, "0.3501408748021697806122344036592")
    assert_formatted(1.3 / DD.PI, "0.4138028520389278871348963690508")
    assert_formatted(DD.PI / 1.2, "2.6179938779914944622707722085283")
    assert_formatted(DD.PI / DD.E, "1.1557273497909217179100931833127")
    assert_formatted(1.0 / DD.PI, "0.3183098861837906715377675267450")
    assert_formatted(torch.reciprocal(DD.PI), "0.3183098861837906715377675267450")


def test_neg_abs():
    assert_formatted(-DD.PI, "-3.1415926535897932384626433832795")
    assert_formatted(abs(-DD.PI), "3.1415926535897932384626433832795")
    assert_formatted(torch.abs(DD.PI), "3.1415926535897932384626433832795")


def test_squares_and_powers():
    assert_formatted(DD(sqr_double(torch.tensor(math.pi))), "9.8696044010893578493662135111602")
    assert_formatted(square(DD.from_float(math.pi)), "9.8696044010893578493662135111602")
    assert_formatted(square(DD.PI), "9.8696044010893586188344909998761")
    assert_formatted(npwr(DD.PI, 4), "97.4090910340024372364403326887042")
    assert_formatted(DD.PI ** 4, "97.4090910340024372364403326887042")
    assert_formatted(ldexp(DD.PI, 4), "50.2654824574366918154022941324722")


def test_sqrt_and_nroot_accuracy():
    from mpmath import mp

    from tests.helpers import assert_close

    assert_close(sqrt(DD.PI), mp.sqrt(mp.pi))
    assert_close(nroot(DD.PI, 3), mp.cbrt(mp.pi))


def test_remainders():
    assert_formatted(rem(DD.PI_OVER_2, DD.E), "-1.1474855016641486161289657797129")
    assert_formatted(torch.fmod(DD.PI_OVER_2, DD.E), "1.5707963267948966192313216916398")

    n, r = divrem(DD.PI, DD.LOG2)
    assert_formatted(n, "5.0000000000000000000000000000000")
    assert_formatted(r, "-0.3241432492099333086235172240114")


# --- сравнения ----------------------------------------------------------------

def test_comparisons_against_parsed_and_native():
    a = dd("3.1415926535897932384626433832795")
    b = dd("3.1415926535897932384626433832795")
    c = dd("3.1415926535897932384626433832796")

    assert a == b
    assert not (a == c)
    assert a != c
    assert not (a != b)
    assert a < c and c > a
    assert a <= b and a >= b
    assert not (c <= a)

    # Разобранное значение точнее math.pi
    assert a != math.pi
    assert a > math.pi
    assert math.pi < a
    assert a > 3.0
    assert not (3.0 > a)

    a = DD.from_float(math.pi)
    assert a == math.pi
    assert math.pi == a
    assert a <= math.pi and a >= math.pi
    assert not (a < math.pi) and not (a > math.pi)


# --- округление ----------------------------------------------------------------

ROUNDING_INPUTS = ["-3.9", "-3.1", "-3.0", "0.0", "2.0", "2.1", "2.9"]


@pytest.mark.parametrize(
    "func, expected",
    [
        (floor, ["-4", "-4", "-3", "0", "2", "2", "2"]),
        (ceil, ["-3", "-3", "-3", "0", "2", "3", "3"]),
        (aint, ["-3", "-3", "-3", "0", "2", "2", "2"]),
        (nint, ["-4", "-3", "-3", "0", "2", "2", "3"]),
    ],
    ids=["floor", "ceil", "trunc", "round"],
)
def test_rounding(func, expected):
    for text, want in zip(ROUNDING_INPUTS, expected):
        assert func(dd(text)).format("fixed", 0) == want, text


@pytest.mark.parametrize(
    "value, expected",
    [(-3.5, -3.0), (2.5, 3.0), (-0.5, 0.0), (0.5, 1.0)],
    ids=["neg_half", "pos_half", "neg_half_small", "pos_half_small"],
)
def test_nint_rounds_halves_up(value, expected):
    assert nint(DD.from_float(value)).to_float().item() == expected


def test_nint_tie_broken_by_low_component():
    below = DD.from_components(2.5, -1e-20)
    above = DD.from_components(2.5, 1e-20)
    assert float(nint(below)) == 2.0
    assert float(nint(above)) == 3.0


def test_floor_of_large_value_uses_low_component():
    x = DD.from_components(2.0 ** 60, -0.25)
    result = floor(x)
    assert result.components.tolist() == [2.0 ** 60, -1.0]


# --- разбор строк ---------------------------------------------------------------

def test_tanh_of_small_quotient():
    from mpmath import mp

    from tests.helpers import assert_close

    z = torch.tanh(dd("1.0E-1") / dd("-3.5"))
    assert_close(z, mp.tanh(mp.mpf(1) / 10 / mp.mpf("-3.5")))


def test_exponent_zero_terminates():
    assert_formatted(dd("1E0"), "1.0000000000000000000000000000000")


def test_division_of_parsed_values():
    assert_formatted(dd("-5.08888E+1") / dd("-3.5"), "14.5396571428571428571428571428571")


@pytest.mark.parametrize("text", ["- 0", "+ 1", "- 2", "1E - 1", "1E- 1", "1E -1"])
def test_embedded_spaces_rejected(text):
    with pytest.raises(ConversionError):
        parse_strict(text, DD)


@pytest.mark.parametrize("text", [" 1", "1 ", " 1 "])
def test_surrounding_spaces_accepted(text):
    assert parse_strict(text, DD) == 1.0


# --- свойства ------------------------------------------------------------------

_moderate = st.floats(min_value=-1e100, max_value=1e100, allow_nan=False, allow_infinity=False, width=64)


@given(a=_moderate, b=_moderate, c=_moderate)
@settings(max_examples=100, deadline=None)
def test_addition_associative_within_ulp(a, b, c):
    """(a+b)+c и a+(b+c) расходятся не больше чем на несколько ulp DD от max(|a|,|b|,|c|)."""
    from mpmath import mp

    from tests.helpers import to_mp

    x, y, z = (DD.from_float(v) / 3.0 for v in (a, b, c))
    left = to_mp((x + y) + z)
    right = to_mp(x + (y + z))
    scale = max(abs(to_mp(x)), abs(to_mp(y)), abs(to_mp(z)))
    assert abs(left - right) <= mp.mpf("1e-29") * scale


@given(a=st.floats(min_value=1e-100, max_value=1e100, width=64), negative=st.booleans())
@settings(max_examples=100, deadline=None)
def test_format_parse_round_trip(a, negative):
    """Научная запись с 31 знаком восстанавливает значение до относительной 1e-29."""
    from mpmath import mp

    from tests.helpers import to_mp

    x = DD.from_float(-a if negative else a) / 7.0
    back = parse(x.format("scientific", decimal_separator="."), DD, ".")
    ref = to_mp(x)
    assert abs(to_mp(back) - ref) <= mp.mpf("1e-29") * abs(ref)
