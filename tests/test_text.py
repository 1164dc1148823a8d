"""
Текстовый кодек: форматирование fixed / scientific, разбор строк,
извлечение цифр и проверки аргументов.
"""

import logging
import math

import hypothesis.strategies as st
import pytest
import torch
from hypothesis import given, settings
from mpmath import mp

from qdfx import _text
from qdfx import (
    ConversionError,
    DoubleDouble,
    QuadDouble,
    format,
    parse,
    parse_strict,
    to_digits,
    try_parse,
)
from qdfx._text import _safety_net
from tests.helpers import assert_close, assert_formatted

DD = DoubleDouble
QD = QuadDouble


# --- форматирование -------------------------------------------------------------

@pytest.mark.parametrize(
    "style, precision, sep, expected",
    [
        ("scientific", None, ".", "0.0000000000000000000000000000000E+00"),
        ("scientific", 5, ".", "0.00000E+00"),
        ("fixed", 5, ".", "0.00000"),
        ("scientific", 5, ",", "0,00000E+00"),
        ("fixed", 5, ",", "0,00000"),
        ("fixed", 0, ".", "0"),
    ],
    ids=["sci_default", "sci_5", "fixed_5", "sci_5_comma", "fixed_5_comma", "fixed_0"],
)
def test_format_zero(style, precision, sep, expected):
    assert format(DD.ZERO, style, precision, sep) == expected


@pytest.mark.parametrize(
    "style, precision, expected",
    [
        ("scientific", None, "3.1415926535897932384626433832795E-03"),
        ("fixed", None, "0.0031415926535897932384626433833"),
        ("scientific", 5, "3.14159E-03"),
        ("fixed", 5, "0.00314"),
    ],
    ids=["sci", "fixed", "sci_5", "fixed_5"],
)
def test_format_small_value(style, precision, expected):
    x = DD.PI / 1000.0
    if precision is None:
        assert_formatted(x, expected, style)
    else:
        assert format(x, style, precision, ".") == expected


@pytest.mark.parametrize(
    "style, precision, expected",
    [
        ("scientific", None, "2.7182818284590452353602874713527E+08"),
        ("fixed", None, "271828182.8459045235360287471352664625474"),
        ("scientific", 5, "2.71828E+08"),
        ("fixed", 5, "271828182.84590"),
    ],
    ids=["sci", "fixed", "sci_5", "fixed_5"],
)
def test_format_large_value(style, precision, expected):
    x = DD.E * 1e8
    if precision is None:
        assert_formatted(x, expected, style)
    else:
        assert format(x, style, precision, ".") == expected


@pytest.mark.parametrize("style", ["fixed", "scientific"])
@pytest.mark.parametrize("cls", [DD, QD], ids=["dd", "qd"])
def test_format_special_values(cls, style):
    assert format(cls.NAN, style) == "NAN"
    assert format(cls.INF, style) == "INF"
    assert format(cls.NEG_INF, style) == "-INF"


@pytest.mark.parametrize(
    "value, style, expected",
    [
        (QD.PI / 1000.0, "scientific", "3.1415926535897932384626433832795028841972E-03"),
        (QD.PI / 1000.0, "fixed", "0.0031415926535897932384626433832795028842"),
        (QD.E * 1e8, "scientific", "2.7182818284590452353602874713526624977572E+08"),
    ],
    ids=["pi_sci", "pi_fixed", "e_sci"],
)
def test_format_quad_double_precision_40(value, style, expected):
    assert format(value, style, 40, ".") == expected


@pytest.mark.parametrize(
    "value, style, precision, expected",
    [
        (-3.25, "fixed", 3, "-3.250"),
        (-3.25, "scientific", 2, "-3.25E+00"),
        (1.5e200, "scientific", 3, "1.500E+200"),
        (2.5e-150, "scientific", 2, "2.50E-150"),
        (1e-40, "fixed", 4, "0.0000"),
        (0.7, "fixed", 0, "1"),
        (0.3, "fixed", 0, "0"),
        (-0.7, "fixed", 0, "-1"),
        (999.96, "fixed", 1, "1000.0"),
    ],
    ids=["neg_fixed", "neg_sci", "exp_200", "exp_minus_150", "underflow_fixed",
         "round_up_below_one", "round_down_below_one", "negative_below_one", "carry"],
)
def test_format_values(value, style, precision, expected):
    assert format(DD.from_float(value), style, precision, ".") == expected


def test_format_spec_and_str():
    assert f"{DD.PI:.5f}" == "3.14159"
    assert f"{DD.PI:.3e}" == "3.142E+00"
    assert f"{DD.PI:.3E}" == "3.142E+00"
    assert "{:.2}".format(DD.from_float(1.5)) == "1.50"
    assert str(DD.PI) == "3.1415926535897932384626433832795"
    assert repr(DD.PI) == "DoubleDouble('3.1415926535897932384626433832795E+00')"
    with pytest.raises(ValueError):
        f"{DD.PI:>10}"


def test_repr_of_batch():
    x = DD.from_float(torch.tensor([1.0, 2.0]))
    text = repr(x)
    assert text.startswith("DoubleDouble(")
    assert text.endswith("k=2)")
    assert str(x) == text


@pytest.mark.parametrize(
    "kwargs, error",
    [
        ({"style": "engineering"}, ValueError),
        ({"precision": -1}, ValueError),
        ({"decimal_separator": ";"}, ValueError),
    ],
    ids=["style", "precision", "separator"],
)
def test_format_rejects_bad_arguments(kwargs, error):
    with pytest.raises(error):
        format(DD.ONE, **kwargs)


def test_format_requires_scalar_expansion():
    with pytest.raises(ValueError):
        format(DD.from_float(torch.tensor([1.0, 2.0])))
    with pytest.raises(TypeError):
        format(1.0)


def test_safety_net_shifts_misplaced_point():
    assert _safety_net("31.4", 3.14, ".") == "3.14"
    assert _safety_net("31,4", 3.14, ",") == "3,14"
    assert _safety_net("3.14", 3.14, ".") == "3.14"
    assert _safety_net("-0.001", -0.001, ".") == "-0.001"


def test_fixed_just_below_power_of_ten():
    x = DD.from_float(math.nextafter(1000.0, 0.0))
    text = format(x, "fixed", None, ".")
    assert text == "999.9999999999998863131622783839703"
    assert float(text) == x.item()


def test_fixed_repairs_exponent_off_by_one(monkeypatch, caplog):
    """Порядок, завышенный на единицу, исправляется сдвигом точки."""
    x = DD.from_float(math.nextafter(1000.0, 0.0))
    extract = _text.to_digits

    def shifted(value, precision):
        digits, e = extract(value, precision)
        return digits, e + 1

    monkeypatch.setattr(_text, "to_digits", shifted)
    with caplog.at_level(logging.DEBUG, logger="qdfx._text"):
        text = format(x, "fixed", None, ".")

    assert text.startswith("999.99999999999988631316227838397")
    assert float(text) == x.item()
    assert "Decimal point shifted" in caplog.text


@pytest.mark.parametrize("cls", [DD, QD], ids=["dd", "qd"])
def test_integer_text_survives_parse_and_format(cls):
    for n in range(1, 201):
        text = f"{n}." + "0" * cls.NUM_DIGITS
        assert format(parse(text, cls, "."), "fixed", None, ".") == text


@given(a=st.floats(min_value=1e-3, max_value=3.0, width=64), negative=st.booleans())
@settings(max_examples=100, deadline=None)
def test_fixed_text_survives_parse_and_format(a, negative):
    """Строка fixed, перечитанная и снова записанная, не меняется."""
    text = format(DD.from_float(-a if negative else a) / 3.0, "fixed", None, ".")
    assert format(parse(text, DD, "."), "fixed", None, ".") == text


# --- разбор ------------------------------------------------------------------------

@pytest.mark.parametrize(
    "text, expected",
    [
        ("0", 0),
        ("+7", 7),
        ("-12.5", mp.mpf("-12.5")),
        ("  -12.5  ", mp.mpf("-12.5")),
        (".5", mp.mpf("0.5")),
        ("5.", 5),
        ("0.1", mp.mpf("0.1")),
        ("1e5", 100000),
        ("1E+5", 100000),
        ("2.5E-3", mp.mpf("0.0025")),
        ("123456789012345678901234567890", mp.mpf("123456789012345678901234567890")),
    ],
    ids=["zero", "plus", "negative", "spaces", "leading_point", "trailing_point",
         "tenth", "lower_e", "upper_e", "negative_exponent", "long_integer"],
)
def test_parse_valid(text, expected):
    assert_close(parse(text, DD, "."), expected)


@pytest.mark.parametrize(
    "text",
    ["", "   ", "abc", "1.2.3", "1.2,3", "1,2,3", "1,2.3", "--1", "1-", "E5", "1E", "1E+", "1 2",
     "1x", "0x10", "+"],
    ids=["empty", "blank", "letters", "two_points", "mixed_points", "two_commas", "comma_then_point",
         "double_sign", "sign_after_digits",
         "no_mantissa", "no_exponent", "exponent_sign_only", "inner_space", "trailing_garbage",
         "hex", "sign_only"],
)
def test_parse_invalid_is_nan(text):
    assert bool(parse(text, DD, ".").is_nan())
    ok, value = try_parse(text, DD, ".")
    assert not ok
    assert bool(value.is_nan())


def test_parse_comma_separator():
    assert_close(parse("1,5", DD, ","), mp.mpf("1.5"))
    assert_close(parse("-0,25E1", DD, ","), mp.mpf("-2.5"))


@pytest.mark.parametrize("text", ["1,2,3", "1,2.3", "1.2,3", "1.2.3"])
@pytest.mark.parametrize("sep", [".", ","])
def test_parse_allows_one_point_of_either_kind(text, sep):
    assert bool(parse(text, DD, sep).is_nan())


def test_parse_ignores_foreign_point():
    assert_close(parse("1,5", DD, "."), 15)
    assert_close(parse("1.5", DD, ","), 15)


def test_parse_quad_double_long_mantissa():
    text = "3.14159265358979323846264338327950288419716939937510582097494459"
    assert_close(parse(text, QD, "."), mp.mpf(text))
    assert_close(QD.from_string(text, "."), mp.pi)


def test_try_parse_and_strict():
    ok, value = try_parse("42.0", DD, ".")
    assert ok
    assert_close(value, 42)

    assert bool(parse_strict("1E0", QD, ".") == 1.0)
    with pytest.raises(ConversionError) as info:
        parse_strict("forty-two", QD, ".")
    assert info.value.text == "forty-two"
    assert info.value.type_name == "QuadDouble"
    assert isinstance(info.value, ValueError)


def test_parse_rejects_bad_separator():
    with pytest.raises(ValueError):
        parse("1.0", DD, ";")


# --- извлечение цифр -----------------------------------------------------------

@pytest.mark.parametrize(
    "value, precision, expected",
    [
        (DD.PI, 10, ("3141592654", 0)),
        (DD.from_float(0.00123), 3, ("123", -3)),
        (DD.from_float(-98765.0), 4, ("9877", 4)),
        (DD.from_float(9.9999), 3, ("100", 1)),
        (DD.ZERO, 4, ("0000", 0)),
        (DD.from_float(1e300), 2, ("10", 300)),
        (DD.from_float(3e-305), 2, ("30", -305)),
        (DD.from_float(0.125), 2, ("13", -1)),
        (QD.from_float(-98765.0), 4, ("9877", 4)),
        (QD.from_float(98765.0), 5, ("98765", 4)),
    ],
    ids=["pi", "small", "negative", "carry", "zero", "huge", "tiny", "tie", "qd_tie", "qd_exact"],
)
def test_to_digits(value, precision, expected):
    assert to_digits(value, precision) == expected


def test_to_digits_requires_scalar():
    with pytest.raises(ValueError):
        to_digits(DD.from_float(torch.tensor([1.0, 2.0])), 5)
    with pytest.raises(TypeError):
        to_digits(3.0, 5)
