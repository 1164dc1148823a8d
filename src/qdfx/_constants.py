"""qdfx._constants
=================
Именованные константы (атрибуты классов `DoubleDouble` и `QuadDouble`),
таблицы обратных факториалов и sin/cos(kπ/16), а также параметры
алгоритмов, зависящие от ранга.

Константы double-double заданы литералами и совпадают бит-в-бит с
эталонной библиотекой; таблицы quad-double строятся через mpmath.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

import torch
from mpmath import mp

from ._expansion import DoubleDouble, QuadDouble
from ._renorm import canonicalize

_INF = float("inf")
_NAN = float("nan")

# Литералы компонентов: (c0, c1, c2, c3); для DD берутся первые два
_PI = (3.141592653589793116e+00, 1.224646799147353207e-16,
       -2.994769809718339666e-33, 1.112454220863365282e-49)
_TWO_PI = (6.283185307179586232e+00, 2.449293598294706414e-16,
           -5.989539619436679332e-33, 2.224908441726730563e-49)
_PI_OVER_2 = (1.570796326794896558e+00, 6.123233995736766036e-17,
              -1.497384904859169833e-33, 5.562271104316826408e-50)
_PI_OVER_4 = (7.853981633974482790e-01, 3.061616997868383018e-17,
              -7.486924524295849165e-34, 2.781135552158413204e-50)
_THREE_PI_OVER_4 = (2.356194490192344837e+00, 9.1848509936051484375e-17,
                    3.9168984647504003225e-33, -2.5867981632704860386e-49)
_PI_OVER_180 = (0.017453292519943295e+00, 2.9486522708701687e-19,
                -1.3427726813345382e-35, 1.4287195201441093e-52)
_DEG_PER_RAD = (5.729577951308232e+01, -1.9878495670576283e-15,
                -1.6833394980391744e-31, -5.5659577936980826e-49)
_E = (2.718281828459045091e+00, 1.445646891729250158e-16,
      -2.127717108038176765e-33, 1.515630159841218954e-49)
_LOG2 = (6.931471805599452862e-01, 2.319046813846299558e-17,
         5.707708438416212066e-34, -3.582432210601811423e-50)
_LOG10 = (2.302585092994045901e+00, -2.170756223382249351e-16,
          -9.984262454465776570e-33, -4.023357454450206379e-49)
_MAX = (1.79769313486231570815e+308, 9.97920154767359795037e+291,
        5.53956966280111259858e+275, 3.07507889307840487279e+259)
_SAFE_MAX = (1.7976931080746007281e+308, 9.97920154767359795037e+291,
             5.53956966280111259858e+275, 3.07507889307840487279e+259)
# Отдельный литерал DD (в QD π/16 получается точным делением π на 16)
_DD_PI_OVER_16 = (1.963495408493620697e-01, 7.654042494670957545e-18)

# Таблицы double-double: 1/3! .. 1/17!, sin и cos(kπ/16), k = 1..4
_DD_INV_FACT = (
    (1.66666666666666657e-01, 9.25185853854297066e-18),
    (4.16666666666666644e-02, 2.31296463463574266e-18),
    (8.33333333333333322e-03, 1.15648231731787138e-19),
    (1.38888888888888894e-03, -5.30054395437357706e-20),
    (1.98412698412698413e-04, 1.72095582934207053e-22),
    (2.48015873015873016e-05, 2.15119478667758816e-23),
    (2.75573192239858925e-06, -1.85839327404647208e-22),
    (2.75573192239858883e-07, 2.37677146222502973e-23),
    (2.50521083854417202e-08, -1.44881407093591197e-24),
    (2.08767569878681002e-09, -1.20734505911325997e-25),
    (1.60590438368216133e-10, 1.25852945887520981e-26),
    (1.14707455977297245e-11, 2.06555127528307454e-28),
    (7.64716373181981641e-13, 7.03872877733453001e-30),
    (4.77947733238738525e-14, 4.39920548583408126e-31),
    (2.81145725434552060e-15, 1.65088427308614326e-31),
)
_DD_SIN_TABLE = (
    (1.950903220161282758e-01, -7.991079068461731263e-18),
    (3.826834323650897818e-01, -1.005077269646158761e-17),
    (5.555702330196021776e-01, 4.709410940561676821e-17),
    (7.071067811865475727e-01, -4.833646656726456726e-17),
)
_DD_COS_TABLE = (
    (9.807852804032304306e-01, 1.854693999782500573e-17),
    (9.238795325112867385e-01, 1.764504708433667706e-17),
    (8.314696123025452357e-01, 1.407385698472802389e-18),
    (7.071067811865475727e-01, -4.833646656726456726e-17),
)

# Для |r| <= π/32 член 1/32! уже ниже ε quad-double
_QD_INV_FACT_COUNT = 30
_TABLE_DPS = 150


def _mp_components(value, k: int):
    """Жадное извлечение k компонентов из mpf (точность — рабочая)."""
    comps = []
    residue = value
    for _ in range(k):
        c = float(residue)
        comps.append(c)
        residue -= mp.mpf(c)
    return comps


def _table(rows) -> torch.Tensor:
    return canonicalize(torch.tensor(rows, dtype=torch.float64))


def _qd_tables():
    with mp.workdps(_TABLE_DPS):
        inv_fact = [_mp_components(1 / mp.factorial(i + 3), 4) for i in range(_QD_INV_FACT_COUNT)]
        sines = [_mp_components(mp.sin(k * mp.pi / 16), 4) for k in range(1, 5)]
        cosines = [_mp_components(mp.cos(k * mp.pi / 16), 4) for k in range(1, 5)]
    return _table(inv_fact), _table(sines), _table(cosines)


@dataclass(frozen=True)
class Traits:
    """Параметры алгоритмов для одного ранга."""

    k: int
    eps: float
    min_value: float
    digits: int
    resolution: float
    fixed_digits: int  # цифр с запасом для формата fixed
    exp_terms: int  # предел членов ряда Тейлора в exp
    log_passes: int  # шагов Ньютона в log
    atan2_passes: int
    nroot_passes: int
    sqrt_passes: int  # 0: один шаг Карпа (DD)
    inv_fact: torch.Tensor
    sin_table: torch.Tensor
    cos_table: torch.Tensor


@lru_cache(maxsize=None)
def traits_for(k: int) -> Traits:
    if k == 2:
        return Traits(
            k=2, eps=4.93038065763132e-32, min_value=2.0041683600089728e-292,
            digits=31, resolution=1e-28, fixed_digits=60,
            exp_terms=5, log_passes=1, atan2_passes=1, nroot_passes=1, sqrt_passes=0,
            inv_fact=_table(_DD_INV_FACT),
            sin_table=_table(_DD_SIN_TABLE),
            cos_table=_table(_DD_COS_TABLE),
        )
    if k == 4:
        inv_fact, sines, cosines = _qd_tables()
        return Traits(
            k=4, eps=1.21543267145725e-63, min_value=1.6259745436952323e-260,
            digits=62, resolution=1e-59, fixed_digits=120,
            exp_terms=15, log_passes=2, atan2_passes=2, nroot_passes=3, sqrt_passes=3,
            inv_fact=inv_fact, sin_table=sines, cos_table=cosines,
        )
    raise ValueError(f"Unsupported component count: {k}")


def _install(cls) -> None:
    k = cls.COMPONENTS

    def const(components):
        return cls(torch.tensor(components[:k], dtype=torch.float64))

    cls.PI = const(_PI)
    cls.TWO_PI = const(_TWO_PI)
    cls.PI_OVER_2 = const(_PI_OVER_2)
    cls.PI_OVER_4 = const(_PI_OVER_4)
    cls.THREE_PI_OVER_4 = const(_THREE_PI_OVER_4)
    cls.PI_OVER_16 = const(_DD_PI_OVER_16) if k == 2 else const(tuple(c / 16.0 for c in _PI))
    cls.PI_OVER_180 = const(_PI_OVER_180)
    cls.DEG_PER_RAD = const(_DEG_PER_RAD)
    cls.E = const(_E)
    cls.LOG2 = const(_LOG2)
    cls.LOG10 = const(_LOG10)
    cls.MAX_VALUE = const(_MAX)
    cls.SAFE_MAX_VALUE = const(_SAFE_MAX)
    cls.NAN = const((_NAN,) * 4)
    cls.INF = const((_INF,) * 4)
    cls.NEG_INF = const((-_INF,) * 4)
    cls.ZERO = cls.zeros()
    cls.ONE = cls.from_float(1.0)

    traits = traits_for(k)
    cls.EPSILON = traits.eps
    cls.MIN_VALUE = traits.min_value


_install(DoubleDouble)
_install(QuadDouble)


__all__ = ["Traits", "traits_for"]
