"""Настройки qdfx из переменных окружения.

* ``QDFX_ACCURATE`` — bool, выбрать точную (accurate) политику арифметики
  вместо быстрой (sloppy). По умолчанию ``false``.
* ``QDFX_DECIMAL_SEPARATOR`` — ``.`` или ``,``: разделитель дробной части
  по умолчанию для разбора и форматирования. По умолчанию ``.``.

Значения читаются один раз при первом обращении и кешируются.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from ._errors import ConfigurationError

_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "f", "no", "n", "off"}
_SEPARATORS = (".", ",")

ACCURATE_ENV = "QDFX_ACCURATE"
SEPARATOR_ENV = "QDFX_DECIMAL_SEPARATOR"


def env_str(name: str, or_value: Optional[str] = None, *, strip: bool = True) -> Optional[str]:
    """Строковое значение переменной окружения; пустая строка считается отсутствием."""
    value = os.getenv(name)
    if value is None:
        return or_value
    if strip:
        value = value.strip()
    if value == "":
        return or_value
    return value


def env_bool(name: str, or_value: bool = False) -> bool:
    """Значение переменной окружения, приведённое к ``bool``."""
    raw = env_str(name)
    if raw is None:
        return or_value
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError.invalid_value(
        name, raw, f"Expected one of {sorted(_TRUE_VALUES | _FALSE_VALUES)}"
    )


@dataclass(frozen=True)
class Settings:
    accurate: bool = False
    decimal_separator: str = "."


def _separator(raw: Optional[str]) -> str:
    if raw is None:
        return "."
    if raw not in _SEPARATORS:
        raise ConfigurationError.invalid_format(SEPARATOR_ENV, raw, "'.' or ','")
    return raw


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Настройки процесса (читаются из окружения один раз)."""
    return Settings(
        accurate=env_bool(ACCURATE_ENV, False),
        decimal_separator=_separator(env_str(SEPARATOR_ENV, strip=False)),
    )


def reload_settings() -> Settings:
    """Сбрасывает кеш и перечитывает окружение."""
    get_settings.cache_clear()
    return get_settings()


__all__ = ["Settings", "get_settings", "reload_settings", "env_bool", "env_str"]
