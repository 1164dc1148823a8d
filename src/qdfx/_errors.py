"""Типы исключений qdfx.

Числовые ошибки области определения (sqrt отрицательного, log
неположительного, atan2(0, 0) и т.п.) исключений не бросают —
они выражаются NaN. Исключения зарезервированы для строгого
разбора строк и некорректной конфигурации.
"""

from __future__ import annotations


class ConversionError(ValueError):
    """Строка не является корректной десятичной записью числа."""

    def __init__(self, text: str, type_name: str = "DoubleDouble") -> None:
        self.text = text
        self.type_name = type_name
        super().__init__(f"{text!r} is not a valid {type_name} value")


class ConfigurationError(RuntimeError):
    """Значение настройки отсутствует или имеет неверный формат."""

    @classmethod
    def invalid_value(cls, param_name: str, value, reason: str = "") -> "ConfigurationError":
        """Ошибка для недопустимого значения."""
        msg = f"Invalid value for {param_name}: {value!r}"
        if reason:
            msg += f". {reason}"
        return cls(msg)

    @classmethod
    def invalid_format(
        cls, param_name: str, received_value: str, expected_format: str = ""
    ) -> "ConfigurationError":
        """Ошибка для значения в неверном формате."""
        msg = f"{param_name} has invalid format (received {received_value!r})"
        if expected_format:
            msg += f". Expected {expected_format}"
        return cls(msg)


__all__ = ["ConversionError", "ConfigurationError"]
