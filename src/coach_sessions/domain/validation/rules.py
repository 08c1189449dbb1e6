"""Regras de validação por campo.

Cada regra é um objeto imutável com `validate(value, field)` que levanta
ValidationError (code VALIDATION_ERROR) quando violada. `None` passa em todas
as regras exceto RequiredRule: obrigatoriedade é uma regra separada.
"""

from __future__ import annotations

from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from dateutil.parser import isoparse

from coach_sessions.domain.errors import ValidationError


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _as_datetime(value: Any) -> datetime | None:
    """datetime aware a partir de datetime/ISO-8601; None se não parseável."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = isoparse(value)
        except (ValueError, OverflowError):
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@runtime_checkable
class ValidationRule(Protocol):
    """Contrato de uma regra de campo."""

    def validate(self, value: Any, field: str) -> None:
        """Levanta ValidationError se `value` violar a regra."""
        ...

    def message(self, field: str | None = None) -> str:
        """Mensagem legível da regra para o campo."""
        ...


@dataclass(frozen=True, slots=True)
class RequiredRule:
    """Valor presente: não None e não string vazia."""

    def validate(self, value: Any, field: str) -> None:
        if value is None or value == "":
            raise ValidationError(self.message(field), {"field": field, "value": value})

    def message(self, field: str | None = None) -> str:
        return f"{field} is required" if field else "Field is required"


@dataclass(frozen=True, slots=True)
class StringLengthRule:
    """Comprimento de string entre min_length e max_length (inclusivos)."""

    min_length: int | None = None
    max_length: int | None = None

    def validate(self, value: Any, field: str) -> None:
        if value is None:
            return
        if not isinstance(value, str):
            raise ValidationError(
                f"{field} must be a string",
                {"field": field, "value": value, "expected_type": "str"},
            )

        length = len(value)
        if self.min_length is not None and length < self.min_length:
            raise ValidationError(
                self.message(field),
                {
                    "field": field,
                    "value": value,
                    "min_length": self.min_length,
                    "actual_length": length,
                },
            )
        if self.max_length is not None and length > self.max_length:
            raise ValidationError(
                self.message(field),
                {
                    "field": field,
                    "value": value,
                    "max_length": self.max_length,
                    "actual_length": length,
                },
            )

    def message(self, field: str | None = None) -> str:
        prefix = f"{field} " if field else ""
        if self.min_length is not None and self.max_length is not None:
            return f"{prefix}must be between {self.min_length} and {self.max_length} characters"
        if self.min_length is not None:
            return f"{prefix}must be at least {self.min_length} characters"
        return f"{prefix}must be at most {self.max_length} characters"


@dataclass(frozen=True, slots=True)
class RangeRule:
    """Número entre min_value e max_value (inclusivos). Usado para rating."""

    min_value: float
    max_value: float

    def validate(self, value: Any, field: str) -> None:
        if value is None:
            return
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ValidationError(
                f"{field} must be a number",
                {"field": field, "value": value, "expected_type": "number"},
            )
        if not self.min_value <= value <= self.max_value:
            raise ValidationError(
                self.message(field),
                {"field": field, "value": value, "min": self.min_value, "max": self.max_value},
            )

    def message(self, field: str | None = None) -> str:
        prefix = f"{field} " if field else ""
        return f"{prefix}must be between {self.min_value} and {self.max_value}"


@dataclass(frozen=True, slots=True)
class OneOfRule:
    """Valor pertence a um conjunto fechado (ex.: SessionStatus)."""

    allowed: Collection[str] = field(default_factory=frozenset)

    def validate(self, value: Any, field: str) -> None:
        if value is None:
            return
        if value not in self.allowed:
            raise ValidationError(
                self.message(field),
                {"field": field, "value": value, "allowed_values": sorted(self.allowed)},
            )

    def message(self, field: str | None = None) -> str:
        prefix = f"{field} " if field else ""
        return f"{prefix}must be one of: {', '.join(sorted(self.allowed))}"


@dataclass(frozen=True, slots=True)
class DateRule:
    """datetime ou string ISO-8601 parseável."""

    def validate(self, value: Any, field: str) -> None:
        if value is None:
            return
        if _as_datetime(value) is None:
            raise ValidationError(self.message(field), {"field": field, "value": value})

    def message(self, field: str | None = None) -> str:
        return f"{field} must be a valid date" if field else "Invalid date format"


@dataclass(frozen=True, slots=True)
class FutureDateRule:
    """Data estritamente posterior ao `clock()` atual."""

    clock: Callable[[], datetime] = _utcnow

    def validate(self, value: Any, field: str) -> None:
        if value is None:
            return
        parsed = _as_datetime(value)
        if parsed is None:
            raise ValidationError(
                f"{field} must be a valid date", {"field": field, "value": value}
            )
        now = self.clock()
        if parsed <= now:
            raise ValidationError(
                self.message(field),
                {"field": field, "value": value, "now": now.isoformat()},
            )

    def message(self, field: str | None = None) -> str:
        return f"{field} must be a future date" if field else "Date must be in the future"
