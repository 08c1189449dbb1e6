"""Motor de validação de sessões (regras de campo + regras de negócio)."""

from coach_sessions.domain.validation.rules import (
    DateRule,
    FutureDateRule,
    OneOfRule,
    RangeRule,
    RequiredRule,
    StringLengthRule,
    ValidationRule,
)
from coach_sessions.domain.validation.validator import SessionValidator, default_rules

__all__ = [
    "DateRule",
    "FutureDateRule",
    "OneOfRule",
    "RangeRule",
    "RequiredRule",
    "SessionValidator",
    "StringLengthRule",
    "ValidationRule",
    "default_rules",
]
