"""Subpacotes precisam ser pacotes regulares para entrar no wheel."""

from __future__ import annotations

import importlib

import pytest


@pytest.mark.parametrize(
    "name",
    [
        "coach_sessions.domain",
        "coach_sessions.domain.session",
        "coach_sessions.domain.validation",
        "coach_sessions.domain.protocols",
        "coach_sessions.observability",
        "coach_sessions.utils",
        "coach_sessions.application",
        "coach_sessions.config",
        "coach_sessions.infra",
    ],
)
def test_subpackage_has_init(name: str) -> None:
    module = importlib.import_module(name)

    assert module.__file__ is not None
    assert module.__file__.endswith("__init__.py")
