"""Instrumentação de latência por operação."""

from __future__ import annotations

import contextlib
import time
from collections.abc import Generator
from typing import Any

from coach_sessions.observability.logging import get_logger

logger = get_logger(__name__)


@contextlib.contextmanager
def timed(component: str, /, **fields: Any) -> Generator[None, None, None]:
    """Mede e loga o tempo gasto no bloco.

    Uso:
        with timed("lifecycle.start_session", session_id=mask_id(session_id)):
            ...

    Loga `component_latency` com component, elapsed_ms, outcome ("ok" | "error")
    e quaisquer campos extras informados. A exceção original é repropagada.
    """
    start = time.perf_counter()
    outcome = "ok"
    try:
        yield
    except BaseException:
        outcome = "error"
        raise
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "component_latency",
            extra={
                **fields,
                "component": component,
                "elapsed_ms": round(elapsed_ms, 2),
                "outcome": outcome,
            },
        )
