"""Barramento publish/subscribe por tipo de evento.

Responsabilidades:
- Registrar handlers por tipo (idempotente: o mesmo handler não é duplicado)
- Entregar na ordem de inscrição, de forma síncrona no contexto do publisher
- Isolar falhas: handler que falha é logado/contado e não interrompe os demais
- Handlers que retornam awaitable viram tasks em background no loop corrente

O barramento não conhece o domínio; o payload é opaco.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import threading
import types
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from coach_sessions.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

Handler = Callable[[Any], Any]
HandlerErrorCallback = Callable[[str, BaseException, int], None]


def _same_handler(a: Handler, b: Handler) -> bool:
    """Mesma instância de handler; bound methods comparam objeto e função."""
    if isinstance(a, types.MethodType) and isinstance(b, types.MethodType):
        return a.__self__ is b.__self__ and a.__func__ is b.__func__
    if isinstance(a, types.BuiltinMethodType) and isinstance(b, types.BuiltinMethodType):
        return a.__self__ is b.__self__ and a.__name__ == b.__name__
    return a is b


@dataclass(frozen=True, slots=True)
class SubscriptionHandle:
    """Identifica uma inscrição; usado para cancelá-la."""

    event_type: str
    handler: Handler = field(compare=False, repr=False)
    token: int = 0


@dataclass(frozen=True, slots=True)
class PublishResult:
    """Resumo de uma publicação."""

    event_type: str
    delivered: int = 0
    failed: int = 0
    scheduled: int = 0
    """Entregas que retornaram awaitable e seguem em background."""


class EventBus:
    """Pub/sub síncrono com isolamento de falhas por handler."""

    def __init__(self, on_handler_error: HandlerErrorCallback | None = None) -> None:
        self._lock = threading.RLock()
        self._subscriptions: dict[str, list[SubscriptionHandle]] = {}
        self._tokens = itertools.count(1)
        self._on_handler_error = on_handler_error
        self._background: set[asyncio.Future[Any]] = set()

    def subscribe(self, event_type: str, handler: Handler) -> SubscriptionHandle:
        """Inscreve `handler`; repetir a inscrição devolve o handle existente."""
        if not event_type:
            raise ValueError("event_type must be a non-empty string")

        with self._lock:
            handles = self._subscriptions.setdefault(event_type, [])
            for existing in handles:
                if _same_handler(existing.handler, handler):
                    return existing

            handle = SubscriptionHandle(event_type, handler, next(self._tokens))
            handles.append(handle)
            count = len(handles)

        logger.debug(
            "event_subscriber_added",
            extra={"event_type": event_type, "subscriber_count": count},
        )
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        """Remove a inscrição. Retorna False se já tinha sido removida."""
        with self._lock:
            handles = self._subscriptions.get(handle.event_type)
            if not handles:
                return False
            remaining = [h for h in handles if h.token != handle.token]
            removed = len(remaining) != len(handles)
            if remaining:
                self._subscriptions[handle.event_type] = remaining
            else:
                del self._subscriptions[handle.event_type]

        if removed:
            logger.debug(
                "event_subscriber_removed",
                extra={"event_type": handle.event_type, "subscriber_count": len(remaining)},
            )
        return removed

    def publish(self, event_type: str, payload: Any = None) -> PublishResult:
        """Entrega `payload` a cada inscrito de `event_type`, em ordem.

        Nunca levanta exceção por falha de handler.
        """
        with self._lock:
            snapshot = tuple(self._subscriptions.get(event_type, ()))

        logger.info(
            "event_published",
            extra={"event_type": event_type, "subscriber_count": len(snapshot)},
        )

        delivered = failed = scheduled = 0
        for index, handle in enumerate(snapshot):
            try:
                result = handle.handler(payload)
            except Exception as exc:
                failed += 1
                logger.exception(
                    "event_handler_failed",
                    extra={"event_type": event_type, "subscriber_index": index},
                )
                self._report(event_type, exc, index)
                continue

            if inspect.isawaitable(result):
                if self._schedule(event_type, index, result):
                    scheduled += 1
                else:
                    failed += 1
                    continue

            delivered += 1

        return PublishResult(event_type, delivered, failed, scheduled)

    def _schedule(self, event_type: str, index: int, awaitable: Awaitable[Any]) -> bool:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning(
                "event_handler_async_without_loop",
                extra={"event_type": event_type, "subscriber_index": index},
            )
            self._report(
                event_type,
                RuntimeError("async handler requires a running event loop"),
                index,
            )
            return False

        task = asyncio.ensure_future(awaitable, loop=loop)
        self._background.add(task)

        def _done(fut: asyncio.Future[Any]) -> None:
            self._background.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.error(
                    "event_handler_task_failed",
                    extra={
                        "event_type": event_type,
                        "subscriber_index": index,
                        "error_type": type(exc).__name__,
                    },
                    exc_info=exc,
                )
                self._report(event_type, exc, index)

        task.add_done_callback(_done)
        return True

    def _report(self, event_type: str, exc: BaseException, index: int) -> None:
        if self._on_handler_error is None:
            return
        try:
            self._on_handler_error(event_type, exc, index)
        except Exception:
            logger.exception("event_error_callback_failed", extra={"event_type": event_type})

    async def wait_for_pending(self) -> None:
        """Aguarda as tasks de handlers assíncronos em andamento."""
        while self._background:
            await asyncio.gather(*tuple(self._background), return_exceptions=True)

    # === Diagnóstico ===

    def subscriber_count(self, event_type: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(event_type, ()))

    def event_types(self) -> list[str]:
        with self._lock:
            return list(self._subscriptions)

    def total_subscriber_count(self) -> int:
        with self._lock:
            return sum(len(h) for h in self._subscriptions.values())

    # === Teardown ===

    def clear(self, event_type: str) -> int:
        """Remove todos os inscritos de um tipo; retorna quantos foram removidos."""
        with self._lock:
            removed = len(self._subscriptions.pop(event_type, ()))
        logger.info(
            "event_subscribers_cleared",
            extra={"event_type": event_type, "removed_subscribers": removed},
        )
        return removed

    def clear_all(self) -> int:
        """Remove todas as inscrições (shutdown/logout)."""
        with self._lock:
            removed = sum(len(h) for h in self._subscriptions.values())
            self._subscriptions.clear()
        logger.info("event_bus_cleared", extra={"removed_subscribers": removed})
        return removed


@lru_cache(maxsize=1)
def get_event_bus() -> EventBus:
    """Instância única do processo (criada no primeiro uso)."""
    return EventBus()


def shutdown_event_bus() -> None:
    """Limpa as inscrições e descarta a instância do processo."""
    if get_event_bus.cache_info().currsize:
        get_event_bus().clear_all()
    get_event_bus.cache_clear()
