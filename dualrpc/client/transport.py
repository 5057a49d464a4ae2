"""Транспорты клиента: HTTP через httpx и петля в локальный диспетчер."""

from __future__ import annotations

import abc
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

import httpx

from dualrpc.core.config import ClientConfig
from dualrpc.core.protocol import Protocol
from dualrpc.server.dispatcher import Dispatcher

logger = logging.getLogger("dualrpc.client.transport")

CompleteCallback = Callable[[str], None]
FailureCallback = Callable[[Exception], None]


class Transport(abc.ABC):
    """Один обмен запрос/ответ на каждый вызов `send`; завершение сообщается колбэком."""

    @abc.abstractmethod
    def send(
        self,
        payload: str,
        protocol: Protocol,
        on_complete: CompleteCallback,
        on_failure: FailureCallback,
    ) -> None:
        ...

    def close(self) -> None:
        return None


class HttpTransport(Transport):
    """POST через `httpx.Client` в фоновом потоке; вызывающий код не блокируется."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        client: Optional[httpx.Client] = None,
        max_workers: int = 4,
    ) -> None:
        if not config.url:
            raise ValueError("RPC url is not configured")
        self._config = config
        self._client = client or httpx.Client(timeout=(config.timeout_ms / 1000) or None)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dualrpc-http")

    def send(
        self,
        payload: str,
        protocol: Protocol,
        on_complete: CompleteCallback,
        on_failure: FailureCallback,
    ) -> None:
        self._pool.submit(self._post, payload, protocol, on_complete, on_failure)

    def _headers(self, protocol: Protocol) -> Dict[str, str]:
        headers = {
            "Content-Type": f"{protocol.content_type}; charset=utf-8",
            "Accept": protocol.content_type,
        }
        headers.update(self._config.headers)
        return headers

    def _post(
        self,
        payload: str,
        protocol: Protocol,
        on_complete: CompleteCallback,
        on_failure: FailureCallback,
    ) -> None:
        try:
            logger.debug("_post sending payload=%s", payload)
            response = self._client.post(
                self._config.url,
                content=payload.encode("utf-8"),
                headers=self._headers(protocol),
            )
            response.raise_for_status()
        except Exception as exc:
            logger.debug("_post exception=%s", exc)
            self._notify(on_failure, exc)
            return
        logger.debug("_post status=%s body=%s", response.status_code, response.text)
        self._notify(on_complete, response.text)

    @staticmethod
    def _notify(callback: Callable[[Any], None], value: Any) -> None:
        # Исключение внутри фонового потока иначе осело бы в непрочитанном Future.
        try:
            callback(value)
        except Exception:
            logger.exception("Transport completion callback failed")

    def close(self) -> None:
        self._pool.shutdown(wait=True)
        self._client.close()


class LoopbackTransport(Transport):
    """Синхронно передаёт payload в локальный `Dispatcher` (тесты, встраивание в процесс)."""

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher

    def send(
        self,
        payload: str,
        protocol: Protocol,
        on_complete: CompleteCallback,
        on_failure: FailureCallback,
    ) -> None:
        try:
            reply = self._dispatcher.dispatch(payload, protocol)
        except Exception as exc:
            on_failure(exc)
            return
        on_complete(reply.body)


__all__ = ["HttpTransport", "LoopbackTransport", "Transport"]
