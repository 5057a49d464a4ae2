"""RPC-клиент: сборка запросов, реестр ожидающих вызовов и разбор ответов.

`RpcClient.call` ничего не возвращает: результат приходит в колбэк, ошибки -
в событие `exception`. Для уведомлений (`id=None`) не приходит ничего.

Ожидающий вызов живёт в реестре до ответа с тем же id или до ошибки
транспорта либо разбора ответа для его payload. Отмены нет: вызов
без ответа оставляет запись навсегда, поэтому таймаут нужно ограничивать
на уровне транспорта (`ClientConfig.timeout_ms`) или снимать запись через
`discard`.
"""

from __future__ import annotations

import inspect
import logging
import threading
import types
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union
from uuid import uuid4

from dualrpc.batch import Fragment, assemble, order_fragments
from dualrpc.client.api import ApiMethod, ApiNamespace
from dualrpc.client.events import EventEmitter, Listener
from dualrpc.client.transport import HttpTransport, Transport
from dualrpc.codec import get_codec
from dualrpc.core.config import ClientConfig
from dualrpc.core.protocol import Protocol
from dualrpc.models.errors import RpcFailure
from dualrpc.models.messages import ClientException, RpcRequest, is_valid_id

logger = logging.getLogger("dualrpc.client.correlator")


class _AutoId:
    def __repr__(self) -> str:
        return "AUTO_ID"


# Маркер "сгенерировать UUID"; явный `id=None` означает уведомление.
AUTO_ID: Any = _AutoId()


@dataclass
class CallSpec:
    """Описание одного вызова, переданного в `RpcClient.call`."""

    method: str
    params: Any = None
    id: Any = AUTO_ID
    scope: Any = None
    callback: Optional[Callable[..., Any]] = None
    batch_order: int = 0
    params_order: Optional[List[str]] = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "CallSpec":
        options = dict(raw)
        if "batchOrder" in options:
            options["batch_order"] = options.pop("batchOrder")
        if "fieldsSortOrder" in options:
            options["params_order"] = options.pop("fieldsSortOrder")
        return cls(**options)


@dataclass
class PendingCall:
    method: str
    scope: Any = None
    callback: Optional[Callable[..., Any]] = None


def _request_ids(fragments: Iterable[Fragment]) -> List[Any]:
    return [fragment.request_id for fragment in fragments if fragment.request_id is not None]


class RpcClient:
    """Клиент JSON-RPC 2.0 / XML-RPC с асинхронной доставкой результатов."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: Optional[Transport] = None,
        api: Optional[Iterable[ApiMethod]] = None,
        auto_initialize: bool = True,
    ) -> None:
        self.config = config
        self.events = EventEmitter()
        self.api = ApiNamespace(self)
        self._codec = get_codec(config.protocol, xml_batch=config.xml_batch)
        self._pending: Dict[Any, PendingCall] = {}
        self._declarations: Dict[str, ApiMethod] = {}
        self._hooks: Dict[str, Callable[[Any], Any]] = {}
        self._lock = threading.Lock()
        self._initialized = False

        self.events.on("exception", self._on_exception)
        self._check_callbacks()
        for method in api or []:
            self.declare(method)

        self._transport = transport if transport is not None else HttpTransport(config)
        if auto_initialize:
            self.initialize()

    # --- жизненный цикл ---

    @property
    def protocol(self) -> Protocol:
        return self.config.protocol

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Завершает инициализацию и отправляет вызовы, поставленные в очередь до неё."""
        if self._initialized:
            return
        self.events.emit("beforeinitialized", self)
        self._initialized = True
        logger.debug("client initialized, protocol=%s", self.protocol.value)
        self.events.emit("initialized", self)

    def close(self) -> None:
        self._transport.close()

    def on(self, event: str, listener: Listener) -> None:
        self.events.on(event, listener)

    def once(self, event: str, listener: Listener) -> None:
        self.events.once(event, listener)

    # --- объявления методов ---

    def declare(self, method: ApiMethod) -> None:
        self._declarations[method.name] = method
        if method.hook is not None:
            self._hooks[method.name] = method.hook

    def declaration(self, name: str) -> Optional[ApiMethod]:
        return self._declarations.get(name)

    def declared_names(self) -> List[str]:
        return sorted(self._declarations)

    def register_hook(self, method: str, hook: Callable[[Any], Any]) -> None:
        """Хук ответа: чистое преобразование результата перед колбэком."""
        self._hooks[method] = hook

    # --- реестр ---

    def pending(self) -> Dict[Any, PendingCall]:
        with self._lock:
            return dict(self._pending)

    def discard(self, request_id: Any) -> Optional[PendingCall]:
        return self._pop_pending(request_id)

    def _pop_pending(self, request_id: Any) -> Optional[PendingCall]:
        if request_id is None:
            return None
        with self._lock:
            try:
                return self._pending.pop(request_id, None)
            except TypeError:
                return None

    # --- отправка ---

    def invoke(self, method: str, params: Any = None, *, callback: Optional[Callable[..., Any]] = None, **options: Any) -> None:
        self.call(CallSpec(method=method, params=params, callback=callback, **options))

    def call(self, *specs: Union[CallSpec, Mapping[str, Any]]) -> None:
        """Отправляет один вызов или батч; результаты приходят в колбэки."""
        if not specs:
            return
        if not self._initialized:
            # Повторяем вызов после инициализации в порядке подачи.
            self.events.once("initialized", lambda _client: self.call(*specs))
            return

        fragments: List[Fragment] = []
        for raw in specs:
            fragment = self._build(raw)
            if fragment is not None:
                fragments.append(fragment)
        if not fragments:
            return

        if len(fragments) > 1 and self.protocol is Protocol.XML_RPC and not self.config.xml_batch:
            logger.info("XML-RPC batch extension disabled, sending %d calls one by one", len(fragments))
            for fragment in order_fragments(fragments):
                self._send(fragment.text, _request_ids([fragment]))
            return
        self._send(assemble(fragments, self.protocol), _request_ids(fragments))

    def _build(self, raw: Union[CallSpec, Mapping[str, Any]]) -> Optional[Fragment]:
        try:
            spec = raw if isinstance(raw, CallSpec) else CallSpec.from_mapping(raw)
            batch_order = int(spec.batch_order or 0)
        except (TypeError, ValueError) as exc:
            self._raise("Configuration error", f"Bad request config: {exc}")
            return None

        if spec.id is not AUTO_ID and not is_valid_id(spec.id):
            self._raise(
                "Configuration error",
                f"Bad request id {spec.id!r}: expected a string, a number or None",
                method=spec.method,
            )
            return None

        scope = spec.scope if spec.scope is not None else self.config.default_scope
        request_id = str(uuid4()) if spec.id is AUTO_ID else spec.id
        declaration = self._declarations.get(spec.method)
        try:
            params = declaration.prepare_params(spec.params) if declaration else spec.params
            params = self._shape_params(params, spec, declaration)
            request = RpcRequest(method=spec.method, params=params, id=request_id)
            text = self._codec.encode_request(request)
        except (RpcFailure, TypeError, ValueError) as exc:
            self._raise("Validation error", str(exc), method=spec.method, request_id=request_id)
            return None

        if not request.is_notification:
            with self._lock:
                if request_id in self._pending:
                    logger.warning("Request id %r is already pending, replacing", request_id)
                self._pending[request_id] = PendingCall(method=spec.method, scope=scope, callback=spec.callback)
        return Fragment(
            text=text,
            batch_order=batch_order,
            request_id=None if request.is_notification else request_id,
        )

    def _shape_params(self, params: Any, spec: CallSpec, declaration: Optional[ApiMethod]) -> Any:
        if self.protocol is not Protocol.XML_RPC or not isinstance(params, dict):
            return params
        order = spec.params_order or (declaration.param_names if declaration else None)
        if not order:
            return params
        return [params.get(name) for name in order]

    def _send(self, payload: str, request_ids: List[Any]) -> None:
        logger.debug("sending payload=%s", payload)
        self._transport.send(
            payload,
            self.protocol,
            partial(self._on_complete, request_ids),
            partial(self._on_failure, request_ids),
        )

    # --- приём ---

    def _on_complete(self, request_ids: List[Any], body: str) -> None:
        try:
            parts = self._codec.decode_responses(body)
        except Exception as exc:
            # Ответ не разобран: ни один вызов из этого payload уже не получит результат.
            logger.debug("response decode failed: %r", exc)
            self._fail_calls("Response error", str(exc) or repr(exc), request_ids, details=body)
            return
        for part in parts:
            self.process_result(part)

    def _on_failure(self, request_ids: List[Any], exc: Exception) -> None:
        self._fail_calls("Connection error", f"Server not respond: {exc}", request_ids, details=repr(exc))

    def _fail_calls(self, title: str, message: str, request_ids: List[Any], *, details: Any) -> None:
        dropped = [request_id for request_id in request_ids if self._pop_pending(request_id) is not None]
        self._raise(
            title,
            message,
            request_id=dropped[0] if len(dropped) == 1 else None,
            details={"error": details, "ids": dropped},
        )

    def process_result(self, part: Dict[str, Any]) -> None:
        request_id = part.get("id")

        error = part.get("error")
        if error is not None:
            pending = self._pop_pending(request_id)
            error = error if isinstance(error, dict) else {"message": str(error)}
            code = error.get("code")
            self._raise(
                "Server message",
                error.get("message"),
                code=code if isinstance(code, int) else None,
                request_id=request_id,
                method=pending.method if pending else None,
                details=error,
            )
            return

        if "result" not in part:
            logger.debug("Bare response envelope id=%r ignored", request_id)
            return

        pending = self._pop_pending(request_id)
        if pending is None:
            self._raise(
                "Request error",
                f"Server response contains unregistered request id {request_id!r} or an echoed notification",
                request_id=request_id,
            )
            return

        if self.events.emit("beforeresult", part) is False:
            logger.debug("beforeresult listener cancelled callback for id=%r", request_id)
            return

        callback = self._resolve_callback(pending)
        if callback is None:
            self._raise(
                "Configuration error",
                f"Callback for remote procedure [{pending.method}] not defined!",
                request_id=request_id,
                method=pending.method,
            )
            return

        try:
            result = part["result"]
            hook = self._hooks.get(pending.method)
            if hook is not None:
                result = hook(result)
            self._apply(callback, pending.scope, result)
        except Exception as exc:
            logger.exception("Callback for %s failed", pending.method)
            self._raise("Callback error", str(exc), request_id=request_id, method=pending.method)

    def _resolve_callback(self, pending: PendingCall) -> Optional[Callable[..., Any]]:
        if pending.callback is not None:
            return pending.callback
        callback = self.config.callbacks.get(pending.method)
        if callback is not None:
            return callback
        declaration = self._declarations.get(pending.method)
        return declaration.callback if declaration else None

    @staticmethod
    def _apply(callback: Callable[..., Any], scope: Any, result: Any) -> None:
        # Обычную функцию вызываем в контексте scope, как метод этого объекта.
        if scope is not None and inspect.isfunction(callback):
            types.MethodType(callback, scope)(result)
        else:
            callback(result)

    # --- исключения ---

    def _raise(self, title: str, message: Any, **fields: Any) -> None:
        self.events.emit("exception", ClientException(title=title, message=message, **fields))

    def _on_exception(self, exc: ClientException) -> None:
        handler = self.config.error
        if handler is None:
            logger.warning("RPC client exception [%s]: %s", exc.title, exc.message)
            return
        try:
            handler(exc)
        except Exception:
            logger.exception("RPC client error handler failed for [%s]: %s", exc.title, exc.message)

    def _check_callbacks(self) -> None:
        broken = [name for name, callback in self.config.callbacks.items() if not callable(callback)]
        if not broken:
            return
        for name in broken:
            self.config.callbacks.pop(name)
        self._raise("Configuration error", f"Wrong api configuration object: {', '.join(broken)} not callable")


__all__ = ["AUTO_ID", "CallSpec", "PendingCall", "RpcClient"]
