"""Серверный диспетчер: разбор payload, валидация, вызов методов, сборка ответа.

Каждый входящий payload проходит RAW -> PARSED -> VALID/INVALID ->
DISPATCHED -> RESPONDED; батч разветвляется на независимые элементы.
Ошибки разбора и валидации не выбрасываются наружу, а становятся частями
ответа в том же транспортном ответе.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Dict, List, Optional, Union

from dualrpc.batch import wrap
from dualrpc.capabilities.registry import CapabilitySet
from dualrpc.codec import Codec, WireUnit, get_codec
from dualrpc.core.config import NO_CACHE_HEADERS
from dualrpc.core.protocol import JSON_RPC_VERSION, Protocol
from dualrpc.models.errors import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    RESERVED_PREFIX,
    SERVER_ERROR,
    VERSION_MISMATCH,
    InvalidRequestError,
    RpcFailure,
)
from dualrpc.models.messages import RpcError, RpcRequest, RpcResponse, is_valid_id

logger = logging.getLogger("dualrpc.server.dispatcher")

_METHOD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_RESERVED_PREFIX = "rpc."


@dataclass
class Reply:
    """Готовый транспортный ответ: тело, content-type и заголовки против кэширования."""

    body: str
    content_type: str
    headers: Dict[str, str] = field(default_factory=dict)
    parts: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.body


class Dispatcher:
    """Обрабатывает payload целиком и возвращает один `Reply`."""

    def __init__(
        self,
        capabilities: CapabilitySet,
        *,
        protocol: Protocol = Protocol.JSON_RPC,
        send_error_source: bool = False,
        xml_batch: bool = False,
        max_workers: int = 1,
    ) -> None:
        self.capabilities = capabilities
        self.protocol = protocol
        self.send_error_source = send_error_source
        self.xml_batch = xml_batch
        self.max_workers = max(1, max_workers)

    def dispatch(self, body: Union[str, bytes, None], protocol: Optional[Protocol] = None) -> Reply:
        codec = get_codec(protocol or self.protocol, xml_batch=self.xml_batch)
        if isinstance(body, (bytes, bytearray)):
            try:
                body = bytes(body).decode("utf-8")
            except UnicodeDecodeError:
                return self._reply(codec, [self._error_part(PARSE_ERROR, "Request parse error")])

        try:
            is_batch, units = codec.parse_payload(body or "")
        except RpcFailure as exc:
            logger.info("Rejected %s payload: %s", codec.protocol.value, exc)
            return self._reply(codec, [self._error_part(exc.code, str(exc))])

        handle = partial(self.handle_unit, codec)
        if is_batch and self.max_workers > 1 and len(units) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="dualrpc-unit") as pool:
                parts = list(pool.map(handle, units))
        else:
            parts = [handle(unit) for unit in units]
        return self._reply(codec, [part for part in parts if part is not None])

    def handle_unit(self, codec: Codec, raw: Any) -> Optional[RpcResponse]:
        """Обрабатывает один элемент; None означает, что часть ответа не нужна (уведомление)."""
        try:
            unit = codec.read_unit(raw)
        except RpcFailure as exc:
            return self._error_part(exc.code, str(exc), source=raw if isinstance(raw, dict) else None)

        if not is_valid_id(unit.id):
            return self._error_part(INVALID_REQUEST, "Invalid Request. Bad id", source=unit.source)

        if unit.error is not None:
            return self._unit_error(unit, unit.error)

        problem = self._validate(codec.protocol, unit)
        if problem is not None:
            return self._unit_error(unit, problem)

        request = RpcRequest(method=unit.method, params=unit.params, id=unit.id)
        capability = self.capabilities.get(request.method)
        if capability is None:
            return self._unit_error(
                unit,
                RpcFailure(f"Method [{request.method}] not found", code=METHOD_NOT_FOUND),
            )

        try:
            result = capability.invoke(request.params)
        except RpcFailure as exc:
            return self._unit_error(unit, exc)
        except Exception as exc:
            logger.exception("Capability %s failed", request.method)
            return self._unit_error(unit, RpcFailure(str(exc), code=SERVER_ERROR))

        if request.is_notification:
            logger.debug("Notification %s handled, no response part", request.method)
            return None
        return RpcResponse.success(result, request.id)

    @staticmethod
    def _validate(protocol: Protocol, unit: WireUnit) -> Optional[RpcFailure]:
        method = unit.method
        if not isinstance(method, str) or not method:
            return InvalidRequestError("Invalid Request")
        if protocol is Protocol.JSON_RPC and unit.version is None:
            return InvalidRequestError("Invalid Request")
        if method.startswith(_RESERVED_PREFIX):
            return RpcFailure(
                "Illegal method name. Method cannot start with 'rpc.'",
                code=RESERVED_PREFIX,
            )
        if not _METHOD_RE.match(method):
            return InvalidRequestError("Invalid Request. Illegal method name")
        if protocol is Protocol.JSON_RPC and unit.version != JSON_RPC_VERSION:
            return RpcFailure(
                f"Server JSON-RPC version mismatch. Expected '{JSON_RPC_VERSION}'",
                code=VERSION_MISMATCH,
            )
        return None

    def _unit_error(self, unit: WireUnit, failure: RpcFailure) -> Optional[RpcResponse]:
        if unit.id is None and not failure.is_structural:
            # Уведомление: ошибка остаётся только в логе.
            logger.info("Notification %s failed: %s", unit.method, failure)
            return None
        return self._error_part(
            failure.code,
            str(failure),
            request_id=unit.id,
            data=failure.data,
            source=unit.source,
        )

    def _error_part(
        self,
        code: int,
        message: str,
        *,
        request_id: Any = None,
        data: Any = None,
        source: Any = None,
    ) -> RpcResponse:
        error = RpcError.create(code, message, data=data, source=source, send_source=self.send_error_source)
        return RpcResponse.failure(error, request_id)

    def _encode_part(self, codec: Codec, part: RpcResponse) -> str:
        try:
            return codec.encode_response(part)
        except (TypeError, ValueError, RecursionError) as exc:
            logger.exception("Failed to encode response part id=%r", part.id)
            fallback = self._error_part(INTERNAL_ERROR, f"Internal error: {exc}", request_id=part.id)
            return codec.encode_response(fallback)

    def _reply(self, codec: Codec, parts: List[RpcResponse]) -> Reply:
        texts = [self._encode_part(codec, part) for part in parts]
        return Reply(
            body=wrap(texts, codec.protocol),
            content_type=codec.protocol.reply_content_type,
            headers=dict(NO_CACHE_HEADERS),
            parts=len(texts),
        )


__all__ = ["Dispatcher", "Reply"]
