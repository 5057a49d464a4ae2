"""Общий контракт кодеков проводного формата."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from dualrpc.core.protocol import Protocol
from dualrpc.models.errors import RpcFailure
from dualrpc.models.messages import RpcRequest, RpcResponse


def is_unrepresentable(value: Any) -> bool:
    return callable(value) and not isinstance(value, type)


def omit_unrepresentable(value: Any) -> Any:
    """Рекурсивно выбрасывает значения, которые нельзя передать по проводу (функции)."""
    if isinstance(value, dict):
        return {key: omit_unrepresentable(item) for key, item in value.items() if not is_unrepresentable(item)}
    if isinstance(value, (list, tuple)):
        return [omit_unrepresentable(item) for item in value if not is_unrepresentable(item)]
    return value


@dataclass
class WireUnit:
    """Сырые поля одного запроса до валидации диспетчером."""

    method: Any = None
    params: Any = None
    id: Any = None
    version: Any = None
    source: Any = None
    error: Optional[RpcFailure] = None


class Codec(abc.ABC):
    """Преобразует модели сообщений в текст проводного формата и обратно."""

    protocol: Protocol

    @abc.abstractmethod
    def encode_value(self, value: Any) -> str:
        """Кодирует одно нативное значение во фрагмент формата."""

    @abc.abstractmethod
    def decode_value(self, fragment: str) -> Any:
        """Декодирует фрагмент; при ошибке бросает `ValueDecodeError`."""

    @abc.abstractmethod
    def encode_request(self, request: RpcRequest) -> str:
        ...

    @abc.abstractmethod
    def encode_response(self, response: RpcResponse) -> str:
        ...

    @abc.abstractmethod
    def parse_payload(self, body: str) -> Tuple[bool, List[Any]]:
        """Разбирает входящее тело сервера: (is_batch, сырые элементы)."""

    @abc.abstractmethod
    def read_unit(self, raw: Any) -> WireUnit:
        ...

    @abc.abstractmethod
    def decode_responses(self, body: str) -> List[Dict[str, Any]]:
        """Разбирает ответ сервера на стороне клиента в список частей-словарей."""


__all__ = ["Codec", "WireUnit", "is_unrepresentable", "omit_unrepresentable"]
