"""Pydantic-модели запросов, ответов и ошибок RPC."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from dualrpc.core.protocol import JSON_RPC_VERSION


def _now() -> int:
    return int(time.time())


def _message_or_default(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        return "Unknown error"
    return value


class RpcRequest(BaseModel):
    """Один вызов удалённого метода; `id is None` означает уведомление."""

    method: str
    params: Optional[Union[List[Any], Dict[str, Any]]] = None
    id: Optional[Any] = None

    @property
    def is_notification(self) -> bool:
        return self.id is None

    def to_json_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"jsonrpc": JSON_RPC_VERSION, "method": self.method}
        if self.params is not None:
            payload["params"] = self.params
        if not self.is_notification:
            payload["id"] = self.id
        return payload


class RpcError(BaseModel):
    """Структура ошибки, встраиваемая в часть ответа."""

    code: int
    message: str = "Unknown error"
    time: int = Field(default_factory=_now)
    data: Optional[Any] = None
    source: Optional[Any] = None

    @field_validator("message", mode="before")
    @classmethod
    def _blank_message(cls, value: Any) -> str:
        return _message_or_default(value)

    @classmethod
    def create(
        cls,
        code: int,
        message: str,
        *,
        data: Any = None,
        source: Any = None,
        send_source: bool = False,
    ) -> "RpcError":
        return cls(code=code, message=message, data=data, source=source if send_source else None)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def is_valid_id(value: Any) -> bool:
    """Допустимый id: строка, число или None (уведомление)."""
    return value is None or (isinstance(value, (str, int, float)) and not isinstance(value, bool))


class RpcResponse(BaseModel):
    """Одна часть ответа: либо `result`, либо `error`, плюс эхо `id`."""

    result: Any = None
    error: Optional[RpcError] = None
    id: Optional[Any] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "RpcResponse":
        if self.error is not None and "result" in self.model_fields_set:
            raise ValueError("Response part cannot carry both result and error")
        return self

    @classmethod
    def success(cls, result: Any, request_id: Any) -> "RpcResponse":
        return cls(result=result, id=request_id)

    @classmethod
    def failure(cls, error: RpcError, request_id: Any = None) -> "RpcResponse":
        return cls(error=error, id=request_id)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_json_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"jsonrpc": JSON_RPC_VERSION}
        if self.error is not None:
            payload["error"] = self.error.to_json_dict()
        else:
            payload["result"] = self.result
        payload["id"] = self.id
        return payload


class ClientException(BaseModel):
    """Локальный сигнал `exception` клиента: ошибка сервера, декодирования или конфигурации."""

    title: str = "Exception"
    message: str = "Unknown error"
    code: Optional[int] = None
    time: int = Field(default_factory=_now)
    request_id: Optional[Any] = None
    method: Optional[str] = None
    details: Optional[Any] = None

    @field_validator("message", mode="before")
    @classmethod
    def _blank_message(cls, value: Any) -> str:
        return _message_or_default(value)


__all__ = ["ClientException", "RpcError", "RpcRequest", "RpcResponse", "is_valid_id"]
