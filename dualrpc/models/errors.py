"""Коды ошибок JSON-RPC и исключения, которыми обмениваются кодеки и диспетчер.

Стандартные коды JSON-RPC 2.0:
    -32700: Parse error
    -32600: Invalid Request
    -32601: Method not found
    -32602: Invalid params
    -32603: Internal error
Коды из диапазона -32000..-32099 закреплены за сервером.
"""

from __future__ import annotations

from typing import Any, Optional

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_ERROR = -32099
RESERVED_PREFIX = -32001
VERSION_MISMATCH = -32002

# Ошибки структуры: ответ отправляется даже для запроса без id.
STRUCTURAL_CODES = frozenset({PARSE_ERROR, INVALID_REQUEST, RESERVED_PREFIX, VERSION_MISMATCH})


class RpcFailure(Exception):
    """Базовая ошибка протокола с JSON-RPC кодом."""

    default_code = INTERNAL_ERROR

    def __init__(self, message: str, *, code: Optional[int] = None, data: Any = None) -> None:
        super().__init__(message)
        self.code = self.default_code if code is None else code
        self.data = data

    @property
    def is_structural(self) -> bool:
        return self.code in STRUCTURAL_CODES


class PayloadDecodeError(RpcFailure):
    default_code = PARSE_ERROR


class InvalidRequestError(RpcFailure):
    default_code = INVALID_REQUEST


class InvalidParamsError(RpcFailure):
    default_code = INVALID_PARAMS


class ValueDecodeError(InvalidParamsError):
    """Значение на проводе не соответствует грамматике кодека."""

    def __init__(self, detail: str = "", **kwargs: Any) -> None:
        message = "Invalid parameter"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, **kwargs)


__all__ = [
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "PARSE_ERROR",
    "RESERVED_PREFIX",
    "SERVER_ERROR",
    "STRUCTURAL_CODES",
    "VERSION_MISMATCH",
    "InvalidParamsError",
    "InvalidRequestError",
    "PayloadDecodeError",
    "RpcFailure",
    "ValueDecodeError",
]
