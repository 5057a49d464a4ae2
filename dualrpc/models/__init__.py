"""Модели сообщений и таксономия ошибок."""

from .errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    RESERVED_PREFIX,
    SERVER_ERROR,
    VERSION_MISMATCH,
    InvalidParamsError,
    InvalidRequestError,
    PayloadDecodeError,
    RpcFailure,
    ValueDecodeError,
)
from .messages import ClientException, RpcError, RpcRequest, RpcResponse, is_valid_id

__all__ = [
    "ClientException",
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "PARSE_ERROR",
    "RESERVED_PREFIX",
    "SERVER_ERROR",
    "VERSION_MISMATCH",
    "InvalidParamsError",
    "InvalidRequestError",
    "PayloadDecodeError",
    "RpcError",
    "RpcFailure",
    "RpcRequest",
    "RpcResponse",
    "ValueDecodeError",
    "is_valid_id",
]
