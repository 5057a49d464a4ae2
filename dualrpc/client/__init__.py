"""Клиентская часть: корреляция ответов, объявления методов, транспорты."""

from .api import ApiMethod, ApiNamespace, ParamField
from .correlator import AUTO_ID, CallSpec, PendingCall, RpcClient
from .events import EventEmitter
from .transport import HttpTransport, LoopbackTransport, Transport

__all__ = [
    "AUTO_ID",
    "ApiMethod",
    "ApiNamespace",
    "CallSpec",
    "EventEmitter",
    "HttpTransport",
    "LoopbackTransport",
    "ParamField",
    "PendingCall",
    "RpcClient",
    "Transport",
]
