"""Глобальные константы и настройки dualrpc (сервер и клиент)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from dualrpc.core.protocol import Protocol

logger = logging.getLogger("dualrpc.core.config")


def _get_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        logger.warning("Некорректное значение %s=%r, используем %s", name, raw, default)
        return default


def _get_protocol(name: str) -> Protocol:
    raw = os.getenv(name)
    try:
        return Protocol.parse(raw)
    except ValueError:
        logger.warning("Некорректное значение %s=%r, используем JSON-RPC", name, raw)
        return Protocol.JSON_RPC


SERVER_INFO: Dict[str, str] = {
    "name": "dualrpc",
    "version": os.getenv("APP_VERSION", "0.1.0"),
}

# Протокол по умолчанию, если content-type запроса ничего не говорит.
PROTOCOL = _get_protocol("RPC_PROTOCOL")

# Отправлять ли исходный запрос в поле `source` ошибки.
SEND_ERROR_SOURCE = _get_bool(os.getenv("RPC_SEND_ERROR_SOURCE"))

# Нестандартная обёртка <batch> для XML-RPC включается явно.
XML_BATCH_ENABLED = _get_bool(os.getenv("RPC_XML_BATCH"))

MAX_WORKERS = _get_int("RPC_MAX_WORKERS", 1, minimum=1)

NO_CACHE_HEADERS: Dict[str, str] = {
    "Pragma": "no-cache",
    "Cache-Control": "no-cache, must-revalidate",
    "Expires": "Sat, 26 Jul 1997 05:00:00 GMT",
}


@dataclass(slots=True)
class ClientConfig:
    """Настройки RPC-клиента, частично получаемые из окружения."""

    url: str = ""
    protocol: Protocol = Protocol.JSON_RPC
    timeout_ms: int = 30000
    xml_batch: bool = False
    default_scope: Any = None
    callbacks: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    error: Optional[Callable[..., Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, **overrides: Any) -> "ClientConfig":
        config = cls(
            url=os.getenv("RPC_URL", ""),
            protocol=_get_protocol("RPC_PROTOCOL"),
            timeout_ms=_get_int("RPC_TIMEOUT_MS", 30000),
            xml_batch=_get_bool(os.getenv("RPC_XML_BATCH")),
        )
        for key, value in overrides.items():
            setattr(config, key, value)
        return config


__all__ = [
    "ClientConfig",
    "MAX_WORKERS",
    "NO_CACHE_HEADERS",
    "PROTOCOL",
    "SEND_ERROR_SOURCE",
    "SERVER_INFO",
    "XML_BATCH_ENABLED",
]
