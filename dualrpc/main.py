# dualrpc/main.py
"""Точка входа FastAPI: RPC-сервер JSON-RPC 2.0 / XML-RPC на одном эндпоинте `/rpc`.

Протокол выбирается по content-type запроса (`text/xml` -> XML-RPC), иначе
берётся RPC_PROTOCOL из окружения.
"""
from __future__ import annotations

import logging

from fastapi import FastAPI

from .api import configure_routes, router as api_router
from .capabilities.handlers import register_demo_capabilities
from .capabilities.registry import CapabilitySet
from .core.config import (
    MAX_WORKERS,
    PROTOCOL,
    SEND_ERROR_SOURCE,
    SERVER_INFO,
    XML_BATCH_ENABLED,
)
from .server.dispatcher import Dispatcher


logger = logging.getLogger("dualrpc")
if not logger.handlers:
    logging.basicConfig(level=logging.INFO)


# =========================
# FastAPI app
# =========================
app = FastAPI(title="dualrpc", version=SERVER_INFO["version"])


# =========================
# Capability set
# =========================
CAPABILITIES = register_demo_capabilities(CapabilitySet())

DISPATCHER = Dispatcher(
    CAPABILITIES,
    protocol=PROTOCOL,
    send_error_source=SEND_ERROR_SOURCE,
    xml_batch=XML_BATCH_ENABLED,
    max_workers=MAX_WORKERS,
)

logger.info(
    "dualrpc ready: protocol=%s, methods=%s, xml_batch=%s",
    PROTOCOL.value,
    CAPABILITIES.names(),
    XML_BATCH_ENABLED,
)

configure_routes(dispatcher=DISPATCHER)
app.include_router(api_router)
