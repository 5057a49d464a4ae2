"""FastAPI-маршруты RPC-сервера."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request, Response
from starlette.concurrency import run_in_threadpool

from dualrpc.codec import JsonCodec
from dualrpc.core.config import NO_CACHE_HEADERS, PROTOCOL, SERVER_INFO, XML_BATCH_ENABLED
from dualrpc.core.protocol import Protocol
from dualrpc.models.errors import INTERNAL_ERROR
from dualrpc.models.messages import RpcError, RpcResponse
from dualrpc.server.dispatcher import Dispatcher

logger = logging.getLogger("dualrpc.api.routes")

router = APIRouter()

_DISPATCHER: Optional[Dispatcher] = None


def configure_routes(*, dispatcher: Dispatcher) -> None:
    """Подключаем диспетчер после сборки реестра методов, чтобы избежать циклов импорта."""
    global _DISPATCHER
    _DISPATCHER = dispatcher


def _internal_error_body() -> str:
    part = RpcResponse.failure(RpcError.create(INTERNAL_ERROR, "Internal error"))
    return JsonCodec().encode_response(part)


@router.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@router.get("/rpc")
def rpc_info() -> Dict[str, Any]:
    methods = _DISPATCHER.capabilities.describe() if _DISPATCHER is not None else []
    return {
        "serverInfo": SERVER_INFO,
        "protocols": [protocol.value for protocol in Protocol],
        "defaultProtocol": PROTOCOL.value,
        "xmlBatch": XML_BATCH_ENABLED,
        "transport": {"type": "http", "endpoint": "/rpc"},
        "methods": methods,
    }


@router.post("/rpc")
async def rpc_endpoint(request: Request) -> Response:
    body = await request.body()
    default = _DISPATCHER.protocol if _DISPATCHER is not None else PROTOCOL
    protocol = Protocol.from_content_type(request.headers.get("content-type"), default)

    if _DISPATCHER is None:
        logger.error("RPC endpoint called before configure_routes()")
        return Response(
            content=_internal_error_body(),
            media_type=Protocol.JSON_RPC.reply_content_type,
            headers=dict(NO_CACHE_HEADERS),
        )

    reply = await run_in_threadpool(_DISPATCHER.dispatch, body, protocol)
    if reply.is_empty:
        return Response(status_code=204, headers=reply.headers)
    return Response(content=reply.body, media_type=reply.content_type, headers=reply.headers)


__all__ = ["configure_routes", "router"]
