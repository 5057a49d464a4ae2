"""Кодек JSON-RPC 2.0: прямое структурное отображение через `json`."""

from __future__ import annotations

import base64
import json
from datetime import date, datetime
from typing import Any, Dict, List, Tuple

from dualrpc.codec.base import Codec, WireUnit, omit_unrepresentable
from dualrpc.core.protocol import Protocol
from dualrpc.models.errors import (
    InvalidRequestError,
    PayloadDecodeError,
    ValueDecodeError,
)
from dualrpc.models.messages import RpcRequest, RpcResponse


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (set, frozenset)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(value: Any) -> str:
    return json.dumps(
        omit_unrepresentable(value),
        default=_json_default,
        ensure_ascii=False,
        allow_nan=False,
        separators=(",", ":"),
    )


class JsonCodec(Codec):
    protocol = Protocol.JSON_RPC

    def encode_value(self, value: Any) -> str:
        return dumps(value)

    def decode_value(self, fragment: str) -> Any:
        try:
            return json.loads(fragment)
        except (TypeError, ValueError, RecursionError) as exc:
            raise ValueDecodeError(str(exc)) from exc

    def encode_request(self, request: RpcRequest) -> str:
        return dumps(request.to_json_dict())

    def encode_response(self, response: RpcResponse) -> str:
        return dumps(response.to_json_dict())

    def parse_payload(self, body: str) -> Tuple[bool, List[Any]]:
        text = (body or "").strip()
        if not text:
            raise InvalidRequestError("Invalid Request")
        try:
            data = json.loads(text)
        except (ValueError, RecursionError) as exc:
            raise PayloadDecodeError("Request parse error") from exc
        if isinstance(data, list):
            if not data:
                raise InvalidRequestError("Invalid Request. Empty batch")
            return True, data
        return False, [data]

    def read_unit(self, raw: Any) -> WireUnit:
        if not isinstance(raw, dict):
            raise InvalidRequestError("Invalid Request")
        unit = WireUnit(
            method=raw.get("method"),
            params=raw.get("params"),
            id=raw.get("id"),
            version=raw.get("jsonrpc"),
            source=raw,
        )
        if unit.params is not None and not isinstance(unit.params, (list, dict)):
            unit.error = InvalidRequestError("Invalid Request. Params must be an array or an object")
        return unit

    def decode_responses(self, body: str) -> List[Dict[str, Any]]:
        text = (body or "").strip()
        if not text:
            return []
        try:
            data = json.loads(text)
        except (ValueError, RecursionError) as exc:
            raise PayloadDecodeError(f"Response parse error: {exc}") from exc
        parts = data if isinstance(data, list) else [data]
        for part in parts:
            if not isinstance(part, dict):
                raise PayloadDecodeError("Response part must be an object")
        return parts


__all__ = ["JsonCodec", "dumps"]
