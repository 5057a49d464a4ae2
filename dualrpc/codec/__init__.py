"""Кодеки значений и сообщений для JSON-RPC и XML-RPC."""

from __future__ import annotations

from typing import Any

from dualrpc.codec.base import Codec, WireUnit
from dualrpc.codec.json_codec import JsonCodec
from dualrpc.codec.xml_codec import XmlCodec
from dualrpc.core.protocol import Protocol


def get_codec(protocol: Protocol, *, xml_batch: bool = False) -> Codec:
    if protocol is Protocol.XML_RPC:
        return XmlCodec(batch_enabled=xml_batch)
    return JsonCodec()


def encode(value: Any, protocol: Protocol) -> str:
    """Нативное значение -> фрагмент проводного формата."""
    return get_codec(protocol).encode_value(value)


def decode(fragment: str, protocol: Protocol) -> Any:
    """Фрагмент проводного формата -> нативное значение или `ValueDecodeError`."""
    return get_codec(protocol).decode_value(fragment)


__all__ = ["Codec", "JsonCodec", "WireUnit", "XmlCodec", "decode", "encode", "get_codec"]
