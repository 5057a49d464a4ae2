"""Кодек XML-RPC: `methodCall` / `methodResponse` и нестандартная обёртка `<batch>`.

Помимо стандартного XML-RPC используется необязательный дочерний элемент
`<id><value>...</value></id>` для корреляции запросов и ответов: его
отсутствие в `methodCall` означает уведомление.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Tuple

from dualrpc.codec.base import Codec, WireUnit
from dualrpc.codec.xml_values import (
    collect_text,
    encode_value,
    escape_text,
    from_xml,
    parse_document,
)
from dualrpc.core.protocol import Protocol
from dualrpc.models.errors import (
    InvalidRequestError,
    PayloadDecodeError,
    RpcFailure,
    ValueDecodeError,
)
from dualrpc.models.messages import RpcRequest, RpcResponse

logger = logging.getLogger("dualrpc.codec.xml_codec")

BATCH_TAG = "batch"
_TOO_DEEP = "value is nested too deeply"


def _encode_id(request_id: Any) -> str:
    if request_id is None:
        return ""
    encoded = encode_value(request_id)
    if encoded is None:
        return ""
    return f"<id>{encoded}</id>"


def _read_id(element: ET.Element) -> Any:
    id_element = element.find("id")
    if id_element is None:
        return None
    value = id_element.find("value")
    if value is None:
        text = (id_element.text or "").strip()
        return text or None
    return from_xml(value)


class XmlCodec(Codec):
    protocol = Protocol.XML_RPC

    def __init__(self, *, batch_enabled: bool = False) -> None:
        self.batch_enabled = batch_enabled

    def encode_value(self, value: Any) -> str:
        return encode_value(value) or ""

    def decode_value(self, fragment: str) -> Any:
        try:
            element = parse_document(fragment)
        except PayloadDecodeError as exc:
            raise ValueDecodeError(str(exc)) from exc
        try:
            return from_xml(element)
        except RecursionError as exc:
            raise ValueDecodeError(_TOO_DEEP) from exc

    def encode_request(self, request: RpcRequest) -> str:
        params = request.params
        if isinstance(params, dict):
            # Именованных параметров в XML-RPC нет: словарь уходит одной структурой.
            params = [params]
        encoded_params = []
        for param in params or []:
            encoded = encode_value(param)
            if encoded is None:
                continue
            encoded_params.append(f"<param>{encoded}</param>")
        return (
            "<methodCall>"
            f"<methodName>{escape_text(request.method)}</methodName>"
            f"{_encode_id(request.id)}"
            f"<params>{''.join(encoded_params)}</params>"
            "</methodCall>"
        )

    def encode_response(self, response: RpcResponse) -> str:
        if response.error is not None:
            fault = encode_value(
                {"faultCode": response.error.code, "faultString": response.error.message}
            )
            body = f"<fault>{fault}</fault>"
        else:
            encoded = encode_value(response.result)
            if encoded is None:
                raise TypeError(
                    f"Result of type {type(response.result).__name__} is not XML-RPC serializable"
                )
            body = f"<params><param>{encoded}</param></params>"
        return f"<methodResponse>{_encode_id(response.id)}{body}</methodResponse>"

    def parse_payload(self, body: str) -> Tuple[bool, List[Any]]:
        text = (body or "").strip()
        if not text:
            raise InvalidRequestError("Invalid Request")
        root = parse_document(text)
        if root.tag == BATCH_TAG:
            if not self.batch_enabled:
                logger.warning("Rejected XML-RPC <batch> payload: extension is disabled")
                raise InvalidRequestError("Invalid Request. XML-RPC batch extension is disabled")
            units = list(root)
            if not units:
                raise InvalidRequestError("Invalid Request. Empty batch")
            return True, units
        return False, [root]

    def read_unit(self, raw: Any) -> WireUnit:
        if not isinstance(raw, ET.Element) or raw.tag != "methodCall":
            raise InvalidRequestError("Invalid Request")
        unit = WireUnit()
        name = raw.find("methodName")
        try:
            if name is not None:
                unit.method = collect_text(name).strip()
            unit.id = _read_id(raw)
        except (ValueDecodeError, RecursionError) as exc:
            raise InvalidRequestError(f"Invalid Request. {exc}") from exc
        unit.source = {"method": unit.method, "id": unit.id}
        params = raw.find("params")
        values: List[Any] = []
        try:
            for param in params if params is not None else []:
                value = param.find("value") if param.tag == "param" else None
                if value is None:
                    raise ValueDecodeError(f"unexpected <{param.tag}> inside <params>")
                values.append(from_xml(value))
        except RpcFailure as exc:
            unit.error = exc
        except RecursionError:
            unit.error = ValueDecodeError(_TOO_DEEP)
        unit.params = values
        unit.source["params"] = values
        return unit

    def decode_responses(self, body: str) -> List[Dict[str, Any]]:
        text = (body or "").strip()
        if not text:
            return []
        root = parse_document(text)
        elements = list(root) if root.tag == BATCH_TAG else [root]
        try:
            return [self._read_response(element) for element in elements]
        except (ValueDecodeError, RecursionError) as exc:
            raise PayloadDecodeError(f"Response parse error: {exc}") from exc

    @staticmethod
    def _read_response(element: ET.Element) -> Dict[str, Any]:
        if element.tag != "methodResponse":
            raise PayloadDecodeError(f"Unexpected <{element.tag}> in response")
        part: Dict[str, Any] = {"id": _read_id(element)}
        fault = element.find("fault")
        if fault is not None:
            value = fault.find("value")
            details = from_xml(value) if value is not None else {}
            if not isinstance(details, dict):
                raise PayloadDecodeError("Fault must carry a struct")
            part["error"] = {
                "code": details.get("faultCode"),
                "message": details.get("faultString"),
            }
            return part
        params = element.find("params")
        param: Optional[ET.Element] = params.find("param") if params is not None else None
        value = param.find("value") if param is not None else None
        if value is not None:
            part["result"] = from_xml(value)
        return part


__all__ = ["BATCH_TAG", "XmlCodec"]
