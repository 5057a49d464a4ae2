"""Выбор протокола: JSON-RPC 2.0 или XML-RPC."""

from __future__ import annotations

from enum import Enum
from typing import Optional

JSON_RPC_VERSION = "2.0"


class Protocol(str, Enum):
    """Ось конфигурации, меняющая кодек, обёртку батча и content-type."""

    JSON_RPC = "JSON-RPC"
    XML_RPC = "XML-RPC"

    @property
    def content_type(self) -> str:
        if self is Protocol.XML_RPC:
            return "text/xml"
        return "application/json"

    @property
    def reply_content_type(self) -> str:
        return f"{self.content_type}; charset=utf-8"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "Protocol":
        """Разбирает имя протокола без учёта регистра и разделителей.

        Принимает `JSON-RPC`, `jsonrpc`, `xml_rpc` и т.п.; пустое значение даёт JSON-RPC.
        """
        if raw is None or not raw.strip():
            return cls.JSON_RPC
        normalised = raw.strip().upper().replace("_", "").replace("-", "")
        for member in cls:
            if member.value.replace("-", "") == normalised:
                return member
        raise ValueError(f"Unknown protocol {raw!r}")

    @classmethod
    def from_content_type(cls, content_type: Optional[str], default: "Protocol") -> "Protocol":
        if content_type and "xml" in content_type.lower():
            return cls.XML_RPC
        if content_type and "json" in content_type.lower():
            return cls.JSON_RPC
        return default


__all__ = ["JSON_RPC_VERSION", "Protocol"]
