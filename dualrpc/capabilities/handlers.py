"""Демонстрационные серверные методы."""

from __future__ import annotations

import logging
from typing import Any, Dict

from pydantic import BaseModel

from dualrpc.capabilities.registry import CapabilitySet, pydantic_params_validator

logger = logging.getLogger("dualrpc.capabilities.handlers")


class SaveFieldsParams(BaseModel):
    field1: str
    field2: str
    field3: str


def get_fields() -> Dict[str, str]:
    return {"field1": "mimi", "field2": "pipi", "field3": "popo"}


def save_fields(field1: str, field2: str, field3: str) -> str:
    if field2 == "Chupacabra":
        return "Chupacabra detected on second field!!!"
    return f"Got your fields: field1=[{field1}]; field2=[{field2}]; field3=[{field3}]"


def echo(text: Any) -> Any:
    return text


def add(a: float, b: float) -> float:
    return a + b


def fail(message: str = "") -> None:
    """Всегда падает; удобно для проверки ответа `Server error`."""
    logger.debug("fail() called with %r", message)
    raise RuntimeError(message)


def register_demo_capabilities(capabilities: CapabilitySet) -> CapabilitySet:
    capabilities.register("getFields", get_fields, description="Return the stored form fields.")
    capabilities.register(
        "saveFields",
        save_fields,
        params_validator=pydantic_params_validator(SaveFieldsParams),
        description="Store three form fields.",
    )
    capabilities.register("echo", echo, description="Return the argument unchanged.")
    capabilities.register("add", add, description="Sum two numbers.")
    capabilities.register("fail", fail)
    return capabilities


__all__ = [
    "SaveFieldsParams",
    "add",
    "echo",
    "fail",
    "get_fields",
    "register_demo_capabilities",
    "save_fields",
]
