"""Реестр серверных методов и демонстрационные обработчики."""

from .registry import Capability, CapabilitySet, ParamsValidator, pydantic_params_validator

__all__ = ["Capability", "CapabilitySet", "ParamsValidator", "pydantic_params_validator"]
