"""Реестр серверных методов (Capability Set)."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Type

from pydantic import BaseModel, ValidationError

from dualrpc.models.errors import InvalidParamsError

logger = logging.getLogger("dualrpc.capabilities.registry")

ParamsValidator = Callable[[List[Any]], None]


def _signature_of(handler: Callable[..., Any]) -> Optional[inspect.Signature]:
    try:
        return inspect.signature(handler)
    except (TypeError, ValueError):
        return None


@dataclass
class Capability:
    """Вызываемый метод и объявленный порядок его параметров."""

    name: str
    handler: Callable[..., Any]
    params: Optional[List[str]] = None
    params_validator: Optional[ParamsValidator] = None
    description: str = ""
    defaults: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._signature = _signature_of(self.handler)
        if self._signature is None:
            if self.params is None:
                self.params = []
            return
        declared = [
            parameter
            for parameter in self._signature.parameters.values()
            if parameter.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
        ]
        if self.params is None:
            self.params = [parameter.name for parameter in declared]
        for parameter in declared:
            if parameter.default is not inspect.Parameter.empty:
                self.defaults.setdefault(parameter.name, parameter.default)

    def bind_arguments(self, params: Any) -> List[Any]:
        """Приводит params к позиционным аргументам.

        Словарь раскладывается по объявленным именам параметров; пропущенное
        имя берёт значение по умолчанию, а без него - ошибка Invalid params.
        Отсутствующие params означают вызов без аргументов.
        """
        if params is None:
            args: List[Any] = []
        elif isinstance(params, dict):
            args = []
            for name in self.params or []:
                if name in params:
                    args.append(params[name])
                elif name in self.defaults:
                    args.append(self.defaults[name])
                else:
                    raise InvalidParamsError(f"Invalid params. Missing parameter '{name}'")
            extra = set(params) - set(self.params or [])
            if extra:
                logger.debug("Ignoring unknown named params for %s: %s", self.name, sorted(extra))
        else:
            args = list(params)

        if self._signature is not None:
            try:
                self._signature.bind(*args)
            except TypeError as exc:
                raise InvalidParamsError(f"Invalid params. {exc}") from exc
        if self.params_validator is not None:
            self.params_validator(args)
        return args

    def invoke(self, params: Any) -> Any:
        return self.handler(*self.bind_arguments(params))


class CapabilitySet:
    """Таблица `имя метода -> Capability`, заполняется при старте и далее только читается."""

    def __init__(self) -> None:
        self._items: Dict[str, Capability] = {}

    def register(
        self,
        name: str,
        handler: Callable[..., Any],
        *,
        params: Optional[List[str]] = None,
        params_validator: Optional[ParamsValidator] = None,
        description: str = "",
    ) -> Capability:
        if not callable(handler):
            raise TypeError(f"Handler for {name!r} is not callable")
        capability = Capability(
            name=name,
            handler=handler,
            params=list(params) if params is not None else None,
            params_validator=params_validator,
            description=description or (inspect.getdoc(handler) or "").split("\n")[0],
        )
        if name in self._items:
            logger.warning("Capability %s is re-registered", name)
        self._items[name] = capability
        return capability

    def capability(self, name: Optional[str] = None, **options: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Декоратор для регистрации функции под её именем или под `name`."""

        def decorator(handler: Callable[..., Any]) -> Callable[..., Any]:
            self.register(name or handler.__name__, handler, **options)
            return handler

        return decorator

    def register_object(self, api: object) -> None:
        """Регистрирует все публичные методы объекта, как серверный класс Api."""
        for name, member in inspect.getmembers(api, predicate=callable):
            if name.startswith("_"):
                continue
            self.register(name, member)

    def get(self, name: str) -> Optional[Capability]:
        return self._items.get(name)

    def names(self) -> List[str]:
        return sorted(self._items)

    def describe(self) -> List[Dict[str, Any]]:
        return [
            {"name": item.name, "params": list(item.params or []), "description": item.description}
            for item in self._items.values()
        ]

    def __contains__(self, name: object) -> bool:
        return name in self._items

    def __iter__(self) -> Iterator[Capability]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)


def pydantic_params_validator(model: Type[BaseModel]) -> ParamsValidator:
    """Валидатор позиционных аргументов по полям pydantic-модели (в порядке объявления)."""
    names = list(model.model_fields)

    def _validate(args: List[Any]) -> None:
        try:
            model.model_validate(dict(zip(names, args)))
        except ValidationError as exc:
            raise InvalidParamsError(
                "Invalid params",
                data=exc.errors(include_url=False, include_context=False),
            ) from exc

    return _validate


__all__ = [
    "Capability",
    "CapabilitySet",
    "ParamsValidator",
    "pydantic_params_validator",
]
