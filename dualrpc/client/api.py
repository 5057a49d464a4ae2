"""Объявления удалённых методов на стороне клиента.

Объявление задаёт порядок параметров (XML-RPC не знает именованных
параметров), функции преобразования значений, обязательность полей,
хук ответа и колбэк по умолчанию. Объявленные методы доступны как
`client.api.<name>(params, callback)`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from dualrpc.models.errors import InvalidParamsError

if TYPE_CHECKING:  # pragma: no cover
    from dualrpc.client.correlator import RpcClient


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (str, list, dict)) and not value)


@dataclass
class ParamField:
    name: str
    convert: Optional[Callable[[Any], Any]] = None
    required: bool = False


@dataclass
class ApiMethod:
    name: str
    params: List[ParamField] = field(default_factory=list)
    hook: Optional[Callable[[Any], Any]] = None
    callback: Optional[Callable[..., Any]] = None

    @property
    def param_names(self) -> List[str]:
        return [param.name for param in self.params]

    def prepare_params(self, values: Any) -> Any:
        """Применяет `convert` и проверяет обязательные поля; списки передаются как есть."""
        if not self.params or not (values is None or isinstance(values, dict)):
            return values
        prepared: Dict[str, Any] = dict(values or {})
        missing = []
        for param in self.params:
            value = prepared.get(param.name)
            if param.convert is not None:
                value = param.convert(value)
                prepared[param.name] = value
            if param.required and _is_empty(value):
                missing.append(param.name)
        if missing:
            raise InvalidParamsError(f"Missing required params for {self.name}: {', '.join(missing)}")
        return prepared


class ApiNamespace:
    """Доступ к объявленным методам как к атрибутам: `client.api.saveFields(values, cb)`."""

    def __init__(self, client: "RpcClient") -> None:
        self._client = client

    def __getattr__(self, name: str) -> Callable[..., None]:
        if name.startswith("_") or self._client.declaration(name) is None:
            raise AttributeError(f"Remote method {name!r} is not declared")

        def _call(params: Any = None, callback: Optional[Callable[..., Any]] = None, **options: Any) -> None:
            self._client.invoke(name, params, callback=callback, **options)

        _call.__name__ = name
        return _call

    def __dir__(self) -> List[str]:
        return self._client.declared_names()


__all__ = ["ApiMethod", "ApiNamespace", "ParamField"]
