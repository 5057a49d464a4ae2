from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pytest

from dualrpc.capabilities import CapabilitySet
from dualrpc.capabilities.handlers import register_demo_capabilities
from dualrpc.client import (
    ApiMethod,
    CallSpec,
    LoopbackTransport,
    ParamField,
    RpcClient,
    Transport,
)
from dualrpc.client.transport import CompleteCallback, FailureCallback
from dualrpc.core.config import ClientConfig
from dualrpc.core.protocol import Protocol
from dualrpc.models.errors import INTERNAL_ERROR, METHOD_NOT_FOUND
from dualrpc.models.messages import ClientException
from dualrpc.server import Dispatcher


class RecordingTransport(Transport):
    """Loopback-транспорт, запоминающий отправленные payload."""

    def __init__(self, dispatcher: Dispatcher) -> None:
        self.inner = LoopbackTransport(dispatcher)
        self.sent: List[str] = []

    def send(
        self,
        payload: str,
        protocol: Protocol,
        on_complete: CompleteCallback,
        on_failure: FailureCallback,
    ) -> None:
        self.sent.append(payload)
        self.inner.send(payload, protocol, on_complete, on_failure)


class CannedTransport(Transport):
    def __init__(self, body: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.body = body
        self.error = error

    def send(
        self,
        payload: str,
        protocol: Protocol,
        on_complete: CompleteCallback,
        on_failure: FailureCallback,
    ) -> None:
        if self.error is not None:
            on_failure(self.error)
        else:
            on_complete(self.body or "")


def _make_client(
    protocol: Protocol = Protocol.JSON_RPC,
    *,
    xml_batch: bool = False,
    **config: Any,
) -> tuple[RpcClient, RecordingTransport, List[ClientException]]:
    dispatcher = Dispatcher(register_demo_capabilities(CapabilitySet()), xml_batch=xml_batch)
    transport = RecordingTransport(dispatcher)
    errors: List[ClientException] = []
    client_config = ClientConfig(protocol=protocol, xml_batch=xml_batch, error=errors.append, **config)
    client = RpcClient(client_config, transport=transport)
    return client, transport, errors


@pytest.mark.parametrize("protocol", [Protocol.JSON_RPC, Protocol.XML_RPC])
def test_call_delivers_result_to_callback(protocol: Protocol) -> None:
    client, transport, errors = _make_client(protocol)
    results: List[Any] = []

    client.invoke("saveFields", ["a", "b", "c"], callback=results.append)

    assert results == ["Got your fields: field1=[a]; field2=[b]; field3=[c]"]
    assert errors == []
    assert client.pending() == {}
    assert len(transport.sent) == 1


def test_generated_ids_are_unique() -> None:
    client, transport, _ = _make_client()

    client.call(*[CallSpec("echo", [index], callback=lambda _result: None) for index in range(50)])

    ids = [request["id"] for request in json.loads(transport.sent[0])]
    assert len(set(ids)) == 50


def test_batch_is_sent_in_batch_order() -> None:
    client, transport, _ = _make_client()
    results: List[Any] = []

    client.call(
        {"method": "echo", "params": ["two"], "batchOrder": 2, "callback": results.append},
        {"method": "echo", "params": ["zero"], "batchOrder": 0, "callback": results.append},
        {"method": "echo", "params": ["one"], "batchOrder": 1, "callback": results.append},
    )

    assert len(transport.sent) == 1
    assert transport.sent[0].startswith("[")
    assert results == ["zero", "one", "two"]


def test_xml_batch_without_extension_sends_calls_separately() -> None:
    client, transport, errors = _make_client(Protocol.XML_RPC)
    results: List[Any] = []

    client.call(
        CallSpec("echo", ["late"], batch_order=1, callback=results.append),
        CallSpec("echo", ["early"], batch_order=0, callback=results.append),
    )

    assert len(transport.sent) == 2
    assert all(payload.startswith("<methodCall>") for payload in transport.sent)
    assert results == ["early", "late"]
    assert errors == []


def test_xml_batch_with_extension() -> None:
    client, transport, errors = _make_client(Protocol.XML_RPC, xml_batch=True)
    results: List[Any] = []

    client.call(
        CallSpec("add", [1, 2], callback=results.append),
        CallSpec("getFields", callback=results.append),
    )

    assert len(transport.sent) == 1
    assert transport.sent[0].startswith("<batch>")
    assert results == [3, {"field1": "mimi", "field2": "pipi", "field3": "popo"}]
    assert errors == []


def test_notification_gets_no_callback_or_registry_entry() -> None:
    client, transport, errors = _make_client()
    results: List[Any] = []

    client.call(CallSpec("echo", ["quiet"], id=None, callback=results.append))

    assert '"id"' not in transport.sent[0]
    assert results == []
    assert errors == []
    assert client.pending() == {}


def test_server_error_raises_exception_event() -> None:
    client, _, errors = _make_client()

    client.invoke("nope", callback=lambda _result: pytest.fail("callback must not run"))

    assert len(errors) == 1
    assert errors[0].title == "Server message"
    assert errors[0].code == METHOD_NOT_FOUND
    assert errors[0].method == "nope"
    assert client.pending() == {}


def test_unregistered_response_id() -> None:
    client, _, errors = _make_client()

    client.process_result({"id": "ghost", "result": 1})

    assert errors[0].title == "Request error"
    assert errors[0].request_id == "ghost"


def test_bare_part_is_ignored() -> None:
    client, _, errors = _make_client()

    client.process_result({"id": "ghost"})

    assert errors == []


def test_before_result_can_cancel_callback() -> None:
    client, _, _ = _make_client()
    results: List[Any] = []
    seen: List[Dict[str, Any]] = []

    def veto(part: Dict[str, Any]) -> bool:
        seen.append(part)
        return False

    client.on("beforeresult", veto)
    client.invoke("echo", ["x"], callback=results.append)

    assert results == []
    assert seen[0]["result"] == "x"
    assert client.pending() == {}


def test_callback_runs_in_scope() -> None:
    class Form:
        value: Any = None

    form = Form()

    def store(self: Form, result: Any) -> None:
        self.value = result

    client, _, _ = _make_client()
    client.call(CallSpec("echo", ["scoped"], scope=form, callback=store))

    assert form.value == "scoped"


def test_default_scope_from_config() -> None:
    class Form:
        value: Any = None

    form = Form()

    def store(self: Form, result: Any) -> None:
        self.value = result

    client, _, _ = _make_client(default_scope=form)
    client.invoke("echo", ["default"], callback=store)

    assert form.value == "default"


def test_config_callbacks_and_missing_callback() -> None:
    results: List[Any] = []
    client, _, errors = _make_client(callbacks={"getFields": results.append})

    client.invoke("getFields")
    client.invoke("echo", ["orphan"])

    assert results == [{"field1": "mimi", "field2": "pipi", "field3": "popo"}]
    assert errors[0].title == "Configuration error"
    assert errors[0].message == "Callback for remote procedure [echo] not defined!"


def test_non_callable_config_callback_is_reported() -> None:
    errors: List[ClientException] = []
    config = ClientConfig(callbacks={"echo": "not callable"}, error=errors.append)

    RpcClient(config, transport=CannedTransport())

    assert errors[0].title == "Configuration error"
    assert "Wrong api configuration object" in errors[0].message
    assert config.callbacks == {}


def test_callback_failure_is_reported() -> None:
    client, _, errors = _make_client()

    def explode(_result: Any) -> None:
        raise ValueError("bad callback")

    client.invoke("echo", ["x"], callback=explode)

    assert errors[0].title == "Callback error"
    assert errors[0].message == "bad callback"


def test_calls_before_initialize_are_queued() -> None:
    dispatcher = Dispatcher(register_demo_capabilities(CapabilitySet()))
    transport = RecordingTransport(dispatcher)
    order: List[str] = []
    client = RpcClient(ClientConfig(), transport=transport, auto_initialize=False)
    client.on("beforeinitialized", lambda _client: order.append("before"))
    client.on("initialized", lambda _client: order.append("initialized"))

    client.invoke("echo", ["first"], callback=lambda result: order.append(result))
    client.invoke("echo", ["second"], callback=lambda result: order.append(result))

    assert transport.sent == []
    client.initialize()

    assert client.initialized is True
    assert order == ["before", "initialized", "first", "second"]


def test_api_declaration_converts_orders_and_hooks() -> None:
    client, transport, errors = _make_client(Protocol.XML_RPC)
    results: List[Any] = []
    client.declare(
        ApiMethod(
            "saveFields",
            params=[
                ParamField("field1", convert=str.upper),
                ParamField("field2", required=True),
                ParamField("field3"),
            ],
            hook=lambda result: result.replace("Got", "Saved"),
        )
    )

    client.api.saveFields({"field3": "c", "field2": "b", "field1": "a"}, results.append)

    assert "<param><value><string>A</string></value></param>" in transport.sent[0]
    assert results == ["Saved your fields: field1=[A]; field2=[b]; field3=[c]"]
    assert errors == []
    assert "saveFields" in dir(client.api)


def test_api_declaration_required_param() -> None:
    client, transport, errors = _make_client()
    client.declare(ApiMethod("saveFields", params=[ParamField("field1", required=True)]))

    client.api.saveFields({"field1": ""}, lambda _result: None)

    assert transport.sent == []
    assert errors[0].title == "Validation error"
    assert client.pending() == {}


def test_api_declaration_default_callback_and_fields_sort_order() -> None:
    results: List[Any] = []
    client, transport, _ = _make_client(Protocol.XML_RPC)
    client.declare(ApiMethod("saveFields", callback=results.append))

    client.call(
        {
            "method": "saveFields",
            "params": {"field2": "b", "field1": "a", "field3": "c"},
            "fieldsSortOrder": ["field1", "field2", "field3"],
        }
    )

    assert results == ["Got your fields: field1=[a]; field2=[b]; field3=[c]"]


def test_undeclared_api_method() -> None:
    client, _, _ = _make_client()

    with pytest.raises(AttributeError):
        client.api.notDeclared


def test_connection_error_releases_pending_calls() -> None:
    errors: List[ClientException] = []
    client = RpcClient(ClientConfig(error=errors.append), transport=CannedTransport(error=OSError("refused")))

    client.call(
        CallSpec("echo", ["a"], id="a", callback=lambda _result: None),
        CallSpec("echo", ["b"], id="b", callback=lambda _result: None),
        CallSpec("echo", ["quiet"], id=None),
    )

    assert [error.title for error in errors] == ["Connection error"]
    assert "refused" in errors[0].message
    assert errors[0].details["ids"] == ["a", "b"]
    assert client.pending() == {}


def test_connection_error_for_single_call_names_request() -> None:
    errors: List[ClientException] = []
    client = RpcClient(ClientConfig(error=errors.append), transport=CannedTransport(error=OSError("down")))

    client.invoke("echo", ["x"], id="only", callback=lambda _result: None)

    assert errors[0].request_id == "only"
    assert client.pending() == {}


@pytest.mark.parametrize(
    ("protocol", "body"),
    [
        (Protocol.JSON_RPC, "<html>oops"),
        (Protocol.JSON_RPC, "[" * 100000),
        (
            Protocol.XML_RPC,
            "<methodResponse><id><value><string>r1</string></value></id><params><param>"
            '<value><string><_ctrl code="q"/></string></value></param></params></methodResponse>',
        ),
        (
            Protocol.XML_RPC,
            "<methodResponse><id><value><string>r1</string></value></id><params><param>"
            f"<value><int>{'9' * 5000}</int></value></param></params></methodResponse>",
        ),
    ],
)
def test_undecodable_response_is_reported(protocol: Protocol, body: str) -> None:
    errors: List[ClientException] = []
    client = RpcClient(ClientConfig(protocol=protocol, error=errors.append), transport=CannedTransport(body=body))

    client.invoke("echo", ["x"], id="r1", callback=lambda _result: pytest.fail("callback must not run"))

    assert [error.title for error in errors] == ["Response error"]
    assert client.pending() == {}


def test_unexpected_decoder_failure_is_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    errors: List[ClientException] = []
    client = RpcClient(ClientConfig(error=errors.append), transport=CannedTransport(body="{}"))

    def broken_decoder(body: str) -> List[Dict[str, Any]]:
        raise RuntimeError("decoder exploded")

    monkeypatch.setattr(client._codec, "decode_responses", broken_decoder)
    client.invoke("echo", ["x"], callback=lambda _result: None)

    assert errors[0].title == "Response error"
    assert errors[0].message == "decoder exploded"
    assert client.pending() == {}


class SilentTransport(Transport):
    """Транспорт, который никогда не сообщает о завершении."""

    def send(
        self,
        payload: str,
        protocol: Protocol,
        on_complete: CompleteCallback,
        on_failure: FailureCallback,
    ) -> None:
        return None


def test_unanswered_call_stays_pending_until_discarded() -> None:
    client = RpcClient(ClientConfig(), transport=SilentTransport())

    client.invoke("echo", ["x"], id="lost", callback=lambda _result: None)

    assert list(client.pending()) == ["lost"]
    assert client.discard("lost") is not None
    assert client.pending() == {}


@pytest.mark.parametrize("bad_id", [[1], {"a": 1}, True])
def test_bad_request_id_is_configuration_error(bad_id: Any) -> None:
    client, transport, errors = _make_client()

    client.call({"method": "echo", "params": ["x"], "id": bad_id, "callback": lambda _result: None})

    assert transport.sent == []
    assert errors[0].title == "Configuration error"
    assert client.pending() == {}


def test_bad_request_id_does_not_block_batch_siblings() -> None:
    client, transport, errors = _make_client()
    results: List[Any] = []

    client.call(
        {"method": "echo", "params": ["bad"], "id": [1], "callback": results.append},
        {"method": "echo", "params": ["good"], "callback": results.append},
    )

    assert len(transport.sent) == 1
    assert results == ["good"]
    assert [error.title for error in errors] == ["Configuration error"]


def test_unrepresentable_xml_result_is_reported() -> None:
    capabilities = CapabilitySet()
    capabilities.register("opaque", lambda: object())
    capabilities.register("notANumber", lambda: float("nan"))
    errors: List[ClientException] = []
    client = RpcClient(
        ClientConfig(protocol=Protocol.XML_RPC, error=errors.append),
        transport=LoopbackTransport(Dispatcher(capabilities)),
    )

    client.invoke("opaque", callback=lambda _result: pytest.fail("callback must not run"))
    client.invoke("notANumber", callback=lambda _result: pytest.fail("callback must not run"))

    assert [error.title for error in errors] == ["Server message", "Server message"]
    assert all(error.code == INTERNAL_ERROR for error in errors)
    assert client.pending() == {}


def test_event_listeners_can_be_removed() -> None:
    client, _, errors = _make_client()
    seen: List[Any] = []

    def watch(part: Dict[str, Any]) -> None:
        seen.append(part["result"])

    client.on("beforeresult", watch)
    assert client.events.listeners("beforeresult") == [watch]

    client.invoke("echo", ["first"], callback=lambda _result: None)
    client.events.off("beforeresult", watch)
    client.invoke("echo", ["second"], callback=lambda _result: None)

    assert seen == ["first"]
    assert client.events.listeners("beforeresult") == []
    assert errors == []


def test_exception_is_logged_without_error_handler(caplog: pytest.LogCaptureFixture) -> None:
    client = RpcClient(ClientConfig(), transport=CannedTransport(error=OSError("down")))

    client.invoke("echo", ["x"], callback=lambda _result: None)

    assert "Connection error" in caplog.text
