from __future__ import annotations

import logging

import pytest

import dualrpc.batch as batch
from dualrpc.batch import Fragment, assemble, order_fragments
from dualrpc.core.protocol import Protocol


def test_batch_order_sorts_ascending() -> None:
    fragments = [Fragment("a", 2), Fragment("b", 0), Fragment("c", 1)]

    assert [fragment.text for fragment in order_fragments(fragments)] == ["b", "c", "a"]
    assert assemble(fragments, Protocol.JSON_RPC) == "[b,c,a]"


def test_batch_order_is_stable_for_ties() -> None:
    fragments = [Fragment("first", 1), Fragment("second"), Fragment("third", 1), Fragment("fourth")]

    assert assemble(fragments, Protocol.JSON_RPC) == "[second,fourth,first,third]"


def test_single_fragment_is_unwrapped() -> None:
    assert assemble([Fragment('{"x":1}', 5)], Protocol.JSON_RPC) == '{"x":1}'
    assert assemble([Fragment("<methodCall/>")], Protocol.XML_RPC) == "<methodCall/>"


def test_xml_batch_wrapper_warns_once(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    monkeypatch.setattr(batch, "_xml_batch_warned", False)
    fragments = [Fragment("<a/>", 1), Fragment("<b/>", 0)]

    with caplog.at_level(logging.WARNING, logger="dualrpc.batch"):
        first = assemble(fragments, Protocol.XML_RPC)
        second = assemble(fragments, Protocol.XML_RPC)

    assert first == second == "<batch><b/><a/></batch>"
    warnings = [record for record in caplog.records if "not part of the XML-RPC specification" in record.message]
    assert len(warnings) == 1
