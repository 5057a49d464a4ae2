"""Сборка нескольких закодированных сообщений в один проводной payload.

Фрагменты сортируются по возрастанию `batch_order` (сортировка устойчивая:
при равных значениях сохраняется порядок подачи). Один фрагмент уходит без
обёртки. Для XML-RPC используется нестандартная обёртка `<batch>...</batch>`:
её нет в спецификации XML-RPC, и сторонние серверы могут её не принять.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

from dualrpc.core.protocol import Protocol

logger = logging.getLogger("dualrpc.batch")

_WRAPPERS: Dict[Protocol, Tuple[str, str, str]] = {
    Protocol.JSON_RPC: ("[", ",", "]"),
    Protocol.XML_RPC: ("<batch>", "", "</batch>"),
}

_xml_batch_warned = False


@dataclass
class Fragment:
    """Закодированное сообщение, его позиция в батче и id запроса (None для уведомления)."""

    text: str
    batch_order: int = 0
    request_id: Any = None


def order_fragments(fragments: Iterable[Fragment]) -> List[Fragment]:
    return sorted(fragments, key=lambda fragment: fragment.batch_order)


def wrap(texts: List[str], protocol: Protocol) -> str:
    if not texts:
        return ""
    if len(texts) == 1:
        return texts[0]
    if protocol is Protocol.XML_RPC:
        _warn_xml_batch()
    prefix, separator, suffix = _WRAPPERS[protocol]
    return prefix + separator.join(texts) + suffix


def assemble(fragments: Iterable[Fragment], protocol: Protocol) -> str:
    return wrap([fragment.text for fragment in order_fragments(fragments)], protocol)


def _warn_xml_batch() -> None:
    global _xml_batch_warned
    if _xml_batch_warned:
        return
    _xml_batch_warned = True
    logger.warning(
        "XML-RPC <batch> wrapper is not part of the XML-RPC specification; "
        "third-party servers may reject it"
    )


__all__ = ["Fragment", "assemble", "order_fragments", "wrap"]
