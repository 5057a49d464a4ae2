"""Маршалинг значений XML-RPC.

Нативные типы Python играют роль размеченного объединения
{int, float, bool, str, None, datetime, bytes, list, dict}; кодирование и
декодирование заданы таблицами по типу и по имени элемента.

Правила, которые нужно воспроизводить побайтно ради совместимости:

* целые и целочисленные float -> ``<int>``; при декодировании значение, чьи
  int- и double-представления расходятся больше чем на 1, считается double
  (эвристика против расхождения 32/64 бит, а не точный детектор переполнения);
* строки экранируются как HTML (``< > & " '``), управляющие символы
  0x00-0x1F пишутся числовыми ссылками;
* даты - ``YYYY-MM-DDTHH:MM:SS[.ffffff]`` в UTC, при чтении допускается
  префикс (только год, год-месяц и т.д.). Декодер всегда возвращает aware
  ``datetime`` в UTC: наивное значение при записи считается UTC, а ``date``
  читается обратно как полночь UTC;
* функции при кодировании молча пропускаются, незнакомый элемент при
  декодировании - ошибка ``Invalid parameter``.
"""

from __future__ import annotations

import base64
import binascii
import html
import math
import re
import xml.etree.ElementTree as ET
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from dualrpc.codec.base import is_unrepresentable
from dualrpc.models.errors import PayloadDecodeError, ValueDecodeError

# Служебный элемент, которым заменяются ссылки на запрещённые в XML 1.0 символы.
CONTROL_TAG = "_ctrl"

_INT_RE = re.compile(r"^[+-]?\d+$")
_DOUBLE_RE = re.compile(r"^[+-]?\d+(\.\d+)?$")
_CONTROL_RE = re.compile(r"[\x00-\x1f]")
_CHAR_REF_RE = re.compile(r"&#(?:x([0-9a-fA-F]+)|([0-9]+));")
_ISO_RE = re.compile(
    r"^(\d{4})"
    r"(?:-?(\d{2})"
    r"(?:-?(\d{2})"
    r"(?:T(\d{2})"
    r"(?::?(\d{2})"
    r"(?::?(\d{2})(?:\.(\d+))?)?"
    r")?)?)?)?"
    r"(Z|[+-]\d{2}:?\d{2})?$"
)


def escape_text(text: str) -> str:
    escaped = html.escape(text, quote=True)
    return _CONTROL_RE.sub(lambda match: f"&#{ord(match.group())};", escaped)


def _is_xml_char(code: int) -> bool:
    return code >= 0x20 or code in (0x09, 0x0A, 0x0D)


def prepare_document(text: str) -> str:
    """Подменяет ссылки на запрещённые в XML 1.0 символы элементом `_ctrl`.

    Expat отвергает `&#1;` и подобные ссылки, поэтому перед разбором они
    превращаются в `<_ctrl code="1"/>`, а декодер строк собирает их обратно.
    """

    def _replace(match: "re.Match[str]") -> str:
        raw_hex, raw_dec = match.groups()
        try:
            code = int(raw_hex, 16) if raw_hex else int(raw_dec)
        except ValueError:
            # Слишком длинная ссылка: пусть её отвергнет парсер.
            return match.group()
        if _is_xml_char(code):
            return match.group()
        return f'<{CONTROL_TAG} code="{code}"/>'

    return _CHAR_REF_RE.sub(_replace, text)


def parse_document(text: str) -> ET.Element:
    try:
        return ET.fromstring(prepare_document(text))
    except ET.ParseError as exc:
        raise PayloadDecodeError(f"Request parse error: {exc}") from exc


# --- кодирование ---


def _format_double(value: float) -> str:
    return format(Decimal(repr(value)), "f")


def format_datetime(value: date) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        text = (
            f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
            f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
        )
        if value.microsecond:
            text += f".{value.microsecond:06d}"
        return text
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}T00:00:00"


def _encode_scalar(value: Any) -> Optional[str]:
    if value is None:
        return "<nil/>"
    if isinstance(value, bool):
        return f"<boolean>{int(value)}</boolean>"
    if isinstance(value, int):
        return f"<int>{value}</int>"
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer():
            return f"<int>{int(value)}</int>"
        return f"<double>{_format_double(value)}</double>"
    if isinstance(value, str):
        return f"<string>{escape_text(value)}</string>"
    if isinstance(value, (date, datetime)):
        return f"<dateTime.iso8601>{format_datetime(value)}</dateTime.iso8601>"
    if isinstance(value, (bytes, bytearray)):
        return f"<base64>{base64.b64encode(bytes(value)).decode('ascii')}</base64>"
    return None


def to_xml(value: Any) -> Optional[str]:
    """Возвращает типизированный элемент без обёртки `<value>` или None, если значение непредставимо."""
    if is_unrepresentable(value):
        return None
    if isinstance(value, (list, tuple)):
        items = [encode_value(item) for item in value]
        return "<array><data>" + "".join(item for item in items if item is not None) + "</data></array>"
    if isinstance(value, dict):
        members = []
        for key, item in value.items():
            encoded = encode_value(item)
            if encoded is None:
                continue
            members.append(f"<member><name>{escape_text(str(key))}</name>{encoded}</member>")
        return "<struct>" + "".join(members) + "</struct>"
    return _encode_scalar(value)


def encode_value(value: Any) -> Optional[str]:
    inner = to_xml(value)
    if inner is None:
        return None
    return f"<value>{inner}</value>"


# --- декодирование ---


def collect_text(element: ET.Element) -> str:
    parts = [element.text or ""]
    for child in element:
        if child.tag != CONTROL_TAG:
            raise ValueDecodeError(f"unexpected <{child.tag}> inside <{element.tag}>")
        raw = child.get("code", "0")
        try:
            parts.append(chr(int(raw)))
        except (ValueError, OverflowError) as exc:
            raise ValueDecodeError(f"bad control character code {raw!r}") from exc
        parts.append(child.tail or "")
    return "".join(parts)


def _decode_int(element: ET.Element) -> Any:
    text = (element.text or "").strip()
    if not _INT_RE.match(text):
        raise ValueDecodeError(f"{text!r} is not an integer")
    try:
        as_int = int(text)
    except ValueError as exc:
        raise ValueDecodeError(f"integer too long ({len(text)} digits)") from exc
    as_double = float(text)
    if not math.isfinite(as_double) or abs(math.floor(as_double) - as_int) > 1:
        return as_double
    return as_int


def _decode_double(element: ET.Element) -> float:
    text = (element.text or "").strip()
    if not _DOUBLE_RE.match(text):
        raise ValueDecodeError(f"{text!r} is not a double")
    return float(text)


def _decode_boolean(element: ET.Element) -> bool:
    text = (element.text or "").strip()
    if text == "1":
        return True
    if text == "0":
        return False
    raise ValueDecodeError(f"{text!r} is not a boolean")


def _decode_string(element: ET.Element) -> str:
    return collect_text(element)


def _decode_nil(element: ET.Element) -> None:
    return None


def parse_datetime(text: str) -> datetime:
    match = _ISO_RE.match(text.strip())
    if not match:
        raise ValueDecodeError(f"{text!r} is not an ISO-8601 date")
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    microsecond = int((fraction or "0")[:6].ljust(6, "0"))
    try:
        value = datetime(
            int(year),
            int(month or 1),
            int(day or 1),
            int(hour or 0),
            int(minute or 0),
            int(second or 0),
            microsecond,
            tzinfo=timezone.utc,
        )
    except ValueError as exc:
        raise ValueDecodeError(str(exc)) from exc
    if offset and offset != "Z":
        sign = -1 if offset[0] == "-" else 1
        digits = offset[1:].replace(":", "")
        shift = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
        try:
            value -= sign * shift
        except OverflowError as exc:
            raise ValueDecodeError(f"{text!r} is out of range") from exc
    return value


def _decode_datetime(element: ET.Element) -> datetime:
    return parse_datetime(element.text or "")


def _decode_base64(element: ET.Element) -> bytes:
    text = "".join((element.text or "").split())
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueDecodeError(f"bad base64: {exc}") from exc


def _decode_array(element: ET.Element) -> List[Any]:
    data = element.find("data")
    if data is None:
        raise ValueDecodeError("<array> without <data>")
    items = []
    for child in data:
        if child.tag != "value":
            raise ValueDecodeError(f"unexpected <{child.tag}> inside <data>")
        items.append(from_xml(child))
    return items


def _decode_struct(element: ET.Element) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for member in element:
        if member.tag != "member":
            raise ValueDecodeError(f"unexpected <{member.tag}> inside <struct>")
        name = member.find("name")
        value = member.find("value")
        if name is None or value is None:
            raise ValueDecodeError("<member> requires <name> and <value>")
        result[collect_text(name)] = from_xml(value)
    return result


_DECODERS: Dict[str, Callable[[ET.Element], Any]] = {
    "int": _decode_int,
    "i4": _decode_int,
    "i8": _decode_int,
    "double": _decode_double,
    "boolean": _decode_boolean,
    "string": _decode_string,
    "nil": _decode_nil,
    "dateTime.iso8601": _decode_datetime,
    "base64": _decode_base64,
    "array": _decode_array,
    "struct": _decode_struct,
}


def from_xml(element: ET.Element) -> Any:
    """Декодирует элемент `<value>` в нативное значение."""
    if element.tag != "value":
        raise ValueDecodeError(f"expected <value>, got <{element.tag}>")
    typed = [child for child in element if child.tag != CONTROL_TAG]
    if not typed:
        # <value> без типа - строка по спецификации XML-RPC
        return collect_text(element)
    if len(typed) > 1:
        raise ValueDecodeError("<value> holds more than one element")
    child = typed[0]
    decoder = _DECODERS.get(child.tag)
    if decoder is None:
        raise ValueDecodeError(f"unknown element <{child.tag}>")
    return decoder(child)


__all__ = [
    "CONTROL_TAG",
    "collect_text",
    "encode_value",
    "escape_text",
    "format_datetime",
    "from_xml",
    "parse_datetime",
    "parse_document",
    "prepare_document",
    "to_xml",
]
