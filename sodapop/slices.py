"""Column types that store lists and maps in database array and JSON columns."""

from __future__ import annotations

import csv
import io
import json
import math
import re
import uuid
from decimal import Decimal
from typing import Any, Iterable

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_INT_RE = re.compile(r"[+-]?[0-9]+")
_FLOAT_BAD_CHARS = re.compile(r"[\s_]")


def _as_text(data: bytes | bytearray | str) -> str:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("utf-8")
    return data


def _require_bytes(src: Any) -> str:
    if not isinstance(src, (bytes, bytearray)):
        raise TypeError("scan source was not bytes")
    return bytes(src).decode("utf-8")


def _array_items(text: str) -> list[str]:
    return text.strip("{}").split(",")


class _FloatRangeError(ValueError):
    def __init__(self, text: str, value: float) -> None:
        super().__init__(f"value out of range: {text!r}")
        self.value = value


def _parse_float(text: str) -> float:
    if not text or _FLOAT_BAD_CHARS.search(text):
        raise ValueError(f"invalid float syntax: {text!r}")
    value = float(text)
    if math.isinf(value) and "inf" not in text.lower():
        raise _FloatRangeError(text, value)
    return value


def _lenient_float(text: str) -> float:
    try:
        return _parse_float(text)
    except _FloatRangeError as exc:
        return exc.value
    except ValueError:
        return 0.0


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


class _IntRangeError(ValueError):
    def __init__(self, text: str, value: int) -> None:
        super().__init__(f"value out of range: {text!r}")
        self.value = value


def _parse_int(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid integer syntax: {text!r}")
    value = int(text)
    if value > _INT64_MAX:
        raise _IntRangeError(text, _INT64_MAX)
    if value < _INT64_MIN:
        raise _IntRangeError(text, _INT64_MIN)
    return value


def _lenient_int(text: str) -> int:
    try:
        return _parse_int(text)
    except _IntRangeError as exc:
        return exc.value
    except ValueError:
        return 0


def _go_json_dumps(obj: Any) -> str:
    text = json.dumps(
        obj, ensure_ascii=False, sort_keys=True, separators=(",", ":"), allow_nan=False
    )
    for char, escaped in (
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("&", "\\u0026"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(char, escaped)
    return text


class FloatSlice(list):
    """A list of floats stored as a database array literal."""

    @classmethod
    def scan(cls, src: Any) -> FloatSlice:
        """Read a slice from a raw database value such as b"{1,2.5}"."""
        text = _require_bytes(src)
        return cls(_lenient_float(item) for item in _array_items(text))

    def value(self) -> str:
        return "{" + ",".join(_format_float(float(x)) for x in self) + "}"

    @classmethod
    def unmarshal_text(cls, text: bytes | str) -> FloatSlice:
        """Parse comma separated floats; any bad item raises ValueError."""
        return cls(_parse_float(item) for item in _as_text(text).split(","))


class IntSlice(list):
    """A list of ints stored as a database array literal."""

    @classmethod
    def scan(cls, src: Any) -> IntSlice:
        text = _require_bytes(src)
        return cls(_lenient_int(item) for item in _array_items(text))

    def value(self) -> str:
        return "{" + ",".join(str(int(x)) for x in self) + "}"

    @classmethod
    def unmarshal_text(cls, text: bytes | str) -> IntSlice:
        return cls(_parse_int(item) for item in _as_text(text).split(","))


class MapValue(dict):
    """A string-keyed map stored as a JSON document."""

    @staticmethod
    def _decode_object(data: bytes | bytearray | str) -> dict | None:
        decoded = json.loads(_as_text(data))
        if decoded is not None and not isinstance(decoded, dict):
            raise ValueError(f"cannot decode JSON {type(decoded).__name__} into a map")
        return decoded

    @classmethod
    def scan(cls, src: Any) -> MapValue:
        text = _require_bytes(src)
        return cls(cls._decode_object(text) or {})

    def value(self) -> str:
        return _go_json_dumps(dict(self))

    def unmarshal_json(self, data: bytes | str) -> None:
        """Merge the keys of a JSON object into this map."""
        self.update(self._decode_object(data) or {})

    def unmarshal_text(self, text: bytes | str) -> None:
        self.update(self._decode_object(text) or {})


def _parse_pg_string_array(text: str) -> list[str]:
    if not text.startswith("{"):
        raise ValueError("unable to parse array; expected '{' at offset 0")
    if text.startswith("{{"):
        raise ValueError("cannot convert a multi-dimensional array to StringSlice")
    n = len(text)
    pos = 1
    if pos < n and text[pos] == "}":
        if pos + 1 != n:
            raise ValueError(f"unexpected {text[pos + 1]!r} at offset {pos + 1}")
        return []
    elements: list[str] = []
    while True:
        if pos >= n:
            raise ValueError("unexpected end of array literal")
        char = text[pos]
        if char == "{":
            raise ValueError("cannot convert a multi-dimensional array to StringSlice")
        if char == '"':
            pos += 1
            buf: list[str] = []
            while True:
                if pos >= n:
                    raise ValueError("unexpected end of quoted array element")
                c = text[pos]
                if c == "\\":
                    pos += 1
                    if pos >= n:
                        raise ValueError("unexpected end of quoted array element")
                    buf.append(text[pos])
                elif c == '"':
                    pos += 1
                    break
                else:
                    buf.append(c)
                pos += 1
            elements.append("".join(buf))
        else:
            start = pos
            while pos < n and text[pos] not in ",}":
                pos += 1
            element = text[start:pos]
            if not element:
                raise ValueError(f"unexpected {text[pos]!r} at offset {pos}")
            if element == "NULL":
                raise ValueError(
                    f"parsing array element index {len(elements)}: cannot convert NULL to string"
                )
            elements.append(element)
        if pos >= n:
            raise ValueError("unexpected end of array literal")
        if text[pos] == ",":
            pos += 1
            continue
        if text[pos] == "}":
            pos += 1
            break
        raise ValueError(f"unexpected {text[pos]!r} at offset {pos}")
    if pos != n:
        raise ValueError(f"unexpected {text[pos]!r} at offset {pos}")
    return elements


def _quote_pg_element(item: str) -> str:
    return '"' + item.replace("\\", "\\\\").replace('"', '\\"') + '"'


class StringSlice(list):
    """A list of strings stored as a database text array."""

    @classmethod
    def scan(cls, src: Any) -> StringSlice:
        if src is None:
            return cls()
        if isinstance(src, (bytes, bytearray)):
            text = bytes(src).decode("utf-8")
        elif isinstance(src, str):
            text = src
        else:
            raise TypeError(f"cannot convert {type(src).__name__} to StringSlice")
        return cls(_parse_pg_string_array(text))

    def value(self) -> str:
        return "{" + ",".join(_quote_pg_element(str(item)) for item in self) + "}"

    @classmethod
    def unmarshal_json(cls, data: bytes | str) -> StringSlice:
        decoded = json.loads(_as_text(data))
        if decoded is None:
            return cls()
        if not isinstance(decoded, list) or not all(isinstance(x, str) for x in decoded):
            raise ValueError("expected a JSON array of strings")
        return cls(decoded)

    @classmethod
    def unmarshal_text(cls, text: bytes | str) -> StringSlice:
        """Read the words of CSV text, every record in turn."""
        reader = csv.reader(io.StringIO(_as_text(text)), strict=True)
        words: list[str] = []
        expected: int | None = None
        try:
            for record in reader:
                if not record:
                    continue
                if expected is None:
                    expected = len(record)
                elif len(record) != expected:
                    raise ValueError(
                        f"record on line {reader.line_num}: wrong number of fields"
                    )
                words.extend(record)
        except csv.Error as exc:
            raise ValueError(str(exc)) from exc
        return cls(words)

    def tag_value(self) -> str:
        return self.format(",")

    def format(self, sep: str) -> str:
        return sep.join(self)


def _to_uuids(items: Iterable[str]) -> list[uuid.UUID]:
    return [uuid.UUID(int=0) if item == "" else uuid.UUID(item) for item in items]


class UUIDSlice(list):
    """A list of UUIDs stored as a database array literal."""

    @classmethod
    def scan(cls, src: Any) -> UUIDSlice:
        text = _require_bytes(src)
        return cls(_to_uuids(_array_items(text)))

    def value(self) -> str:
        return "{" + self.format(",") + "}"

    def to_json(self) -> str:
        return json.dumps([str(u) for u in self], separators=(",", ":"))

    @classmethod
    def unmarshal_json(cls, data: bytes | str) -> UUIDSlice:
        decoded = json.loads(_as_text(data))
        if decoded is None:
            return cls()
        if not isinstance(decoded, list) or not all(isinstance(x, str) for x in decoded):
            raise ValueError("expected a JSON array of strings")
        return cls(_to_uuids(decoded))

    @classmethod
    def unmarshal_text(cls, text: bytes | str) -> UUIDSlice:
        return cls(_to_uuids(item.strip() for item in _as_text(text).split(",")))

    def tag_value(self) -> str:
        return self.format(",")

    def format(self, sep: str) -> str:
        return sep.join(str(u) for u in self)