"""Wrapping of user values for table naming, timestamps and validation."""

from __future__ import annotations

import dataclasses
import re
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

__all__ = ["Model", "ValidationErrors", "tableize"]

_table_cache: dict[str, str] = {}
_table_cache_lock = threading.RLock()

_IRREGULAR = {
    "person": "people",
    "man": "men",
    "woman": "women",
    "child": "children",
    "mouse": "mice",
    "goose": "geese",
    "tooth": "teeth",
    "foot": "feet",
    "ox": "oxen",
}
_IRREGULAR_SINGULAR = {plural: single for single, plural in _IRREGULAR.items()}
_UNCOUNTABLE = {
    "equipment",
    "information",
    "rice",
    "money",
    "species",
    "series",
    "fish",
    "sheep",
    "deer",
    "news",
}
_WORD_RE = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|[0-9]+")
_LAST_WORD_RE = re.compile(r"^(.*?)([A-Za-z]+)$")


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _keep_case(original: str, replacement: str) -> str:
    if original[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def _pluralize_word(word: str) -> str:
    lower = word.lower()
    if lower in _UNCOUNTABLE or lower in _IRREGULAR_SINGULAR:
        return word
    if lower in _IRREGULAR:
        return _keep_case(word, _IRREGULAR[lower])
    if re.search(r"(s|x|z|ch|sh)$", lower):
        return word + "es"
    if re.search(r"[^aeiou]y$", lower):
        return word[:-1] + "ies"
    if re.search(r"[^f]fe$", lower):
        return word[:-2] + "ves"
    if re.search(r"[lr]f$", lower):
        return word[:-1] + "ves"
    return word + "s"


def _singularize_word(word: str) -> str:
    lower = word.lower()
    if lower in _UNCOUNTABLE or lower in _IRREGULAR:
        return word
    if lower in _IRREGULAR_SINGULAR:
        return _keep_case(word, _IRREGULAR_SINGULAR[lower])
    if len(lower) > 3 and lower.endswith("ies"):
        return word[:-3] + "y"
    if re.search(r"(ss|us|x|z|ch|sh)es$", lower):
        return word[:-2]
    if lower.endswith("s") and not lower.endswith("ss"):
        return word[:-1]
    return word


def _on_last_word(text: str, transform: Callable[[str], str]) -> str:
    match = _LAST_WORD_RE.match(text)
    if not match:
        return text
    return match.group(1) + transform(match.group(2))


def tableize(name: str) -> str:
    """Turn a type name such as "UserAttribute" into "user_attributes"."""
    words = _WORD_RE.findall(name)
    if not words:
        return ""
    return _on_last_word("_".join(w.lower() for w in words), _pluralize_word)


def _singularize(text: str) -> str:
    return _on_last_word(text, _singularize_word)


def _is_zero(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) == datetime.min
    if isinstance(value, uuid.UUID):
        return value.int == 0
    try:
        return not value
    except (TypeError, ValueError):
        return False


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class ValidationErrors:
    """Validation messages grouped by field name."""

    errors: dict[str, list[str]] = field(default_factory=dict)

    def add(self, key: str, message: str) -> None:
        self.errors.setdefault(key, []).append(message)

    def append(self, other: ValidationErrors) -> None:
        for key, messages in other.errors.items():
            self.errors.setdefault(key, []).extend(messages)

    def has_any(self) -> bool:
        return any(self.errors.values())

    def __str__(self) -> str:
        return "\n".join(m for msgs in self.errors.values() for m in msgs)


@dataclass
class Model:
    """A user value together with what is needed to store it in a table.

    The value is an object, a list of objects, or a plain table name. A list
    subclass may name its element class in an ``item_type`` attribute so that
    an empty list still has a table name.
    """

    value: Any
    alias: str = ""
    clock: Callable[[], datetime] = field(default=_local_now, repr=False, compare=False)
    _table_name: str = field(default="", init=False, repr=False, compare=False)

    def _child(self, element: Any) -> Model:
        return Model(element, clock=self.clock)

    def _has_field(self, name: str) -> bool:
        value = self.value
        if isinstance(value, (type, str, list, tuple)):
            return False
        if not hasattr(value, name):
            return False
        return not callable(getattr(value, name))

    def _require_field(self, name: str) -> Any:
        if not self._has_field(name):
            raise AttributeError(f"model does not have a field named {name}")
        return getattr(self.value, name)

    def id(self) -> Any:
        """Return the ID of the value; UUIDs come back as strings, no ID as 0."""
        if not self._has_field("id"):
            return 0
        current = self.value.id
        if isinstance(current, uuid.UUID):
            return str(current)
        return current

    def id_field(self) -> str:
        """Return the column name of the ID, taken from the field's "db" metadata."""
        cls = self.value if isinstance(self.value, type) else type(self.value)
        if dataclasses.is_dataclass(cls):
            for f in dataclasses.fields(cls):
                if f.name == "id":
                    return f.metadata.get("db") or "id"
        return "id"

    def primary_key_type(self) -> str:
        if not self._has_field("id"):
            return "int"
        return type(self.value.id).__name__

    def _element_type(self) -> type:
        value = self.value
        declared = getattr(type(value), "item_type", None)
        if declared is not None:
            return declared
        if value:
            return type(value[0])
        raise ValueError("cannot determine the element type of an empty list")

    def _type_name(self) -> tuple[str, str]:
        if self.is_slice():
            element = self._element_type()
            key = f"{element.__module__}.{element.__qualname__}"
            if callable(getattr(element, "table_name", None)):
                sample = self.value[0] if self.value else element()
                if not _table_cache.get(key):
                    _table_cache[key] = sample.table_name()
            return element.__name__, key
        cls = self.value if isinstance(self.value, type) else type(self.value)
        return cls.__name__, f"{cls.__module__}.{cls.__qualname__}"

    def table_name(self) -> str:
        """Return the name of the table the value is stored in."""
        value = self.value
        if isinstance(value, str):
            return value
        if not isinstance(value, type) and not self.is_slice():
            custom = getattr(value, "table_name", None)
            if callable(custom):
                return custom()
        if self._table_name:
            return self._table_name
        with _table_cache_lock:
            name, key = self._type_name()
            if not _table_cache.get(key):
                self._table_name = tableize(name)
                _table_cache[key] = self._table_name
            return _table_cache[key]

    def association_name(self) -> str:
        return f"{_singularize(self.table_name())}_id"

    def set_id(self, value: Any) -> None:
        if not self._has_field("id"):
            return
        if _is_int(self.value.id):
            self.value.id = int(value)
        else:
            self.value.id = value

    def touch_created_at(self) -> None:
        """Set created_at to now unless it already holds a value."""
        if not self._has_field("created_at"):
            return
        current = self.value.created_at
        if not _is_zero(current):
            return
        now = self.clock()
        self.value.created_at = int(now.timestamp()) if _is_int(current) else now

    def touch_updated_at(self) -> None:
        if not self._has_field("updated_at"):
            return
        now = self.clock()
        current = self.value.updated_at
        self.value.updated_at = int(now.timestamp()) if _is_int(current) else now

    def where_id(self) -> str:
        return f"{self.table_name()}.{self.id_field()} = ?"

    def where_named_id(self) -> str:
        return f"{self.table_name()}.{self.id_field()} = :id"

    def is_slice(self) -> bool:
        return isinstance(self.value, (list, tuple))

    def iterate(self, fn: Callable[[Model], Any]) -> None:
        """Call fn with a model of each element of a list, or with this model."""
        if self.is_slice():
            for element in self.value:
                fn(self._child(element))
            return
        fn(self)

    def validate(self, conn: Any) -> ValidationErrors:
        value = self.value
        before = getattr(value, "before_validations", None)
        if callable(before):
            before(conn)
        check = getattr(value, "validate", None)
        if callable(check):
            result = check(conn)
            return result if result is not None else ValidationErrors()
        return ValidationErrors()

    def _validate_with(self, conn: Any, hook: str) -> ValidationErrors:
        verrs = self.validate(conn)
        extra = getattr(self.value, hook, None)
        if callable(extra):
            more = extra(conn)
            if more is not None:
                verrs.append(more)
        return verrs

    def _iterate_and_validate(
        self, fn: Callable[[Model], ValidationErrors]
    ) -> ValidationErrors:
        if self.is_slice():
            for element in self.value:
                verrs = fn(self._child(element))
                if verrs.has_any():
                    return verrs
            return ValidationErrors()
        return fn(self)

    def validate_create(self, conn: Any) -> ValidationErrors:
        return self._iterate_and_validate(
            lambda model: model._validate_with(conn, "validate_create")
        )

    def validate_and_only_create(self, conn: Any) -> ValidationErrors:
        """Validate for creation only the values whose ID is not yet set."""

        def check(model: Model) -> ValidationErrors:
            if not _is_zero(model._require_field("id")):
                return ValidationErrors()
            return model._validate_with(conn, "validate_create")

        return self._iterate_and_validate(check)

    def validate_save(self, conn: Any) -> ValidationErrors:
        return self._iterate_and_validate(
            lambda model: model._validate_with(conn, "validate_save")
        )

    def validate_update(self, conn: Any) -> ValidationErrors:
        return self._iterate_and_validate(
            lambda model: model._validate_with(conn, "validate_update")
        )