"""Building SELECT statements from models and query clauses."""

from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

from sodapop.model import Model
from sodapop.paginator import Paginator, new_paginator, new_paginator_from_params

__all__ = ["Query", "SQLBuilder", "has_limit_or_offset"]

logger = logging.getLogger(__name__)

_RAW_SQL_WARNING = "Query is setup to use raw SQL"

_MATCH_LIMIT = re.compile(r"(?i).*\s+limit\s+[0-9]*(\s?,\s?[0-9]*)?\Z")
_MATCH_OFFSET = re.compile(r"(?i).*\s+offset\s+[0-9]*\Z")
_MATCH_ROWS_ONLY = re.compile(r"(?i).*\s+rows only")
_MATCH_NAMES = re.compile(r"(?i).*;+.*")
_IN_REGEX = re.compile(r"(?i)in\s*\(\s*\?\s*\)")

_ASSOCIATION_KEYS = ("has_many", "has_one", "belongs_to", "many_to_many")


def has_limit_or_offset(sql: str) -> bool:
    """Tell whether a statement already ends in a LIMIT, OFFSET or ROWS ONLY clause."""
    trimmed = sql.strip()
    return bool(
        _MATCH_LIMIT.search(trimmed)
        or _MATCH_OFFSET.search(trimmed)
        or _MATCH_ROWS_ONLY.search(trimmed)
    )


@dataclass(frozen=True)
class _Clause:
    fragment: str = ""
    arguments: tuple = ()


@dataclass(frozen=True)
class _JoinClause:
    join_type: str
    table: str
    on: str
    arguments: tuple = ()

    def __str__(self) -> str:
        return f"{self.join_type} {self.table} ON {self.on}"


@dataclass(frozen=True)
class _HavingClause:
    condition: str
    arguments: tuple = ()


@dataclass(frozen=True)
class _FromClause:
    source: str
    alias: str

    def __str__(self) -> str:
        return f"{self.source} AS {self.alias}"


@dataclass(frozen=True)
class _BelongsToThroughClause:
    belongs_to: Model
    through: Model


@dataclass(frozen=True)
class _Column:
    name: str
    select_sql: str
    readable: bool = True


def _is_list_arg(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _expand_in(sql: str, args: Sequence[Any]) -> tuple[str, list[Any]]:
    """Expand list arguments into one placeholder per element."""
    if not any(_is_list_arg(a) for a in args):
        return sql, list(args)
    parts: list[str] = []
    out_args: list[Any] = []
    index = 0
    for char in sql:
        if char != "?":
            parts.append(char)
            continue
        if index >= len(args):
            raise ValueError("number of bindVars exceeds arguments")
        arg = args[index]
        index += 1
        if _is_list_arg(arg):
            if not arg:
                raise ValueError("empty slice passed to 'in' query")
            parts.append(", ".join("?" for _ in arg))
            out_args.extend(arg)
        else:
            parts.append("?")
            out_args.append(arg)
    if index != len(args):
        raise ValueError("number of bindVars less than number arguments")
    return "".join(parts), out_args


def _struct_type(value: Any) -> type | None:
    if isinstance(value, (list, tuple)):
        declared = getattr(type(value), "item_type", None)
        if declared is not None:
            return declared
        return type(value[0]) if value else None
    if isinstance(value, type):
        return value
    if value is None or isinstance(value, str):
        return None
    return type(value)


def _struct_columns(value: Any, alias: str) -> list[_Column]:
    cls = _struct_type(value)
    if cls is None or not dataclasses.is_dataclass(cls):
        return []
    columns: dict[str, _Column] = {}
    for f in dataclasses.fields(cls):
        meta = f.metadata
        if f.name.startswith("_") or meta.get("db") == "-":
            continue
        if any(key in meta for key in _ASSOCIATION_KEYS):
            continue
        name = meta.get("db") or f.name
        select = meta.get("select") or f"{alias}.{name}"
        columns[name] = _Column(name, select, meta.get("rw", "rw") != "w")
    return list(columns.values())


def _added_columns(names: Iterable[str]) -> list[_Column]:
    columns: dict[str, _Column] = {}
    for raw in names:
        name, readable = raw, True
        head, sep, tail = raw.rpartition(",")
        if sep and tail.strip() in ("r", "w"):
            name = head
            readable = tail.strip() == "r"
        columns[name] = _Column(name, name, readable)
    return list(columns.values())


def _select_string(columns: Iterable[_Column]) -> str:
    return ", ".join(sorted(c.select_sql for c in columns if c.readable))


def _default_alias(table_name: str) -> str:
    return table_name.replace(".", "_")


@dataclass
class Query:
    """A SELECT statement built up clause by clause.

    ``translate`` rewrites the finished SQL for a database dialect, for
    example turning ``?`` placeholders into ``$1``; by default it is left as is.
    """

    connection: Any = None
    translate: Callable[[str], str] | None = None
    raw_sql: _Clause = field(default_factory=_Clause)
    limit_results: int = 0
    add_columns: list[str] = field(default_factory=list)
    eager_mode: bool = False
    eager_fields: list[str] = field(default_factory=list)
    where_clauses: list[_Clause] = field(default_factory=list)
    order_clauses: list[_Clause] = field(default_factory=list)
    from_clauses: list[_FromClause] = field(default_factory=list)
    belongs_to_through_clauses: list[_BelongsToThroughClause] = field(
        default_factory=list
    )
    join_clauses: list[_JoinClause] = field(default_factory=list)
    group_clauses: list[str] = field(default_factory=list)
    having_clauses: list[_HavingClause] = field(default_factory=list)
    paginator: Paginator | None = None

    def __post_init__(self) -> None:
        if self.connection is not None:
            self.eager_mode = bool(getattr(self.connection, "eager", False))
            self.eager_fields = list(getattr(self.connection, "eager_fields", []) or [])

    def _uses_raw_sql(self) -> bool:
        if self.raw_sql.fragment:
            logger.warning(_RAW_SQL_WARNING)
            return True
        return False

    def clone(self) -> Query:
        """Return a copy holding the same clauses, paginator and connection."""
        copied = Query(translate=self.translate)
        copied.connection = self.connection
        copied.raw_sql = self.raw_sql
        copied.limit_results = self.limit_results
        copied.where_clauses = list(self.where_clauses)
        copied.order_clauses = list(self.order_clauses)
        copied.from_clauses = list(self.from_clauses)
        copied.belongs_to_through_clauses = list(self.belongs_to_through_clauses)
        copied.join_clauses = list(self.join_clauses)
        copied.group_clauses = list(self.group_clauses)
        copied.having_clauses = list(self.having_clauses)
        copied.add_columns = list(self.add_columns)
        if self.paginator is not None:
            copied.paginator = dataclasses.replace(self.paginator)
        return copied

    def raw_query(self, stmt: str, *args: Any) -> Query:
        """Use the given statement as is instead of building one."""
        self.raw_sql = _Clause(stmt, tuple(args))
        return self

    def eager(self, *args: str) -> Query:
        """Turn on association loading, for all or the named associations."""
        self.eager_mode = True
        self.eager_fields.extend(args)
        return self

    def _disable_eager(self) -> None:
        self.eager_mode = False
        self.eager_fields = []
        if self.connection is not None:
            self.connection.eager = False
            self.connection.eager_fields = []

    def where(self, stmt: str, *args: Any) -> Query:
        """Add a condition; a single "(?)" after IN gets one placeholder per argument."""
        if self._uses_raw_sql():
            return self
        if _IN_REGEX.search(stmt):
            placeholders = "(" + ",".join("?" for _ in args) + ")"
            stmt = stmt.replace("(?)", placeholders, 1)
        self.where_clauses.append(_Clause(stmt, tuple(args)))
        return self

    def order(self, stmt: str) -> Query:
        if self._uses_raw_sql():
            return self
        self.order_clauses.append(_Clause(stmt))
        return self

    def limit(self, limit: int) -> Query:
        self.limit_results = limit
        return self

    def group_by(self, field: str, *args: str) -> Query:
        if self._uses_raw_sql():
            return self
        self.group_clauses.append(field)
        self.group_clauses.extend(args)
        return self

    def having(self, condition: str, *args: Any) -> Query:
        if self._uses_raw_sql():
            return self
        self.having_clauses.append(_HavingClause(condition, tuple(args)))
        return self

    def _add_join(self, join_type: str, table: str, on: str, args: tuple) -> Query:
        if self._uses_raw_sql():
            return self
        self.join_clauses.append(_JoinClause(join_type, table, on, args))
        return self

    def join(self, table: str, on: str, *args: Any) -> Query:
        return self._add_join("JOIN", table, on, args)

    def left_join(self, table: str, on: str, *args: Any) -> Query:
        return self._add_join("LEFT JOIN", table, on, args)

    def right_join(self, table: str, on: str, *args: Any) -> Query:
        return self._add_join("RIGHT JOIN", table, on, args)

    def left_outer_join(self, table: str, on: str, *args: Any) -> Query:
        return self._add_join("LEFT OUTER JOIN", table, on, args)

    def right_outer_join(self, table: str, on: str, *args: Any) -> Query:
        return self._add_join("RIGHT OUTER JOIN", table, on, args)

    def inner_join(self, table: str, on: str, *args: Any) -> Query:
        return self._add_join("INNER JOIN", table, on, args)

    def scope(self, fn: Callable[[Query], Query]) -> Query:
        """Apply a reusable function to the query."""
        return fn(self)

    def paginate(self, page: int, per_page: int) -> Query:
        self.paginator = new_paginator(page, per_page)
        return self

    def paginate_from_params(self, params: Mapping[str, Any]) -> Query:
        self.paginator = new_paginator_from_params(params)
        return self

    def to_sql(self, model: Model | None, *args: str) -> tuple[str, list[Any]]:
        """Return the SQL and its arguments; extra args are the columns to select."""
        columns = self.add_columns if self.add_columns else list(args)
        builder = SQLBuilder(self, model, columns)
        return builder.sql(), builder.args()


class SQLBuilder:
    """Turns a query and a model into SQL text and its arguments."""

    def __init__(
        self, query: Query, model: Model | None, add_columns: Sequence[str] = ()
    ) -> None:
        self.query = query.clone()
        self.query.translate = query.translate
        self.model = model
        self.add_columns = list(add_columns)
        self._sql = ""
        self._args: list[Any] = []

    def sql(self) -> str:
        if not self._sql:
            self._compile()
        return self._sql

    def args(self) -> list[Any]:
        if not self._args:
            if self.query.raw_sql.arguments:
                self._args = list(self.query.raw_sql.arguments)
            else:
                self._compile()
        return self._args

    def _compile(self) -> None:
        if self._sql:
            return
        raw = self.query.raw_sql.fragment
        if raw:
            if self.query.paginator is not None and not has_limit_or_offset(raw):
                sql = self._pagination(raw)
            else:
                if self.query.paginator is not None:
                    logger.warning("Query already contains pagination")
                sql = raw
        else:
            sql = self._select_sql()
        self._sql = sql

        if _IN_REGEX.search(sql):
            try:
                expanded, expanded_args = _expand_in(sql, self.args())
            except ValueError:
                pass
            else:
                sql = expanded
                self._args = expanded_args

        translate = self.query.translate or (lambda text: text)
        self._sql = translate(sql)

    def _require_model(self) -> Model:
        if self.model is None:
            raise ValueError("a model is needed to build a SELECT statement")
        return self.model

    def _select_sql(self) -> str:
        columns = self._columns()
        sources = ", ".join(str(fc) for fc in self._from_clauses())
        sql = f"SELECT {_select_string(columns)} FROM {sources}"
        sql = self._joins(sql)
        sql = self._wheres(sql)
        sql = self._groups(sql)
        sql = self._orders(sql)
        return self._pagination(sql)

    def _from_clauses(self) -> list[_FromClause]:
        models = [self._require_model()]
        models.extend(mc.through for mc in self.query.belongs_to_through_clauses)
        clauses = list(self.query.from_clauses)
        for model in models:
            table = model.table_name()
            clauses.append(_FromClause(table, model.alias or _default_alias(table)))
        return clauses

    def _wheres(self, sql: str) -> str:
        model = self._require_model()
        for mc in self.query.belongs_to_through_clauses:
            self.query.where(
                f"{mc.through.table_name()}.{mc.belongs_to.association_name()} = ?",
                mc.belongs_to.id(),
            )
            self.query.where(
                f"{model.table_name()}.id = "
                f"{mc.through.table_name()}.{model.association_name()}"
            )
        clauses = self.query.where_clauses
        if clauses:
            sql = f"{sql} WHERE " + " AND ".join(c.fragment for c in clauses)
            for c in clauses:
                self._args.extend(c.arguments)
        return sql

    def _joins(self, sql: str) -> str:
        clauses = self.query.join_clauses
        if clauses:
            sql += " " + " ".join(str(jc) for jc in clauses)
            for jc in clauses:
                self._args.extend(jc.arguments)
        return sql

    def _groups(self, sql: str) -> str:
        groups = self.query.group_clauses
        if groups:
            sql = f"{sql} GROUP BY " + ", ".join(groups)
            havings = self.query.having_clauses
            if havings:
                sql = f"{sql} HAVING " + " AND ".join(h.condition for h in havings)
            for h in havings:
                self._args.extend(h.arguments)
        return sql

    def _orders(self, sql: str) -> str:
        clauses = self.query.order_clauses
        if clauses:
            order_sql = ", ".join(c.fragment for c in clauses)
            if _MATCH_NAMES.match(order_sql):
                logger.warning("Order clause(s) contains invalid characters: %s", order_sql)
                return sql
            sql = f"{sql} ORDER BY {order_sql}"
            for c in clauses:
                self._args.extend(c.arguments)
        return sql

    def _pagination(self, sql: str) -> str:
        paginator = self.query.paginator
        if self.query.limit_results > 0 and paginator is None:
            sql = f"{sql} LIMIT {self.query.limit_results}"
        if paginator is not None:
            sql = f"{sql} LIMIT {paginator.per_page}"
            sql = f"{sql} OFFSET {paginator.offset}"
        return sql

    def _columns(self) -> list[_Column]:
        if self.add_columns:
            return _added_columns(self.add_columns)
        model = self._require_model()
        table = model.table_name()
        alias = model.alias or _default_alias(table)
        return _struct_columns(model.value, alias)