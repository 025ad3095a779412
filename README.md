# sodapop

A small toolkit for building SQL `SELECT` statements from model objects,
with pagination helpers, model helpers (table names, timestamps,
validation) and column types for database array and JSON values.

It has no third-party dependencies.

## Installation

```
pip install sodapop
```

## Building queries

`sodapop.query.Query` collects where, join, group by, having, order, limit
and pagination clauses. `Query.to_sql(model)` returns the SQL text and its
list of arguments. Every clause method returns the query, so calls chain:

```python
from dataclasses import dataclass, field

from sodapop.model import Model
from sodapop.query import Query


@dataclass
class User:
    id: int = field(default=0, metadata={"db": "id"})
    name: str = ""


sql, args = (
    Query()
    .where("id in (?)", 1, 2, 3)
    .order("name desc")
    .paginate(2, 15)
    .to_sql(Model(User()))
)
# sql  == "SELECT users.id, users.name FROM users AS users"
#         " WHERE id in (?,?,?) ORDER BY name desc LIMIT 15 OFFSET 15"
# args == [1, 2, 3]
```

Clause methods:

- `where(stmt, *args)`: conditions are joined with `AND`. A `(?)` after
  `IN` is widened to one placeholder per argument.
- `join`, `left_join`, `right_join`, `left_outer_join`, `right_outer_join`,
  `inner_join(table, on, *args)`: join arguments come before where arguments.
- `group_by(field, *fields)` and `having(condition, *args)`: `HAVING` is
  written only when there is a `GROUP BY`.
- `order(stmt)`: an order clause holding `;` is left out with a warning.
- `limit(n)`, `paginate(page, per_page)`, `paginate_from_params(params)`:
  a paginator takes precedence over a limit.
- `eager(*fields)`: marks the query for association loading.
- `raw_query(stmt, *args)`: use a statement as is; later clause calls are
  ignored with a warning. A paginator is still appended unless the statement
  already limits its rows.
- `scope(fn)`: apply a reusable function to the query.
- `clone()`: a copy with its own clause lists.

Selected columns come from the model's dataclass fields, sorted. Field
metadata controls them: `"db"` names the column (`"-"` skips it),
`"select"` replaces the select expression, and `"rw": "w"` keeps the column
out of the `SELECT`. Fields carrying `has_many`, `has_one`, `belongs_to` or
`many_to_many` metadata are skipped. Extra arguments to `to_sql` name the
columns to select instead; a `",r"` or `",w"` suffix marks them readable or
write-only. `Model(value, alias="u")` changes the table alias.

The finished SQL is passed through `Query(translate=...)`, a function that
can rewrite it for a database dialect, for instance to turn `?` into `$1`.
Without one the SQL is left as it is.

`SQLBuilder` does the work behind `to_sql`; `has_limit_or_offset(sql)`
tells whether a statement ends in a `LIMIT`, `OFFSET` or `ROWS ONLY` clause.

## Pagination

```python
from sodapop.paginator import new_paginator, new_paginator_from_params

p = new_paginator(2, 10)                  # page 2, ten per page: offset 10
p = new_paginator_from_params({"page": "3", "per_page": "25"})
print(p.paginate())                       # the paginator as JSON
```

Pages below 1 become 1 and per-page values below 1 become 20. Values in
the params mapping that are missing or not integers fall back to page 1
and `PAGINATOR_PER_PAGE_DEFAULT` (20). A list value, as from
`urllib.parse.parse_qs`, uses its first item.

## Models

`sodapop.model.Model` wraps an object, a list of objects or a plain table
name:

- `table_name()`: a `table_name()` method on the value wins; otherwise the
  class name goes through `tableize` (`"UserAttribute"` becomes
  `"user_attributes"`). For an empty list, the list class may name its
  element class in an `item_type` attribute.
- `id()`, `set_id(value)`, `id_field()`, `primary_key_type()`,
  `association_name()`, `where_id()`, `where_named_id()`.
- `touch_created_at()` sets `created_at` when it is still empty;
  `touch_updated_at()` always sets `updated_at`. Integer fields get a Unix
  time. The clock can be replaced with `Model(value, clock=...)`.
- `validate`, `validate_create`, `validate_save`, `validate_update` and
  `validate_and_only_create` call the value's `before_validations`,
  `validate` and `validate_create` / `validate_save` / `validate_update`
  methods when present and collect their results in a `ValidationErrors`.
  For a list, validation stops at the first element with errors.

## Array and JSON column types

`sodapop.slices` holds `IntSlice`, `FloatSlice`, `StringSlice`, `UUIDSlice`
(list subclasses) and `MapValue` (a dict subclass). `scan` reads a raw
database value, `value` gives the text to store, and `unmarshal_text` parses
plain text:

```python
from sodapop.slices import IntSlice, StringSlice

IntSlice([1, 2, 3]).value()                       # "{1,2,3}"
IntSlice.scan(b"{4,5}")                           # [4, 5]
StringSlice.unmarshal_text('foo,bar,"baz,bax"')   # ["foo", "bar", "baz,bax"]
StringSlice(["a,b", 'c"']).value()                # '{"a,b","c\\""}'
```

`StringSlice` and `UUIDSlice` also have `unmarshal_json`, `tag_value` and
`format(sep)`; `UUIDSlice.to_json` writes the UUIDs as a JSON array.
`MapValue` stores JSON, and its `unmarshal_json` and `unmarshal_text` merge
keys into the map in place.

## What it does not do

sodapop builds SQL text and arguments; it does not connect to a database,
execute statements, run migrations or provide a command-line tool. Pass the
SQL and arguments to the database driver of your choice.

## Running the tests

```
pip install -e ".[test]"
pytest
```