import itertools
import re
from dataclasses import dataclass, field
from datetime import datetime

import pytest

from sodapop.model import Model
from sodapop.query import Query, SQLBuilder, has_limit_or_offset


@dataclass
class Enemy:
    A: str = ""


@dataclass
class Book:
    id: int = field(default=0, metadata={"db": "id"})
    title: str = field(default="", metadata={"db": "title"})


@dataclass
class User:
    id: int = field(default=0, metadata={"db": "id"})
    user_name: str = field(default="", metadata={"db": "user_name"})
    email: str = field(default="", metadata={"db": "email"})
    name: str = field(default="", metadata={"db": "name"})
    alive: bool = field(default=False, metadata={"db": "alive"})
    created_at: datetime = field(default=datetime.min, metadata={"db": "created_at"})
    updated_at: datetime = field(default=datetime.min, metadata={"db": "updated_at"})
    birth_date: datetime = field(default=datetime.min, metadata={"db": "birth_date"})
    bio: str = field(default="", metadata={"db": "bio"})
    price: float = field(default=0.0, metadata={"db": "price"})
    full_name: str = field(
        default="", metadata={"db": "full_name", "select": "name as full_name"}
    )
    books: list = field(
        default_factory=list, metadata={"has_many": "books", "order_by": "title asc"}
    )


@dataclass
class Family:
    id: int = field(default=0, metadata={"db": "id"})
    first_name: str = field(default="", metadata={"db": "first_name"})
    last_name: str = field(default="", metadata={"db": "last_name"})
    created_at: datetime = field(default=datetime.min, metadata={"db": "created_at"})
    updated_at: datetime = field(default=datetime.min, metadata={"db": "updated_at"})

    def table_name(self):
        return "family.members"


USER_SELECT = (
    "SELECT name as full_name, users.alive, users.bio, users.birth_date, "
    "users.created_at, users.email, users.id, users.name, users.price, "
    "users.updated_at, users.user_name FROM users AS users"
)


def postgres(sql):
    counter = itertools.count(1)
    return re.sub(r"\?", lambda _: f"${next(counter)}", sql)


def enemy():
    return Model(Enemy())


def user():
    return Model(User())


def test_where():
    q = Query().where("id = ?", 1)
    sql, args = q.to_sql(enemy())
    assert sql == "SELECT enemies.A FROM enemies AS enemies WHERE id = ?"
    assert args == [1]

    q.where("first_name = ? and last_name = ?", "Mark", "Bates")
    sql, args = q.to_sql(enemy())
    assert sql == (
        "SELECT enemies.A FROM enemies AS enemies "
        "WHERE id = ? AND first_name = ? and last_name = ?"
    )
    assert args == [1, "Mark", "Bates"]


@pytest.mark.parametrize("value", ["Mark 'Awesome' Bates", "'; truncate users; --"])
def test_where_keeps_values_out_of_sql(value):
    sql, args = Query().where("name = ?", value).to_sql(enemy())
    assert sql == "SELECT enemies.A FROM enemies AS enemies WHERE name = ?"
    assert args == [value]


def test_where_in_expands_placeholders():
    sql, args = Query().where("id in (?)", 1, 3).to_sql(enemy())
    assert sql == "SELECT enemies.A FROM enemies AS enemies WHERE id in (?,?)"
    assert args == [1, 3]


def test_where_in_expands_list_argument():
    q = Query().where("id in (?)", [1, 3]).where("title = ?", "A")
    sql, args = q.to_sql(enemy())
    assert sql == (
        "SELECT enemies.A FROM enemies AS enemies WHERE id in (?, ?) AND title = ?"
    )
    assert args == [1, 3, "A"]


def test_order():
    q = Query().order("id desc")
    sql, _ = q.to_sql(enemy())
    assert sql == "SELECT enemies.A FROM enemies AS enemies ORDER BY id desc"
    q.order("name desc")
    sql, _ = q.to_sql(enemy())
    assert sql == "SELECT enemies.A FROM enemies AS enemies ORDER BY id desc, name desc"


def test_order_with_semicolon_is_dropped():
    sql, _ = Query().order("id; drop table users").to_sql(enemy())
    assert sql == "SELECT enemies.A FROM enemies AS enemies"


def test_group_by():
    sql, _ = Query().group_by("A").to_sql(enemy())
    assert sql == "SELECT enemies.A FROM enemies AS enemies GROUP BY A"

    sql, _ = Query().group_by("A", "B").to_sql(enemy())
    assert sql == "SELECT enemies.A FROM enemies AS enemies GROUP BY A, B"


@pytest.mark.parametrize(
    "translate, expected",
    [
        (None, "SELECT enemies.A FROM enemies AS enemies GROUP BY A, B HAVING enemies.A=?"),
        (postgres, "SELECT enemies.A FROM enemies AS enemies GROUP BY A, B HAVING enemies.A=$1"),
    ],
)
def test_having(translate, expected):
    q = Query(translate=translate).group_by("A", "B").having("enemies.A=?", "test")
    sql, args = q.to_sql(enemy())
    assert sql == expected
    assert args == ["test"]


def test_having_many():
    q = (
        Query(translate=postgres)
        .group_by("A", "B")
        .having("enemies.A=?", "test")
        .having("enemies.B=enemies.A")
    )
    sql, _ = q.to_sql(enemy())
    assert sql == (
        "SELECT enemies.A FROM enemies AS enemies GROUP BY A, B "
        "HAVING enemies.A=$1 AND enemies.B=enemies.A"
    )


def test_having_without_group_by_is_ignored():
    sql, args = Query().having("enemies.A=?", "test").to_sql(enemy())
    assert sql == "SELECT enemies.A FROM enemies AS enemies"
    assert args == []


def test_to_sql_model_columns():
    query = Query()
    sql, _ = query.to_sql(user())
    assert sql == USER_SELECT

    query.order("id desc")
    sql, _ = query.to_sql(user())
    assert sql == f"{USER_SELECT} ORDER BY id desc"

    sql, _ = query.to_sql(Model(User(), alias="u"))
    assert sql == (
        "SELECT name as full_name, u.alive, u.bio, u.birth_date, u.created_at, "
        "u.email, u.id, u.name, u.price, u.updated_at, u.user_name "
        "FROM users AS u ORDER BY id desc"
    )

    sql, _ = query.to_sql(Model(Family()))
    assert sql == (
        "SELECT family_members.created_at, family_members.first_name, "
        "family_members.id, family_members.last_name, family_members.updated_at "
        "FROM family.members AS family_members ORDER BY id desc"
    )


def test_to_sql_where_and_order():
    sql, _ = Query().where("id = 1").to_sql(user())
    assert sql == f"{USER_SELECT} WHERE id = 1"

    query = Query().where("id = 1").where("name = 'Mark'")
    sql, _ = query.to_sql(user())
    assert sql == f"{USER_SELECT} WHERE id = 1 AND name = 'Mark'"

    query.order("id desc")
    sql, _ = query.to_sql(user())
    assert sql == f"{USER_SELECT} WHERE id = 1 AND name = 'Mark' ORDER BY id desc"

    query.order("name asc")
    sql, _ = query.to_sql(user())
    assert sql == (
        f"{USER_SELECT} WHERE id = 1 AND name = 'Mark' ORDER BY id desc, name asc"
    )


def test_to_sql_limit_and_paginate():
    sql, _ = Query().limit(10).to_sql(user())
    assert sql == f"{USER_SELECT} LIMIT 10"

    sql, _ = Query().paginate(3, 10).to_sql(user())
    assert sql == f"{USER_SELECT} LIMIT 10 OFFSET 20"


def test_paginate_overrides_limit():
    sql, _ = Query().limit(5).paginate(1, 10).to_sql(user())
    assert sql == f"{USER_SELECT} LIMIT 10 OFFSET 0"


def test_paginate_from_params():
    sql, _ = Query().paginate_from_params({"page": "2", "per_page": "30"}).to_sql(user())
    assert sql == f"{USER_SELECT} LIMIT 30 OFFSET 30"


@pytest.mark.parametrize(
    "translate, expected",
    [
        (None, f"{USER_SELECT} JOIN books b ON b.user_id=? WHERE id = ? ORDER BY name asc"),
        (postgres, f"{USER_SELECT} JOIN books b ON b.user_id=$1 WHERE id = $2 ORDER BY name asc"),
    ],
)
def test_join_comes_first(translate, expected):
    query = (
        Query(translate=translate)
        .where("id = ?", 1)
        .join("books b", "b.user_id=?", "xx")
        .order("name asc")
    )
    sql, args = query.to_sql(user())
    assert sql == expected
    assert args[0] == "xx"
    assert args[1] == 1


@pytest.mark.parametrize(
    "method, keyword",
    [
        ("left_join", "LEFT JOIN"),
        ("right_join", "RIGHT JOIN"),
        ("left_outer_join", "LEFT OUTER JOIN"),
        ("right_outer_join", "RIGHT OUTER JOIN"),
        ("inner_join", "INNER JOIN"),
    ],
)
def test_join_kinds(method, keyword):
    query = getattr(Query(), method)("books b", "b.id = enemies.A")
    sql, _ = query.to_sql(enemy())
    assert sql == f"SELECT enemies.A FROM enemies AS enemies {keyword} books b ON b.id = enemies.A"


@pytest.mark.parametrize(
    "columns, expected",
    [
        (
            ("distinct on (users.name, users.email) users.*", "users.bio"),
            "SELECT distinct on (users.name, users.email) users.*, users.bio FROM users AS users",
        ),
        (
            ("distinct on (users.id) users.*", "users.bio"),
            "SELECT distinct on (users.id) users.*, users.bio FROM users AS users",
        ),
        (("id,r", "users.bio,r", "users.email,w"), "SELECT id, users.bio FROM users AS users"),
        (
            ("distinct on (id) id,r", "users.bio,r", "email,w"),
            "SELECT distinct on (id) id, users.bio FROM users AS users",
        ),
        (("distinct id", "users.bio,r", "email,w"), "SELECT distinct id, users.bio FROM users AS users"),
        (
            ("distinct id", "concat(users.name,'-',users.email)"),
            "SELECT concat(users.name,'-',users.email), distinct id FROM users AS users",
        ),
        (
            ("id", "concat(users.name,'-',users.email) name_email"),
            "SELECT concat(users.name,'-',users.email) name_email, id FROM users AS users",
        ),
        (
            ("distinct id", "concat(users.name,'-',users.email),r"),
            "SELECT concat(users.name,'-',users.email), distinct id FROM users AS users",
        ),
        (
            ("distinct id", "concat(users.name,'-',users.email) AS x"),
            "SELECT concat(users.name,'-',users.email) AS x, distinct id FROM users AS users",
        ),
        (
            ("distinct id", "users.name as english_name", "email private_email"),
            "SELECT distinct id, email private_email, users.name as english_name FROM users AS users",
        ),
    ],
)
def test_to_sql_add_columns(columns, expected):
    sql, _ = Query().to_sql(user(), *columns)
    assert sql == expected


def test_to_sql_injection_not_inlined():
    query = Query().where("name = '?'", "\\' or 1=1 limit 1;\n-- ")
    sql, args = query.to_sql(user())
    assert sql == f"{USER_SELECT} WHERE name = '?'"
    assert args == ["\\' or 1=1 limit 1;\n-- "]


@pytest.mark.parametrize("translate", [None, postgres])
def test_to_sql_raw_query(translate):
    query = Query(translate=translate).raw_query("this is some ? raw ?", "random", "query")
    sql, args = query.to_sql(None)
    expected = "this is some ? raw ?" if translate is None else "this is some $1 raw $2"
    assert sql == expected
    assert args == ["random", "query"]


def test_raw_query_ignores_builder_clauses():
    query = Query().raw_query("select * from users").where("id = ?", 1).order("id")
    sql, args = query.to_sql(None)
    assert sql == "select * from users"
    assert args == []


def test_raw_query_paginated():
    sql, _ = Query().raw_query("select * from users").paginate(2, 10).to_sql(None)
    assert sql == "select * from users LIMIT 10 OFFSET 10"


def test_raw_query_with_own_limit_not_paginated():
    sql, _ = Query().raw_query("select * from users limit 5").paginate(2, 10).to_sql(None)
    assert sql == "select * from users limit 5"


def test_scopes():
    base = "SELECT enemies.A FROM enemies AS enemies"
    q = Query()
    sql, _ = q.to_sql(enemy())
    assert sql == base

    q.scope(lambda qy: qy.where("id = ?", 1))
    sql, args = q.to_sql(enemy())
    assert sql == base + " WHERE id = ?"
    assert args == [1]


def test_to_sql_does_not_change_query():
    q = Query().where("id = ?", 1)
    first = q.to_sql(enemy())
    second = q.to_sql(enemy())
    assert first == second
    assert len(q.where_clauses) == 1


def test_clone_is_independent():
    original = Query().where("id = ?", 1).paginate(2, 5)
    copied = original.clone()
    copied.where("name = ?", "x")
    copied.paginator.page = 9
    assert len(original.where_clauses) == 1
    assert original.paginator.page == 2
    assert copied.to_sql(enemy())[0] == (
        "SELECT enemies.A FROM enemies AS enemies "
        "WHERE id = ? AND name = ? LIMIT 5 OFFSET 5"
    )


def test_eager_collects_fields():
    q = Query().eager("Books").eager("Songs")
    assert q.eager_mode is True
    assert q.eager_fields == ["Books", "Songs"]


def test_builder_sql_and_args():
    builder = SQLBuilder(Query().where("id = ?", 7), enemy())
    assert builder.sql() == "SELECT enemies.A FROM enemies AS enemies WHERE id = ?"
    assert builder.args() == [7]


def test_builder_needs_model():
    with pytest.raises(ValueError):
        SQLBuilder(Query(), None).sql()


@pytest.mark.parametrize(
    "sql, expected",
    [
        ("select * from users limit 10", True),
        ("select * from users LIMIT 10, 20", True),
        ("select * from users offset 5  ", True),
        ("select * from users fetch first 5 rows only", True),
        ("select * from users", False),
        ("select * from limits", False),
    ],
)
def test_has_limit_or_offset(sql, expected):
    assert has_limit_or_offset(sql) is expected