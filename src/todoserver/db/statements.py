"""
=============================================================================
STATEMENT CATALOGUE
=============================================================================

The five parameterized statements the todo API runs, plus the liveness probe
and the table definition, keyed by SQLAlchemy dialect name.

    ┌────────────────┬──────────────────────────────────────────────────────┐
    │  Name          │ Purpose                                              │
    ├────────────────┼──────────────────────────────────────────────────────┤
    │  list          │ every todo, created_at pre-formatted, ORDER BY id    │
    │  insert        │ new todo with done = false                           │
    │  update        │ overwrite title AND done for one id                  │
    │  delete        │ remove one id (no existence check)                   │
    │  last_insert_id│ id generated by the previous insert on this link     │
    └────────────────┴──────────────────────────────────────────────────────┘

MySQL is the production backend. SQLite is accepted for local development
and the test-suite; its entries only differ where MySQL syntax does not
exist (DATE_FORMAT, LAST_INSERT_ID, AUTO_INCREMENT).

Bind parameters use SQLAlchemy's :name style so the same text works with
any DBAPI paramstyle.

=============================================================================
"""

from typing import Dict


STATEMENT_NAMES = ("list", "insert", "update", "delete", "last_insert_id")

PROBE_SQL = "SELECT 1"


_MYSQL = {
    "list": (
        "SELECT id, title, done, "
        "DATE_FORMAT(created_at, '%Y-%m-%d %H:%i:%s') AS created_at "
        "FROM todos ORDER BY id"
    ),
    "insert": "INSERT INTO todos(title, done) VALUES(:title, false)",
    "update": "UPDATE todos SET title = :title, done = :done WHERE id = :id",
    "delete": "DELETE FROM todos WHERE id = :id",
    "last_insert_id": "SELECT LAST_INSERT_ID()",
}

_SQLITE = {
    "list": (
        "SELECT id, title, done, "
        "strftime('%Y-%m-%d %H:%M:%S', created_at) AS created_at "
        "FROM todos ORDER BY id"
    ),
    "insert": "INSERT INTO todos(title, done) VALUES(:title, 0)",
    "update": "UPDATE todos SET title = :title, done = :done WHERE id = :id",
    "delete": "DELETE FROM todos WHERE id = :id",
    "last_insert_id": "SELECT last_insert_rowid()",
}

_STATEMENTS: Dict[str, Dict[str, str]] = {
    "mysql": _MYSQL,
    "sqlite": _SQLITE,
}


_SCHEMA: Dict[str, str] = {
    "mysql": (
        "CREATE TABLE IF NOT EXISTS todos ("
        " id BIGINT NOT NULL AUTO_INCREMENT PRIMARY KEY,"
        " title VARCHAR(255) NOT NULL,"
        " done BOOLEAN NOT NULL DEFAULT FALSE,"
        " created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP"
        ")"
    ),
    "sqlite": (
        "CREATE TABLE IF NOT EXISTS todos ("
        " id INTEGER PRIMARY KEY AUTOINCREMENT,"
        " title TEXT NOT NULL,"
        " done BOOLEAN NOT NULL DEFAULT 0,"
        " created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP"
        ")"
    ),
}


def statements_for(dialect: str) -> Dict[str, str]:
    """
    Return the statement texts for a dialect name ("mysql", "sqlite").

    MariaDB reports itself as "mariadb" through some drivers and shares the
    MySQL syntax.

    Raises:
        ValueError: for a dialect with no catalogue entry.
    """
    dialect = "mysql" if dialect == "mariadb" else dialect
    try:
        return _STATEMENTS[dialect]
    except KeyError:
        raise ValueError(f"no statement catalogue for dialect {dialect!r}") from None


def schema_for(dialect: str) -> str:
    """Return the CREATE TABLE statement for a dialect name."""
    dialect = "mysql" if dialect == "mariadb" else dialect
    try:
        return _SCHEMA[dialect]
    except KeyError:
        raise ValueError(f"no schema for dialect {dialect!r}") from None
