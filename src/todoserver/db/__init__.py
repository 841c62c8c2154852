"""
=============================================================================
DATABASE LAYER
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  session.py     DatabaseSession: one lock-guarded connection,       │
    │                 lazy reconnect, five prepared statements            │
    │  statements.py  SQL text per dialect (MySQL, SQLite) and the DDL    │
    │  fields.py      column value → bool / int / str                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .fields import Field, FieldKind, to_bool, to_int, to_str
from .session import DatabaseSession, PreparedStatement, default_engine_factory
from .statements import STATEMENT_NAMES, statements_for, schema_for

__all__ = [
    "DatabaseSession",
    "PreparedStatement",
    "default_engine_factory",

    "Field",
    "FieldKind",
    "to_bool",
    "to_int",
    "to_str",

    "STATEMENT_NAMES",
    "statements_for",
    "schema_for",
]
