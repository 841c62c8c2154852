from .health import HealthHandler
from .todos import TodoAPI, parse_todo_id, row_to_todo

__all__ = [
    "HealthHandler",
    "TodoAPI",
    "parse_todo_id",
    "row_to_todo",
]
