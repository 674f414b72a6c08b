"""todo_companion: local task tracker with live, reactive task lists."""

__version__ = "0.1.0"
