"""Per-task log fields identifying the configuration and sequence being worked on."""

import contextvars
from typing import Any, Optional

_fields: contextvars.ContextVar[Optional[dict[str, Any]]] = contextvars.ContextVar(
    "attribution_log_fields", default=None
)


def _present(fields: dict[str, Any]) -> dict[str, Any]:
    return {name: value for name, value in fields.items() if value is not None}


def _merged(fields: dict[str, Any]) -> dict[str, Any]:
    merged = dict(_fields.get() or {})
    merged.update(_present(fields))
    return merged


def get_context() -> dict[str, Any]:
    """Fields attached to log records emitted from the current task."""
    return dict(_fields.get() or {})


def add_context(**fields: Any) -> None:
    """Attach fields to every later record in the current task.

    ``None`` values are skipped, so optional identifiers can be passed
    through unchecked.

    Example:
        >>> add_context(config_id="cfg-1", sequence_id="journey-42")
    """
    _fields.set(_merged(fields))


def clear_context() -> None:
    _fields.set(None)


class LogContext:
    """Scope in which records carry the given config and sequence identifiers.

    The previous fields are restored on exit, so scopes nest.
    """

    def __init__(
        self,
        config_id: Optional[str] = None,
        sequence_id: Optional[str] = None,
        **fields: Any,
    ):
        self.fields = _present(
            {"config_id": config_id, "sequence_id": sequence_id, **fields}
        )
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> "LogContext":
        self._token = _fields.set(_merged(self.fields))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _fields.reset(self._token)
            self._token = None
