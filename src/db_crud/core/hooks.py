"""Before/after hooks around mutating operations."""

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from db_crud.errors import InvalidInput

logger = logging.getLogger(__name__)

PHASES = ("before", "after")

MUTATING_OPERATIONS = frozenset(
    {
        "insert",
        "bulk_insert",
        "upsert",
        "bulk_upsert",
        "update",
        "delete",
        "restore",
        "increment",
        "truncate",
    }
)


class HookContext(BaseModel):
    """Payload handed to a hook; before-hooks may return a modified copy."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    table: str = Field(..., description="Target table")
    operation: str = Field(..., description="Mutating operation name")
    data: Any = Field(None, description="Row payload, list of rows, or update values")
    conditions: Any = Field(None, description="Conditions of an update/delete/restore")
    id: Any = Field(None, description="Generated or targeted identifier (after hooks)")
    result: Any = Field(None, description="Operation result (after hooks)")


HookCallback = Callable[
    [HookContext], Union[Optional[HookContext], Awaitable[Optional[HookContext]]]
]


class HookRegistry:
    """At most one callback per (phase, operation); registering again replaces it."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._hooks: dict[tuple[str, str], HookCallback] = {}

    @staticmethod
    def _key(phase: str, operation: str) -> tuple[str, str]:
        if phase not in PHASES:
            raise InvalidInput('Hook phase must be "before" or "after"')
        if operation not in MUTATING_OPERATIONS:
            raise InvalidInput(
                f"Unknown hook operation: {operation!r}. "
                f"Supported: {', '.join(sorted(MUTATING_OPERATIONS))}"
            )
        return phase, operation

    def register(self, phase: str, operation: str, callback: HookCallback) -> None:
        if not callable(callback):
            raise InvalidInput("Hook callback must be callable")
        self._hooks[self._key(phase, operation)] = callback

    def remove(self, phase: str, operation: str) -> None:
        self._hooks.pop(self._key(phase, operation), None)

    def get(self, phase: str, operation: str) -> Optional[HookCallback]:
        return self._hooks.get(self._key(phase, operation))

    async def run(self, phase: str, context: HookContext) -> HookContext:
        """
        Invoke the hook for ``(phase, context.operation)``.

        Returns the context unchanged when hooks are disabled, when nothing
        is registered or when the callback returns None.
        """
        if not self.enabled:
            return context
        callback = self.get(phase, context.operation)
        if callback is None:
            return context

        logger.debug(f"Running {phase} hook for {context.operation} on {context.table}")
        result = callback(context)
        if inspect.isawaitable(result):
            result = await result

        if result is None:
            return context
        if not isinstance(result, HookContext):
            raise InvalidInput(
                f"{phase} hook for {context.operation} must return a HookContext or None, "
                f"got {type(result).__name__}"
            )
        return result

    def __len__(self) -> int:
        return len(self._hooks)
