"""Statement execution result models."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class ExecutionResult(BaseModel):
    """Normalized result of executing one statement."""

    query: str = Field(..., description="Executed SQL text")
    rows: list[dict[str, Any]] = Field(
        default_factory=list, description="Result rows as dictionaries"
    )
    columns: list[str] = Field(default_factory=list, description="Column names in order")
    affected_rows: int = Field(default=0, description="Rows changed by a write")
    insert_id: Optional[Any] = Field(
        None, description="Generated identifier reported for an insert"
    )
    execution_time_ms: Optional[float] = Field(
        None, description="Execution time in milliseconds"
    )

    def first(self) -> Optional[dict[str, Any]]:
        """First row, or None."""
        return self.rows[0] if self.rows else None
