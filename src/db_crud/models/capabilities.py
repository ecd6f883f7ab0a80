"""Database capabilities model."""

from pydantic import BaseModel, Field


class DatabaseCapabilities(BaseModel):
    """Flags indicating what features a database supports."""

    foreign_keys: bool = Field(
        default=False,
        description="Database supports foreign key constraints",
    )
    indexes: bool = Field(
        default=True,
        description="Database supports indexes",
    )
    transactions: bool = Field(
        default=True,
        description="Database supports transactions",
    )
    window_functions: bool = Field(
        default=True,
        description="Database supports ROW_NUMBER() and other window functions",
    )
    full_outer_join: bool = Field(
        default=False,
        description="Database supports FULL OUTER JOIN natively",
    )
    full_text_search: bool = Field(
        default=False,
        description="Database supports full-text search",
    )
    json_functions: bool = Field(
        default=False,
        description="Database supports JSON extraction and containment",
    )
    returning: bool = Field(
        default=False,
        description="Inserts must use RETURNING to report generated ids",
    )
    table_statistics: bool = Field(
        default=False,
        description="Database exposes table size and row estimates",
    )

    def get_supported_features(self) -> list[str]:
        """Get list of supported feature names."""
        return [
            field_name
            for field_name, value in self.model_dump().items()
            if value is True
        ]
