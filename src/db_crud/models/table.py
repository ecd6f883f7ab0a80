"""Table, column and index information models."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class ColumnInfo(BaseModel):
    """Information about a table column."""

    name: str = Field(..., description="Column name")
    data_type: str = Field(..., description="Column data type")
    nullable: bool = Field(..., description="Whether column allows NULL")
    default: Optional[str] = Field(None, description="Default value expression")
    primary_key: bool = Field(
        default=False, description="Whether column is part of primary key"
    )
    autoincrement: bool = Field(
        default=False, description="Whether the database generates the value"
    )
    indexed: bool = Field(default=False, description="Whether column is indexed")
    comment: Optional[str] = Field(None, description="Column comment/description")


class IndexInfo(BaseModel):
    """Information about a table index."""

    name: str = Field(..., description="Index name")
    columns: list[str] = Field(..., description="Indexed column names")
    unique: bool = Field(default=False, description="Whether index enforces uniqueness")
    primary: bool = Field(
        default=False, description="Whether this is the primary key index"
    )
    index_type: Optional[str] = Field(
        None, description="Index type (btree, hash, etc.)"
    )


class TableInfo(BaseModel):
    """Summary information about a table."""

    name: str = Field(..., description="Table name")
    row_count: Optional[int] = Field(None, description="Row count")
    size_bytes: Optional[int] = Field(None, description="Table data size in bytes")
    index_size_bytes: Optional[int] = Field(
        None, description="Total index size in bytes"
    )
    columns: list[ColumnInfo] = Field(
        default_factory=list, description="Column information"
    )
    indexes: list[IndexInfo] = Field(
        default_factory=list, description="Index information"
    )
    comment: Optional[str] = Field(None, description="Table comment/description")
    extra_info: dict[str, Any] = Field(
        default_factory=dict,
        description="Database-specific additional information (engine, etc.)",
    )

    @property
    def total_size_bytes(self) -> Optional[int]:
        """Total size including indexes."""
        if self.size_bytes is None:
            return None
        return self.size_bytes + (self.index_size_bytes or 0)

    @property
    def primary_key_columns(self) -> list[str]:
        """Get primary key column names."""
        return [col.name for col in self.columns if col.primary_key]

    def get_column(self, name: str) -> Optional[ColumnInfo]:
        """Get column by name."""
        for col in self.columns:
            if col.name == name:
                return col
        return None


class DatabaseStats(BaseModel):
    """Aggregate size information for the connected database."""

    table_count: int = Field(..., description="Number of tables")
    total_rows: Optional[int] = Field(None, description="Estimated total rows")
    total_size_bytes: Optional[int] = Field(None, description="Data + index size")
