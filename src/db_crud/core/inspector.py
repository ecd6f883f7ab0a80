"""Metadata inspection using SQLAlchemy reflection."""

from typing import TYPE_CHECKING, Any, Optional, cast

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from db_crud.core.connection import DatabaseConnection
from db_crud.errors import ProviderError
from db_crud.models.table import ColumnInfo, DatabaseStats, IndexInfo, TableInfo

if TYPE_CHECKING:
    from db_crud.adapters.base import BaseAdapter


class MetadataInspector:
    """Read-only schema introspection through the SQLAlchemy Inspector."""

    def __init__(self, connection: DatabaseConnection, adapter: "BaseAdapter"):
        """
        Initialize metadata inspector.

        Args:
            connection: Database connection manager
            adapter: Database-specific adapter for extended functionality
        """
        self.connection = connection
        self.adapter = adapter

    async def list_tables(self) -> list[str]:
        """Names of the tables in the default schema."""
        async with self.connection.get_connection() as conn:
            try:
                return await conn.run_sync(
                    lambda sync_conn: sa_inspect(sync_conn).get_table_names()
                )
            except SQLAlchemyError as e:
                raise ProviderError(str(e)) from e

    async def has_table(self, table_name: str) -> bool:
        async with self.connection.get_connection() as conn:
            try:
                return await conn.run_sync(
                    lambda sync_conn: sa_inspect(sync_conn).has_table(table_name)
                )
            except SQLAlchemyError as e:
                raise ProviderError(str(e)) from e

    async def get_columns(self, table_name: str) -> list[ColumnInfo]:
        """Columns with primary key and index flags filled in."""
        return (await self.describe_table(table_name, enrich=False)).columns

    async def get_indexes(self, table_name: str) -> list[IndexInfo]:
        """Indexes, with the primary key listed first as a ``primary`` index."""
        return (await self.describe_table(table_name, enrich=False)).indexes

    async def describe_table(
        self,
        table_name: str,
        row_count: Optional[int] = None,
        enrich: bool = True,
    ) -> TableInfo:
        """
        Get comprehensive table description.

        Args:
            table_name: Table name
            row_count: Exact row count, if the caller already has one
            enrich: Ask the adapter for sizes, engine and comment

        Returns:
            Table information
        """
        async with self.connection.get_connection() as conn:
            # Use run_sync to execute all synchronous reflection methods
            def get_table_details(sync_conn):
                inspector = sa_inspect(sync_conn)
                result = {
                    "columns": inspector.get_columns(table_name),
                    "pk_constraint": inspector.get_pk_constraint(table_name),
                    "indexes": [],
                }
                if self.adapter.capabilities.indexes:
                    result["indexes"] = inspector.get_indexes(table_name)
                return result

            try:
                table_data = await conn.run_sync(get_table_details)
            except SQLAlchemyError as e:
                raise ProviderError(str(e)) from e

            table_info = TableInfo(name=table_name, row_count=row_count)

            table_info.columns = [
                self._column_from_sa(cast(dict[str, Any], col_data))
                for col_data in table_data["columns"]
            ]

            # Primary key
            pk_constraint = table_data["pk_constraint"]
            if pk_constraint and pk_constraint.get("constrained_columns"):
                pk_cols = pk_constraint["constrained_columns"]
                for col in table_info.columns:
                    if col.name in pk_cols:
                        col.primary_key = True
                        col.indexed = True
                table_info.indexes.append(
                    IndexInfo(
                        name=pk_constraint.get("name") or "PRIMARY",
                        columns=list(pk_cols),
                        unique=True,
                        primary=True,
                    )
                )

            # Indexes
            for idx_data in table_data["indexes"]:
                index = self._index_from_sa(cast(dict[str, Any], idx_data))
                table_info.indexes.append(index)

                # Mark indexed columns
                for col_name in index.columns:
                    col = table_info.get_column(col_name)
                    if col:
                        col.indexed = True

            if enrich:
                # Let adapter enrich with database-specific info
                table_info = await self.adapter.enrich_table_info(conn, table_info)

            return table_info

    async def get_database_stats(self) -> DatabaseStats:
        tables = await self.list_tables()
        async with self.connection.get_connection() as conn:
            try:
                return await self.adapter.get_database_stats(conn, len(tables))
            except SQLAlchemyError as e:
                raise ProviderError(str(e)) from e

    def _column_from_sa(self, col_data: dict) -> ColumnInfo:
        """Convert SQLAlchemy column data to ColumnInfo."""
        return ColumnInfo(
            name=col_data["name"],
            data_type=str(col_data["type"]),
            nullable=col_data["nullable"],
            default=str(col_data["default"]) if col_data.get("default") else None,
            primary_key=False,  # Will be set later
            autoincrement=col_data.get("autoincrement") is True,
            indexed=False,  # Will be set later
            comment=col_data.get("comment"),
        )

    def _index_from_sa(self, idx_data: dict) -> IndexInfo:
        """Convert SQLAlchemy index data to IndexInfo."""
        return IndexInfo(
            name=idx_data["name"] or "",
            columns=[col for col in idx_data["column_names"] if col is not None],
            unique=bool(idx_data.get("unique", False)),
            index_type=idx_data.get("type"),
        )
