"""Create, update and delete operations.

Every operation validates its table before building anything, dispatches
the registered before/after hooks for its operation name and invalidates
the cache for the tables it wrote.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from db_crud.core.transaction import Transaction
from db_crud.errors import InvalidInput, NotFound
from db_crud.models.pagination import FindOrCreateResult
from db_crud.operations.base import OperationsBase
from db_crud.sql.builder import Conditions
from db_crud.sql.conditions import Condition, Filter, make_condition

logger = logging.getLogger(__name__)


class WriteOperations(OperationsBase):
    """Inserts, upserts, updates, deletes and counters."""

    # Create

    async def insert(
        self, table: str, data: Mapping[str, Any], id_field: str = "id"
    ) -> Any:
        """
        Insert one row.

        ``created_at``/``updated_at`` are set when timestamps are enabled.

        Returns:
            The generated identifier
        """
        self.quoter.validate_table(table)
        context = await self._before("insert", table, data=dict(data))
        payload = self._stamp_insert(context.data)

        result = await self._write(self.builder.insert(table, payload, id_field))

        await self._after(context, data=payload, id=result.insert_id, result=result.insert_id)
        return result.insert_id

    async def insert_and_return(
        self, table: str, data: Mapping[str, Any], id_field: str = "id"
    ) -> Optional[dict[str, Any]]:
        record_id = await self.insert(table, data, id_field)
        return await self.find_one(table, {id_field: record_id})

    async def bulk_insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """
        Insert rows with one multi-row statement.

        Returns:
            Number of inserted rows (0 for an empty list)

        Raises:
            InconsistentRows: If the rows do not share one column set
        """
        self.quoter.validate_table(table)
        if not rows:
            return 0
        context = await self._before("bulk_insert", table, data=[dict(row) for row in rows])
        payload = [self._stamp_insert(row) for row in context.data]

        result = await self._write(self.builder.bulk_insert(table, payload))

        await self._after(context, data=payload, result=result.affected_rows)
        return result.affected_rows

    async def bulk_insert_and_return(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        id_field: str = "id",
    ) -> list[dict[str, Any]]:
        """Insert rows one by one inside a transaction and return them."""
        self.quoter.validate_table(table)
        if not rows:
            return []
        context = await self._before("bulk_insert", table, data=[dict(row) for row in rows])

        async def insert_all(tx: Transaction) -> list[Any]:
            return [await tx.insert(table, row, id_field) for row in context.data]

        ids = await self.transactions.run(insert_all)

        await self._after(context, id=ids, result=len(ids))
        return await self.get_by_ids(table, ids, id_field)

    async def upsert(
        self,
        table: str,
        data: Mapping[str, Any],
        conflict_keys: Sequence[str] = ("id",),
    ) -> Any:
        """
        Insert, or update the row that conflicts on ``conflict_keys``.

        ``created_at`` of an existing row is preserved.

        Returns:
            The generated id when the driver reports one, else the affected row count
        """
        self.quoter.validate_table(table)
        context = await self._before("upsert", table, data=dict(data))
        payload = self._stamp_insert(context.data)

        result = await self._write(self.builder.upsert(table, [payload], conflict_keys))

        outcome = result.insert_id or result.affected_rows
        await self._after(context, data=payload, id=result.insert_id, result=outcome)
        return outcome

    async def bulk_upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_keys: Sequence[str] = ("id",),
    ) -> int:
        self.quoter.validate_table(table)
        if not rows:
            return 0
        context = await self._before("bulk_upsert", table, data=[dict(row) for row in rows])
        payload = [self._stamp_insert(row) for row in context.data]

        result = await self._write(self.builder.upsert(table, payload, conflict_keys))

        await self._after(context, data=payload, result=result.affected_rows)
        return result.affected_rows

    async def find_or_create(
        self,
        table: str,
        conditions: Mapping[str, Any],
        defaults: Optional[Mapping[str, Any]] = None,
        id_field: str = "id",
    ) -> FindOrCreateResult:
        """
        Return the row matching ``conditions``, inserting it first if absent.

        The new row is ``conditions`` merged with ``defaults``; conditions must
        therefore be plain equality values.
        """
        self.quoter.validate_table(table)
        existing = await self.find_one(table, conditions)
        if existing:
            return FindOrCreateResult(record=existing, created=False)

        for column, value in conditions.items():
            if isinstance(value, (Mapping, Filter, Condition)):
                raise InvalidInput(
                    f"find_or_create needs plain values; '{column}' has a filter"
                )
        record = await self.insert_and_return(
            table, {**conditions, **(defaults or {})}, id_field
        )
        return FindOrCreateResult(record=record, created=True)

    async def clone(
        self,
        table: str,
        id: Any,
        overrides: Optional[Mapping[str, Any]] = None,
        id_field: str = "id",
    ) -> Optional[dict[str, Any]]:
        """
        Copy a row under a new id.

        Raises:
            NotFound: If the source row does not exist
        """
        original = await self.find_one(table, {id_field: id})
        if not original:
            raise NotFound(f"Record not found: {table}.{id_field} = {id!r}")

        data = {
            column: value
            for column, value in original.items()
            if column not in (id_field, "created_at", "updated_at")
        }
        data.update(overrides or {})
        return await self.insert_and_return(table, data, id_field)

    # Update

    async def update_where(
        self, table: str, conditions: Conditions, data: Mapping[str, Any]
    ) -> int:
        """
        Update rows matching ``conditions``.

        Returns:
            Number of affected rows

        Raises:
            InvalidInput: If conditions or data are empty
        """
        self.quoter.validate_table(table)
        context = await self._before("update", table, data=dict(data), conditions=conditions)
        payload = self._stamp_update(context.data)

        result = await self._write(self.builder.update(table, payload, context.conditions))

        await self._after(context, data=payload, result=result.affected_rows)
        return result.affected_rows

    async def update_by_id(
        self, table: str, id: Any, data: Mapping[str, Any], id_field: str = "id"
    ) -> int:
        return await self.update_where(table, {id_field: id}, data)

    async def update_by_id_and_return(
        self, table: str, id: Any, data: Mapping[str, Any], id_field: str = "id"
    ) -> Optional[dict[str, Any]]:
        await self.update_by_id(table, id, data, id_field)
        return await self.find_one(table, {id_field: id})

    async def batch_update(
        self,
        table: str,
        updates: Sequence[Mapping[str, Any]],
        id_field: str = "id",
    ) -> int:
        """
        Apply per-row updates in one transaction.

        Each item holds ``id_field`` plus the columns to set.

        Returns:
            Total affected rows
        """
        self.quoter.validate_table(table)
        if not updates:
            return 0

        contexts = []
        for update in updates:
            if id_field not in update:
                raise InvalidInput(f"Every batch update needs '{id_field}'")
            data = {key: value for key, value in update.items() if key != id_field}
            contexts.append(
                await self._before(
                    "update", table, data=data, conditions={id_field: update[id_field]}
                )
            )

        async def apply(tx: Transaction) -> int:
            total = 0
            for context in contexts:
                total += await tx.update_where(table, context.conditions, context.data)
            return total

        total = await self.transactions.run(apply)

        for context in contexts:
            await self._after(context)
        return total

    async def find_one_and_update(
        self,
        table: str,
        conditions: Conditions,
        data: Mapping[str, Any],
        id_field: str = "id",
    ) -> Optional[dict[str, Any]]:
        existing = await self.find_one(table, conditions)
        if not existing:
            return None
        return await self.update_by_id_and_return(table, existing[id_field], data, id_field)

    async def increment_many(
        self,
        table: str,
        id: Any,
        fields: Mapping[str, Any],
        id_field: str = "id",
        sign: str = "+",
    ) -> int:
        """Add each amount in ``fields`` to its column (subtract with ``sign='-'``)."""
        self.quoter.validate_table(table)
        context = await self._before(
            "increment", table, data=dict(fields), conditions={id_field: id}
        )
        extra = self._stamp_update({}) if self.options.use_timestamps else None

        result = await self._write(
            self.builder.increment(table, context.conditions, context.data, sign, extra)
        )

        await self._after(context, result=result.affected_rows)
        return result.affected_rows

    async def decrement_many(
        self, table: str, id: Any, fields: Mapping[str, Any], id_field: str = "id"
    ) -> int:
        return await self.increment_many(table, id, fields, id_field, sign="-")

    async def increment(
        self, table: str, id: Any, field: str, amount: Any = 1, id_field: str = "id"
    ) -> int:
        return await self.increment_many(table, id, {field: amount}, id_field)

    async def decrement(
        self, table: str, id: Any, field: str, amount: Any = 1, id_field: str = "id"
    ) -> int:
        return await self.increment_many(table, id, {field: amount}, id_field, sign="-")

    # Delete

    async def delete_where(
        self, table: str, conditions: Conditions, soft: bool = False
    ) -> int:
        """
        Delete rows matching ``conditions``.

        A soft delete stamps ``deleted_at``; other operations still see the
        row unless the caller filters on ``deleted_at``.
        """
        self.quoter.validate_table(table)
        context = await self._before("delete", table, conditions=conditions, data={"soft": soft})

        result = await self._write(self.builder.delete(table, context.conditions, soft))

        await self._after(context, result=result.affected_rows)
        return result.affected_rows

    async def delete_by_id(
        self, table: str, id: Any, soft: bool = False, id_field: str = "id"
    ) -> int:
        return await self.delete_where(table, {id_field: id}, soft)

    async def batch_delete(
        self,
        table: str,
        ids: Sequence[Any],
        soft: bool = False,
        id_field: str = "id",
    ) -> int:
        self.quoter.validate_table(table)
        if not ids:
            return 0
        return await self.delete_where(
            table, [make_condition(id_field, "IN", list(ids))], soft
        )

    async def find_one_and_delete(
        self,
        table: str,
        conditions: Conditions,
        soft: bool = False,
        id_field: str = "id",
    ) -> Optional[dict[str, Any]]:
        """Delete the first matching row and return it as it was."""
        existing = await self.find_one(table, conditions)
        if not existing:
            return None
        await self.delete_by_id(table, existing[id_field], soft, id_field)
        return existing

    async def restore_where(self, table: str, conditions: Conditions) -> int:
        """Clear ``deleted_at`` on rows matching ``conditions``."""
        self.quoter.validate_table(table)
        context = await self._before("restore", table, conditions=conditions)

        result = await self._write(self.builder.restore(table, context.conditions))

        await self._after(context, result=result.affected_rows)
        return result.affected_rows

    async def restore(self, table: str, id: Any, id_field: str = "id") -> int:
        return await self.restore_where(table, {id_field: id})

    async def truncate(self, table: str) -> None:
        """Remove every row; the dialect's statements run on one connection."""
        self.quoter.validate_table(table)
        context = await self._before("truncate", table)

        statements = self.builder.truncate(table)
        await self.executor.execute_many(statements)
        self._invalidate({table})

        await self._after(context)
