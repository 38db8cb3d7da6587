from __future__ import annotations

from dataclasses import dataclass
import importlib
import json
from typing import Any

from submission_commit.domain.errors import RecordNotFoundError, RecordStoreError
from submission_commit.domain.models import OrphanItem, OrphanKind, SubmissionRecord
from submission_commit.repositories.sql_loader import load_sql

asyncpg_module = importlib.import_module("asyncpg")


SQL_CREATE_SUBMISSION = load_sql("create_submission.sql")
SQL_GET_SUBMISSION = load_sql("get_submission.sql")
SQL_TOUCH_SUBMISSION = load_sql("touch_submission.sql")
SQL_DELETE_SUBMISSION = load_sql("delete_submission.sql")
SQL_UPSERT_DOCUMENT_METADATA = load_sql("upsert_document_metadata.sql")
SQL_LIST_DOCUMENT_METADATA = load_sql("list_document_metadata.sql")
SQL_INSERT_RECONCILIATION_ITEM = load_sql("insert_reconciliation_item.sql")
SQL_CLAIM_RECONCILIATION_ITEM = load_sql("claim_reconciliation_item.sql")
SQL_RESOLVE_RECONCILIATION_ITEM = load_sql("resolve_reconciliation_item.sql")
SQL_RELEASE_RECONCILIATION_ITEM = load_sql("release_reconciliation_item.sql")
SQL_LIST_OPEN_RECONCILIATION_ITEMS = load_sql("list_open_reconciliation_items.sql")


def _is_unique_violation(exc: Exception) -> bool:
    return getattr(exc, "sqlstate", None) == "23505"


def _is_foreign_key_violation(exc: Exception) -> bool:
    return getattr(exc, "sqlstate", None) == "23503"


def _affected_rows(status: str) -> int:
    # asyncpg returns command tags such as "DELETE 1" / "UPDATE 0".
    try:
        return int(status.rsplit(" ", maxsplit=1)[-1])
    except ValueError:
        return 0


@dataclass
class AsyncpgPoolManager:
    dsn: str
    pool: Any | None = None

    async def startup(self) -> None:
        async def _init_connection(conn: Any) -> None:
            await conn.set_type_codec(
                "json",
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog",
            )
            await conn.set_type_codec(
                "jsonb",
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog",
            )

        self.pool = await asyncpg_module.create_pool(
            dsn=self.dsn,
            min_size=1,
            max_size=5,
            init=_init_connection,
        )

    async def shutdown(self) -> None:
        if self.pool is None:
            return
        await self.pool.close()
        self.pool = None

    def acquire_pool(self) -> Any:
        if self.pool is None:
            raise RuntimeError("postgres pool is not initialized")
        return self.pool


@dataclass
class PostgresRecordStore:
    pool_manager: AsyncpgPoolManager

    async def create_record(
        self,
        *,
        submission_id: str,
        tracking_code: str,
        owner_id: str,
        payload: dict[str, object],
        status: str,
    ) -> SubmissionRecord:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            try:
                row = await conn.fetchrow(
                    SQL_CREATE_SUBMISSION,
                    submission_id,
                    tracking_code,
                    owner_id,
                    payload,
                    str(status),
                )
            except Exception as exc:
                if _is_unique_violation(exc):
                    raise RecordStoreError(f"submission already exists: {submission_id}") from exc
                raise
        if row is None:
            raise RecordStoreError("failed to create submission")
        return _record_from_row(row)

    async def get_record(self, *, submission_id: str) -> SubmissionRecord | None:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_GET_SUBMISSION, submission_id)
        if row is None:
            return None
        return _record_from_row(row)

    async def touch_record(self, *, submission_id: str) -> None:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            status = await conn.execute(SQL_TOUCH_SUBMISSION, submission_id)
        if _affected_rows(status) == 0:
            raise RecordNotFoundError(f"submission not found: {submission_id}")

    async def delete_record(self, *, submission_id: str) -> bool:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            # submission_documents rows go with it (ON DELETE CASCADE).
            status = await conn.execute(SQL_DELETE_SUBMISSION, submission_id)
        return _affected_rows(status) > 0

    async def put_document_metadata(
        self,
        *,
        submission_id: str,
        document_id: str,
        metadata: dict[str, object],
    ) -> None:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            try:
                await conn.execute(SQL_UPSERT_DOCUMENT_METADATA, submission_id, document_id, metadata)
            except Exception as exc:
                if _is_foreign_key_violation(exc):
                    raise RecordNotFoundError(f"submission not found: {submission_id}") from exc
                raise

    async def list_document_metadata(self, *, submission_id: str) -> list[dict[str, object]]:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(SQL_LIST_DOCUMENT_METADATA, submission_id)
        return [dict(row["metadata"]) for row in rows]


@dataclass
class PostgresReconciliationLedger:
    pool_manager: AsyncpgPoolManager
    claim_lease_seconds: int = 60

    async def record_orphan(
        self,
        *,
        kind: OrphanKind,
        ref: str,
        submission_id: str,
        error: str,
    ) -> OrphanItem:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_INSERT_RECONCILIATION_ITEM, kind, ref, submission_id, error)
        if row is None:
            raise RecordStoreError("failed to record reconciliation item")
        return _orphan_from_row(row)

    async def claim_next(self) -> OrphanItem | None:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(SQL_CLAIM_RECONCILIATION_ITEM, float(self.claim_lease_seconds))
        if row is None:
            return None
        return _orphan_from_row(row)

    async def mark_resolved(self, *, item_id: int) -> None:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            await conn.execute(SQL_RESOLVE_RECONCILIATION_ITEM, item_id)

    async def release(self, *, item_id: int, error: str, max_attempts: int) -> OrphanItem:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_RELEASE_RECONCILIATION_ITEM, item_id, error, max_attempts)
        if row is None:
            raise RecordNotFoundError(f"reconciliation item not found: {item_id}")
        return _orphan_from_row(row)

    async def list_open(self) -> list[OrphanItem]:
        pool = self.pool_manager.acquire_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(SQL_LIST_OPEN_RECONCILIATION_ITEMS)
        return [_orphan_from_row(row) for row in rows]


def _record_from_row(row: Any) -> SubmissionRecord:
    payload = row["payload"]
    return SubmissionRecord(
        submission_id=row["public_id"],
        tracking_code=row["tracking_code"],
        owner_id=row["owner_id"],
        payload=dict(payload) if isinstance(payload, dict) else {},
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _orphan_from_row(row: Any) -> OrphanItem:
    return OrphanItem(
        item_id=row["id"],
        kind=row["kind"],
        ref=row["ref"],
        submission_id=row["submission_public_id"],
        status=row["status"],
        attempts=row["attempts"],
        last_error=row["last_error"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
