"""File record persistence"""

from typing import Optional

import asyncpg
from fastapi import Depends

from app.models.file import FileRecord, ProcessingStatus
from app.services.database import ConnectionManager, get_connection_manager


def _row_to_file(row: asyncpg.Record) -> FileRecord:
    return FileRecord.model_validate(dict(row))


class FileRepo:
    """File records. Each record is written once at creation and once more at its terminal status."""

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    async def create(self, record: FileRecord) -> FileRecord:
        async with self.manager.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO files (
                    id, user_id, file_name, original_name, file_type, file_size,
                    source_url, processing_status, metadata, created_at, updated_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                RETURNING *
                """,
                record.id,
                record.user_id,
                record.file_name,
                record.original_name,
                record.file_type,
                record.file_size,
                record.source_url,
                record.processing_status.value,
                record.metadata.model_dump(mode="json"),
                record.created_at,
                record.updated_at,
            )
            return _row_to_file(row)

    async def mark_completed(self, record: FileRecord) -> FileRecord:
        async with self.manager.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE files
                SET processing_status = $2, extracted_text = $3, summary = $4,
                    cdn_url = $5, metadata = $6, updated_at = now()
                WHERE id = $1 AND processing_status = $7
                RETURNING *
                """,
                record.id,
                ProcessingStatus.COMPLETED.value,
                record.extracted_text,
                record.summary,
                record.cdn_url,
                record.metadata.model_dump(mode="json"),
                ProcessingStatus.PROCESSING.value,
            )
            return _row_to_file(row) if row else record

    async def mark_failed(self, record: FileRecord) -> FileRecord:
        async with self.manager.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE files
                SET processing_status = $2, error_message = $3, updated_at = now()
                WHERE id = $1 AND processing_status = $4
                RETURNING *
                """,
                record.id,
                ProcessingStatus.FAILED.value,
                record.error_message,
                ProcessingStatus.PROCESSING.value,
            )
            return _row_to_file(row) if row else record

    async def get(self, user_id: str, file_id: str) -> Optional[FileRecord]:
        async with self.manager.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM files WHERE id = $1 AND user_id = $2",
                file_id,
                user_id,
            )
            return _row_to_file(row) if row else None


def get_file_repo(
    manager: ConnectionManager = Depends(get_connection_manager),
) -> FileRepo:
    return FileRepo(manager)
