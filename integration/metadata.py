"""
엔티티 파일 메타데이터 저장소

(entity_type, entity_id) 마다 업로드된 파일 목록(JSON)과 대표 URL을 보관합니다.
대표 URL은 job(이력서), organization(로고)에만 기록됩니다.
"""

import json
import logging
import time
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from database import get_connection, transactional
from database.sqlite3 import SQLiteDatabase

logger = logging.getLogger(__name__)

SQL_PATH = Path(__file__).parent / "sql" / "metadata.sql"


class EntityType(str, Enum):
    JOB = "job"
    ORGANIZATION = "organization"
    USER = "user"


class FileMetadata(BaseModel):
    """업로드된 파일 한 건 (camelCase 직렬화)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    original_name: str
    url: str
    size: int = Field(ge=0)
    mime_type: str
    uploaded_at: datetime


class FileMetadataRepository(Protocol):
    async def get_files(self, entity_type: EntityType, entity_id: str) -> list[FileMetadata]: ...

    async def save_files(
        self,
        entity_type: EntityType,
        entity_id: str,
        files: list[FileMetadata],
        primary_url: str | None = None,
    ) -> None: ...

    async def merge_files(
        self,
        entity_type: EntityType,
        entity_id: str,
        files: list[FileMetadata],
        primary_url: str | None = None,
    ) -> list[FileMetadata]: ...


class SQLiteFileMetadataRepository:
    """entity_files 테이블 기반 구현"""

    def __init__(self, db: SQLiteDatabase):
        self._db = db
        self._queries = db.load_queries("metadata", str(SQL_PATH))

    async def initialize(self) -> None:
        async with self._db.connection() as conn:
            await self._queries.create_metadata_schema(conn)
            await conn.commit()

    async def get_files(self, entity_type: EntityType, entity_id: str) -> list[FileMetadata]:
        async with self._db.transaction(readonly=True) as ctx:
            row = await self._read(ctx.connection, entity_type, entity_id)
        if row is None:
            return []
        return _parse_files(row["files"])

    async def get_primary_url(self, entity_type: EntityType, entity_id: str) -> str | None:
        async with self._db.transaction(readonly=True) as ctx:
            row = await self._read(ctx.connection, entity_type, entity_id)
        return row["primary_url"] if row else None

    async def save_files(
        self,
        entity_type: EntityType,
        entity_id: str,
        files: list[FileMetadata],
        primary_url: str | None = None,
    ) -> None:
        """파일 목록을 통째로 교체"""
        async with self._db.transaction() as ctx:
            await self._write(ctx.connection, entity_type, entity_id, files, primary_url)
        logger.debug(f"File metadata saved: {entity_type}/{entity_id} ({len(files)} file(s))")

    async def merge_files(
        self,
        entity_type: EntityType,
        entity_id: str,
        files: list[FileMetadata],
        primary_url: str | None = None,
    ) -> list[FileMetadata]:
        """
        기존 목록 뒤에 추가

        조회와 저장을 하나의 쓰기 트랜잭션(BEGIN IMMEDIATE)에서 수행하므로
        같은 엔티티에 대한 동시 merge가 서로의 파일을 덮어쓰지 않습니다.

        Returns:
            저장된 전체 목록
        """
        @transactional(self._db)
        async def merge() -> list[FileMetadata]:
            conn = get_connection(self._db.name).connection
            row = await self._read(conn, entity_type, entity_id)
            merged = (_parse_files(row["files"]) if row else []) + files
            await self._write(conn, entity_type, entity_id, merged, primary_url)
            return merged

        merged = await merge()
        logger.debug(f"File metadata merged: {entity_type}/{entity_id} ({len(merged)} file(s))")
        return merged

    async def _read(self, conn, entity_type: EntityType, entity_id: str):
        return await self._queries.get_entity_files(
            conn, entity_type=EntityType(entity_type).value, entity_id=str(entity_id)
        )

    async def _write(
        self,
        conn,
        entity_type: EntityType,
        entity_id: str,
        files: list[FileMetadata],
        primary_url: str | None,
    ) -> None:
        await self._queries.save_entity_files(
            conn,
            entity_type=EntityType(entity_type).value,
            entity_id=str(entity_id),
            files=json.dumps([f.model_dump(mode="json", by_alias=True) for f in files]),
            primary_url=primary_url,
            now=int(time.time() * 1000),
        )


def _parse_files(raw: str) -> list[FileMetadata]:
    return [FileMetadata.model_validate(item) for item in json.loads(raw)]
