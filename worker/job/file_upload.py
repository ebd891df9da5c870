"""파일 업로드 핸들러

처리 단계:
    1. progress 0
    2. 임시 파일을 파일 저장소로 전송 (파일마다 progress 증가, 최대 90)
    3. 전송된 파일이 있으면 엔티티 메타데이터 저장 (merge: 기존 ++ 신규, replace: 신규만)
    4. progress 100

성공/부분 실패/예외와 관계없이 payload의 임시 파일은 핸들러 종료 전에 모두 삭제합니다.
개별 파일 오류(형식, 크기, 파일 없음, 전송 실패)는 결과의 failures 에 모아 반환하고,
메타데이터 저장 실패처럼 잡 전체에 해당하는 오류만 예외로 올립니다.
"""

import asyncio
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from common.tempfiles import generate_unique_filename
from integration.exception import StorageTransferError
from integration.metadata import EntityType, FileMetadata
from integration.storage import ProgressCallback
from ledger.model.job import FileUploadJob, QueueName
from worker.base import BaseHandler, handler
from worker.job.model.file_upload import (
    FileUploadPayload,
    FileUploadResult,
    TempFile,
    UploadFailure,
)
from worker.model.handler import JobContext

TRANSFER_PROGRESS_MAX = 90

# 첫 번째 업로드 URL을 대표 URL(이력서, 로고)로 기록하는 엔티티
PRIMARY_URL_ENTITIES = (EntityType.JOB, EntityType.ORGANIZATION)


class RejectedFile(Exception):
    """개별 파일 거부 (잡은 계속 진행)"""
    pass


@handler(QueueName.FILE_UPLOAD, FileUploadJob.UPLOAD_FILE)
class FileUploadHandler(BaseHandler):
    payload_model = FileUploadPayload

    async def execute(self, payload: FileUploadPayload, context: JobContext) -> FileUploadResult:
        context.logger.info(
            f"Starting file upload: entity={payload.entity_type.value}/{payload.entity_id}, "
            f"files={len(payload.temp_files)}, merge={payload.merge_with_existing}"
        )
        try:
            return await self._upload(payload, context)
        finally:
            await release_temp_files([f.temp_path for f in payload.temp_files], context)

    async def on_rejected(self, payload: dict[str, Any], context: JobContext) -> None:
        """검증에 실패한 payload의 임시 파일도 삭제"""
        entries = payload.get("tempFiles") if isinstance(payload, dict) else None
        paths = [
            entry.get("tempPath") or entry.get("temp_path")
            for entry in entries or []
            if isinstance(entry, dict)
        ]
        await release_temp_files([p for p in paths if isinstance(p, str) and p], context)

    async def _upload(self, payload: FileUploadPayload, context: JobContext) -> FileUploadResult:
        result = FileUploadResult()
        uploaded: list[FileMetadata] = []
        total = len(payload.temp_files)
        reported = -1

        async def report(percent: int) -> None:
            nonlocal reported
            if percent > reported:
                reported = percent
                await context.update_progress(percent)

        await report(0)
        span = TRANSFER_PROGRESS_MAX / total if total else 0

        for index, temp_file in enumerate(payload.temp_files, start=1):
            start = (index - 1) * span

            async def on_progress(percent: int, start: float = start) -> None:
                await report(round(start + span * percent / 100))

            try:
                metadata = await self._transfer(temp_file, payload.folder, on_progress)
            except (RejectedFile, StorageTransferError) as e:
                context.logger.warning(f"File not uploaded: {temp_file.original_name}: {e}")
                result.failures.append(UploadFailure(filename=temp_file.original_name, error=str(e)))
            else:
                uploaded.append(metadata)
                result.urls.append(metadata.url)

            await report(round(index * span))

        result.success_count = len(uploaded)
        result.failure_count = len(result.failures)

        if uploaded:
            await self._save_metadata(payload, uploaded, result.urls)

        await report(100)
        context.logger.info(
            f"File upload completed: success={result.success_count}, failure={result.failure_count}"
        )
        return result

    async def _transfer(self, temp_file: TempFile, folder: str, on_progress: ProgressCallback) -> FileMetadata:
        self._validate(temp_file)

        source = Path(temp_file.temp_path)
        if not await asyncio.to_thread(source.is_file):
            raise RejectedFile(f"Temp file not found: {temp_file.temp_path}")

        url = await self.services.storage.transfer(
            source, folder, generate_unique_filename(temp_file.original_name), on_progress
        )
        return FileMetadata(
            original_name=temp_file.original_name,
            url=url,
            size=temp_file.size,
            mime_type=temp_file.mime_type,
            uploaded_at=datetime.now(timezone.utc),
        )

    def _validate(self, temp_file: TempFile) -> None:
        uploads = self.services.uploads
        if temp_file.mime_type not in uploads.allowed_mime_types:
            raise RejectedFile(f"Invalid file type: {temp_file.mime_type}")
        if temp_file.size > uploads.max_file_size_bytes:
            raise RejectedFile(
                f"File too large: {temp_file.size} bytes (max {uploads.max_file_size_mb}MB)"
            )

    async def _save_metadata(self, payload: FileUploadPayload, uploaded: list[FileMetadata], urls: list[str]) -> None:
        repository = self.services.metadata
        entity_id = str(payload.entity_id)
        primary_url = urls[0] if payload.entity_type in PRIMARY_URL_ENTITIES else None

        if payload.merge_with_existing:
            await repository.merge_files(payload.entity_type, entity_id, uploaded, primary_url)
        else:
            await repository.save_files(payload.entity_type, entity_id, uploaded, primary_url)


async def release_temp_files(temp_paths: list[str], context: JobContext) -> None:
    """임시 파일 삭제 (실패는 로그만 남김)"""
    for temp_path in temp_paths:
        try:
            await asyncio.to_thread(os.remove, temp_path)
        except FileNotFoundError:
            context.logger.debug(f"Temp file already removed: {temp_path}")
        except OSError as e:
            context.logger.warning(f"Failed to delete temp file {temp_path}: {e}")
    context.logger.debug("Temp files cleaned up")
