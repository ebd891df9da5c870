"""
잡 종류별 enqueue 함수

HTTP 핸들러 등 잡을 추가하는 쪽에서 payload 형식을 직접 맞추지 않도록
모델로 검증한 뒤 QueueRegistry에 넘깁니다.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

from common.tempfiles import generate_correlation_id, generate_unique_filename
from integration.metadata import EntityType
from ledger.model.job import EmailJob, FileUploadJob, JobOptions, QueueName, SearchIndexJob
from producer.registry import QueueRegistry
from worker.job.model.email_dispatch import EmailPayload
from worker.job.model.file_upload import FileUploadPayload, TempFile
from worker.job.model.search_index import JobPosting

logger = logging.getLogger(__name__)


async def enqueue_index_job(registry: QueueRegistry, posting: dict[str, Any], options: JobOptions | None = None) -> str:
    """채용 공고 검색 문서 생성"""
    payload = JobPosting.model_validate(posting).model_dump(mode="json", by_alias=True)
    return await registry.enqueue(QueueName.SEARCH_INDEX, SearchIndexJob.INDEX_JOB, payload, options)


async def enqueue_update_job_index(registry: QueueRegistry, posting: dict[str, Any], options: JobOptions | None = None) -> str:
    """채용 공고 검색 문서 갱신"""
    payload = JobPosting.model_validate(posting).model_dump(mode="json", by_alias=True)
    return await registry.enqueue(QueueName.SEARCH_INDEX, SearchIndexJob.UPDATE_JOB_INDEX, payload, options)


async def enqueue_delete_job_index(registry: QueueRegistry, posting_id: int | str, options: JobOptions | None = None) -> str:
    """채용 공고 검색 문서 삭제"""
    return await registry.enqueue(QueueName.SEARCH_INDEX, SearchIndexJob.DELETE_JOB_INDEX, {"id": posting_id}, options)


async def enqueue_email(
    registry: QueueRegistry,
    email_job: EmailJob | str,
    recipient_email: str,
    recipient_name: str = "",
    template_data: dict[str, Any] | None = None,
    template_name: str | None = None,
    options: JobOptions | None = None,
) -> str:
    payload = EmailPayload(
        recipient_email=recipient_email,
        recipient_name=recipient_name,
        template_name=template_name,
        template_data=template_data or {},
    )
    return await registry.enqueue(
        QueueName.EMAIL, email_job, payload.model_dump(mode="json", by_alias=True, exclude_none=True), options
    )


async def stage_temp_file(upload_dir: str | Path, original_name: str, data: bytes, mime_type: str) -> TempFile:
    """
    업로드 받은 내용을 임시 디렉토리에 저장

    파일 이름 앞의 타임스탬프는 정리 잡이 나이를 계산할 때 사용합니다.
    """
    directory = Path(upload_dir)
    path = directory / generate_unique_filename(original_name)

    def write() -> None:
        directory.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    await asyncio.to_thread(write)
    logger.debug(f"Temp file staged: {path} ({len(data)} bytes)")
    return TempFile(original_name=original_name, temp_path=str(path), size=len(data), mime_type=mime_type)


async def enqueue_file_upload(
    registry: QueueRegistry,
    temp_files: list[TempFile],
    entity_type: EntityType | str,
    entity_id: int | str,
    folder: str,
    merge_with_existing: bool = False,
    correlation_id: str | None = None,
) -> str:
    """
    임시 파일 전송 잡 추가

    Returns:
        잡 id (진행률 조회용)
    """
    correlation_id = correlation_id or generate_correlation_id()
    payload = FileUploadPayload(
        temp_files=temp_files,
        entity_type=entity_type,
        entity_id=entity_id,
        folder=folder,
        merge_with_existing=merge_with_existing,
        correlation_id=correlation_id,
    )
    return await registry.enqueue(
        QueueName.FILE_UPLOAD,
        FileUploadJob.UPLOAD_FILE,
        payload.model_dump(mode="json", by_alias=True),
        JobOptions(correlation_id=correlation_id),
    )
