"""임시 업로드 파일 정리 핸들러

업로드 디렉토리에서 TTL이 지난 파일을 삭제합니다. 숨김 파일과 디렉토리는 건너뛰고,
개별 파일 삭제 실패는 로그만 남기고 계속 진행합니다.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any

from common.tempfiles import is_expired_temp_file
from ledger.model.job import CleanupJob, QueueName
from worker.base import BaseHandler, handler
from worker.model.handler import HandlerResult, JobContext


@handler(QueueName.CLEANUP, CleanupJob.CLEANUP_TEMP_FILES)
class CleanupTempFilesHandler(BaseHandler):

    async def execute(self, payload: dict[str, Any], context: JobContext) -> HandlerResult:
        uploads = self.services.uploads
        deleted = await asyncio.to_thread(
            sweep_expired_files, uploads.upload_dir, uploads.temp_file_ttl_seconds, context.logger
        )
        context.logger.info(f"Temp file cleanup completed: deleted={deleted}")
        return HandlerResult(deleted=deleted)


def sweep_expired_files(upload_dir: Path, ttl_seconds: float, log: logging.Logger | logging.LoggerAdapter) -> int:
    """만료된 임시 파일 삭제 후 삭제 수 반환"""
    if not upload_dir.is_dir():
        log.debug(f"Upload directory does not exist, skipping: {upload_dir}")
        return 0

    now = time.time()
    deleted = 0
    for entry in sorted(upload_dir.iterdir()):
        if entry.name.startswith('.'):
            continue
        try:
            if entry.is_dir() or not is_expired_temp_file(entry, ttl_seconds, now):
                continue
            entry.unlink()
            deleted += 1
            log.debug(f"Deleted expired temp file: {entry.name}")
        except OSError as e:
            log.warning(f"Failed to delete temp file {entry.name}: {e}")
    return deleted
