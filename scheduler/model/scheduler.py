"""
Scheduler 설정 모델
"""

from pydantic import BaseModel, Field

CLEANUP_JOB_ID = "temp-file-cleanup"
CLEANUP_PATTERN = "*/15 * * * *"


class CleanupConfig(BaseModel):
    """임시 파일 정리 반복 잡 설정"""
    enabled: bool = True
    job_id: str = Field(default=CLEANUP_JOB_ID, description="고정 스케줄 id (재시작해도 한 건만 유지)")
    pattern: str = CLEANUP_PATTERN


class SchedulerConfig(BaseModel):
    """Scheduler 설정"""
    database: str = Field(default="default", description="database.yaml에 정의된 DB 이름")
    poll_interval_seconds: float = Field(default=10, ge=0.1, le=600)
    max_sleep_seconds: float = Field(default=60, ge=1, le=600)
    min_cron_interval_seconds: int = Field(default=60, ge=1, le=3600)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
