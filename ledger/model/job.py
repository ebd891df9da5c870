"""
잡 모델 및 큐별 job name 정의

큐마다 처리 가능한 job name 집합이 고정되어 있으며,
등록되지 않은 이름은 enqueue 시점에 거부됩니다.
"""

import json
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from ledger.exception import UnknownQueueError, UnknownJobError


BackoffStrategy = Literal["exponential", "fixed"]


class QueueName(str, Enum):
    SEARCH_INDEX = "search-index"
    EMAIL = "email"
    FILE_UPLOAD = "file-upload"
    CLEANUP = "cleanup"


class SearchIndexJob(str, Enum):
    INDEX_JOB = "indexJob"
    UPDATE_JOB_INDEX = "updateJobIndex"
    DELETE_JOB_INDEX = "deleteJobIndex"


class EmailJob(str, Enum):
    SEND_WELCOME_EMAIL = "sendWelcomeEmail"
    SEND_PASSWORD_RESET_EMAIL = "sendPasswordResetEmail"
    SEND_PASSWORD_CHANGED_EMAIL = "sendPasswordChangedEmail"
    SEND_JOB_APPLICATION_CONFIRMATION = "sendJobApplicationConfirmation"
    SEND_APPLICATION_WITHDRAWAL_CONFIRMATION = "sendApplicationWithdrawalConfirmation"
    SEND_APPLICATION_STATUS_UPDATE = "sendApplicationStatusUpdate"
    SEND_ACCOUNT_DELETION_CONFIRMATION = "sendAccountDeletionConfirmation"
    SEND_ACCOUNT_DEACTIVATION_CONFIRMATION = "sendAccountDeactivationConfirmation"
    SEND_JOB_DELETION_EMAIL = "sendJobDeletionEmail"
    SEND_ORGANIZATION_INVITATION = "sendOrganizationInvitation"
    SEND_ORGANIZATION_WELCOME = "sendOrganizationWelcome"
    SEND_JOB_ALERT_NOTIFICATION = "sendJobAlertNotification"


class FileUploadJob(str, Enum):
    UPLOAD_FILE = "uploadFile"


class CleanupJob(str, Enum):
    CLEANUP_TEMP_FILES = "cleanupTempFiles"


JOB_NAMES: dict[QueueName, type[Enum]] = {
    QueueName.SEARCH_INDEX: SearchIndexJob,
    QueueName.EMAIL: EmailJob,
    QueueName.FILE_UPLOAD: FileUploadJob,
    QueueName.CLEANUP: CleanupJob,
}


def validate_job_name(queue: str, job_name: str) -> tuple[QueueName, Enum]:
    """
    (queue, job_name) 쌍을 검증하여 enum으로 변환

    Raises:
        UnknownQueueError, UnknownJobError
    """
    try:
        queue_name = QueueName(queue)
    except ValueError:
        raise UnknownQueueError(str(queue))

    try:
        kind = JOB_NAMES[queue_name](job_name)
    except ValueError:
        raise UnknownJobError(queue_name.value, str(job_name))
    return queue_name, kind


class JobState(str, Enum):
    """잡 상태 (completed, failed는 종료 상태)"""
    DELAYED = "delayed"
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class RepeatOptions(BaseModel):
    """반복 스케줄 옵션"""
    pattern: str = Field(description="5필드 cron 표현식")


class JobOptions(BaseModel):
    """push 옵션 (지정하지 않은 값은 큐 기본값 사용)"""
    job_id: str | None = None
    delay_ms: int = Field(default=0, ge=0)
    repeat: RepeatOptions | None = None
    max_attempts: int | None = Field(default=None, ge=1)
    backoff_base_ms: int | None = Field(default=None, ge=0)
    backoff_strategy: BackoffStrategy | None = None
    correlation_id: str | None = None


class Job(BaseModel):
    """원장에 저장된 잡"""
    id: str
    queue: str
    job_name: str
    payload: dict[str, Any] = Field(default_factory=dict)
    state: JobState
    attempts_made: int = 0
    max_attempts: int
    backoff_base_ms: int
    backoff_strategy: BackoffStrategy = "exponential"
    progress: int = 0
    correlation_id: str | None = None
    run_at: int
    lease_owner: str | None = None
    lease_until: int | None = None
    stalled_count: int = 0
    result: Any = None
    failed_reason: str | None = None
    repeat_id: str | None = None
    created_at: int
    processed_at: int | None = None
    finished_at: int | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Job":
        data = dict(row)
        data.pop('seq', None)
        data['payload'] = json.loads(data['payload']) if data.get('payload') else {}
        data['result'] = json.loads(data['result']) if data.get('result') else None
        return cls(**data)


class RepeatSchedule(BaseModel):
    """반복 스케줄 (id가 멱등 키)"""
    id: str
    queue: str
    job_name: str
    pattern: str
    payload: dict[str, Any] = Field(default_factory=dict)
    next_run_at: int
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, row: Any) -> "RepeatSchedule":
        data = dict(row)
        data['payload'] = json.loads(data['payload']) if data.get('payload') else {}
        return cls(**data)
