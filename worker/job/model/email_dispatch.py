"""
이메일 잡 payload 모델
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ledger.model.job import EmailJob

# job name 별 templateData 필수 키
REQUIRED_TEMPLATE_FIELDS: dict[EmailJob, tuple[str, ...]] = {
    EmailJob.SEND_WELCOME_EMAIL: (),
    EmailJob.SEND_PASSWORD_RESET_EMAIL: (),
    EmailJob.SEND_PASSWORD_CHANGED_EMAIL: (),
    EmailJob.SEND_JOB_APPLICATION_CONFIRMATION: ("jobTitle",),
    EmailJob.SEND_APPLICATION_WITHDRAWAL_CONFIRMATION: ("jobTitle",),
    EmailJob.SEND_APPLICATION_STATUS_UPDATE: ("jobTitle", "oldStatus", "newStatus"),
    EmailJob.SEND_ACCOUNT_DELETION_CONFIRMATION: (),
    EmailJob.SEND_ACCOUNT_DEACTIVATION_CONFIRMATION: (),
    EmailJob.SEND_JOB_DELETION_EMAIL: ("jobTitle", "jobId"),
    EmailJob.SEND_ORGANIZATION_INVITATION: (
        "organizationName", "inviterName", "role", "token", "expirationDate",
    ),
    EmailJob.SEND_ORGANIZATION_WELCOME: ("organizationName", "role"),
    EmailJob.SEND_JOB_ALERT_NOTIFICATION: ("alertName", "matches", "totalMatches"),
}


class EmailPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    recipient_email: str = Field(pattern=r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
    recipient_name: str = ""
    template_name: str | None = None  # 없으면 job name 사용
    template_data: dict[str, Any] = Field(default_factory=dict)


class EmailResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    message_id: str | None = None
    recipient_email: str
    template_name: str
