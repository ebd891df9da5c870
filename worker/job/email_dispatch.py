"""이메일 발송 핸들러

같은 잡이 두 번 실행되면 메일도 두 번 발송됩니다 (중복 제거 없음).
"""

from typing import Any

from integration.mail import MailMessage
from ledger.model.job import EmailJob, QueueName
from worker.base import BaseHandler, handler
from worker.exception import PayloadValidationError
from worker.job.model.email_dispatch import EmailPayload, EmailResult, REQUIRED_TEMPLATE_FIELDS
from worker.model.handler import JobContext


@handler(QueueName.EMAIL, *EmailJob)
class EmailDispatchHandler(BaseHandler):
    payload_model = EmailPayload

    def parse_payload(self, job_name: str, payload: dict[str, Any]) -> EmailPayload:
        parsed = super().parse_payload(job_name, payload)
        required = REQUIRED_TEMPLATE_FIELDS.get(EmailJob(job_name), ())
        missing = [key for key in required if key not in parsed.template_data]
        if missing:
            raise PayloadValidationError(job_name, f"templateData missing: {', '.join(missing)}")
        return parsed

    async def execute(self, payload: EmailPayload, context: JobContext) -> EmailResult:
        template_name = payload.template_name or context.job_name
        message_id = await self.services.mail.send(MailMessage(
            recipient_email=payload.recipient_email,
            recipient_name=payload.recipient_name,
            template_name=template_name,
            template_data=payload.template_data,
            correlation_id=context.correlation_id,
        ))
        context.logger.info(f"Email dispatched: template={template_name}, attempt={context.attempt}")
        return EmailResult(
            message_id=message_id,
            recipient_email=payload.recipient_email,
            template_name=template_name,
        )
