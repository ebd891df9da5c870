"""
메일 전송

템플릿 렌더링은 메일 전송 계층의 책임이며, 워커는 템플릿 이름과 데이터만 전달합니다.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass
class MailMessage:
    recipient_email: str
    recipient_name: str
    template_name: str
    template_data: dict[str, Any] = field(default_factory=dict)
    correlation_id: str | None = None


class MailTransport(Protocol):
    async def send(self, message: MailMessage) -> str | None:
        """발송 후 메시지 id 반환 (전송 계층이 제공하지 않으면 None)"""
        ...


class LoggingMailTransport:
    """실제 발송 없이 로그만 남기는 전송 (개발 환경용)"""

    def __init__(self, sender: str = "no-reply@localhost"):
        self._sender = sender
        self._sent = 0

    async def send(self, message: MailMessage) -> str | None:
        self._sent += 1
        logger.info(
            f"Mail sent: from={self._sender}, to={message.recipient_email}, "
            f"template={message.template_name}",
            extra={"correlation_id": message.correlation_id},
        )
        return f"log-{self._sent}"


class InMemoryMailTransport:
    """발송된 메시지를 목록으로 보관 (테스트용)"""

    def __init__(self):
        self.outbox: list[MailMessage] = []

    async def send(self, message: MailMessage) -> str | None:
        self.outbox.append(message)
        return f"mem-{len(self.outbox)}"
