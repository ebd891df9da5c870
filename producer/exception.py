"""Producer / 이벤트 수신 예외"""


class IngressError(Exception):
    """이벤트 수신 기본 예외"""
    def __init__(self, message: str = None):
        self.message = message or "Ingress error"
        super().__init__(self.message)


class QueueConnectionError(IngressError):
    """외부 큐 연결 실패"""
    pass


class MessageParseError(IngressError):
    """메시지 파싱 실패 (재시도해도 같은 결과)"""
    def __init__(self, reason: str, raw_data: object = None):
        self.raw_data = raw_data
        super().__init__(f"{reason}: {raw_data!r}")
