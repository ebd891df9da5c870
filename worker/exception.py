"""
Worker 관련 예외 클래스 정의

HandlerNotFoundError, PayloadValidationError, UnrecoverableJobError 는
재시도해도 결과가 같으므로 워커가 즉시 종료 실패로 처리합니다.
그 외 예외는 일시적 오류로 보고 백오프 후 재시도합니다.
"""


class WorkerError(Exception):
    """Worker 기본 예외"""
    def __init__(self, message: str = None):
        self.message = message or "Worker error"
        super().__init__(self.message)


class HandlerNotFoundError(WorkerError):
    """큐에 job name에 해당하는 핸들러가 없음"""
    def __init__(self, queue: str, job_name: str):
        self.queue = queue
        self.job_name = job_name
        super().__init__(f"Handler not found: queue={queue}, job_name={job_name}")


class PayloadValidationError(WorkerError):
    """payload 형식 오류"""
    def __init__(self, job_name: str, reason: str):
        self.job_name = job_name
        self.reason = reason
        super().__init__(f"Invalid payload for '{job_name}': {reason}")


class UnrecoverableJobError(WorkerError):
    """핸들러가 재시도 불가로 판단한 실패"""
    pass
