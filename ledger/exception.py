"""
Ledger 관련 예외 클래스 정의
"""


class LedgerError(Exception):
    """Ledger 기본 예외"""
    def __init__(self, message: str = None):
        self.message = message or "Ledger error"
        super().__init__(self.message)


class UnknownQueueError(LedgerError):
    """정의되지 않은 큐"""
    def __init__(self, queue: str):
        self.queue = queue
        super().__init__(f"Unknown queue: {queue}")


class UnknownJobError(LedgerError):
    """큐에 정의되지 않은 job name"""
    def __init__(self, queue: str, job_name: str):
        self.queue = queue
        self.job_name = job_name
        super().__init__(f"Unknown job name '{job_name}' for queue '{queue}'")


class JobNotFoundError(LedgerError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidJobStateError(LedgerError):
    """요청한 전이가 현재 상태에서 불가능"""
    def __init__(self, job_id: str, state: str, action: str):
        self.job_id = job_id
        self.state = state
        self.action = action
        super().__init__(f"Cannot {action} job {job_id} in state '{state}'")


class RateLimitExceeded(LedgerError):
    """윈도우 내 시작 가능한 잡 수 초과"""
    def __init__(self, queue: str, retry_after_ms: int):
        self.queue = queue
        self.retry_after_ms = retry_after_ms
        super().__init__(f"Rate limit exceeded for queue '{queue}', retry after {retry_after_ms}ms")
