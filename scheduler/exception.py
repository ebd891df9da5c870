"""
Scheduler 관련 예외 클래스 정의
"""


class SchedulerError(Exception):
    """Scheduler 기본 예외"""
    def __init__(self, message: str = None):
        self.message = message or "Scheduler error"
        super().__init__(self.message)


class CronParseError(SchedulerError):
    """크론 표현식 파싱 실패"""
    def __init__(self, cron_expression: str, message: str = None):
        self.cron_expression = cron_expression
        super().__init__(message or f"Invalid cron expression: {cron_expression}")


class CronIntervalTooShortError(SchedulerError):
    """크론 간격이 너무 짧음 (초단위 크론 차단)"""
    def __init__(self, cron_expression: str, interval_seconds: float, min_interval: int):
        self.cron_expression = cron_expression
        self.interval_seconds = interval_seconds
        self.min_interval = min_interval
        super().__init__(
            f"Cron interval too short: {interval_seconds:.1f}s "
            f"(minimum: {min_interval}s) for expression '{cron_expression}'"
        )


class ScheduleRegistrationError(SchedulerError):
    """반복 스케줄 등록 실패"""
    def __init__(self, schedule_id: str, reason: str):
        self.schedule_id = schedule_id
        super().__init__(f"Failed to register schedule '{schedule_id}': {reason}")
