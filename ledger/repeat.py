"""
반복 스케줄 계산 (croniter)
"""

from datetime import datetime, timezone

from croniter import croniter


def is_valid_pattern(pattern: str) -> bool:
    return croniter.is_valid(pattern)


def next_fire_time(pattern: str, after_ms: int) -> int:
    """after_ms 이후 첫 실행 시점 (epoch ms, UTC 기준)"""
    base = datetime.fromtimestamp(after_ms / 1000, tz=timezone.utc)
    cron = croniter(pattern, base)
    return int(cron.get_next(datetime).timestamp() * 1000)


def interval_seconds(pattern: str, now_ms: int) -> float:
    """연속된 두 실행 시점 사이 간격"""
    base = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc)
    cron = croniter(pattern, base)
    first = cron.get_next(datetime)
    second = cron.get_next(datetime)
    return (second - first).total_seconds()
