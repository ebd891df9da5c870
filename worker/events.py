"""
잡 라이프사이클 이벤트

progress / completed / failed 이벤트를 등록된 리스너에 전달합니다.
리스너는 일반 함수나 코루틴 함수 모두 가능하며, 리스너 예외는 로그만 남깁니다.

사용 예시:
    events = JobEvents()
    events.on(EventKind.FAILED, alert_on_failure)
"""

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    PROGRESS = "progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobEvent:
    kind: EventKind
    job_id: str
    queue: str
    job_name: str
    attempts_made: int = 0
    progress: int | None = None
    reason: str | None = None
    terminal: bool = False
    result: Any = None


Listener = Callable[[JobEvent], Any]


class JobEvents:
    """이벤트 리스너 레지스트리"""

    def __init__(self, log_events: bool = True):
        self._listeners: dict[EventKind, list[Listener]] = {kind: [] for kind in EventKind}
        if log_events:
            for kind in EventKind:
                self.on(kind, _log_event)

    def on(self, kind: EventKind, listener: Listener) -> None:
        self._listeners[EventKind(kind)].append(listener)

    def off(self, kind: EventKind, listener: Listener) -> None:
        listeners = self._listeners[EventKind(kind)]
        if listener in listeners:
            listeners.remove(listener)

    async def emit(self, event: JobEvent) -> None:
        for listener in list(self._listeners[event.kind]):
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Event listener error ({event.kind.value}, job={event.job_id}): {e}", exc_info=True)


def _log_event(event: JobEvent) -> None:
    extra = {'job_id': event.job_id, 'queue': event.queue, 'job_name': event.job_name}
    if event.kind == EventKind.PROGRESS:
        logger.debug(f"Job progress: id={event.job_id}, progress={event.progress}", extra=extra)
    elif event.kind == EventKind.COMPLETED:
        logger.info(
            f"Job completed: id={event.job_id}, queue={event.queue}, attempts={event.attempts_made}",
            extra=extra,
        )
    elif event.terminal:
        logger.error(
            f"Job failed permanently: id={event.job_id}, queue={event.queue}, "
            f"attempts={event.attempts_made}, reason={event.reason}",
            extra=extra,
        )
    else:
        logger.warning(
            f"Job attempt failed: id={event.job_id}, queue={event.queue}, "
            f"attempts={event.attempts_made}, reason={event.reason}",
            extra=extra,
        )
