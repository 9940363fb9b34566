"""Task dispatch to worker routes, deduplicated by task id.

TASKS_BACKEND picks where tasks go:

* ``inline`` (default) records them in memory and sends nothing. Used in
  dev and tests, which inspect ``get_scheduled_tasks()``.
* ``http`` POSTs them to the worker service (see ``http_backend``). Tasks
  with a schedule time are not retained: the expire-stale sweep re-derives
  anything a scheduled task would have done.

Dedupe is per process and remembers the most recent ``SEEN_LIMIT`` task
ids; receivers dedupe durably through ``processed_events``.
"""

import os
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any

BACKENDS = ("inline", "http")

SEEN_LIMIT = 10_000


@dataclass
class _RecordedTask:
    task_id: str
    url_path: str
    payload: dict
    correlation_id: str | None = None
    schedule_time: datetime | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "url_path": self.url_path,
            "payload": self.payload,
            "correlation_id": self.correlation_id,
            "schedule_time": self.schedule_time,
        }


class TasksClient:
    """Task queue facade. A task id is accepted at most once per client."""

    def __init__(self, backend: str | None = None) -> None:
        self._backend = backend or os.environ.get("TASKS_BACKEND", "inline")
        if self._backend not in BACKENDS:
            raise ValueError(f"Unknown TASKS_BACKEND: {self._backend}")
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._recorded: list[_RecordedTask] = []

    def _claim(self, task_id: str) -> bool:
        if task_id in self._seen:
            return False
        self._seen[task_id] = None
        if len(self._seen) > SEEN_LIMIT:
            self._seen.popitem(last=False)
        return True

    def enqueue_http(
        self,
        task_id: str,
        url_path: str,
        payload: dict,
        correlation_id: str | None = None,
        schedule_time: datetime | None = None,
    ) -> bool:
        """Send a task to a worker route. Payloads must be PII-free.

        Returns:
            False if ``task_id`` was already accepted or the HTTP send
            failed, True otherwise. A failed send releases the task id so
            the caller can retry.
        """
        if not self._claim(task_id):
            return False

        if self._backend == "http":
            from castlestay.tasks.http_backend import enqueue_http

            sent = enqueue_http(task_id, url_path, payload, correlation_id, schedule_time)
            if not sent:
                self._seen.pop(task_id, None)
            return sent

        self._recorded.append(
            _RecordedTask(task_id, url_path, payload, correlation_id, schedule_time)
        )
        return True

    def was_executed(self, task_id: str) -> bool:
        return task_id in self._seen

    def get_scheduled_tasks(self) -> list[dict]:
        return [t.as_dict() for t in self._recorded]

    def clear(self) -> None:
        self._seen.clear()
        self._recorded.clear()
