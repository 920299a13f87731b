from __future__ import annotations

import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from .cache import OutputCache
from .extract import PhraseTask
from .openai_speech import OpenAISpeechClient, VoiceConfig

STATUS_SUCCEEDED = "succeeded"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"

DEFAULT_MAX_ATTEMPTS = 2

ProgressCallback = Callable[[dict[str, object]], None]
TaskHandler = Callable[[PhraseTask], Path | None]


class EmptyAudioError(RuntimeError):
    """Raised when the speech endpoint returns no audio bytes."""


@dataclass
class TaskOutcome:
    key: str
    status: str
    attempts: int = 0
    output: Path | None = None
    error: str | None = None
    worker: int | None = None


class TaskQueue:
    """FIFO of pending tasks shared by all workers; each pop hands a task to one worker only."""

    def __init__(self, tasks: Iterable[PhraseTask]) -> None:
        self._items: deque[PhraseTask] = deque(tasks)
        self._lock = threading.Lock()

    def pop(self) -> PhraseTask | None:
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def _emit_progress(
    progress: ProgressCallback | None,
    event: str,
    **payload: object,
) -> None:
    if progress is None:
        return
    data = {"event": event}
    data.update(payload)
    progress(data)


def _effective_jobs(requested: int, total: int) -> int:
    if total <= 1:
        return 1
    return max(1, min(requested, total))


def _describe_error(exc: BaseException) -> str:
    message = str(exc)
    return message or exc.__class__.__name__


def _process_task(
    task: PhraseTask,
    handler: TaskHandler,
    *,
    worker: int,
    max_attempts: int,
    retry_delay: float,
    progress: ProgressCallback | None,
    sleep: Callable[[float], None],
) -> TaskOutcome:
    attempts = 0
    last_error = ""
    while attempts < max_attempts:
        attempts += 1
        try:
            output = handler(task)
        except Exception as exc:
            last_error = _describe_error(exc)
            if attempts < max_attempts:
                _emit_progress(
                    progress,
                    "task_retry",
                    key=task.key,
                    worker=worker,
                    attempt=attempts,
                    error=last_error,
                    delay=retry_delay,
                )
                if retry_delay > 0:
                    sleep(retry_delay)
            continue
        _emit_progress(
            progress,
            "task_done",
            key=task.key,
            worker=worker,
            attempts=attempts,
            output=output,
        )
        return TaskOutcome(
            key=task.key,
            status=STATUS_SUCCEEDED,
            attempts=attempts,
            output=output,
            worker=worker,
        )

    _emit_progress(
        progress,
        "task_failed",
        key=task.key,
        worker=worker,
        attempts=attempts,
        error=last_error,
    )
    return TaskOutcome(
        key=task.key,
        status=STATUS_FAILED,
        attempts=attempts,
        error=last_error,
        worker=worker,
    )


def run_tasks(
    tasks: Iterable[PhraseTask],
    handler: TaskHandler,
    *,
    concurrency: int = 2,
    inter_call_delay: float = 0.12,
    retry_delay: float = 0.5,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[TaskOutcome]:
    """
    Drain ``tasks`` through ``concurrency`` workers sharing one queue.

    Every worker loops: take the next task, call ``handler`` (retrying once
    after ``retry_delay`` on failure), record the outcome, then wait
    ``inter_call_delay`` before taking another task. A task that fails on
    every attempt is recorded as failed and never stops the other workers.
    Outcomes are returned in completion order.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    queue = TaskQueue(tasks)
    total = len(queue)
    if not total:
        return []

    stop_event = cancel_event if cancel_event is not None else threading.Event()
    outcomes: list[TaskOutcome] = []
    outcomes_lock = threading.Lock()
    counter = {"started": 0}

    def _worker(worker_id: int) -> None:
        while not stop_event.is_set():
            task = queue.pop()
            if task is None:
                return
            with outcomes_lock:
                counter["started"] += 1
                index = counter["started"]
            _emit_progress(
                progress,
                "task_start",
                key=task.key,
                worker=worker_id,
                index=index,
                total=total,
            )
            outcome = _process_task(
                task,
                handler,
                worker=worker_id,
                max_attempts=max_attempts,
                retry_delay=retry_delay,
                progress=progress,
                sleep=sleep,
            )
            with outcomes_lock:
                outcomes.append(outcome)
            if inter_call_delay > 0 and not stop_event.is_set():
                sleep(inter_call_delay)

    jobs = _effective_jobs(concurrency, total)
    with ThreadPoolExecutor(max_workers=jobs) as executor:
        futures = [executor.submit(_worker, worker_id) for worker_id in range(1, jobs + 1)]
        try:
            for future in futures:
                future.result()
        except KeyboardInterrupt:
            stop_event.set()
            raise

    return outcomes


def synthesize_tasks(
    tasks: Iterable[PhraseTask],
    client: OpenAISpeechClient,
    cache: OutputCache,
    voice: VoiceConfig,
    *,
    concurrency: int = 2,
    inter_call_delay: float = 0.12,
    retry_delay: float = 0.5,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[TaskOutcome]:
    """Synthesize every task into its keyed artifact, returning one outcome per task."""

    def _render(task: PhraseTask) -> Path:
        audio = client.synthesize(task.text, voice)
        if not audio:
            raise EmptyAudioError(f"Speech endpoint returned no audio for {task.key}")
        return cache.write(task.key, audio)

    return run_tasks(
        tasks,
        _render,
        concurrency=concurrency,
        inter_call_delay=inter_call_delay,
        retry_delay=retry_delay,
        max_attempts=max_attempts,
        progress=progress,
        cancel_event=cancel_event,
        sleep=sleep,
    )


__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "EmptyAudioError",
    "STATUS_FAILED",
    "STATUS_SKIPPED",
    "STATUS_SUCCEEDED",
    "TaskOutcome",
    "TaskQueue",
    "run_tasks",
    "synthesize_tasks",
]
