"""Tasks and a queue that runs them serially or on a thread pool."""

from __future__ import annotations

import abc
import enum
import logging
import os
import threading
from typing import Optional

from .profiler import profiler

logger = logging.getLogger(__name__)


class Task(abc.ABC):
    """Work to run later or on another thread; owned by at most one queue at a time."""

    def __init__(self, label: Optional[str] = None) -> None:
        self._label = label
        self._owner: Optional[object] = None

    @property
    def label(self) -> str:
        return self._label if self._label else "task"

    @label.setter
    def label(self, value: Optional[str]) -> None:
        self._label = value

    @abc.abstractmethod
    def execute(self, queue: TaskQueue) -> None:
        """Run the task. The queue does not touch the task afterwards."""

    def set_exclusive_owner(self, owner: Optional[object]) -> None:
        """Claim or release the task; it must be released between owners."""
        if self._owner is not None and owner is not None:
            raise RuntimeError(f"re-enqueuing task: {self.label}")
        self._owner = owner


class _Mode(enum.Enum):
    POOL = enum.auto()
    WAITING = enum.auto()
    STOPPING = enum.auto()


class TaskQueue:
    """Runs enqueued tasks, most recently enqueued first.

    With a thread pool size of 0 tasks run on the calling thread in
    ``wait_for_all``. A negative size uses one thread per CPU less one.
    """

    def __init__(self, thread_pool_size: int = -1) -> None:
        if thread_pool_size < 0:
            thread_pool_size = (os.cpu_count() or 1) - 1
        self.thread_pool_size = thread_pool_size
        self._tasks: list[Task] = []
        self._running = True
        self._executing = 0
        self._errors: list[Exception] = []
        self._lock = threading.Lock()
        self._tasks_cv = threading.Condition(self._lock)
        self._waiting_cv = threading.Condition(self._lock)
        self._threads = [
            threading.Thread(target=self._executor, args=(_Mode.POOL,), daemon=True)
            for _ in range(thread_pool_size)
        ]
        for thread in self._threads:
            thread.start()

    def enqueue(self, task: Task) -> None:
        """Add ``task`` to the queue."""
        task.set_exclusive_owner(self)
        with self._lock:
            if not self._running:
                task.set_exclusive_owner(None)
                raise RuntimeError("enqueue to stopped queue")
            self._tasks.append(task)
            self._tasks_cv.notify()

    def wait_for_all(self) -> None:
        """Run or wait for every queued task, including ones enqueued meanwhile."""
        if self._threads:
            self._executor(_Mode.WAITING)
            self._raise_pending()
            return
        while True:
            with self._lock:
                if not self._tasks:
                    return
                task = self._tasks.pop()
            task.set_exclusive_owner(None)
            with profiler.scope(task.label):
                task.execute(self)

    def close(self) -> None:
        """Finish every task and stop the queue."""
        with self._lock:
            if not self._running:
                return
        if self._threads:
            self._executor(_Mode.STOPPING)
            for thread in self._threads:
                thread.join()
            self._threads = []
            self._raise_pending()
        else:
            self.wait_for_all()
            with self._lock:
                self._running = False

    def __enter__(self) -> TaskQueue:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _raise_pending(self) -> None:
        with self._lock:
            errors, self._errors = self._errors, []
        if errors:
            raise errors[0]

    def _executor(self, mode: _Mode) -> None:
        task: Optional[Task] = None
        while True:
            with self._lock:
                if task is not None:
                    task = None
                    self._executing -= 1
                    if self._executing == 0 and not self._tasks:
                        self._waiting_cv.notify_all()
                if mode is _Mode.POOL:
                    self._tasks_cv.wait_for(lambda: bool(self._tasks) or not self._running)
                if self._tasks:
                    task = self._tasks.pop()
                    self._executing += 1
                else:
                    if mode is not _Mode.POOL:
                        self._waiting_cv.wait_for(
                            lambda: self._executing == 0 and not self._tasks
                        )
                        if mode is _Mode.STOPPING:
                            self._running = False
                            self._tasks_cv.notify_all()
                    return
            task.set_exclusive_owner(None)
            try:
                with profiler.scope(task.label):
                    task.execute(self)
            except Exception as exc:
                logger.exception("task %s failed", task.label)
                with self._lock:
                    self._errors.append(exc)