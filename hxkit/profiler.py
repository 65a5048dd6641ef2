"""Scoped timing samples, logged or written for the Chrome tracing view."""

from __future__ import annotations

import json
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

from .file import File, OpenMode

logger = logging.getLogger(__name__)

MILLISECONDS_PER_CYCLE = 1.0e-6
"""Cycles are nanoseconds of the monotonic performance counter."""

CYCLES_PER_MICROSECOND = 1000


def _basename(label: str) -> str:
    return label.replace("\\", "/").rsplit("/", 1)[-1]


@dataclass(frozen=True)
class ProfilerRecord:
    """One timed sample."""

    label: str
    begin: int
    end: int
    thread_id: int


class Profiler:
    """Collects samples from ``scope`` blocks while started."""

    def __init__(self, clock: Callable[[], int] = time.perf_counter_ns) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self.records: list[ProfilerRecord] = []
        self.is_started = False

    def start(self) -> None:
        """Clear samples and begin sampling."""
        with self._lock:
            self.records.clear()
            self.is_started = True

    def stop(self) -> None:
        """End sampling; samples are kept."""
        with self._lock:
            self.is_started = False

    def log(self) -> None:
        """Stop sampling and write every sample to the log."""
        with self._lock:
            self.is_started = False
            for rec in self.records:
                delta = rec.end - rec.begin
                logger.info(
                    "profile %s: %fms cycles %u thread %x",
                    _basename(rec.label), delta * MILLISECONDS_PER_CYCLE, delta, rec.thread_id,
                )

    def write_chrome_tracing(self, filename) -> None:
        """Stop sampling and write the samples as Chrome trace events."""
        with self._lock:
            self.is_started = False
            with File(OpenMode.OUT, filename) as f:
                f.print("[\n")
                for i, rec in enumerate(self.records):
                    if i:
                        f.print(",\n")
                    name = json.dumps(_basename(rec.label))
                    f.print(
                        f'{{"name":{name},"cat":"PERF","ph":"B","pid":0,'
                        f'"tid":{rec.thread_id},"ts":{rec.begin // CYCLES_PER_MICROSECOND}}},\n'
                    )
                    f.print(
                        f'{{"name":{name},"cat":"PERF","ph":"E","pid":0,'
                        f'"tid":{rec.thread_id},"ts":{rec.end // CYCLES_PER_MICROSECOND}}}'
                    )
                f.print("\n]\n")
        logger.info("wrote %s.", filename)

    @contextmanager
    def scope(self, label: str, min_cycles: int = 0) -> Iterator[None]:
        """Time the enclosed block; kept if sampling and at least ``min_cycles`` long."""
        begin = self._clock()
        try:
            yield
        finally:
            end = self._clock()
            if end - begin >= min_cycles:
                record = ProfilerRecord(label, begin, end, threading.get_ident())
                with self._lock:
                    if self.is_started:
                        self.records.append(record)


profiler = Profiler()