"""
Background hand-off of recordings to the external classifier.

``submit`` only enqueues, so request handlers never wait on the classifier.
A single daemon thread drains the queue; every failure is logged and kept in
``failures`` and never reaches the caller.
"""

import logging
import queue
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class Classifier(Protocol):
    def classify(self, audio_path: str, submitter_name: str, record_id: str) -> None: ...


@dataclass(frozen=True)
class ClassificationJob:
    record_id: str
    audio_path: str
    submitter_name: str


_STOP = object()


class ClassifierDispatcher:
    def __init__(self, classifier: Classifier, max_pending: int = 1000, failure_log_size: int = 100) -> None:
        self._classifier = classifier
        self._queue: queue.Queue = queue.Queue(maxsize=max_pending)
        self._thread: Optional[threading.Thread] = None
        self._abandon = threading.Event()
        self.failures: Deque[Tuple[ClassificationJob, str]] = deque(maxlen=failure_log_size)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self.is_running:
            return
        self._abandon.clear()
        self._thread = threading.Thread(target=self._worker_loop, name="classifier-dispatch", daemon=True)
        self._thread.start()
        logger.info("Classifier dispatcher started")

    def stop(self, timeout: float = 10.0) -> None:
        """Lets queued jobs finish, then joins the worker.

        With a full queue the worker exits after its current job instead and
        the remaining jobs are dropped.
        """
        if not self.is_running:
            return
        try:
            self._queue.put_nowait(_STOP)
        except queue.Full:
            logger.warning("Dispatch queue full at shutdown, dropping %d queued jobs", self.pending)
            self._abandon.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Classifier dispatcher stopped")

    def submit(self, job: ClassificationJob) -> bool:
        try:
            self._queue.put_nowait(job)
        except queue.Full:
            logger.error("Dispatch queue full, record %s not sent to classifier", job.record_id)
            self.failures.append((job, "queue full"))
            return False
        logger.debug("Queued record %s for classification", job.record_id)
        return True

    def drain(self) -> None:
        """Blocks until every queued job has been attempted."""
        self._queue.join()

    def _worker_loop(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self._run(job)
            finally:
                self._queue.task_done()
            if self._abandon.is_set():
                return

    def _run(self, job: ClassificationJob) -> None:
        try:
            self._classifier.classify(job.audio_path, job.submitter_name, job.record_id)
        except Exception as exc:
            logger.exception("Classifier dispatch failed for record %s", job.record_id)
            self.failures.append((job, str(exc)))
