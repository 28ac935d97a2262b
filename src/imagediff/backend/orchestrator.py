"""Batched submit/poll driver for remote line recognition.

Lines are submitted in batches. Inside a batch every line is submitted at
once and the batch is then polled until each line has a result or the batch
times out. Lost and failed jobs are resubmitted up to a cap; a job that stops
reporting progress gets a racing twin while it keeps running, and whichever
finishes first provides the line's text.

All bookkeeping happens on the calling thread between network round trips.
Worker threads only perform the submit calls and hand back their outcome.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

import requests

from ..config import OrchestratorConfig
from ..core.types import LineRecognitionRequest, LineResult
from ..errors import (
    BatchTimeoutError,
    RecognitionError,
    RemoteTaskFailedError,
    RemoteTaskLostError,
    RemoteTaskStuckError,
    SubmissionError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ProgressCallback = Callable[[int, int], None]


@dataclass
class RecognitionTask:
    """One remote job working on ``line_index``."""

    line_index: int
    remote_task_id: str
    submitted_at: float
    resubmit_count: int = 0
    is_fresh: bool = True
    raced: bool = False


@dataclass
class _BatchState:
    requests: Dict[int, LineRecognitionRequest]
    results: Dict[int, LineResult] = field(default_factory=dict)
    resubmit_counts: Dict[int, int] = field(default_factory=dict)
    active: Dict[str, RecognitionTask] = field(default_factory=dict)

    def record(self, result: LineResult) -> bool:
        """Store ``result`` unless the line already has one."""

        if result.line_index in self.results:
            return False
        self.results[result.line_index] = result
        return True

    def track(self, task: RecognitionTask) -> None:
        self.active[task.remote_task_id] = task

    def drop(self, task_id: str) -> None:
        self.active.pop(task_id, None)

    def drop_resolved(self) -> None:
        for task_id, task in list(self.active.items()):
            if task.line_index in self.results:
                del self.active[task_id]

    def has_active(self, line_index: int) -> bool:
        return any(task.line_index == line_index for task in self.active.values())

    def unresolved(self) -> List[int]:
        return [line for line in self.requests if line not in self.results]


class TaskOrchestrator:
    """Drive recognition of many lines against a remote task service.

    ``service`` must provide ``submit(request, conversation_id) -> task_id``
    and ``check(task_ids) -> {task_id: RemoteTaskStatus}``, as
    :class:`~imagediff.backend.client.RecognitionClient` does. ``clock`` must
    share an epoch with the service's ``updatedAt`` timestamps.
    """

    def __init__(
        self,
        service,
        config: Optional[OrchestratorConfig] = None,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.service = service
        self.config = (config or OrchestratorConfig()).validate()
        self.clock = clock
        self.sleep = sleep
        self.on_progress = on_progress

    def run(self, line_requests: Sequence[LineRecognitionRequest], conversation_id: Optional[str]) -> List[LineResult]:
        """Recognise every request and return one result per line, by line index."""

        line_requests = list(line_requests)
        seen = set()
        for request in line_requests:
            if request.line_index in seen:
                raise ValueError(f"Duplicate line index {request.line_index}")
            seen.add(request.line_index)

        total = len(line_requests)
        batch_size = self.config.batch_size
        logger.info("Recognising %d lines in batches of %d", total, batch_size)

        started = self.clock()
        results: Dict[int, LineResult] = {}
        for number, offset in enumerate(range(0, total, batch_size), start=1):
            batch = line_requests[offset : offset + batch_size]
            logger.info("Batch %d: %d lines", number, len(batch))
            for result in self._process_batch(batch, conversation_id):
                results.setdefault(result.line_index, result)
            logger.info("Completed %d/%d lines", len(results), total)
            if self.on_progress is not None:
                self.on_progress(len(results), total)

        ordered = [results[index] for index in sorted(results)]
        failures = sum(1 for result in ordered if not result.ok)
        logger.info(
            "Recognition finished: %d succeeded, %d failed in %.1fs",
            len(ordered) - failures,
            failures,
            self.clock() - started,
        )
        return ordered

    # ------------------------------------------------------------------
    # Batch processing
    # ------------------------------------------------------------------

    def _process_batch(
        self,
        batch: Sequence[LineRecognitionRequest],
        conversation_id: Optional[str],
    ) -> List[LineResult]:
        state = _BatchState(requests={request.line_index: request for request in batch})

        outcomes = self._gather(lambda request: self._submit(request, conversation_id), batch)
        submitted_at = self.clock()
        for request, (task_id, error) in zip(batch, outcomes):
            if task_id is not None:
                state.track(RecognitionTask(request.line_index, task_id, submitted_at))
            else:
                logger.error("Line %d could not be submitted: %s", request.line_index, error)
                state.record(LineResult.failure(request.line_index, error))

        poll_started = self.clock()
        while state.unresolved():
            if self.clock() - poll_started >= self.config.poll_timeout:
                break
            self.sleep(self.config.poll_interval)
            self._poll(state, conversation_id)
        else:
            logger.debug("All lines in batch resolved")

        for line_index in state.unresolved():
            timeout = BatchTimeoutError(f"Timed out after {self.config.poll_timeout:.0f}s")
            logger.error("Line %d: %s", line_index, timeout)
            state.record(LineResult.failure(line_index, timeout))
        return list(state.results.values())

    def _poll(self, state: _BatchState, conversation_id: Optional[str]) -> None:
        task_ids = list(state.active)
        logger.debug("Polling %d tasks for %d open lines", len(task_ids), len(state.unresolved()))
        try:
            statuses = self.service.check(task_ids)
        except (requests.RequestException, RecognitionError) as exc:
            logger.warning("Status check failed, retrying next tick: %s", exc)
            return

        now = self.clock()
        resubmit: Dict[int, RecognitionError] = {}
        for task_id, task in list(state.active.items()):
            line = task.line_index
            if line in state.results:
                state.drop(task_id)
                continue

            status = statuses.get(task_id)
            if status is None:
                age = now - task.submitted_at
                if age < self.config.grace_period:
                    logger.debug("Task %s not stored yet (%.0fs old), waiting", task_id, age)
                    continue
                state.drop(task_id)
                self._retry_or_fail(state, line, RemoteTaskLostError(f"Task {task_id} is missing from the task store"), resubmit)
                continue

            task.is_fresh = False
            if status.is_done:
                if state.record(LineResult(line_index=line, text=status.text, duration=status.duration)):
                    logger.info("Line %d recognised by task %s", line, task_id)
                state.drop(task_id)
            elif status.is_failed:
                state.drop(task_id)
                message = status.error_message or f"Task {task_id} failed"
                self._retry_or_fail(state, line, RemoteTaskFailedError(message), resubmit)
            else:
                updated_at = status.updated_at if status.updated_at is not None else task.submitted_at
                idle = now - updated_at
                if idle > self.config.stuck_timeout and not task.raced:
                    # The idle task keeps running; its twin races it.
                    if state.resubmit_counts.get(line, 0) < self.config.max_resubmits and line not in resubmit:
                        task.raced = True
                        resubmit[line] = RemoteTaskStuckError(f"Task {task_id} idle for {idle:.0f}s")
                        logger.warning("Line %d: task %s idle for %.0fs", line, task_id, idle)

        state.drop_resolved()
        self._resubmit(state, resubmit, conversation_id)

    def _retry_or_fail(
        self,
        state: _BatchState,
        line_index: int,
        reason: RecognitionError,
        resubmit: Dict[int, RecognitionError],
    ) -> None:
        if state.resubmit_counts.get(line_index, 0) < self.config.max_resubmits:
            logger.warning("Line %d: %s", line_index, reason)
            resubmit.setdefault(line_index, reason)
            return
        logger.error("Line %d: %s (resubmission limit reached)", line_index, reason)
        state.record(LineResult.failure(line_index, reason))

    def _resubmit(
        self,
        state: _BatchState,
        resubmit: Dict[int, RecognitionError],
        conversation_id: Optional[str],
    ) -> None:
        pending = [(line, reason) for line, reason in resubmit.items() if line not in state.results]
        if not pending:
            return
        for line, _ in pending:
            state.resubmit_counts[line] = state.resubmit_counts.get(line, 0) + 1

        outcomes = self._gather(
            lambda item: self._submit(state.requests[item[0]], conversation_id),
            pending,
        )
        now = self.clock()
        for (line, reason), (task_id, error) in zip(pending, outcomes):
            count = state.resubmit_counts[line]
            if task_id is not None:
                state.track(RecognitionTask(line, task_id, now, resubmit_count=count))
                logger.info(
                    "Line %d resubmitted as %s (%d/%d) after: %s",
                    line,
                    task_id,
                    count,
                    self.config.max_resubmits,
                    reason,
                )
            elif not state.has_active(line):
                logger.error("Line %d resubmission failed: %s", line, error)
                state.record(LineResult.failure(line, error))
            else:
                logger.warning("Line %d resubmission failed, earlier task still running: %s", line, error)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _submit(
        self,
        request: LineRecognitionRequest,
        conversation_id: Optional[str],
    ) -> Tuple[Optional[str], Optional[SubmissionError]]:
        attempts = self.config.max_submit_retries
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                return self.service.submit(request, conversation_id), None
            except SubmissionError as exc:
                return None, exc
            except (requests.RequestException, RecognitionError) as exc:
                last_error = exc
                logger.warning(
                    "Submitting line %d failed (attempt %d/%d): %s",
                    request.line_index,
                    attempt,
                    attempts,
                    exc,
                )
                if attempt < attempts:
                    self.sleep(self.config.submit_backoff * attempt)
        return None, SubmissionError(f"Submission failed after {attempts} attempts: {last_error}")

    def _gather(self, fn: Callable[[T], R], items: Iterable[T]) -> List[R]:
        items = list(items)
        workers = min(self.config.max_workers, len(items))
        if workers <= 1:
            return [fn(item) for item in items]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(fn, items))


def recognize_lines(
    service,
    line_requests: Sequence[LineRecognitionRequest],
    conversation_id: Optional[str],
    *,
    config: Optional[OrchestratorConfig] = None,
    **kwargs,
) -> List[LineResult]:
    """Convenience wrapper around :meth:`TaskOrchestrator.run`."""

    return TaskOrchestrator(service, config, **kwargs).run(line_requests, conversation_id)
