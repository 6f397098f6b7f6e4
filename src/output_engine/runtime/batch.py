"""Batch generation with bounded concurrency, per-task timeouts and ordering.

Each task runs ``generate`` in its own slot thread. At most
``max_concurrency`` slots are live at once; a dispatcher thread admits tasks
through a bounded semaphore. With a timeout set, the slot runs generation in a
worker thread and joins it with the timeout. On expiry the slot reports a
timeout immediately and then either cancels the worker (waiting for it to
stop before freeing the slot) or detaches it (freeing the slot at once).
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from pydantic import ValidationError

from output_engine.exceptions import ConfigurationError
from output_engine.runtime.concurrency import CancellationToken
from output_engine.runtime.generator import generate
from output_engine.schemas import (
    BatchOptions,
    BatchResult,
    BatchTask,
    GenerationError,
    GenerationErrorCode,
    OnTimeout,
)
from output_engine.telemetry import TelemetryBus

logger = logging.getLogger(__name__)

TaskLike = Union[BatchTask, Tuple[Any, Dict[str, Any]]]

TASK_OPTION_KEYS = frozenset({"backend", "backend_opts", "max_retries", "telemetry_metadata", "prompt_builder"})

# how often the dispatcher re-checks for cancellation while waiting for a slot
_POLL_INTERVAL = 0.05


def _coerce_task(task: TaskLike) -> BatchTask:
    if isinstance(task, BatchTask):
        return task
    if isinstance(task, tuple) and len(task) == 2:
        spec, options = task
        return BatchTask(spec=spec, options=dict(options or {}))
    raise ConfigurationError(f"batch tasks must be BatchTask or (spec, options) pairs, got {type(task).__name__}")


def _batch_options(**kwargs: Any) -> BatchOptions:
    try:
        return BatchOptions(**{key: value for key, value in kwargs.items() if value is not None})
    except ValidationError as exc:
        first = exc.errors()[0]
        option = str(first["loc"][0]) if first["loc"] else "options"
        raise ConfigurationError(f"Invalid batch option '{option}': {first['msg']}") from exc


class _BatchRun:
    """Shared state for one batch: the admission semaphore, result queue and cancel token."""

    def __init__(self, tasks: List[BatchTask], options: BatchOptions, telemetry: Optional[TelemetryBus]) -> None:
        self.tasks = tasks
        self.options = options
        self.telemetry = telemetry
        self.token = CancellationToken()
        self.results: "queue.Queue[BatchResult]" = queue.Queue()
        self._slots = threading.BoundedSemaphore(options.max_concurrency)
        self._dispatcher = threading.Thread(target=self._dispatch, name="batch-dispatcher", daemon=True)

    def start(self) -> None:
        self._dispatcher.start()

    def cancel(self) -> None:
        self.token.cancel()

    def _dispatch(self) -> None:
        for index, task in enumerate(self.tasks):
            while not self._slots.acquire(timeout=_POLL_INTERVAL):
                if self.token.is_cancelled:
                    return
            if self.token.is_cancelled:
                self._slots.release()
                return
            slot = threading.Thread(
                target=self._run_slot,
                args=(index, task),
                name=f"batch-task-{index}",
                daemon=True,
            )
            slot.start()

    def _publish(self, index: int, value: Any, error: Optional[GenerationError]) -> None:
        self.results.put(BatchResult(index=index, value=value, error=error))

    def _execute(self, index: int, task: BatchTask, token: CancellationToken) -> Tuple[Any, Optional[GenerationError]]:
        unknown = sorted(set(task.options) - TASK_OPTION_KEYS)
        if unknown:
            return None, GenerationError(
                code=GenerationErrorCode.CONFIGURATION,
                reason="invalid_task_options",
                message=f"Unknown task options: {', '.join(unknown)}",
                details={"options": unknown},
            )
        try:
            return generate(task.spec, telemetry=self.telemetry, cancel_token=token, **task.options)
        except Exception as exc:
            logger.error("Batch task %d raised %s: %s", index, type(exc).__name__, exc, exc_info=True)
            return None, GenerationError(
                code=GenerationErrorCode.TASK_FAILED,
                reason=type(exc).__name__,
                message=str(exc),
            )

    def _run_slot(self, index: int, task: BatchTask) -> None:
        token = self.token.child()
        timeout = self.options.timeout
        try:
            if timeout is None:
                self._publish(index, *self._execute(index, task, token))
                return

            outcome: Dict[str, Tuple[Any, Optional[GenerationError]]] = {}

            def _target() -> None:
                outcome["result"] = self._execute(index, task, token)

            worker = threading.Thread(target=_target, name=f"batch-task-{index}-worker", daemon=True)
            worker.start()
            worker.join(timeout)

            if not worker.is_alive():
                self._publish(index, *outcome["result"])
                return

            policy = self.options.on_timeout
            logger.warning("Batch task %d timed out after %ss (on_timeout=%s)", index, timeout, policy.value)
            self._publish(index, None, GenerationError(
                code=GenerationErrorCode.TIMEOUT,
                reason="timeout",
                message=f"Task did not finish within {timeout} seconds",
                details={"timeout": timeout, "on_timeout": policy.value},
            ))
            if policy == OnTimeout.CANCEL:
                token.cancel()
                worker.join()
        finally:
            self._slots.release()


def _stream(run: _BatchRun, metadata: Dict[str, Any]) -> Iterator[BatchResult]:
    total = len(run.tasks)
    start = time.perf_counter()
    if run.telemetry:
        run.telemetry.batch_started(total, metadata)
    logger.info("Starting batch of %d task(s) with max_concurrency=%d", total, run.options.max_concurrency)

    run.start()
    delivered = 0
    success_count = 0
    completed = False
    try:
        while delivered < total:
            result = run.results.get()
            delivered += 1
            if result.ok:
                success_count += 1
            yield result
        completed = True
    finally:
        if not completed:
            logger.warning("Batch abandoned after %d of %d result(s); cancelling live tasks", delivered, total)
            run.cancel()

    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("Batch finished: %d ok, %d failed", success_count, total - success_count)
    if run.telemetry:
        run.telemetry.batch_stopped(total, success_count, total - success_count, duration_ms, metadata)


def _prepare(
    tasks: Iterable[TaskLike],
    telemetry: Optional[TelemetryBus],
    **option_kwargs: Any,
) -> Tuple[_BatchRun, Dict[str, Any]]:
    options = _batch_options(**option_kwargs)
    batch_tasks = [_coerce_task(task) for task in tasks]
    metadata = {**options.telemetry_metadata, "max_concurrency": options.max_concurrency}
    return _BatchRun(batch_tasks, options, telemetry), metadata


def iter_batch(
    tasks: Iterable[TaskLike],
    *,
    max_concurrency: Optional[int] = None,
    timeout: Optional[float] = None,
    on_timeout: Union[OnTimeout, str, None] = None,
    telemetry: Optional[TelemetryBus] = None,
    telemetry_metadata: Optional[Dict[str, Any]] = None,
) -> Iterator[BatchResult]:
    """Run tasks concurrently and yield results in completion order.

    Closing the iterator before it is exhausted cancels every live task.
    """
    run, metadata = _prepare(
        tasks,
        telemetry,
        max_concurrency=max_concurrency,
        timeout=timeout,
        on_timeout=on_timeout,
        ordered=False,
        telemetry_metadata=telemetry_metadata,
    )
    return _stream(run, metadata)


def generate_batch(
    tasks: Iterable[TaskLike],
    *,
    max_concurrency: Optional[int] = None,
    timeout: Optional[float] = None,
    on_timeout: Union[OnTimeout, str, None] = None,
    ordered: bool = True,
    telemetry: Optional[TelemetryBus] = None,
    telemetry_metadata: Optional[Dict[str, Any]] = None,
) -> List[BatchResult]:
    """Run independent generation tasks and collect every result.

    One task's failure never affects the others. With ``ordered=True`` the
    result list lines up with ``tasks``; otherwise it is in completion order.
    """
    run, metadata = _prepare(
        tasks,
        telemetry,
        max_concurrency=max_concurrency,
        timeout=timeout,
        on_timeout=on_timeout,
        ordered=ordered,
        telemetry_metadata=telemetry_metadata,
    )
    results = list(_stream(run, metadata))
    if not run.options.ordered:
        return results

    positioned: List[Optional[BatchResult]] = [None] * len(results)
    for result in results:
        positioned[result.index] = result
    return positioned  # type: ignore[return-value]
