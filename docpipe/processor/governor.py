"""Deadline, memory ceiling, worker pools and scratch space around step execution."""

import asyncio
import os
import resource
import shutil
import sys
import tempfile
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import TypeVar

from docpipe.config.settings import Settings
from docpipe.logging.logger import Log
from docpipe.processor.exceptions import (
    FileReadError,
    MemoryLimitExceededError,
    ProcessorError,
    StepTimeoutError,
)
from docpipe.processor.models import ProcessingStep, Query, StepOutcome
from docpipe.processor.pipeline import PipelineStep

T = TypeVar("T")
R = TypeVar("R")

_MB = 1024 * 1024
_UNIT_POLL_SECONDS = 0.05


def current_rss_mb() -> int:
    """Resident set size of this process in MB.

    Falls back to the peak RSS from getrusage where /proc is unavailable.
    """
    try:
        with open("/proc/self/statm") as statm:
            resident_pages = int(statm.read().split()[1])
        return resident_pages * os.sysconf("SC_PAGE_SIZE") // _MB
    except (OSError, ValueError, IndexError):
        peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        # ru_maxrss is bytes on macOS, kilobytes elsewhere
        return peak // _MB if sys.platform == "darwin" else peak // 1024


class Budget:
    """Resource envelope handed to a running step.

    Steps call ``check()`` between units of work and fan sub-units out through
    ``map_ordered``. Aborts are cooperative: the governor records the reason and
    the next ``check()`` raises it on the worker thread.
    """

    def __init__(
        self,
        *,
        step_name: str,
        deadline: float,
        unit_pool: ThreadPoolExecutor,
        scratch_dir: Path,
    ) -> None:
        self.step_name = step_name
        self.scratch_dir = scratch_dir
        self._deadline = deadline
        self._unit_pool = unit_pool
        self._abort_reason: ProcessorError | None = None
        self._lock = threading.Lock()

    def remaining(self) -> float:
        return max(0.0, self._deadline - time.monotonic())

    def abort(self, reason: ProcessorError) -> None:
        with self._lock:
            if self._abort_reason is None:
                self._abort_reason = reason

    @property
    def abort_reason(self) -> ProcessorError | None:
        return self._abort_reason

    def check(self) -> None:
        """Raise if the step has been aborted or the deadline has passed."""
        reason = self._abort_reason
        if reason is not None:
            raise type(reason)(str(reason))
        if self.remaining() <= 0:
            raise StepTimeoutError("processing deadline exceeded")

    def map_ordered(self, fn: Callable[[T], R], items: Iterable[T]) -> list[R]:
        """Run ``fn`` over ``items`` on the unit pool; results keep source order.

        An exception from any unit cancels the units not yet started and
        propagates to the caller.
        """
        items = list(items)
        futures: dict[Future[R], int] = {
            self._unit_pool.submit(fn, item): index for index, item in enumerate(items)
        }
        results: list[R | None] = [None] * len(items)
        pending = set(futures)
        try:
            while pending:
                self.check()
                done, pending = wait(
                    pending,
                    timeout=min(self.remaining(), _UNIT_POLL_SECONDS),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    results[futures[future]] = future.result()
        finally:
            for future in pending:
                future.cancel()
        return results  # type: ignore[return-value]


class ResourceGovernor:
    """Runs steps under a deadline and a memory ceiling.

    Owns two pools: one for blocking step bodies and one for the sub-units a
    step fans out, so a step waiting on its units never starves them.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._step_executor = ThreadPoolExecutor(
            max_workers=max(2, settings.threads), thread_name_prefix="docpipe-step"
        )
        self._unit_pool = ThreadPoolExecutor(
            max_workers=settings.threads, thread_name_prefix="docpipe-unit"
        )

    def new_deadline(self) -> float:
        return time.monotonic() + self._settings.timeout_seconds

    async def execute(
        self,
        step: PipelineStep,
        query: Query,
        deadline: float,
    ) -> tuple[StepOutcome, ProcessingStep]:
        """Run one step and return its outcome with the timing record."""
        try:
            scratch_dir = self._make_scratch(step.name)
        except OSError as exc:
            error = FileReadError(
                f"Cannot create scratch directory in {self._settings.temp_dir}: "
                f"{exc.strerror or exc}"
            )
            Log.error(f"Step {step.name} not started: {error}")
            outcome = StepOutcome.failed(error)
            return outcome, ProcessingStep(
                name=step.name, duration_ms=0, status=outcome.status.value, memory_mb=0
            )
        budget = Budget(
            step_name=step.name,
            deadline=deadline,
            unit_pool=self._unit_pool,
            scratch_dir=scratch_dir,
        )
        baseline_mb = current_rss_mb()
        peak = [baseline_mb]
        started = time.perf_counter()

        loop = asyncio.get_running_loop()
        work = loop.run_in_executor(self._step_executor, _run_step, step, query, budget)
        monitor = asyncio.ensure_future(self._watch_memory(budget, peak))
        try:
            done, _ = await asyncio.wait(
                {work, monitor}, timeout=budget.remaining(), return_when=asyncio.FIRST_COMPLETED
            )
            if work in done:
                outcome = work.result()
            else:
                reason = budget.abort_reason
                if reason is None:
                    reason = StepTimeoutError(
                        f"processing deadline of {self._settings.timeout_seconds}s exceeded"
                    )
                    budget.abort(reason)
                Log.error(f"Step {step.name} aborted: {reason}")
                outcome = StepOutcome.failed(reason)
        finally:
            monitor.cancel()
            await self._settle(work, step.name)
            self._release_scratch(scratch_dir)

        peak[0] = max(peak[0], current_rss_mb())
        record = ProcessingStep(
            name=step.name,
            duration_ms=int((time.perf_counter() - started) * 1000),
            status=outcome.status.value,
            memory_mb=max(0, peak[0] - baseline_mb),
        )
        return outcome, record

    def _make_scratch(self, step_name: str) -> Path:
        temp_root = Path(self._settings.temp_dir)
        temp_root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f"docpipe-{step_name}-", dir=temp_root))

    async def _watch_memory(self, budget: Budget, peak: list[int]) -> None:
        """Sample RSS until the ceiling is crossed; returns only on a breach."""
        interval = self._settings.memory_poll_interval_ms / 1000
        limit = self._settings.memory_limit_mb
        while True:
            rss = current_rss_mb()
            peak[0] = max(peak[0], rss)
            if limit and rss > limit:
                budget.abort(
                    MemoryLimitExceededError(
                        f"resident memory {rss}MB exceeds limit {limit}MB"
                    )
                )
                return
            await asyncio.sleep(interval)

    async def _settle(self, work: "asyncio.Future[StepOutcome]", step_name: str) -> None:
        """Give an aborted step a bounded window to observe the abort and exit."""
        if work.done():
            return
        done, _ = await asyncio.wait({work}, timeout=self._settings.abort_grace_seconds)
        if not done:
            Log.warning(
                f"Step {step_name} still running {self._settings.abort_grace_seconds}s "
                "after abort; its output will be discarded"
            )

    def _release_scratch(self, scratch_dir: Path) -> None:
        if self._settings.keep_temps:
            Log.info(f"Keeping temporary files in {scratch_dir}")
            return
        shutil.rmtree(scratch_dir, ignore_errors=True)

    def close(self) -> None:
        self._step_executor.shutdown(wait=False, cancel_futures=True)
        self._unit_pool.shutdown(wait=False, cancel_futures=True)


def _run_step(step: PipelineStep, query: Query, budget: Budget) -> StepOutcome:
    """Worker-thread body: converts raised errors into a failed outcome."""
    try:
        budget.check()
        return step.run(query, budget)
    except ProcessorError as exc:
        return StepOutcome.failed(exc)
    except Exception as exc:
        Log.error(f"Step {step.name} raised unexpected {type(exc).__name__}: {exc}")
        return StepOutcome.failed(ProcessorError(f"{type(exc).__name__}: {exc}"))
