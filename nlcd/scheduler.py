import concurrent.futures
import contextlib
import dataclasses
import math
import os
import threading
import time
import typing
from collections.abc import Callable, Sequence

import pydantic
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from nlcd.aggregator import HistogramRecord, aggregate_polygon
from nlcd.console import console
from nlcd.raster import RasterSubset
from nlcd.types import ExecutorKind


class WorkUnit(typing.NamedTuple):
    index: int
    block_id: str
    geometry: typing.Any


@dataclasses.dataclass
class BatchResult:
    total: int
    records: list[HistogramRecord] = dataclasses.field(default_factory=list)
    failed: list[str] = dataclasses.field(default_factory=list)
    completed: int = 0
    cancelled: bool = False
    elapsed: float = 0.0

    @property
    def succeeded(self) -> int:
        return self.completed - len(self.failed)


def default_worker_count() -> int:
    """Available parallelism minus one unit reserved for the coordinator."""
    return max(1, (os.cpu_count() or 1) - 1)


def checkpoints(total: int) -> set[int]:
    """Completed-unit counts at which a time estimate is reported.

    After unit 10, after unit 100 and at every 10% completion boundary.
    """
    marks = {n for n in (10, 100) if n <= total}
    marks.update(math.ceil(total * step / 10) for step in range(1, 11))
    marks.discard(0)
    return marks


def format_eta(seconds: float) -> str:
    seconds = max(0, int(round(seconds)))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f'{hours}:{minutes:02d}:{secs:02d}'


class ProgressReporter:
    """Logs an estimated time remaining at fixed completion checkpoints."""

    def __init__(
        self,
        total: int,
        *,
        label: str = '',
        clock: Callable[[], float] = time.monotonic,
    ):
        self.total = total
        self.label = label
        self.clock = clock
        self.start = clock()
        self._checkpoints = checkpoints(total)
        self._reported: set[int] = set()

    def estimate_remaining(self, done: int) -> float:
        elapsed = self.clock() - self.start
        return elapsed / done * (self.total - done)

    def update(self, done: int) -> str | None:
        if done not in self._checkpoints or done in self._reported:
            return None
        self._reported.add(done)
        prefix = f'{self.label}: ' if self.label else ''
        message = (
            f'{prefix}{done}/{self.total} blocks processed '
            f'({done / self.total:.0%}), estimated time remaining '
            f'{format_eta(self.estimate_remaining(done))}'
        )
        console.log(message)
        return message


def _run_unit(unit: WorkUnit, subset: RasterSubset) -> list[HistogramRecord]:
    return aggregate_polygon(unit.block_id, unit.geometry, subset)


# read-only raster subset installed once per worker process
_WORKER_SUBSET: RasterSubset | None = None


def _init_worker(subset: RasterSubset) -> None:
    global _WORKER_SUBSET
    _WORKER_SUBSET = subset


def _run_unit_in_worker(unit: WorkUnit) -> list[HistogramRecord]:
    if _WORKER_SUBSET is None:
        raise RuntimeError('Worker process was started without a raster subset')
    return _run_unit(unit, _WORKER_SUBSET)


class BatchScheduler(pydantic.BaseModel):
    """
    Runs the per-polygon aggregation for one state on a worker pool.

    Workers pull the next queued unit as soon as they finish one. Results are
    collected by the calling thread only. A new pool is created for every call
    to :meth:`run` and always shut down before it returns.
    """

    max_workers: pydantic.PositiveInt | None = None
    executor: ExecutorKind = ExecutorKind.THREAD
    poll_interval: float = 0.5
    show_progress: bool = False
    debug: bool = False

    @property
    def worker_count(self) -> int:
        return self.max_workers or default_worker_count()

    def _make_executor(self, subset: RasterSubset) -> concurrent.futures.Executor:
        if self.executor == ExecutorKind.PROCESS:
            return concurrent.futures.ProcessPoolExecutor(
                max_workers=self.worker_count, initializer=_init_worker, initargs=(subset,)
            )
        return concurrent.futures.ThreadPoolExecutor(max_workers=self.worker_count)

    def _submit(
        self, pool: concurrent.futures.Executor, unit: WorkUnit, subset: RasterSubset
    ) -> concurrent.futures.Future:
        if self.executor == ExecutorKind.PROCESS:
            return pool.submit(_run_unit_in_worker, unit)
        return pool.submit(_run_unit, unit, subset)

    def _progress(self):
        if not self.show_progress:
            return contextlib.nullcontext()
        return Progress(
            SpinnerColumn(),
            TextColumn('[progress.description]{task.description}'),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=console,
            transient=False,
        )

    def run(
        self,
        units: Sequence[WorkUnit],
        subset: RasterSubset,
        *,
        cancel_event: threading.Event | None = None,
        label: str = '',
    ) -> BatchResult:
        """
        Aggregate every unit and collect the records.

        Parameters
        ----------
        units : Sequence[WorkUnit]
            One unit per polygon.
        subset : RasterSubset
            Raster window covering all polygons; shared read-only.
        cancel_event : threading.Event, optional
            When set, queued units are dropped and the pool is released.
        label : str, optional
            Prefix for progress messages, e.g. the state name.

        Returns
        -------
        BatchResult
            Records of every successful unit. A unit that raised contributes
            no records and its block id is listed in ``failed``.
        """
        result = BatchResult(total=len(units))
        if not units:
            return result

        start = time.monotonic()
        reporter = ProgressReporter(len(units), label=label)
        if self.debug:
            console.log(
                f'Submitting {len(units)} blocks to a {self.executor.value} pool '
                f'with {self.worker_count} workers'
            )

        pool = self._make_executor(subset)
        try:
            future_to_unit = {self._submit(pool, unit, subset): unit for unit in units}
            pending = set(future_to_unit)
            with self._progress() as progress:
                task = None
                if progress is not None:
                    task = progress.add_task(
                        f'Aggregating {label or "blocks"}', total=len(units)
                    )
                while pending:
                    if cancel_event is not None and cancel_event.is_set():
                        result.cancelled = True
                        console.log(
                            f'[yellow]Cancellation requested, dropping {len(pending)} '
                            'outstanding blocks[/yellow]'
                        )
                        break
                    done, pending = concurrent.futures.wait(
                        pending,
                        timeout=self.poll_interval,
                        return_when=concurrent.futures.FIRST_COMPLETED,
                    )
                    for future in done:
                        unit = future_to_unit[future]
                        try:
                            records = future.result()
                        except Exception as exc:
                            console.log(
                                f'[red]Failed to aggregate block {unit.block_id}: {exc}[/red]'
                            )
                            records = []
                            result.failed.append(unit.block_id)
                        result.records.extend(records)
                        result.completed += 1
                        reporter.update(result.completed)
                        if task is not None:
                            progress.advance(task)
        finally:
            pool.shutdown(wait=not result.cancelled, cancel_futures=True)

        result.failed.sort()
        result.elapsed = time.monotonic() - start
        if self.debug:
            console.log(
                f'Processed {result.completed}/{result.total} blocks in '
                f'{format_eta(result.elapsed)} ({len(result.failed)} failed)'
            )
        return result
