"""Task execution across a list of hosts.

A run has two passes over the host list, with different failure policies:

1. Prepare: ``task.prepare(host)`` for every host. The first error aborts
   the whole run and propagates to the caller; no host is contacted.
2. Apply: ``task.apply(host, data)`` for every host. Each error is caught
   and recorded as a failed outcome for that host only.

Both passes run either sequentially in the calling thread or on a bounded
thread pool. Either way the report lists outcomes in input order.

There is no timeout on apply: a hung remote operation blocks its worker
until the process is terminated. Only connection establishment is bounded,
by the transport's connect timeout.
"""

import os
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, as_completed, wait
from typing import Any, Sequence

from .exceptions import SweepError
from .logging import get_logger, log_duration, log_scope
from .progress import NullProgressReporter, ProgressReporter
from .tasks.base import Task
from .types import ExecutionReport, Host, HostOutcome

logger = get_logger(__name__)


def apply_to_host(task: Task[Any], host: Host, data: Any) -> tuple[HostOutcome, float]:
    """Apply a prepared task to one host, converting any error to an outcome.

    Returns:
        Tuple of (outcome, duration in seconds)
    """
    host_id = host.id.value
    start_time = time.perf_counter()

    try:
        info = task.apply(host, data)
    except SweepError as e:
        logger.error(f"Task failed on {host_id}: {e}", task=task.name)
        outcome = HostOutcome.failed(host_id, str(e))
    except Exception as e:
        logger.exception(f"Task failed on {host_id}: {e}", task=task.name)
        outcome = HostOutcome.failed(host_id, str(e) or type(e).__name__)
    else:
        logger.debug(f"Task succeeded on {host_id}", task=task.name)
        outcome = HostOutcome.succeeded(host_id, info)

    return outcome, time.perf_counter() - start_time


class TaskRunner:
    """Runs a task over a list of hosts and aggregates one report.

    Attributes:
        max_workers: Size of the thread pool used by parallel runs
        progress: Reporter notified as hosts complete

    Example:
        >>> runner = TaskRunner()
        >>> report = runner.run(inventory.hosts, ExecTask("uptime"), parallel=True)
        >>> print(report.to_json())
    """

    def __init__(
        self,
        max_workers: int | None = None,
        progress: ProgressReporter | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            max_workers: Thread pool size (default: number of CPUs)
            progress: Progress reporter (default: no reporting)
        """
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers or os.cpu_count() or 1
        self.progress = progress or NullProgressReporter()

    def run(self, hosts: Sequence[Host], task: Task[Any], parallel: bool = False) -> ExecutionReport:
        """Run a task on every host, sequentially or on the thread pool.

        Raises:
            Exception: The first error raised by ``prepare``, in host order
        """
        if parallel:
            return self.run_parallel(hosts, task)
        return self.run_sequential(hosts, task)

    def run_sequential(self, hosts: Sequence[Host], task: Task[Any]) -> ExecutionReport:
        """Run a task one host at a time, in list order."""
        with log_duration(logger.logger, "Sequential run", task=task.name, hosts=len(hosts)):
            with log_scope(logger.logger, "Prepare phase", task=task.name, hosts=len(hosts)):
                prepared = [task.prepare(host) for host in hosts]

            start_time = time.perf_counter()
            self.progress.on_execution_start(len(hosts), task.name)

            outcomes: list[HostOutcome] = []
            for host, data in zip(hosts, prepared):
                outcome, duration = apply_to_host(task, host, data)
                self._on_host_complete(outcome, duration)
                outcomes.append(outcome)

            return self._finish(outcomes, start_time)

    def run_parallel(self, hosts: Sequence[Host], task: Task[Any]) -> ExecutionReport:
        """Run a task on the thread pool, keeping outcomes in list order."""
        workers = min(self.max_workers, max(len(hosts), 1))

        with log_duration(
            logger.logger, "Parallel run", task=task.name, hosts=len(hosts), workers=workers
        ):
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sweep") as pool:
                with log_scope(logger.logger, "Prepare phase", task=task.name, hosts=len(hosts)):
                    prepared = self._prepare_parallel(pool, hosts, task)

                start_time = time.perf_counter()
                self.progress.on_execution_start(len(hosts), task.name)

                outcomes: list[HostOutcome | None] = [None] * len(hosts)
                futures: dict[Future[tuple[HostOutcome, float]], int] = {
                    pool.submit(apply_to_host, task, host, data): index
                    for index, (host, data) in enumerate(zip(hosts, prepared))
                }

                for future in as_completed(futures):
                    outcome, duration = future.result()
                    outcomes[futures[future]] = outcome
                    self._on_host_complete(outcome, duration)

            return self._finish(outcomes, start_time)

    def _prepare_parallel(self, pool: ThreadPoolExecutor, hosts: Sequence[Host], task: Task[Any]) -> list[Any]:
        """Prepare every host on the pool, stopping at the first failure.

        Hosts still queued when a prepare fails are cancelled. Of the
        prepares that ran, the first failing one in host order is re-raised.
        """
        futures = [pool.submit(task.prepare, host) for host in hosts]
        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
        if any(future.exception() is not None for future in done):
            pool.shutdown(cancel_futures=True)
            for future in futures:
                if not future.cancelled():
                    future.result()
        return [future.result() for future in futures]

    def _on_host_complete(self, outcome: HostOutcome, duration: float) -> None:
        self.progress.on_host_complete(outcome.host, outcome.success, duration, outcome.error)

    def _finish(self, outcomes: Sequence[HostOutcome | None], start_time: float) -> ExecutionReport:
        report = ExecutionReport(tuple(outcomes))
        self.progress.on_execution_complete(
            len(report),
            report.successful,
            report.failed,
            time.perf_counter() - start_time,
        )
        logger.info(f"Run complete: {report.successful}/{len(report)} succeeded")
        return report


def run_task(
    hosts: Sequence[Host],
    task: Task[Any],
    parallel: bool = False,
    max_workers: int | None = None,
) -> ExecutionReport:
    """Run a task on hosts with a default TaskRunner.

    Example:
        >>> report = run_task(inventory.get_hosts_by_tag_query("web"), InfoTask())
    """
    return TaskRunner(max_workers=max_workers).run(hosts, task, parallel=parallel)
