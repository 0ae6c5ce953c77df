"""
Parallel execution over the signature x sample grid.

Every (signature, sample) pair is an independent work item. Results are
assembled back into ``{signature: {sample: result}}`` in submission order,
regardless of completion order.
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Any, Callable, Literal, Mapping, Optional

from regactivity.core.errors import FitError, GridExecutionError

logger = logging.getLogger(__name__)

GridKey = tuple[str, str]


class GridExecutor:
    """
    Runs grid work items serially or on a worker pool.

    Work items are zero-argument callables. With the ``"process"`` backend
    they must be picklable (e.g. ``functools.partial`` of a module-level
    function).

    Example:
        >>> executor = GridExecutor(backend="thread", max_workers=4)
        >>> results = executor.run({("remap", "s1"): task1, ("remap", "s2"): task2})
        >>> results["remap"]["s1"]
    """

    def __init__(
        self,
        backend: Literal["serial", "thread", "process"] = "serial",
        max_workers: Optional[int] = None,
        fail_fast: bool = True,
    ):
        """
        Initialize executor.

        Args:
            backend: Execution backend.
            max_workers: Worker count for pool backends.
            fail_fast: Raise on the first failure. Otherwise every item is
                attempted and failures are reported together.
        """
        if backend not in ("serial", "thread", "process"):
            raise ValueError(f"Unknown backend: {backend}")
        self.backend = backend
        self.max_workers = max_workers
        self.fail_fast = fail_fast

    @classmethod
    def from_config(cls, parallel_config, parallel: bool = True) -> "GridExecutor":
        """Build from a ``ParallelConfig``; serial when ``parallel`` is False."""
        return cls(
            backend=parallel_config.backend if parallel else "serial",
            max_workers=parallel_config.max_workers,
            fail_fast=parallel_config.fail_fast,
        )

    def run(
        self,
        tasks: Mapping[GridKey, Callable[[], Any]],
    ) -> dict[str, dict[str, Any]]:
        """
        Execute all work items.

        Args:
            tasks: Work items keyed by (signature, sample).

        Returns:
            Nested dict of results keyed by signature, then sample.

        Raises:
            FitError: First failure when ``fail_fast`` is set.
            GridExecutionError: All failures otherwise.
        """
        if not tasks:
            return {}

        logger.debug("Running %d work items (%s backend)", len(tasks), self.backend)

        if self.backend == "serial":
            done, failures = self._run_serial(tasks)
        else:
            done, failures = self._run_pool(tasks)

        results = self._assemble(tasks, done)

        if failures:
            raise GridExecutionError(failures, partial=results)

        return results

    def _run_serial(self, tasks):
        done: dict[GridKey, Any] = {}
        failures: list[FitError] = []
        for key, task in tasks.items():
            try:
                done[key] = task()
            except Exception as e:
                error = FitError(key[0], key[1], e)
                if self.fail_fast:
                    raise error from e
                logger.warning("%s", error)
                failures.append(error)
        return done, failures

    def _run_pool(self, tasks):
        pool_cls = (
            concurrent.futures.ThreadPoolExecutor
            if self.backend == "thread"
            else concurrent.futures.ProcessPoolExecutor
        )

        done: dict[GridKey, Any] = {}
        failures: list[FitError] = []
        with pool_cls(max_workers=self.max_workers) as executor:
            futures = {executor.submit(task): key for key, task in tasks.items()}

            for future in concurrent.futures.as_completed(futures):
                key = futures[future]
                try:
                    done[key] = future.result()
                except Exception as e:
                    error = FitError(key[0], key[1], e)
                    if self.fail_fast:
                        for pending in futures:
                            pending.cancel()
                        raise error from e
                    logger.warning("%s", error)
                    failures.append(error)

        # Keep failure order deterministic
        order = {key: i for i, key in enumerate(tasks)}
        failures.sort(key=lambda f: order[(f.signature, f.sample)])
        return done, failures

    @staticmethod
    def _assemble(
        tasks: Mapping[GridKey, Any],
        done: Mapping[GridKey, Any],
    ) -> dict[str, dict[str, Any]]:
        results: dict[str, dict[str, Any]] = {}
        for signature, sample in tasks:
            if (signature, sample) in done:
                results.setdefault(signature, {})[sample] = done[(signature, sample)]
        return results
