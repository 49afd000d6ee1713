"""Concurrent upstream fetching with required and best-effort policies.

A request fans out to several independent upstream calls and waits for the
whole group. Required fetches abort the group on failure: siblings that have
not started yet are cancelled and :class:`RequiredFetchError` is raised.
Best-effort fetches resolve to None on failure and never abort the group.

Results are collected from futures by the calling thread, so no accumulator
is ever written by more than one thread.
"""

from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, TypeVar

import structlog

from .telemetry import BackendMetrics

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_FAILED = object()


class RequiredFetchError(Exception):
    """Raised when a fetch the response cannot be built without fails."""

    def __init__(self, source: str):
        self.source = source
        super().__init__(f"required fetch failed: {source}")


def _best_effort(
    source: str,
    fetch: Callable[[], T],
    metrics: BackendMetrics | None,
    default: Any = None,
    **log_context: Any,
) -> T | Any:
    try:
        return fetch()
    except Exception as e:  # noqa: BLE001
        logger.warning(
            "Best-effort fetch failed",
            source=source,
            error=str(e),
            **log_context,
        )
        if metrics is not None:
            metrics.record_upstream_failure(source, required=False)
        return default


def fetch_required(
    source: str,
    fetch: Callable[[], T],
    metrics: BackendMetrics | None = None,
) -> T:
    """Run a single required fetch, converting failures to RequiredFetchError."""
    try:
        return fetch()
    except Exception as e:
        logger.error("Required fetch failed", source=source, error=str(e))
        if metrics is not None:
            metrics.record_upstream_failure(source, required=True)
        raise RequiredFetchError(source) from e


def fetch_all(
    required: Mapping[str, Callable[[], Any]],
    best_effort: Mapping[str, Callable[[], Any]] | None = None,
    *,
    max_workers: int | None = None,
    metrics: BackendMetrics | None = None,
) -> dict[str, Any]:
    """Run named fetches concurrently and wait for all of them.

    Args:
        required: Fetches whose failure aborts the whole group.
        best_effort: Fetches whose failure yields None for that name.
        max_workers: Concurrency bound (default: one thread per fetch).
        metrics: Optional metrics recorder for upstream failures.

    Returns:
        Mapping of fetch name to its result (None for failed best-effort
        fetches).

    Raises:
        RequiredFetchError: If any required fetch fails.
    """
    best_effort = best_effort or {}
    task_count = len(required) + len(best_effort)
    if task_count == 0:
        return {}

    executor = ThreadPoolExecutor(
        max_workers=max_workers or task_count,
        thread_name_prefix="fetch",
    )
    try:
        futures = {executor.submit(fetch): name for name, fetch in required.items()}
        for name, fetch in best_effort.items():
            futures[executor.submit(_best_effort, name, fetch, metrics)] = name

        # Only required fetches can raise, so FIRST_EXCEPTION waits for the
        # whole group unless one of them fails.
        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
        for future in done:
            if (exc := future.exception()) is not None:
                source = futures[future]
                logger.error("Required fetch failed", source=source, error=str(exc))
                if metrics is not None:
                    metrics.record_upstream_failure(source, required=True)
                raise RequiredFetchError(source) from exc

        return {name: future.result() for future, name in futures.items()}
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def map_best_effort(
    fetch: Callable[[T], R],
    items: Iterable[T],
    *,
    source: str,
    max_workers: int,
    metrics: BackendMetrics | None = None,
) -> list[R]:
    """Apply ``fetch`` to every item concurrently, dropping failures.

    At most ``max_workers`` calls run at once. Results keep item order;
    items whose fetch failed are skipped.
    """
    items = list(items)
    if not items:
        return []

    with ThreadPoolExecutor(
        max_workers=min(max_workers, len(items)),
        thread_name_prefix=source,
    ) as executor:
        futures = [
            executor.submit(
                _best_effort,
                source,
                lambda item=item: fetch(item),
                metrics,
                _FAILED,
                item=str(item),
            )
            for item in items
        ]

    results = [future.result() for future in futures]
    return [result for result in results if result is not _FAILED]
