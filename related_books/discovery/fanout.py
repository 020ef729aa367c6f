from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, wait
from dataclasses import dataclass
from queue import Empty, Queue
from typing import Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

FANOUT_DEADLINE_S = 10.0
FANOUT_MAX_WORKERS = 3


@dataclass(frozen=True)
class FanoutOutcome(Generic[T, R]):
    item: T
    result: Optional[R]
    completed: bool
    error: Optional[BaseException] = None


def _drain(jobs: "Queue[Tuple[Future, T]]", task: Callable[[T], R]) -> None:
    while True:
        try:
            fut, item = jobs.get_nowait()
        except Empty:
            return
        # False once the caller has cancelled it at the deadline.
        if not fut.set_running_or_notify_cancel():
            continue
        try:
            result = task(item)
        except Exception as e:
            fut.set_exception(e)
        else:
            fut.set_result(result)


def run_with_deadline(
    items: Sequence[T],
    task: Callable[[T], R],
    *,
    deadline_s: float = FANOUT_DEADLINE_S,
    max_workers: int = FANOUT_MAX_WORKERS,
    thread_name_prefix: str = "fanout",
) -> List[FanoutOutcome[T, R]]:
    """
    Run task(item) for every item on a short-lived bounded set of worker
    threads and wait at most deadline_s for all of them.

    Outcomes come back in submission order. Tasks still running at the
    deadline are reported as not completed and left to finish on their own;
    tasks not yet started are cancelled. Workers are daemon threads, so an
    abandoned task never holds up interpreter exit. Nothing here blocks past
    the deadline.
    """
    items = list(items)
    if not items:
        return []

    workers = max(1, min(len(items), int(max_workers)))
    jobs: "Queue[Tuple[Future, T]]" = Queue()
    futures: List[Future] = []
    for item in items:
        fut: Future = Future()
        futures.append(fut)
        jobs.put((fut, item))

    started = time.monotonic()
    for i in range(workers):
        threading.Thread(
            target=_drain,
            args=(jobs, task),
            name=f"{thread_name_prefix}_{i}",
            daemon=True,
        ).start()

    done, not_done = wait(futures, timeout=max(0.0, float(deadline_s)))
    for fut in not_done:
        fut.cancel()

    if not_done:
        logger.warning(
            "fanout deadline reached | deadline_s=%s | done=%s | abandoned=%s",
            deadline_s,
            len(done),
            len(not_done),
        )

    outcomes: List[FanoutOutcome[T, R]] = []
    for item, fut in zip(items, futures):
        if fut not in done:
            outcomes.append(FanoutOutcome(item=item, result=None, completed=False))
            continue
        err = fut.exception()
        if err is not None:
            logger.warning("fanout task failed | item=%r | err=%r", item, err)
            outcomes.append(FanoutOutcome(item=item, result=None, completed=True, error=err))
            continue
        outcomes.append(FanoutOutcome(item=item, result=fut.result(), completed=True))

    logger.debug(
        "fanout finished | tasks=%s | workers=%s | elapsed=%.2fs",
        len(items),
        workers,
        time.monotonic() - started,
    )
    return outcomes
