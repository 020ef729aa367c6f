import threading
import time

from related_books.discovery.fanout import run_with_deadline


def test_outcomes_follow_submission_order() -> None:
    delays = {"slow": 0.3, "fast": 0.0, "mid": 0.1}

    def task(name: str) -> str:
        time.sleep(delays[name])
        return name.upper()

    outcomes = run_with_deadline(["slow", "fast", "mid"], task, deadline_s=5.0, max_workers=3)

    assert [o.item for o in outcomes] == ["slow", "fast", "mid"]
    assert [o.result for o in outcomes] == ["SLOW", "FAST", "MID"]
    assert all(o.completed for o in outcomes)


def test_deadline_abandons_slow_tasks() -> None:
    def task(delay: float) -> float:
        time.sleep(delay)
        return delay

    started = time.monotonic()
    outcomes = run_with_deadline([0.0, 1.0], task, deadline_s=0.2, max_workers=2)
    elapsed = time.monotonic() - started

    assert elapsed < 0.9
    assert outcomes[0].completed and outcomes[0].result == 0.0
    assert not outcomes[1].completed
    assert outcomes[1].result is None


def test_failing_task_is_reported_not_raised() -> None:
    def task(n: int) -> int:
        if n == 2:
            raise ValueError("boom")
        return n * 10

    outcomes = run_with_deadline([1, 2, 3], task, deadline_s=2.0, max_workers=2)

    assert [o.result for o in outcomes] == [10, None, 30]
    assert isinstance(outcomes[1].error, ValueError)


def test_empty_input() -> None:
    assert run_with_deadline([], lambda x: x) == []


def test_workers_are_daemon_threads() -> None:
    seen = []

    def task(delay: float) -> float:
        seen.append(threading.current_thread().daemon)
        time.sleep(delay)
        return delay

    outcomes = run_with_deadline([0.0, 0.5], task, deadline_s=0.1, max_workers=2)

    assert not outcomes[1].completed
    assert seen and all(seen)


def test_pending_tasks_are_cancelled_at_deadline() -> None:
    ran = []

    def task(delay: float) -> float:
        ran.append(delay)
        time.sleep(delay)
        return delay

    outcomes = run_with_deadline([0.4, 0.0], task, deadline_s=0.1, max_workers=1)
    time.sleep(0.5)

    assert [o.completed for o in outcomes] == [False, False]
    assert ran == [0.4]
