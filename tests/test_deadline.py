from newsroom import deadline as checkpoints
from newsroom.deadline import Deadline


class Ticker:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_checkpoints_trip_in_order() -> None:
    ticker = Ticker()
    deadline = Deadline(100, clock=ticker)

    ticker.now += 59
    assert not deadline.exceeded(checkpoints.FETCH)

    ticker.now += 2
    assert deadline.exceeded(checkpoints.FETCH)
    assert not deadline.exceeded(checkpoints.PROCESS)

    ticker.now += 25
    assert deadline.exceeded(checkpoints.TOPICS)
    assert not deadline.exceeded(checkpoints.SUMMARY)
    assert deadline.elapsed() == 86


def test_zero_budget_is_exceeded_immediately() -> None:
    deadline = Deadline(0, clock=Ticker())
    assert deadline.exceeded(checkpoints.FETCH)
    assert deadline.exceeded()
