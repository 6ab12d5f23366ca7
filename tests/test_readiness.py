import asyncio

import pytest
import structlog
from structlog.testing import capture_logs

from rqueue.core.readiness import Readiness, ReadinessGate
from rqueue.domain.models import ConnectionState


@pytest.fixture
def readiness() -> Readiness:
    return Readiness(logger=structlog.get_logger(), queue_name="q")


@pytest.fixture
def gate(readiness: Readiness) -> ReadinessGate:
    return ReadinessGate(readiness)


# ---------------------------------------------------------------------------
# Readiness
# ---------------------------------------------------------------------------


def test_starts_disconnected(readiness: Readiness) -> None:
    assert readiness.state is ConnectionState.DISCONNECTED
    assert not readiness.is_ready


@pytest.mark.parametrize(
    "state",
    [
        ConnectionState.DISCONNECTED,
        ConnectionState.CONNECTING,
        ConnectionState.RECONNECTING,
    ],
)
def test_only_ready_state_is_ready(readiness: Readiness, state: ConnectionState) -> None:
    readiness.transition(ConnectionState.READY)
    readiness.transition(state)
    assert not readiness.is_ready


def test_transition_to_ready(readiness: Readiness) -> None:
    readiness.transition(ConnectionState.READY)
    assert readiness.is_ready


def test_transition_logs_previous_and_new_state(readiness: Readiness) -> None:
    with capture_logs() as logs:
        readiness.transition(ConnectionState.CONNECTING)
    assert logs[0]["event"] == "connection_state_changed"
    assert logs[0]["previous"] == "disconnected"
    assert logs[0]["state"] == "connecting"


def test_same_state_transition_is_silent(readiness: Readiness) -> None:
    with capture_logs() as logs:
        readiness.transition(ConnectionState.DISCONNECTED)
    assert logs == []


async def test_wait_ready_returns_immediately_when_ready(readiness: Readiness) -> None:
    readiness.transition(ConnectionState.READY)
    await asyncio.wait_for(readiness.wait_ready(), timeout=0.1)


async def test_wait_ready_wakes_on_transition(readiness: Readiness) -> None:
    waiter = asyncio.create_task(readiness.wait_ready())
    await asyncio.sleep(0.01)
    assert not waiter.done()

    readiness.transition(ConnectionState.READY)
    await asyncio.wait_for(waiter, timeout=0.1)


async def test_wait_ready_keeps_waiting_if_readiness_flaps(readiness: Readiness) -> None:
    waiter = asyncio.create_task(readiness.wait_ready())
    await asyncio.sleep(0)
    readiness.transition(ConnectionState.READY)
    readiness.transition(ConnectionState.RECONNECTING)
    await asyncio.sleep(0.01)
    assert not waiter.done()

    readiness.transition(ConnectionState.READY)
    await asyncio.wait_for(waiter, timeout=0.1)


# ---------------------------------------------------------------------------
# ReadinessGate
# ---------------------------------------------------------------------------


async def test_runs_immediately_when_ready(
    readiness: Readiness, gate: ReadinessGate
) -> None:
    readiness.transition(ConnectionState.READY)
    calls: list[str] = []

    async def action() -> str:
        calls.append("ran")
        return "result"

    task = asyncio.create_task(gate.run_when_ready(action))
    # One loop iteration is enough: no timer between the check and the action
    await asyncio.sleep(0)
    assert calls == ["ran"]
    assert await task == "result"


async def test_defers_until_ready(readiness: Readiness, gate: ReadinessGate) -> None:
    calls: list[str] = []

    async def action() -> int:
        calls.append("ran")
        return 42

    task = asyncio.create_task(gate.run_when_ready(action))
    await asyncio.sleep(0.05)
    assert calls == []

    readiness.transition(ConnectionState.READY)
    assert await asyncio.wait_for(task, timeout=0.1) == 42
    assert calls == ["ran"]


async def test_action_runs_exactly_once(readiness: Readiness, gate: ReadinessGate) -> None:
    calls = 0

    async def action() -> None:
        nonlocal calls
        calls += 1

    task = asyncio.create_task(gate.run_when_ready(action))
    await asyncio.sleep(0)
    readiness.transition(ConnectionState.READY)
    await task
    readiness.transition(ConnectionState.RECONNECTING)
    readiness.transition(ConnectionState.READY)
    await asyncio.sleep(0.01)
    assert calls == 1


async def test_action_error_propagates_unchanged(
    readiness: Readiness, gate: ReadinessGate
) -> None:
    readiness.transition(ConnectionState.READY)

    async def action() -> None:
        raise KeyError("boom")

    with pytest.raises(KeyError, match="boom"):
        await gate.run_when_ready(action)


async def test_concurrent_waiters_all_run(
    readiness: Readiness, gate: ReadinessGate
) -> None:
    async def action(n: int) -> int:
        return n * 2

    tasks = [
        asyncio.create_task(gate.run_when_ready(lambda n=n: action(n)))
        for n in range(5)
    ]
    await asyncio.sleep(0.01)
    assert not any(t.done() for t in tasks)

    readiness.transition(ConnectionState.READY)
    results = await asyncio.wait_for(asyncio.gather(*tasks), timeout=0.1)
    assert sorted(results) == [0, 2, 4, 6, 8]
