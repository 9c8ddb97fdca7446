import asyncio

import anyio
import pytest

from process_intake.core.async_utils import BackendGate, run_async
from process_intake.core.locks import KeyedLocks


async def _sample() -> str:
    await anyio.sleep(0)
    return "ok"


@pytest.mark.anyio
async def test_run_async_avoids_asyncio_run_in_worker_thread(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _fail_run(*_args: object, **_kwargs: object) -> None:
        pytest.fail("asyncio.run should not be used in request threads")

    monkeypatch.setattr(asyncio, "run", _fail_run)

    def _call() -> str:
        return run_async(_sample())

    result = await anyio.to_thread.run_sync(_call)
    assert result == "ok"


def test_run_async_from_sync_code() -> None:
    assert run_async(_sample(), timeout=5) == "ok"


@pytest.mark.anyio
async def test_backend_gate_bounds_concurrency() -> None:
    gate = BackendGate(max_concurrency=2, timeout=None)
    active = 0
    peak = 0

    async def _work() -> None:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await anyio.sleep(0.01)
        active -= 1

    async with anyio.create_task_group() as tg:
        for _ in range(6):
            tg.start_soon(gate.call, _work)

    assert peak == 2


@pytest.mark.anyio
async def test_backend_gate_deadline() -> None:
    gate = BackendGate(max_concurrency=1, timeout=0.01)

    async def _slow() -> None:
        await anyio.sleep(1)

    with pytest.raises(TimeoutError):
        await gate.call(_slow)


@pytest.mark.anyio
async def test_backend_gate_runs_blocking_call_in_thread() -> None:
    gate = BackendGate(max_concurrency=1, timeout=5)

    assert await gate.call_in_thread(lambda a, b: a + b, 2, 3) == 5


@pytest.mark.anyio
async def test_keyed_locks_serialize_per_key_and_clean_up() -> None:
    locks = KeyedLocks()
    order: list[str] = []

    async def _hold(key: str, label: str) -> None:
        async with locks.hold(key):
            order.append(f"{label}-in")
            await anyio.sleep(0.01)
            order.append(f"{label}-out")

    async with anyio.create_task_group() as tg:
        tg.start_soon(_hold, "a", "first")
        await anyio.sleep(0)
        tg.start_soon(_hold, "a", "second")

    assert order == ["first-in", "first-out", "second-in", "second-out"]
    assert len(locks) == 0


@pytest.mark.anyio
async def test_keyed_locks_independent_keys_overlap() -> None:
    locks = KeyedLocks()
    inside = anyio.Event()

    async def _first() -> None:
        async with locks.hold("a"):
            await inside.wait()

    async with anyio.create_task_group() as tg:
        tg.start_soon(_first)
        await anyio.sleep(0)
        async with locks.hold("b"):
            inside.set()

    assert len(locks) == 0
