"""Tests for the FIFO concurrency limiter."""

import asyncio

import pytest

from pastoralist.utils.limit import ConcurrencyLimiter, create_limit


class TestConcurrencyLimiter:

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError, match="at least 1"):
            ConcurrencyLimiter(0)

    def test_never_exceeds_limit(self):
        async def scenario():
            limiter = ConcurrencyLimiter(2)
            active = 0
            peak = 0

            async def task():
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1
                return "done"

            results = await asyncio.gather(*(limiter.run(task) for _ in range(6)))
            return results, peak

        results, peak = asyncio.run(scenario())

        assert results == ["done"] * 6
        assert peak == 2

    def test_tasks_start_in_fifo_order(self):
        async def scenario():
            limiter = ConcurrencyLimiter(1)
            started = []

            def make(i):
                async def task():
                    started.append(i)
                    await asyncio.sleep(0)
                    return i
                return task

            results = await asyncio.gather(*(limiter.run(make(i)) for i in range(5)))
            return started, results

        started, results = asyncio.run(scenario())

        assert started == [0, 1, 2, 3, 4]
        assert results == [0, 1, 2, 3, 4]

    def test_failure_reaches_only_its_own_caller(self):
        async def scenario():
            limiter = ConcurrencyLimiter(1)

            async def boom():
                raise RuntimeError("boom")

            async def fine():
                return 42

            return await asyncio.gather(limiter.run(boom), limiter.run(fine), return_exceptions=True)

        failed, succeeded = asyncio.run(scenario())

        assert isinstance(failed, RuntimeError)
        assert succeeded == 42

    def test_queue_and_active_counts(self):
        async def scenario():
            limiter = ConcurrencyLimiter(1)
            release = asyncio.Event()

            async def blocker():
                await release.wait()

            futures = [limiter.run(blocker) for _ in range(3)]
            await asyncio.sleep(0)
            snapshot = (limiter.active_count, limiter.queue_size)
            release.set()
            await asyncio.gather(*futures)
            return snapshot, (limiter.active_count, limiter.queue_size)

        during, after = asyncio.run(scenario())

        assert during == (1, 2)
        assert after == (0, 0)

    def test_clear_cancels_queued_tasks(self):
        async def scenario():
            limiter = ConcurrencyLimiter(1)
            release = asyncio.Event()
            ran = []

            async def blocker():
                await release.wait()
                return "first"

            async def queued():
                ran.append("queued")

            first = limiter.run(blocker)
            second = limiter.run(queued)
            await asyncio.sleep(0)
            limiter.clear()
            release.set()
            return await first, second.cancelled(), ran

        first, second_cancelled, ran = asyncio.run(scenario())

        assert first == "first"
        assert second_cancelled
        assert ran == []

    def test_create_limit(self):
        async def scenario():
            limit = create_limit(3)

            async def task():
                return 1

            return await asyncio.gather(*(limit(task) for _ in range(4)))

        assert asyncio.run(scenario()) == [1, 1, 1, 1]
