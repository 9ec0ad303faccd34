"""Unit tests for the chunked parallel dispatcher."""

import asyncio

import pytest

from review_batch.executor.config import BatchProcessingConfig
from review_batch.executor.dispatcher import BatchExecutor, chunk_items
from review_batch.executor.models import WorkItem
from review_batch.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitState,
)


def spy_on_chunks(executor):
    """Record the size of every chunk the executor dispatches."""
    sizes = []
    original = executor._run_chunk

    async def recording(task, chunk):
        sizes.append(len(chunk))
        return await original(task, chunk)

    executor._run_chunk = recording
    return sizes


async def succeed(payload, index):
    return payload


@pytest.mark.unit
class TestChunking:

    def test_chunks_preserve_order(self):
        items = [WorkItem(i, f"item-{i}") for i in range(10)]

        chunks = chunk_items(items, 3)

        assert [len(c) for c in chunks] == [3, 3, 3, 1]
        assert [item.index for chunk in chunks for item in chunk] == list(range(10))

    def test_empty_input(self):
        assert chunk_items([], 3) == []

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            chunk_items([WorkItem(0, "x")], 0)


@pytest.mark.unit
class TestBatchExecutor:

    @pytest.mark.asyncio
    async def test_all_items_succeed_in_four_chunks(self, make_executor, clock):
        executor = make_executor(concurrency=3)
        sizes = spy_on_chunks(executor)

        result = await executor.run(range(10), succeed)

        assert result.success == list(range(10))
        assert result.failed == []
        assert sizes == [3, 3, 3, 1]
        assert result.statistics.total_processed == 10
        assert result.statistics.success_rate == 1.0

    @pytest.mark.asyncio
    async def test_always_failing_task_exhausts_retries_for_every_item(self, make_executor):
        executor = make_executor(concurrency=2, retry_attempts=1, failure_threshold=1000)
        calls = []

        async def fail(payload, index):
            calls.append(index)
            raise ConnectionError("service unavailable")

        result = await executor.run(["a", "b", "c", "d", "e"], fail)

        assert result.success == []
        assert len(result.failed) == 5
        assert len(calls) == 10
        assert sorted(calls) == [0, 0, 1, 1, 2, 2, 3, 3, 4, 4]
        assert all(f.attempts == 2 for f in result.failed)
        assert result.statistics.success_rate == 0.0

    @pytest.mark.asyncio
    async def test_single_chunk_is_not_throttled(self, make_executor, clock):
        executor = make_executor(concurrency=6, rate_limit_per_second=2)
        started = []

        async def record(payload, index):
            started.append(clock())
            return index

        result = await executor.run(range(6), record)

        assert len(result.success) == 6
        assert clock.sleeps == []
        assert len(set(started)) == 1
        assert (await executor.rate_limiter.get_status())["current_requests"] == 0

    @pytest.mark.asyncio
    async def test_rate_limiter_waits_between_chunks_only(self, make_executor, clock):
        executor = make_executor(concurrency=1, rate_limit_per_second=2)
        admitted = []
        original_wait = executor.rate_limiter.wait

        async def recording_wait():
            waited = await original_wait()
            admitted.append(clock())
            return waited

        executor.rate_limiter.wait = recording_wait

        await executor.run(range(7), succeed)

        assert len(admitted) == 6
        for t in admitted:
            assert sum(1 for other in admitted if 0 <= t - other < 1.0) <= 2
        assert sum(clock.sleeps) > 0

    @pytest.mark.asyncio
    async def test_injected_clock_drives_default_components(self, clock):
        executor = BatchExecutor(
            BatchProcessingConfig(concurrency=1, rate_limit_per_second=1, backoff_delay=0.0),
            sleep=clock.sleep,
            clock=clock,
        )
        started = clock()

        result = await executor.run(range(3), succeed)

        assert result.success == [0, 1, 2]
        assert executor.rate_limiter._clock is clock
        assert executor.circuit_breaker._clock is clock
        assert clock.sleeps == pytest.approx([1.0])
        assert clock() - started == pytest.approx(1.0)

    @pytest.mark.parametrize("total,concurrency", [(1, 1), (5, 2), (7, 3), (12, 4), (4, 10)])
    @pytest.mark.asyncio
    async def test_pending_calls_never_exceed_concurrency(self, total, concurrency):
        executor = BatchExecutor(
            BatchProcessingConfig(
                concurrency=concurrency, rate_limit_per_second=1000, backoff_delay=0.0
            )
        )
        in_flight = 0
        peak = 0

        async def task(payload, index):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001 * (index % 3 + 1))
            in_flight -= 1
            return index

        result = await executor.run(range(total), task)

        assert peak <= concurrency
        assert peak == min(total, concurrency)
        assert len(result.success) == total

    @pytest.mark.asyncio
    async def test_mixed_outcomes_partition_every_item(self, make_executor):
        executor = make_executor(concurrency=4, retry_attempts=1, failure_threshold=1000)

        async def task(payload, index):
            if index % 3 == 0:
                raise ValueError(f"bad item {index}")
            return payload * 10

        result = await executor.run(range(11), task)

        assert len(result.success) + len(result.failed) == 11
        assert result.success == [10, 20, 40, 50, 70, 80, 100]
        assert [f.index for f in result.failed] == [0, 3, 6, 9]
        assert result.statistics.success_rate == pytest.approx(7 / 11)

    @pytest.mark.asyncio
    async def test_failed_items_carry_index_input_and_error(self, make_executor):
        executor = make_executor(concurrency=2, retry_attempts=0, failure_threshold=1000)

        async def task(payload, index):
            if payload == "bad":
                raise RuntimeError("rejected by provider")
            return payload

        result = await executor.run(["ok", "bad", "ok"], task)

        assert result.success == ["ok", "ok"]
        [failed] = result.failed
        assert failed.index == 1
        assert failed.input == "bad"
        assert failed.error == "rejected by provider"
        assert failed.error_type == "RuntimeError"
        assert failed.attempts == 1

    @pytest.mark.asyncio
    async def test_progress_reported_after_each_item(self, make_executor):
        executor = make_executor(concurrency=3)
        progress = []

        await executor.run(range(7), succeed, lambda done, total: progress.append((done, total)))

        assert progress == [(i, 7) for i in range(1, 8)]

    @pytest.mark.asyncio
    async def test_async_progress_callback(self, make_executor):
        executor = make_executor(concurrency=2)
        progress = []

        async def on_progress(done, total):
            progress.append(done)

        await executor.run(range(3), succeed, on_progress)

        assert progress == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_progress_callback_errors_propagate(self, make_executor):
        executor = make_executor(concurrency=2)

        def on_progress(done, total):
            raise KeyError("broken progress sink")

        with pytest.raises(KeyError):
            await executor.run(range(3), succeed, on_progress)

    @pytest.mark.asyncio
    async def test_empty_batch(self, make_executor, clock):
        executor = make_executor()
        progress = []

        result = await executor.run([], succeed, lambda d, t: progress.append(d))

        assert result.success == []
        assert result.failed == []
        assert result.statistics.total_processed == 0
        assert result.statistics.success_rate == 0.0
        assert result.statistics.average_processing_time == 0.0
        assert progress == []

    @pytest.mark.asyncio
    async def test_statistics_use_wall_clock(self, make_executor, clock):
        executor = make_executor(concurrency=2)

        async def task(payload, index):
            clock.advance(0.5)
            return index

        result = await executor.run(range(4), task)

        assert result.statistics.total_processing_time == pytest.approx(2.0)
        assert result.statistics.average_processing_time == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_open_breaker_short_circuits_remaining_items(self, make_executor):
        executor = make_executor(concurrency=1, retry_attempts=0, failure_threshold=2)
        calls = []

        async def fail(payload, index):
            calls.append(index)
            raise ConnectionError("outage")

        result = await executor.run(range(5), fail)

        assert calls == [0, 1]
        assert len(result.failed) == 5
        assert [f.error_type for f in result.failed[2:]] == [CircuitBreakerError.__name__] * 3
        assert executor.circuit_breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_breaker_state_persists_across_runs(self, make_executor):
        executor = make_executor(concurrency=1, retry_attempts=0, failure_threshold=2)

        async def fail(payload, index):
            raise ConnectionError("outage")

        await executor.run(range(2), fail)
        result = await executor.run(["x"], succeed)

        assert result.success == []
        assert result.failed[0].error_type == "CircuitBreakerError"

    @pytest.mark.asyncio
    async def test_shared_breaker_across_executors(self, clock):
        breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=1), clock=clock)
        config = BatchProcessingConfig(retry_attempts=0, backoff_delay=0.0)
        first = BatchExecutor(config, circuit_breaker=breaker, sleep=clock.sleep, clock=clock)
        second = BatchExecutor(config, circuit_breaker=breaker, sleep=clock.sleep, clock=clock)

        async def fail(payload, index):
            raise ConnectionError("outage")

        await first.run(["a"], fail)
        result = await second.run(["b"], succeed)

        assert result.failed[0].error_type == "CircuitBreakerError"

    @pytest.mark.asyncio
    async def test_update_config_keeps_component_state(self, make_executor):
        executor = make_executor(concurrency=2, retry_attempts=0, failure_threshold=5)

        async def fail(payload, index):
            raise ConnectionError("outage")

        await executor.run(range(2), fail)
        config = executor.update_config(
            concurrency=4, rate_limit_per_second=20, failure_threshold=3, retry_attempts=1
        )

        assert config.concurrency == 4
        assert executor.config is config
        assert executor.rate_limiter.max_requests == 20
        assert executor.circuit_breaker.failure_threshold == 3
        assert executor.circuit_breaker.failure_count == 2
        assert executor.retry_policy.config.max_attempts == 2

    def test_update_config_rejects_invalid_values(self, make_executor):
        executor = make_executor()

        with pytest.raises(ValueError):
            executor.update_config(concurrency=0)
        with pytest.raises(TypeError):
            executor.update_config(unknown_option=1)

        assert executor.config.concurrency == 3

    @pytest.mark.asyncio
    async def test_get_statistics(self, make_executor):
        executor = make_executor(concurrency=2)
        await executor.run(range(5), succeed)

        stats = await executor.get_statistics()

        assert stats["config"]["concurrency"] == 2
        assert stats["rate_limiter_status"]["limit"] == 10
        assert stats["rate_limiter_status"]["current_requests"] == 2
        assert stats["circuit_breaker_status"]["state"] == "closed"

    def test_invalid_configuration_is_fatal(self):
        with pytest.raises(ValueError):
            BatchExecutor(BatchProcessingConfig(concurrency=0))
